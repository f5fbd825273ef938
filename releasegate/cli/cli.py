"""releasegate command line interface.

Commands:
    releasegate run --source-ref REF --image-tag TAG --target TARGET
    releasegate validate [--config PATH]
    releasegate init [--path DIR] [--force] [--dry-run]
    releasegate logs list | show RUN_ID
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Never

import typer
from tabulate import tabulate

from releasegate.core.models import RunStatus, TriggerInput
from releasegate.domain.config_loader import (
    CONFIG_FILENAME,
    dump_pipeline_config,
    load_pipeline_config,
)
from releasegate.domain.pipeline_config import ConfigError, default_pipeline_config
from releasegate.infra.io.config import ConfigurationError, ReleasegateConfig
from releasegate.infra.io.event_sink import ConsoleEventSink
from releasegate.infra.io.log_output.console import Colors, log, set_verbose
from releasegate.infra.tools.env import load_user_env
from releasegate.orchestration.factory import (
    OrchestratorConfig,
    OrchestratorDependencies,
    create_orchestrator,
)

from .logs import logs_app

_bootstrapped = False

# Process exit code per terminal run status
EXIT_CODES = {
    RunStatus.SUCCEEDED: 0,
    RunStatus.FAILED: 1,
    RunStatus.ABORTED: 130,
}
CONFIG_ERROR_EXIT_CODE = 2


def bootstrap() -> None:
    """Initialize environment.

    Idempotent. Loads environment variables from ~/.config/releasegate/.env
    so SONAR_TOKEN and webhook settings are visible to ReleasegateConfig.
    """
    global _bootstrapped

    if _bootstrapped:
        return

    load_user_env()
    _bootstrapped = True


app = typer.Typer(
    name="releasegate",
    help="Gated build-and-release pipeline orchestrator",
    add_completion=False,
)


@app.command()
def run(
    source_ref: Annotated[
        str,
        typer.Option("--source-ref", "-r", help="Commit or branch to release"),
    ],
    image_tag: Annotated[
        str,
        typer.Option("--image-tag", "-i", help="Container image reference to build"),
    ],
    target: Annotated[
        str,
        typer.Option("--target", "-t", help="Deployment target (cluster context or app)"),
    ],
    config: Annotated[
        Path,
        typer.Option(
            "--config",
            "-c",
            help=f"Pipeline file, or a directory containing {CONFIG_FILENAME}",
        ),
    ] = Path("."),
    workdir: Annotated[
        Path | None,
        typer.Option(
            "--workdir",
            "-w",
            help="Working directory for stage commands (default: RELEASEGATE_WORKDIR or cwd)",
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show full tool output in progress lines"),
    ] = False,
) -> Never:
    """Run the pipeline once for a source ref, image tag and target."""
    set_verbose(verbose)

    try:
        releasegate_config = ReleasegateConfig.from_env()
    except ConfigurationError as e:
        log("✗", str(e), Colors.RED)
        raise typer.Exit(CONFIG_ERROR_EXIT_CODE) from e

    resolved_workdir = (workdir or releasegate_config.workdir).resolve()
    try:
        pipeline = load_pipeline_config(config)
        orchestrator = create_orchestrator(
            pipeline,
            OrchestratorConfig(
                workdir=resolved_workdir,
                runs_dir=releasegate_config.runs_dir,
                debug_log=True,
                console_report=True,
            ),
            releasegate_config=releasegate_config,
            deps=OrchestratorDependencies(event_sink=ConsoleEventSink()),
        )
    except ConfigError as e:
        log("✗", str(e), Colors.RED)
        raise typer.Exit(CONFIG_ERROR_EXIT_CODE) from e

    state = orchestrator.run_sync(
        TriggerInput(source_ref=source_ref, image_tag=image_tag, target=target),
        handle_sigint=True,
    )
    raise typer.Exit(EXIT_CODES[state.status])


@app.command()
def validate(
    config: Annotated[
        Path,
        typer.Option(
            "--config",
            "-c",
            help=f"Pipeline file, or a directory containing {CONFIG_FILENAME}",
        ),
    ] = Path("."),
) -> None:
    """Validate the pipeline file and print its stages."""
    try:
        pipeline = load_pipeline_config(config)
    except ConfigError as e:
        log("✗", str(e), Colors.RED)
        raise typer.Exit(CONFIG_ERROR_EXIT_CODE) from e

    rows = []
    for stage in pipeline.stages:
        policy = pipeline.policies.get(stage.kind) if stage.gating else None
        rows.append(
            [
                stage.name,
                stage.kind.value,
                f">= {policy.threshold.value.lower()}" if policy else "-",
                f"{stage.timeout_seconds:g}s",
                stage.retry.max_attempts,
            ]
        )
    print(
        tabulate(
            rows,
            headers=["stage", "kind", "gate", "timeout", "attempts"],
            tablefmt="simple",
        )
    )
    log("✓", f"{len(pipeline.stages)} stages OK", Colors.GREEN)


@app.command()
def init(
    path: Annotated[
        Path,
        typer.Option("--path", "-p", help="Directory to write the pipeline file into"),
    ] = Path("."),
    force: Annotated[
        bool,
        typer.Option("--force", "-f", help="Overwrite an existing pipeline file"),
    ] = False,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="Print the starter file instead of writing it"),
    ] = False,
) -> None:
    """Write a starter releasegate.yaml with the standard nine stages."""
    content = dump_pipeline_config(default_pipeline_config())
    if dry_run:
        print(content, end="")
        return

    target = path / CONFIG_FILENAME
    if target.exists() and not force:
        log("✗", f"{target} already exists. Use --force to overwrite.", Colors.RED)
        raise typer.Exit(1)
    path.mkdir(parents=True, exist_ok=True)
    target.write_text(content, encoding="utf-8")
    log("✓", f"Wrote {target}", Colors.GREEN)
    log("◐", "Run `releasegate validate` to check it", Colors.MUTED)


app.add_typer(logs_app, name="logs")
