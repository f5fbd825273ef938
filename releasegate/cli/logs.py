"""Logs subcommand for releasegate CLI: list and inspect run records."""

from __future__ import annotations

import json
import sys
from datetime import datetime
from pathlib import Path
from typing import Annotated, Any

import typer
from tabulate import tabulate

from releasegate.infra.io.log_output.console import format_counts
from releasegate.infra.io.run_metadata import load_run_record
from releasegate.infra.tools.env import get_runs_dir

logs_app = typer.Typer(name="logs", help="List and inspect releasegate run records")

# Required keys for a valid run record
_REQUIRED_KEYS = {"run_id", "started_at", "status", "stages"}

# Default limit for number of runs to display
_DEFAULT_LIMIT = 20


def _discover_run_files() -> list[Path]:
    """Run record JSON files, newest first (timestamps lead the filenames)."""
    runs_dir = get_runs_dir()
    if not runs_dir.exists():
        return []
    return sorted(runs_dir.glob("*.json"), key=lambda p: p.name, reverse=True)


def _validate_run_record(data: object) -> bool:
    """Check that a parsed record is a dict with the required keys and types."""
    if not isinstance(data, dict):
        return False
    if not _REQUIRED_KEYS.issubset(data.keys()):
        return False
    if not isinstance(data.get("run_id"), str):
        return False
    if not isinstance(data.get("started_at"), str):
        return False
    return isinstance(data.get("stages"), list)


def _parse_run_file(path: Path) -> dict[str, Any] | None:
    """Parse a run record, or None if it is corrupt or incomplete.

    Prints a warning to stderr for unreadable files.
    """
    try:
        data = load_run_record(path)
    except (json.JSONDecodeError, OSError, UnicodeDecodeError) as e:
        print(f"Warning: skipping corrupt file {path}: {e}", file=sys.stderr)
        return None
    if not _validate_run_record(data):
        return None
    return data


def _parse_timestamp(ts: str) -> float:
    """Parse ISO timestamp to epoch float for sorting."""
    try:
        return datetime.fromisoformat(ts.replace("Z", "+00:00")).timestamp()
    except (ValueError, TypeError, AttributeError):
        return 0.0


def _collect_runs(files: list[Path], limit: int | None = None) -> list[dict[str, Any]]:
    runs: list[dict[str, Any]] = []
    for path in files:
        if limit is not None and len(runs) >= limit:
            break
        data = _parse_run_file(path)
        if data is not None:
            runs.append({**data, "record_path": str(path)})
    return sorted(runs, key=lambda r: (-_parse_timestamp(r["started_at"]), r["run_id"]))


def _format_null(value: object) -> str:
    """Format value for table display, showing '-' for None."""
    return "-" if value is None else str(value)


def _format_counts(counts: object) -> str:
    if not isinstance(counts, dict) or not counts:
        return "-"
    return format_counts(counts)


@logs_app.command(name="list")
def list_runs(
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            help="Output as JSON",
        ),
    ] = False,
    limit: Annotated[
        int,
        typer.Option(
            "--limit",
            "-n",
            help="Maximum number of runs to display",
            min=1,
        ),
    ] = _DEFAULT_LIMIT,
) -> None:
    """List recent releasegate runs."""
    runs = _collect_runs(_discover_run_files(), limit=limit)

    if not runs:
        print("[]" if json_output else "No runs found")
        return

    if json_output:
        output = [
            {
                "run_id": run["run_id"],
                "started_at": run["started_at"],
                "status": run["status"],
                "image_tag": run.get("image_tag"),
                "halted_stage": run.get("halted_stage"),
                "elapsed_seconds": run.get("elapsed_seconds"),
                "record_path": run["record_path"],
            }
            for run in runs
        ]
        print(json.dumps(output, indent=2))
        return

    headers = ["run_id", "started_at", "status", "image", "halted at", "elapsed"]
    rows = [
        [
            run["run_id"][:8],
            _format_null(run.get("started_at")),
            _format_null(run.get("status")),
            _format_null(run.get("image_tag")),
            _format_null(run.get("halted_stage")),
            f"{float(run.get('elapsed_seconds') or 0):.1f}s",
        ]
        for run in runs
    ]
    print(tabulate(rows, headers=headers, tablefmt="simple"))


@logs_app.command()
def show(
    run_id: Annotated[
        str,
        typer.Argument(
            help="Run ID (or unique prefix) to show details for",
        ),
    ],
    json_output: Annotated[
        bool,
        typer.Option(
            "--json",
            help="Output as JSON",
        ),
    ] = False,
) -> None:
    """Show the stage-by-stage report of a run."""
    matches = [r for r in _collect_runs(_discover_run_files()) if r["run_id"].startswith(run_id)]
    if not matches:
        print(f"No run found matching '{run_id}'", file=sys.stderr)
        raise typer.Exit(1)
    if len(matches) > 1:
        ids = ", ".join(r["run_id"][:8] for r in matches)
        print(f"Ambiguous run ID prefix '{run_id}': {ids}", file=sys.stderr)
        raise typer.Exit(1)

    run = matches[0]
    if json_output:
        print(json.dumps(run, indent=2))
        return

    print(f"run:     {run['run_id']}")
    print(f"status:  {run['status']}")
    print(f"source:  {_format_null(run.get('source_ref'))}")
    print(f"image:   {_format_null(run.get('image_tag'))}")
    print(f"target:  {_format_null(run.get('target'))}")
    print(f"started: {run['started_at']}")
    if run.get("halt_detail"):
        print(f"halt:    {run['halt_detail']}")
    print()
    rows = [
        [
            stage.get("name"),
            stage.get("status"),
            stage.get("attempts"),
            f"{float(stage.get('duration_seconds') or 0):.1f}s",
            _format_counts(stage.get("finding_counts")),
        ]
        for stage in run["stages"]
        if isinstance(stage, dict)
    ]
    print(
        tabulate(
            rows,
            headers=["stage", "status", "attempts", "duration", "findings"],
            tablefmt="simple",
        )
    )
