"""Shared machinery for subprocess-backed stage runners.

CommandStageRunner turns one or more tool invocations into a StageResult:

- exit code 0 on every command -> SUCCESS (with findings, if the adapter
  parses any);
- a non-zero exit -> FAILURE with the stderr tail as exit detail;
- the stage deadline elapsing -> TIMEOUT;
- the executable missing, or another OS error -> ERROR;
- the run's cancellation event being set -> ERROR with cancelled=True.

Adapters override build_commands() and, for scanners, collect_findings().
Any command can be replaced through the stage's ``options.command``.
"""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import TYPE_CHECKING, ClassVar

from releasegate.core.models import StageResult, StageStatus, utc_now
from releasegate.infra.sigint_guard import run_with_timeout_and_interrupt
from releasegate.infra.tools.command_runner import CommandRunner

if TYPE_CHECKING:
    from collections.abc import Mapping
    from datetime import datetime

    from releasegate.core.models import Finding, StageContext, StageKind
    from releasegate.infra.tools.command_runner import CommandResult

logger = logging.getLogger(__name__)

CANCELLED_DETAIL = "Cancelled while the stage was running"


class StageSetupError(Exception):
    """The stage cannot start as configured (bad options, missing setting).

    Reported as a conclusive FAILURE: retrying would not change the outcome.
    """


class FindingsError(Exception):
    """Findings could not be fetched or parsed (reported as ERROR)."""


def template_values(context: StageContext) -> dict[str, str]:
    """Placeholders available to ``options.command`` templates."""
    return {
        "source_ref": context.trigger.source_ref,
        "image_tag": context.trigger.image_tag,
        "target": context.trigger.target,
        "workdir": context.workdir,
        "run_id": context.run_id,
    }


def render_command(template: object, context: StageContext) -> list[str]:
    """Expand an ``options.command`` list against the trigger values.

    Raises:
        StageSetupError: If the template is not a list of strings or names
            an unknown placeholder.
    """
    if not isinstance(template, list) or not all(isinstance(p, str) for p in template):
        raise StageSetupError("options.command must be a list of strings")
    if not template:
        raise StageSetupError("options.command cannot be empty")
    values = template_values(context)
    try:
        return [part.format_map(values) for part in template]
    except (KeyError, ValueError) as e:
        raise StageSetupError(f"Invalid placeholder in options.command: {e}") from e


class CommandStageRunner:
    """Base ExternalRunner that executes external commands.

    Attributes:
        kind: Stage kind the adapter serves.
        tool: Human-readable tool name used in diagnostics.
    """

    kind: ClassVar[StageKind]
    tool: ClassVar[str] = "command"

    def __init__(
        self,
        command_runner: CommandRunner | None = None,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self._command_runner = command_runner
        self._env = dict(env) if env else None

    def build_commands(self, context: StageContext) -> list[list[str]]:
        """Default argv list(s) for the stage, run in order."""
        raise NotImplementedError

    def resolve_commands(self, context: StageContext) -> list[list[str]]:
        override = context.stage.options.get("command")
        if override is not None:
            return [render_command(override, context)]
        return self.build_commands(context)

    async def collect_findings(
        self, context: StageContext, result: CommandResult
    ) -> tuple[Finding, ...]:
        """Findings from the last command's output. Default: none."""
        return ()

    def _runner_for(self, context: StageContext) -> CommandRunner:
        if self._command_runner is not None:
            return self._command_runner
        return CommandRunner(cwd=Path(context.workdir), env=self._env)

    async def execute(self, context: StageContext) -> StageResult:
        started = utc_now()
        try:
            commands = self.resolve_commands(context)
        except StageSetupError as e:
            return self._result(context, StageStatus.FAILURE, started, detail=str(e))

        runner = self._runner_for(context)
        deadline = time.monotonic() + context.timeout_seconds
        last: CommandResult | None = None
        for argv in commands:
            remaining = max(deadline - time.monotonic(), 0.0)
            logger.debug("[%s] %s: %s", context.run_id[:8], context.stage.name, argv)
            try:
                last = await runner.run_async(
                    argv,
                    timeout=remaining,
                    cancel_event=context.cancel_event,
                    cwd=Path(context.workdir),
                )
            except OSError as e:
                return self._result(
                    context,
                    StageStatus.ERROR,
                    started,
                    detail=f"Could not run {argv[0]}: {e}",
                )
            if last.cancelled:
                return self._result(
                    context, StageStatus.ERROR, started, detail=CANCELLED_DETAIL, cancelled=True
                )
            if last.timed_out:
                return self._result(
                    context,
                    StageStatus.TIMEOUT,
                    started,
                    detail=f"{self.tool} exceeded {context.timeout_seconds:g}s",
                )
            if last.returncode != 0:
                tail = last.stderr_tail().strip() or last.stdout_tail().strip()
                detail = f"{argv[0]} exited with {last.returncode}"
                if tail:
                    detail += f": {tail}"
                return self._result(context, StageStatus.FAILURE, started, detail=detail)

        assert last is not None
        # Findings collection (report parsing, server polling) shares the deadline
        try:
            outcome = await run_with_timeout_and_interrupt(
                self.collect_findings(context, last),
                max(deadline - time.monotonic(), 0.0),
                context.cancel_event,
            )
        except StageSetupError as e:
            return self._result(context, StageStatus.FAILURE, started, detail=str(e))
        except FindingsError as e:
            return self._result(context, StageStatus.ERROR, started, detail=str(e))
        if outcome.interrupted:
            return self._result(
                context, StageStatus.ERROR, started, detail=CANCELLED_DETAIL, cancelled=True
            )
        if outcome.timed_out:
            return self._result(
                context,
                StageStatus.TIMEOUT,
                started,
                detail=f"{self.tool} exceeded {context.timeout_seconds:g}s",
            )
        assert outcome.result is not None
        return self._result(context, StageStatus.SUCCESS, started, findings=outcome.result)

    def _result(
        self,
        context: StageContext,
        status: StageStatus,
        started: datetime,
        *,
        detail: str = "",
        findings: tuple[Finding, ...] = (),
        cancelled: bool = False,
    ) -> StageResult:
        return StageResult(
            stage_name=context.stage.name,
            status=status,
            started_at=started,
            ended_at=utc_now(),
            findings=findings,
            exit_detail=detail,
            attempts=context.attempt,
            cancelled=cancelled,
        )
