"""Event sink implementations for PipelineOrchestrator.

Provides concrete implementations of the PipelineEventSink protocol:
- BaseEventSink: Base class with no-op implementations
- NullEventSink: Silent sink for testing
- ConsoleEventSink: Human-readable console output
- emit_event(): Fault-isolated dispatch used by the orchestrator
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from releasegate.core.models import StageStatus
from releasegate.domain.gate import Decision
from releasegate.infra.io.log_output.console import (
    RUN_STYLES,
    STAGE_STYLES,
    Colors,
    format_counts,
    log,
    log_verbose,
    truncate_text,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from releasegate.core.models import StageDefinition, StageResult
    from releasegate.core.protocols import PipelineEventSink
    from releasegate.domain.run_state import RunState

__all__ = [
    "BaseEventSink",
    "ConsoleEventSink",
    "NullEventSink",
    "emit_event",
]

logger = logging.getLogger(__name__)


def emit_event(sink: PipelineEventSink, event: str, *args: Any) -> None:
    """Call sink.<event>(*args); a failing sink is logged, never raised.

    A presentation fault never changes the outcome of a stage or a run.
    """
    try:
        getattr(sink, event)(*args)
    except Exception:
        logger.exception("Event sink %s failed in %s", type(sink).__name__, event)


class BaseEventSink:
    """No-op implementation of every PipelineEventSink method.

    Subclasses override only the events they care about.
    """

    def on_run_started(
        self, run_state: RunState, stages: Sequence[StageDefinition]
    ) -> None:
        pass

    def on_run_completed(self, run_state: RunState) -> None:
        pass

    def on_stage_started(
        self, run_id: str, stage: StageDefinition, index: int, total: int
    ) -> None:
        pass

    def on_stage_retry(
        self,
        run_id: str,
        stage: StageDefinition,
        failed: StageResult,
        next_attempt: int,
        delay_seconds: float,
    ) -> None:
        pass

    def on_stage_completed(
        self, run_id: str, result: StageResult, decision: Decision
    ) -> None:
        pass

    def on_notification_failed(self, run_id: str, error: str) -> None:
        pass


class NullEventSink(BaseEventSink):
    """Silent sink, used when no presentation is wanted."""


class ConsoleEventSink(BaseEventSink):
    """Event sink that writes progress to the console via log().

    Example:
        orchestrator = PipelineOrchestrator(..., event_sink=ConsoleEventSink())
        await orchestrator.run(trigger)  # Produces console output
    """

    def on_run_started(
        self, run_state: RunState, stages: Sequence[StageDefinition]
    ) -> None:
        trigger = run_state.trigger
        log("●", "releasegate pipeline", Colors.MAGENTA, run_id=run_state.run_id)
        log(
            "◐",
            f"source: {trigger.source_ref}, image: {trigger.image_tag}, "
            f"target: {trigger.target}",
            Colors.MUTED,
            run_id=run_state.run_id,
        )
        log_verbose(
            "◐",
            f"stages: {' → '.join(s.name for s in stages)}",
            run_id=run_state.run_id,
        )

    def on_stage_started(
        self, run_id: str, stage: StageDefinition, index: int, total: int
    ) -> None:
        gate = " (gated)" if stage.gating else ""
        log("▸", f"[{index + 1}/{total}] {stage.name}{gate}", Colors.CYAN, run_id=run_id)

    def on_stage_retry(
        self,
        run_id: str,
        stage: StageDefinition,
        failed: StageResult,
        next_attempt: int,
        delay_seconds: float,
    ) -> None:
        detail = truncate_text(failed.exit_detail, 120)
        log(
            "↻",
            f"{stage.name} {failed.status.value}: {detail} "
            f"(retry {next_attempt}/{stage.retry.max_attempts} in {delay_seconds:.0f}s)",
            Colors.YELLOW,
            run_id=run_id,
        )

    def on_stage_completed(
        self, run_id: str, result: StageResult, decision: Decision
    ) -> None:
        icon, color = STAGE_STYLES[result.status]
        counts = format_counts(result.finding_counts())
        findings = f" [{counts}]" if counts else ""
        if result.status is StageStatus.SUCCESS and decision is Decision.ABORT:
            icon, color = "✗", Colors.RED
            findings += " gate rejected"
        log(
            icon,
            f"{result.stage_name}: {result.status.value} "
            f"({result.duration_seconds:.1f}s){findings}",
            color,
            run_id=run_id,
        )
        if result.exit_detail and result.status is not StageStatus.SUCCESS:
            log("  ", truncate_text(result.exit_detail, 200), Colors.MUTED, run_id=run_id)

    def on_run_completed(self, run_state: RunState) -> None:
        icon, color = RUN_STYLES[run_state.status]
        message = f"run {run_state.status.value} in {run_state.elapsed_seconds:.1f}s"
        if run_state.halt_detail:
            message += f": {run_state.halt_detail}"
        log(icon, message, color, run_id=run_state.run_id)

    def on_notification_failed(self, run_id: str, error: str) -> None:
        log("⚠", f"notification failed: {error}", Colors.YELLOW, run_id=run_id)
