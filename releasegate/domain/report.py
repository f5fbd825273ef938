"""Final run report built from a terminal RunState.

The report is what notification channels deliver: run id, status, the
halt explanation, a per-stage summary with finding counts by severity,
and the total elapsed time. It renders to a JSON-compatible dict (for
webhooks and the run record) and to plain text (for console and chat).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from releasegate.core.models import HaltReason, RunStatus

if TYPE_CHECKING:
    from releasegate.domain.run_state import RunState


# Remediation hint per halt reason, shown in text reports
_HALT_HEADLINES = {
    HaltReason.STAGE_FAILED: "stage failed its own check",
    HaltReason.GATE_REJECTED: "quality/security gate rejected the results",
    HaltReason.CANCELLED: "pipeline aborted due to external cancellation",
}


@dataclass
class StageSummary:
    """Per-stage line of the run report."""

    name: str
    status: str
    attempts: int
    duration_seconds: float
    finding_counts: dict[str, int] = field(default_factory=dict)
    exit_detail: str = ""


@dataclass
class RunReport:
    """Aggregated outcome of one run, as delivered to notification sinks."""

    run_id: str
    status: str
    source_ref: str
    image_tag: str
    target: str
    started_at: str
    ended_at: str | None
    elapsed_seconds: float
    stages: list[StageSummary] = field(default_factory=list)
    halt_reason: str | None = None
    halted_stage: str | None = None
    halt_detail: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == RunStatus.SUCCEEDED.value

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "status": self.status,
            "source_ref": self.source_ref,
            "image_tag": self.image_tag,
            "target": self.target,
            "started_at": self.started_at,
            "ended_at": self.ended_at,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
            "halt_reason": self.halt_reason,
            "halted_stage": self.halted_stage,
            "halt_detail": self.halt_detail,
            "stages": [
                {
                    "name": s.name,
                    "status": s.status,
                    "attempts": s.attempts,
                    "duration_seconds": round(s.duration_seconds, 3),
                    "finding_counts": dict(s.finding_counts),
                    "exit_detail": s.exit_detail,
                }
                for s in self.stages
            ],
        }

    def headline(self) -> str:
        """One-line summary suitable for a chat message title."""
        if self.succeeded:
            return f"Pipeline {self.run_id[:8]} succeeded ({self.image_tag})"
        if self.halt_reason is not None:
            why = _HALT_HEADLINES[HaltReason(self.halt_reason)]
            return f"Pipeline {self.run_id[:8]} {self.status} at '{self.halted_stage}': {why}"
        return f"Pipeline {self.run_id[:8]} {self.status}"

    def to_text(self) -> str:
        lines = [self.headline()]
        lines.append(
            f"source: {self.source_ref}  image: {self.image_tag}  target: {self.target}"
        )
        for stage in self.stages:
            counts = ", ".join(f"{k.lower()}={v}" for k, v in stage.finding_counts.items())
            suffix = f" [{counts}]" if counts else ""
            retries = f" x{stage.attempts}" if stage.attempts > 1 else ""
            lines.append(
                f"  {stage.name}: {stage.status}{retries} "
                f"({stage.duration_seconds:.1f}s){suffix}"
            )
        if self.halt_detail:
            lines.append(self.halt_detail)
        lines.append(f"elapsed: {self.elapsed_seconds:.1f}s")
        return "\n".join(lines)


def build_run_report(run_state: RunState) -> RunReport:
    """Summarize a terminal RunState.

    Raises:
        ValueError: If the run is still RUNNING.
    """
    if not run_state.is_terminal:
        raise ValueError(f"Run {run_state.run_id} is not finalized")
    stages = [
        StageSummary(
            name=result.stage_name,
            status=result.status.value,
            attempts=result.attempts,
            duration_seconds=result.duration_seconds,
            finding_counts={
                sev.value: count for sev, count in result.finding_counts().items()
            },
            exit_detail=result.exit_detail,
        )
        for result in run_state.history
    ]
    return RunReport(
        run_id=run_state.run_id,
        status=run_state.status.value,
        source_ref=run_state.trigger.source_ref,
        image_tag=run_state.trigger.image_tag,
        target=run_state.trigger.target,
        started_at=run_state.started_at.isoformat(),
        ended_at=run_state.ended_at.isoformat() if run_state.ended_at else None,
        elapsed_seconds=run_state.elapsed_seconds,
        stages=stages,
        halt_reason=run_state.halt_reason.value if run_state.halt_reason else None,
        halted_stage=run_state.halted_stage,
        halt_detail=run_state.halt_detail,
    )
