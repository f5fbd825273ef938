"""Notification and event sink fakes."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from releasegate.core.models import RunStatus
from releasegate.infra.io.event_sink import BaseEventSink

if TYPE_CHECKING:
    from collections.abc import Sequence

    from releasegate.core.models import StageDefinition, StageResult
    from releasegate.domain.gate import Decision
    from releasegate.domain.run_state import RunState


@dataclass
class FakeNotificationSink:
    """Records every notify call and the status observed at call time."""

    error: Exception | None = None
    calls: list[RunState] = field(default_factory=list)
    statuses_seen: list[RunStatus] = field(default_factory=list)

    async def notify(self, run_state: RunState) -> None:
        self.calls.append(run_state)
        self.statuses_seen.append(run_state.status)
        if self.error is not None:
            raise self.error

    @property
    def call_count(self) -> int:
        return len(self.calls)


class FakeEventSink(BaseEventSink):
    """Captures events as (name, payload) tuples in emission order."""

    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def names(self) -> list[str]:
        return [name for name, _ in self.events]

    def of(self, name: str) -> list[dict[str, Any]]:
        return [payload for event, payload in self.events if event == name]

    def on_run_started(
        self, run_state: RunState, stages: Sequence[StageDefinition]
    ) -> None:
        self.events.append(
            ("run_started", {"run_id": run_state.run_id, "stages": len(stages)})
        )

    def on_run_completed(self, run_state: RunState) -> None:
        self.events.append(
            ("run_completed", {"run_id": run_state.run_id, "status": run_state.status})
        )

    def on_stage_started(
        self, run_id: str, stage: StageDefinition, index: int, total: int
    ) -> None:
        self.events.append(
            ("stage_started", {"run_id": run_id, "stage": stage.name, "index": index})
        )

    def on_stage_retry(
        self,
        run_id: str,
        stage: StageDefinition,
        failed: StageResult,
        next_attempt: int,
        delay_seconds: float,
    ) -> None:
        self.events.append(
            (
                "stage_retry",
                {
                    "stage": stage.name,
                    "status": failed.status,
                    "next_attempt": next_attempt,
                    "delay": delay_seconds,
                },
            )
        )

    def on_stage_completed(
        self, run_id: str, result: StageResult, decision: Decision
    ) -> None:
        self.events.append(
            ("stage_completed", {"stage": result.stage_name, "decision": decision})
        )

    def on_notification_failed(self, run_id: str, error: str) -> None:
        self.events.append(("notification_failed", {"run_id": run_id, "error": error}))
