"""Scripted ExternalRunner fake."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

from releasegate.core.models import (
    Finding,
    StageContext,
    StageKind,
    StageResult,
    StageStatus,
    utc_now,
)


@dataclass(frozen=True)
class Step:
    """One scripted runner outcome.

    Attributes:
        status: Status of the returned result.
        findings: Findings of the returned result.
        detail: exit_detail of the returned result.
        raises: Raise this instead of returning.
        hang: Block until the run's cancel event is set, then return a
            cancellation ERROR (simulates a long build).
        delay: Sleep this long before returning.
    """

    status: StageStatus = StageStatus.SUCCESS
    findings: tuple[Finding, ...] = ()
    detail: str = ""
    raises: Exception | None = None
    hang: bool = False
    delay: float = 0.0


class ScriptedRunner:
    """ExternalRunner that replays steps in order; the last step repeats."""

    def __init__(self, *steps: Step) -> None:
        self.steps = list(steps) or [Step()]
        self.calls: list[StageContext] = []
        self.started = asyncio.Event()

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def execute(self, context: StageContext) -> StageResult:
        index = min(len(self.calls), len(self.steps) - 1)
        step = self.steps[index]
        self.calls.append(context)
        self.started.set()
        started_at = utc_now()

        if step.delay:
            await asyncio.sleep(step.delay)
        if step.raises is not None:
            raise step.raises
        if step.hang:
            await context.cancel_event.wait()
            return StageResult(
                stage_name=context.stage.name,
                status=StageStatus.ERROR,
                started_at=started_at,
                ended_at=utc_now(),
                exit_detail="killed",
                cancelled=True,
            )
        return StageResult(
            stage_name=context.stage.name,
            status=step.status,
            started_at=started_at,
            ended_at=utc_now(),
            findings=step.findings,
            exit_detail=step.detail,
            attempts=context.attempt,
        )


def scripted_runners(
    overrides: dict[StageKind, ScriptedRunner] | None = None,
) -> dict[StageKind, ScriptedRunner]:
    """A succeeding ScriptedRunner for every kind, with per-kind overrides."""
    runners = {kind: ScriptedRunner() for kind in StageKind}
    runners.update(overrides or {})
    return runners
