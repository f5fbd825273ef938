"""StageExecutor: one stage's attempts, backoff, deadline and cancellation.

Extracted from the orchestrator loop so the retry rules can be tested in
isolation against scripted runners:

- SUCCESS and FAILURE are conclusive and returned as-is;
- TIMEOUT and ERROR are retried until the stage's RetryPolicy runs out
  of attempts, waiting the policy's backoff between attempts;
- a cancellation ERROR is never retried, and a cancellation arriving
  during backoff resolves the stage as a cancellation ERROR;
- an exception escaping the runner becomes an ERROR result.

The runner is expected to honor the stage deadline itself. The executor
enforces ``timeout + grace`` as a backstop so a misbehaving runner cannot
block the run forever.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import TYPE_CHECKING

from releasegate.core.models import StageContext, StageResult, StageStatus, utc_now
from releasegate.infra.io.event_sink import emit_event
from releasegate.infra.sigint_guard import (
    await_interruptible,
    run_with_timeout_and_interrupt,
)

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime

    from releasegate.core.models import StageDefinition, TriggerInput
    from releasegate.core.protocols import ExternalRunner, PipelineEventSink

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_GRACE_SECONDS = 5.0
DEFAULT_CANCEL_REASON = "cancellation requested"


@dataclass(frozen=True)
class StageRunInput:
    """Everything needed to run one stage of one run.

    Attributes:
        run_id: Run the stage belongs to.
        stage: Stage to execute.
        trigger: Trigger identifiers of the run.
        history: Finalized results of earlier stages.
        cancel_event: The run's cancellation signal.
        pipeline: Full ordered stage list.
        workdir: Working directory shared by the run's stages.
        cancel_reason: Returns the reason recorded for a cancellation.
    """

    run_id: str
    stage: StageDefinition
    trigger: TriggerInput
    history: tuple[StageResult, ...]
    cancel_event: asyncio.Event
    pipeline: tuple[StageDefinition, ...] = ()
    workdir: str = "."
    cancel_reason: Callable[[], str] | None = None


def cancelled_result(
    stage_name: str,
    reason: str,
    *,
    started_at: datetime | None = None,
    attempts: int = 0,
) -> StageResult:
    """The ERROR result a stage resolves to when its run is cancelled."""
    now = utc_now()
    return StageResult(
        stage_name=stage_name,
        status=StageStatus.ERROR,
        started_at=started_at or now,
        ended_at=now,
        exit_detail=f"Cancelled: {reason}",
        attempts=attempts,
        cancelled=True,
    )


class StageExecutor:
    """Runs a stage to its final result under its RetryPolicy.

    Usage:
        executor = StageExecutor(event_sink)
        result = await executor.execute(runner, StageRunInput(...))
    """

    def __init__(
        self,
        event_sink: PipelineEventSink,
        timeout_grace_seconds: float = DEFAULT_TIMEOUT_GRACE_SECONDS,
    ) -> None:
        self.event_sink = event_sink
        self.timeout_grace_seconds = timeout_grace_seconds

    async def execute(self, runner: ExternalRunner, stage_input: StageRunInput) -> StageResult:
        stage = stage_input.stage
        policy = stage.retry
        first_started: datetime | None = None
        attempt = 1

        while True:
            if stage_input.cancel_event.is_set():
                return self._cancelled(stage_input, first_started, attempt - 1)

            context = StageContext(
                run_id=stage_input.run_id,
                stage=stage,
                trigger=stage_input.trigger,
                attempt=attempt,
                history=stage_input.history,
                cancel_event=stage_input.cancel_event,
                pipeline=stage_input.pipeline,
                workdir=stage_input.workdir,
            )
            attempt_started = utc_now()
            if first_started is None:
                first_started = attempt_started

            result = await self._attempt(runner, context, attempt_started)
            if result.cancelled or (
                stage_input.cancel_event.is_set()
                and result.status is not StageStatus.SUCCESS
            ):
                return self._cancelled(stage_input, first_started, attempt)

            result = replace(
                result,
                stage_name=stage.name,
                started_at=first_started,
                attempts=attempt,
            )
            if not result.status.is_transient or attempt >= policy.max_attempts:
                return result

            delay = policy.delay_before(attempt + 1)
            logger.info(
                "[%s] %s %s on attempt %d/%d, retrying in %.1fs: %s",
                stage_input.run_id[:8],
                stage.name,
                result.status.value,
                attempt,
                policy.max_attempts,
                delay,
                result.exit_detail,
            )
            emit_event(
                self.event_sink, "on_stage_retry", stage_input.run_id, stage, result, attempt + 1, delay
            )
            if delay > 0 and await await_interruptible(delay, stage_input.cancel_event):
                return self._cancelled(stage_input, first_started, attempt)
            attempt += 1

    async def _attempt(
        self, runner: ExternalRunner, context: StageContext, started: datetime
    ) -> StageResult:
        """One runner invocation, with every outcome mapped to a StageResult."""
        backstop = context.timeout_seconds + self.timeout_grace_seconds
        try:
            outcome = await run_with_timeout_and_interrupt(
                runner.execute(context), backstop, context.cancel_event
            )
        except Exception as e:
            logger.exception(
                "[%s] runner for stage '%s' raised", context.run_id[:8], context.stage.name
            )
            return StageResult(
                stage_name=context.stage.name,
                status=StageStatus.ERROR,
                started_at=started,
                ended_at=utc_now(),
                exit_detail=f"{type(e).__name__}: {e}",
                attempts=context.attempt,
            )

        if outcome.interrupted:
            return cancelled_result(context.stage.name, "", started_at=started)
        if outcome.timed_out:
            logger.warning(
                "[%s] runner for stage '%s' ignored its %gs deadline",
                context.run_id[:8],
                context.stage.name,
                context.timeout_seconds,
            )
            return StageResult(
                stage_name=context.stage.name,
                status=StageStatus.TIMEOUT,
                started_at=started,
                ended_at=utc_now(),
                exit_detail=f"Stage exceeded {context.timeout_seconds:g}s",
                attempts=context.attempt,
            )
        assert outcome.result is not None
        return outcome.result

    def _cancelled(
        self, stage_input: StageRunInput, started: datetime | None, attempts: int
    ) -> StageResult:
        reason = (
            stage_input.cancel_reason()
            if stage_input.cancel_reason is not None
            else DEFAULT_CANCEL_REASON
        )
        return cancelled_result(
            stage_input.stage.name, reason, started_at=started, attempts=attempts
        )
