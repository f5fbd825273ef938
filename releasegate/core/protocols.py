"""Protocol definitions for releasegate's external collaborators.

The orchestrator depends only on these protocols, so any tool adapter,
notification channel or presentation layer can be swapped in (including
the in-memory fakes used by the test suite).

Protocols:
- ExternalRunner: Executes one stage against an external tool
- NotificationSink: Delivers the final run report exactly once
- PipelineEventSink: Receives semantic progress events for presentation
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Sequence

    from releasegate.core.models import StageContext, StageDefinition, StageResult
    from releasegate.domain.gate import Decision
    from releasegate.domain.run_state import RunState


@runtime_checkable
class ExternalRunner(Protocol):
    """Uniform contract for a long-running external operation.

    Implementations must respect ``context.timeout_seconds``: when the
    operation has not completed by the deadline, cancel the underlying
    process and return a TIMEOUT result instead of blocking. When
    ``context.cancel_event`` is set, stop the operation and return an
    ERROR result with ``cancelled=True``.
    """

    async def execute(self, context: StageContext) -> StageResult:
        """Run the stage and report its outcome.

        Args:
            context: Stage definition, trigger identifiers, attempt number,
                earlier results and the cancellation signal.

        Returns:
            StageResult for this attempt.
        """
        ...


@runtime_checkable
class NotificationSink(Protocol):
    """Delivers a single final report for a run.

    Called exactly once per run, after the RunState is terminal. The
    orchestrator never retries delivery; raising an exception only
    causes the failure to be logged.
    """

    async def notify(self, run_state: RunState) -> None:
        """Deliver the final report for a finalized run.

        Args:
            run_state: Terminal, immutable run state.
        """
        ...


@runtime_checkable
class PipelineEventSink(Protocol):
    """Protocol for receiving orchestrator progress events.

    Implementations handle presentation (console, logging) while the
    orchestrator focuses on sequencing. All methods are synchronous and
    should be non-blocking.
    """

    # -------------------------------------------------------------------------
    # Run lifecycle
    # -------------------------------------------------------------------------

    def on_run_started(
        self, run_state: RunState, stages: Sequence[StageDefinition]
    ) -> None:
        """Called when a run begins, before the first stage."""
        ...

    def on_run_completed(self, run_state: RunState) -> None:
        """Called once the run's status is terminal, before notification."""
        ...

    # -------------------------------------------------------------------------
    # Stage lifecycle
    # -------------------------------------------------------------------------

    def on_stage_started(
        self, run_id: str, stage: StageDefinition, index: int, total: int
    ) -> None:
        """Called before the first attempt of a stage.

        Args:
            run_id: Run the stage belongs to.
            stage: Stage being started.
            index: Zero-based position of the stage.
            total: Number of stages in the pipeline.
        """
        ...

    def on_stage_retry(
        self,
        run_id: str,
        stage: StageDefinition,
        failed: StageResult,
        next_attempt: int,
        delay_seconds: float,
    ) -> None:
        """Called when a transient fault will be retried.

        Args:
            run_id: Run the stage belongs to.
            stage: Stage being retried.
            failed: The TIMEOUT/ERROR result of the previous attempt.
            next_attempt: Attempt number about to run (1-indexed).
            delay_seconds: Backoff before the next attempt.
        """
        ...

    def on_stage_completed(
        self, run_id: str, result: StageResult, decision: Decision
    ) -> None:
        """Called after a stage's final result has been gated."""
        ...

    # -------------------------------------------------------------------------
    # Notification
    # -------------------------------------------------------------------------

    def on_notification_failed(self, run_id: str, error: str) -> None:
        """Called when the notification sink raised during delivery."""
        ...
