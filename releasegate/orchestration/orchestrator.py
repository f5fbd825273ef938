"""PipelineOrchestrator: drives runs through the configured stage list.

Each run owns a RunState and a cancellation event. Stages execute
strictly in order; after every stage the GateEvaluator decides whether
the run continues. Whatever happens (success, gate rejection, stage
failure, cancellation, an unexpected fault, or the run task itself
being cancelled) the run is finalized and the notification sink is
called exactly once with the terminal RunState.
"""

from __future__ import annotations

import asyncio
import logging
import signal
import uuid
from pathlib import Path
from typing import TYPE_CHECKING

from releasegate.core.models import (
    HaltReason,
    RunStatus,
    StageResult,
    StageStatus,
    utc_now,
)
from releasegate.domain.gate import Decision, GateEvaluator
from releasegate.domain.pipeline_config import validate_pipeline
from releasegate.domain.run_state import RunState
from releasegate.infra.io.event_sink import NullEventSink, emit_event
from releasegate.infra.io.run_metadata import (
    cleanup_debug_logging,
    configure_debug_logging,
)
from releasegate.pipeline.stage_executor import (
    DEFAULT_CANCEL_REASON,
    DEFAULT_TIMEOUT_GRACE_SECONDS,
    StageExecutor,
    StageRunInput,
    cancelled_result,
)

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from releasegate.core.models import (
        GatePolicy,
        StageDefinition,
        StageKind,
        TriggerInput,
    )
    from releasegate.core.protocols import (
        ExternalRunner,
        NotificationSink,
        PipelineEventSink,
    )

logger = logging.getLogger(__name__)


class PipelineOrchestrator:
    """Runs the fixed stage sequence for any number of independent runs.

    Configuration problems (empty stage list, duplicate names, a gating
    stage without a policy, a stage kind without a runner) raise
    ConfigError here, before any run can start.

    Usage:
        orchestrator = PipelineOrchestrator(stages, runners, sink, policies=policies)
        state = await orchestrator.run(TriggerInput("main", "app:1.2", "prod"))
    """

    def __init__(
        self,
        stages: Sequence[StageDefinition],
        runners: Mapping[StageKind, ExternalRunner],
        notification_sink: NotificationSink,
        *,
        policies: Mapping[StageKind, GatePolicy] | None = None,
        event_sink: PipelineEventSink | None = None,
        workdir: Path | None = None,
        runs_dir: Path | None = None,
        debug_log: bool = False,
        timeout_grace_seconds: float = DEFAULT_TIMEOUT_GRACE_SECONDS,
    ) -> None:
        policies = dict(policies or {})
        validate_pipeline(stages, policies, registered_kinds=runners.keys())

        self.stages: tuple[StageDefinition, ...] = tuple(stages)
        self.runners = dict(runners)
        self.notification_sink = notification_sink
        self.gates = GateEvaluator(policies)
        self.event_sink: PipelineEventSink = event_sink or NullEventSink()
        self.workdir = workdir or Path.cwd()
        self.runs_dir = runs_dir
        self.debug_log = debug_log
        self._executor = StageExecutor(self.event_sink, timeout_grace_seconds)

        # Per-run bookkeeping, keyed by run_id, only while a run is active
        self._cancel_events: dict[str, asyncio.Event] = {}
        self._cancel_reasons: dict[str, str] = {}

    # -------------------------------------------------------------------------
    # Cancellation
    # -------------------------------------------------------------------------

    @property
    def active_run_ids(self) -> list[str]:
        return list(self._cancel_events)

    def cancel(self, run_id: str, reason: str = DEFAULT_CANCEL_REASON) -> bool:
        """Request cancellation of an active run.

        The running stage resolves as a cancellation ERROR and the run
        finishes ABORTED through the normal finalize/notify path.

        Returns:
            True if the run was active, False otherwise.
        """
        event = self._cancel_events.get(run_id)
        if event is None:
            return False
        if not event.is_set():
            self._cancel_reasons[run_id] = reason
            logger.info("Cancelling run %s: %s", run_id, reason)
            event.set()
        return True

    def cancel_all(self, reason: str = DEFAULT_CANCEL_REASON) -> int:
        """Cancel every active run. Returns how many runs were signalled."""
        return sum(1 for run_id in self.active_run_ids if self.cancel(run_id, reason))

    # -------------------------------------------------------------------------
    # Running
    # -------------------------------------------------------------------------

    async def run(
        self,
        trigger: TriggerInput,
        *,
        run_id: str | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> RunState:
        """Execute one run to a terminal state and notify once.

        Args:
            trigger: Source reference, image tag and deploy target.
            run_id: Explicit run id (default: a new uuid4).
            cancel_event: External cancellation signal (default: a new event,
                settable through cancel()).

        Returns:
            The finalized RunState.

        Raises:
            ValueError: If run_id belongs to a run that is still active.
            asyncio.CancelledError: If the run task itself was cancelled;
                the run is finalized ABORTED and notified first.
        """
        run_id = run_id or str(uuid.uuid4())
        if run_id in self._cancel_events:
            raise ValueError(f"Run {run_id} is already active")
        state = RunState(trigger=trigger, run_id=run_id)
        event = cancel_event or asyncio.Event()
        self._cancel_events[run_id] = event

        if self.debug_log and self.runs_dir is not None:
            log_path = configure_debug_logging(self.runs_dir, run_id)
            if log_path is not None:
                logger.debug("Debug log for run %s: %s", run_id, log_path)

        try:
            try:
                await self._drive(state, event)
            except asyncio.CancelledError:
                logger.warning("Run task %s was cancelled", run_id)
                self._record_fault(state, "run task cancelled", cancelled=True)
                await self._finish(state)
                raise
            except Exception as e:
                logger.exception("Unexpected fault in run %s", run_id)
                self._record_fault(state, f"{type(e).__name__}: {e}")
            await self._finish(state)
            return state
        finally:
            self._cancel_events.pop(run_id, None)
            self._cancel_reasons.pop(run_id, None)
            if self.debug_log:
                cleanup_debug_logging(run_id)

    async def run_many(self, triggers: Sequence[TriggerInput]) -> list[RunState]:
        """Execute independent runs concurrently, one RunState each."""
        return list(await asyncio.gather(*(self.run(t) for t in triggers)))

    def run_sync(self, trigger: TriggerInput, *, handle_sigint: bool = False) -> RunState:
        """Synchronous wrapper for run() (CLI entry point).

        With handle_sigint, the first Ctrl-C cancels every active run
        gracefully; the original handler is restored at that point, so a
        second Ctrl-C interrupts immediately.
        """

        async def _main() -> RunState:
            if not handle_sigint:
                return await self.run(trigger)
            loop = asyncio.get_running_loop()
            original_handler = signal.getsignal(signal.SIGINT)

            def handle_sigint_signal(sig: int, frame: object) -> None:
                signal.signal(signal.SIGINT, original_handler)
                loop.call_soon_threadsafe(self.cancel_all, "interrupted by user (SIGINT)")

            signal.signal(signal.SIGINT, handle_sigint_signal)
            try:
                return await self.run(trigger)
            finally:
                signal.signal(signal.SIGINT, original_handler)

        return asyncio.run(_main())

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _cancel_reason(self, run_id: str) -> str:
        return self._cancel_reasons.get(run_id, DEFAULT_CANCEL_REASON)

    async def _drive(self, state: RunState, cancel_event: asyncio.Event) -> None:
        run_id = state.run_id
        total = len(self.stages)
        emit_event(self.event_sink, "on_run_started", state, self.stages)
        logger.info(
            "Run %s started: %s -> %s (%d stages)",
            run_id,
            state.trigger.source_ref,
            state.trigger.target,
            total,
        )

        while state.current_stage_index < total:
            index = state.current_stage_index
            stage = self.stages[index]
            if cancel_event.is_set():
                # Cancelled between stages: this stage never starts
                result = cancelled_result(stage.name, self._cancel_reason(run_id))
            else:
                emit_event(self.event_sink, "on_stage_started", run_id, stage, index, total)
                result = await self._executor.execute(
                    self.runners[stage.kind],
                    StageRunInput(
                        run_id=run_id,
                        stage=stage,
                        trigger=state.trigger,
                        history=state.history,
                        cancel_event=cancel_event,
                        pipeline=self.stages,
                        workdir=str(self.workdir),
                        cancel_reason=lambda: self._cancel_reason(run_id),
                    ),
                )
            state.record(result)

            policy = self.gates.policy_for(stage)
            decision = self.gates.evaluate(result, policy)
            emit_event(self.event_sink, "on_stage_completed", run_id, result, decision)
            logger.info(
                "Run %s stage %s: %s (%d finding(s)) -> %s",
                run_id,
                stage.name,
                result.status.value,
                len(result.findings),
                decision.value,
            )
            if decision is Decision.ABORT:
                reason = self.gates.classify_halt(result, policy)
                state.finalize(
                    RunStatus.ABORTED if reason is HaltReason.CANCELLED else RunStatus.FAILED,
                    reason=reason,
                    stage_name=stage.name,
                    detail=self.gates.describe_halt(result, policy),
                )
                return

        state.finalize(RunStatus.SUCCEEDED)

    def _record_fault(self, state: RunState, detail: str, *, cancelled: bool = False) -> None:
        """Finalize a run whose loop was interrupted by a fault."""
        if state.is_terminal:
            return
        index = state.current_stage_index
        if index < len(self.stages):
            stage_name = self.stages[index].name
            now = utc_now()
            state.record(
                StageResult(
                    stage_name=stage_name,
                    status=StageStatus.ERROR,
                    started_at=now,
                    ended_at=now,
                    exit_detail=f"Cancelled: {detail}" if cancelled else detail,
                    attempts=0,
                    cancelled=cancelled,
                )
            )
        else:
            stage_name = self.stages[-1].name
        if cancelled:
            state.finalize(
                RunStatus.ABORTED,
                reason=HaltReason.CANCELLED,
                stage_name=stage_name,
                detail=f"Pipeline aborted during '{stage_name}': {detail}",
            )
        else:
            state.finalize(
                RunStatus.FAILED,
                reason=HaltReason.STAGE_FAILED,
                stage_name=stage_name,
                detail=f"Orchestrator fault during '{stage_name}': {detail}",
            )

    async def _finish(self, state: RunState) -> None:
        """Report completion and deliver the notification exactly once."""
        emit_event(self.event_sink, "on_run_completed", state)
        logger.info("Run %s finished %s", state.run_id, state.status.value)

        try:
            await self.notification_sink.notify(state)
        except Exception as e:
            logger.error("Notification for run %s failed: %s", state.run_id, e)
            emit_event(self.event_sink, "on_notification_failed", state.run_id, str(e))
