"""RunState: the single mutable record of one pipeline run.

A RunState is created when a run starts, mutated only by the orchestrator
driving that run, and finalized exactly once. After finalization every
mutating call raises RunStateError, so the object handed to the
notification sink is effectively immutable.

``current_stage_index`` is derived from the history length, which makes
the ``len(history) == current_stage_index`` invariant hold by construction.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from releasegate.core.models import RunStatus, utc_now

if TYPE_CHECKING:
    from datetime import datetime

    from releasegate.core.models import HaltReason, StageResult, TriggerInput


class RunStateError(Exception):
    """Raised on an illegal RunState transition or mutation."""


@dataclass
class RunState:
    """State of one pipeline execution.

    Attributes:
        trigger: Identifiers the run was started with.
        run_id: Unique id for this invocation.
        status: RUNNING until finalized, then SUCCEEDED, FAILED or ABORTED.
        started_at: When the run was created.
        ended_at: When the run was finalized.
        halt_reason: Why the run stopped early (None when SUCCEEDED).
        halted_stage: Name of the stage that halted the run.
        halt_detail: Human-readable explanation of the halt.
    """

    trigger: TriggerInput
    run_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    started_at: datetime = field(default_factory=utc_now)
    status: RunStatus = field(default=RunStatus.RUNNING, init=False)
    ended_at: datetime | None = field(default=None, init=False)
    halt_reason: HaltReason | None = field(default=None, init=False)
    halted_stage: str | None = field(default=None, init=False)
    halt_detail: str | None = field(default=None, init=False)
    _history: list[StageResult] = field(default_factory=list, init=False, repr=False)

    @property
    def history(self) -> tuple[StageResult, ...]:
        return tuple(self._history)

    @property
    def current_stage_index(self) -> int:
        return len(self._history)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def elapsed_seconds(self) -> float:
        end = self.ended_at if self.ended_at is not None else utc_now()
        return (end - self.started_at).total_seconds()

    def record(self, result: StageResult) -> None:
        """Append a stage's final result, advancing the stage index.

        Raises:
            RunStateError: If the run is already terminal.
        """
        if self.is_terminal:
            raise RunStateError(
                f"Run {self.run_id} is {self.status.value}; "
                f"cannot record result for stage '{result.stage_name}'"
            )
        self._history.append(result)

    def finalize(
        self,
        status: RunStatus,
        *,
        reason: HaltReason | None = None,
        stage_name: str | None = None,
        detail: str | None = None,
    ) -> None:
        """Set the terminal status. Allowed exactly once.

        Raises:
            RunStateError: If status is RUNNING or the run is already terminal.
        """
        if not status.is_terminal:
            raise RunStateError("finalize() requires a terminal status")
        if self.is_terminal:
            raise RunStateError(
                f"Run {self.run_id} already finalized as {self.status.value}"
            )
        self.halt_reason = reason
        self.halted_stage = stage_name
        self.halt_detail = detail
        self.ended_at = utc_now()
        # Last: every attribute write after this point raises.
        self.status = status

    def __setattr__(self, name: str, value: Any) -> None:  # noqa: ANN401
        # Class-level default covers the dataclass __init__ assignments.
        if getattr(self, "status", RunStatus.RUNNING).is_terminal:
            raise RunStateError(f"Run {self.run_id} is finalized; cannot set '{name}'")
        object.__setattr__(self, name, value)
