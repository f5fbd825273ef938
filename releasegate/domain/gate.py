"""GateEvaluator: pass/fail decision between pipeline stages.

The decision is a pure function of a stage result and an optional policy:

- any status other than SUCCESS aborts the run (failure always halts,
  whether or not the stage is gating, because later stages depend on its
  side effects);
- a SUCCESS is additionally rejected when a policy is present and at least
  one finding is at or above the policy's severity threshold.

"Gating" therefore only decides whether the threshold check applies.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from releasegate.core.models import HaltReason, StageStatus

if TYPE_CHECKING:
    from collections.abc import Mapping

    from releasegate.core.models import (
        Finding,
        GatePolicy,
        StageDefinition,
        StageKind,
        StageResult,
    )


class Decision(Enum):
    """Outcome of evaluating a stage result."""

    CONTINUE = "continue"
    ABORT = "abort"


def blocking_findings(
    result: StageResult, policy: GatePolicy | None
) -> list[Finding]:
    """Findings at or above the policy threshold (empty without a policy)."""
    if policy is None:
        return []
    return [f for f in result.findings if policy.blocks(f)]


def evaluate(result: StageResult, policy: GatePolicy | None) -> Decision:
    """Decide whether the run may continue past this result."""
    if result.status is not StageStatus.SUCCESS:
        return Decision.ABORT
    if blocking_findings(result, policy):
        return Decision.ABORT
    return Decision.CONTINUE


def classify_halt(result: StageResult, policy: GatePolicy | None) -> HaltReason:
    """Explain an ABORT decision so the report can suggest the right fix.

    Only meaningful when ``evaluate`` returned ABORT for the same inputs.
    """
    if result.cancelled:
        return HaltReason.CANCELLED
    if result.status is StageStatus.SUCCESS:
        return HaltReason.GATE_REJECTED
    return HaltReason.STAGE_FAILED


def describe_halt(result: StageResult, policy: GatePolicy | None) -> str:
    """Human-readable halt explanation stored on the RunState."""
    reason = classify_halt(result, policy)
    if reason is HaltReason.CANCELLED:
        return f"Pipeline aborted during '{result.stage_name}': {result.exit_detail}"
    if reason is HaltReason.GATE_REJECTED:
        assert policy is not None  # GATE_REJECTED implies a policy
        blocked = blocking_findings(result, policy)
        ids = ", ".join(f.id for f in blocked[:5])
        more = f" (+{len(blocked) - 5} more)" if len(blocked) > 5 else ""
        return (
            f"Gate rejected '{result.stage_name}': {len(blocked)} finding(s) at or "
            f"above {policy.threshold.value}: {ids}{more}"
        )
    attempts = f" after {result.attempts} attempt(s)" if result.attempts > 1 else ""
    detail = f": {result.exit_detail}" if result.exit_detail else ""
    return (
        f"Stage '{result.stage_name}' reported {result.status.value}{attempts}{detail}"
    )


class GateEvaluator:
    """Applies configured gate policies to stage results.

    Policies are static configuration keyed by stage kind. A policy only
    applies to stages marked ``gating``; every other stage is evaluated
    without one.

    Usage:
        gates = GateEvaluator({StageKind.IMAGE_SECURITY_SCAN: policy})
        policy = gates.policy_for(stage)
        decision = gates.evaluate(result, policy)
    """

    def __init__(self, policies: Mapping[StageKind, GatePolicy] | None = None) -> None:
        self._policies = dict(policies or {})

    @property
    def policies(self) -> dict[StageKind, GatePolicy]:
        return dict(self._policies)

    def policy_for(self, stage: StageDefinition) -> GatePolicy | None:
        if not stage.gating:
            return None
        return self._policies.get(stage.kind)

    def evaluate(self, result: StageResult, policy: GatePolicy | None) -> Decision:
        return evaluate(result, policy)

    def classify_halt(
        self, result: StageResult, policy: GatePolicy | None
    ) -> HaltReason:
        return classify_halt(result, policy)

    def describe_halt(self, result: StageResult, policy: GatePolicy | None) -> str:
        return describe_halt(result, policy)
