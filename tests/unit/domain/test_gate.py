"""Unit tests for the GateEvaluator decision rules."""

import pytest

from releasegate.core.models import (
    Finding,
    GatePolicy,
    HaltReason,
    Severity,
    StageDefinition,
    StageKind,
    StageResult,
    StageStatus,
    utc_now,
)
from releasegate.domain.gate import (
    Decision,
    GateEvaluator,
    blocking_findings,
    classify_halt,
    describe_halt,
    evaluate,
)

HIGH_POLICY = GatePolicy(StageKind.IMAGE_SECURITY_SCAN, Severity.HIGH)


def _result(
    status: StageStatus = StageStatus.SUCCESS,
    *findings: Finding,
    detail: str = "",
    attempts: int = 1,
    cancelled: bool = False,
) -> StageResult:
    now = utc_now()
    return StageResult(
        "trivy-image-scan",
        status,
        now,
        now,
        findings=findings,
        exit_detail=detail,
        attempts=attempts,
        cancelled=cancelled,
    )


class TestEvaluate:
    """Pure decision function."""

    @pytest.mark.parametrize(
        "status", [StageStatus.FAILURE, StageStatus.TIMEOUT, StageStatus.ERROR]
    )
    def test_non_success_always_aborts(self, status: StageStatus) -> None:
        assert evaluate(_result(status), None) is Decision.ABORT
        assert evaluate(_result(status), HIGH_POLICY) is Decision.ABORT

    def test_success_without_policy_continues_regardless_of_findings(self) -> None:
        result = _result(StageStatus.SUCCESS, Finding("CVE-1", Severity.BLOCKER))
        assert evaluate(result, None) is Decision.CONTINUE

    def test_finding_at_threshold_aborts(self) -> None:
        result = _result(StageStatus.SUCCESS, Finding("CVE-1", Severity.HIGH))
        assert evaluate(result, HIGH_POLICY) is Decision.ABORT

    def test_findings_below_threshold_continue(self) -> None:
        result = _result(
            StageStatus.SUCCESS,
            Finding("CVE-1", Severity.MEDIUM),
            Finding("CVE-2", Severity.LOW),
        )
        assert evaluate(result, HIGH_POLICY) is Decision.CONTINUE
        assert blocking_findings(result, HIGH_POLICY) == []

    def test_evaluation_is_idempotent(self) -> None:
        result = _result(StageStatus.SUCCESS, Finding("CVE-1", Severity.CRITICAL))
        decisions = {evaluate(result, HIGH_POLICY) for _ in range(5)}
        assert decisions == {Decision.ABORT}


class TestHaltClassification:
    def test_cancelled_error(self) -> None:
        result = _result(StageStatus.ERROR, detail="Cancelled: operator", cancelled=True)
        assert classify_halt(result, None) is HaltReason.CANCELLED
        assert describe_halt(result, None) == (
            "Pipeline aborted during 'trivy-image-scan': Cancelled: operator"
        )

    def test_gate_rejection_lists_blocking_ids(self) -> None:
        result = _result(
            StageStatus.SUCCESS,
            Finding("CVE-1", Severity.CRITICAL),
            Finding("CVE-2", Severity.LOW),
        )
        assert classify_halt(result, HIGH_POLICY) is HaltReason.GATE_REJECTED
        assert describe_halt(result, HIGH_POLICY) == (
            "Gate rejected 'trivy-image-scan': 1 finding(s) at or above HIGH: CVE-1"
        )

    def test_gate_rejection_truncates_long_id_list(self) -> None:
        findings = [Finding(f"CVE-{i}", Severity.HIGH) for i in range(7)]
        detail = describe_halt(_result(StageStatus.SUCCESS, *findings), HIGH_POLICY)
        assert "7 finding(s)" in detail
        assert detail.endswith("(+2 more)")

    def test_stage_failure_mentions_attempts(self) -> None:
        result = _result(StageStatus.ERROR, detail="npm not found", attempts=2)
        assert classify_halt(result, None) is HaltReason.STAGE_FAILED
        assert describe_halt(result, None) == (
            "Stage 'trivy-image-scan' reported error after 2 attempt(s): npm not found"
        )


class TestGateEvaluator:
    def test_policy_only_applies_to_gating_stages(self) -> None:
        gates = GateEvaluator({StageKind.IMAGE_SECURITY_SCAN: HIGH_POLICY})
        gated = StageDefinition("scan", StageKind.IMAGE_SECURITY_SCAN, gating=True)
        ungated = StageDefinition("scan", StageKind.IMAGE_SECURITY_SCAN, gating=False)
        assert gates.policy_for(gated) is HIGH_POLICY
        assert gates.policy_for(ungated) is None

    def test_policies_returns_copy(self) -> None:
        gates = GateEvaluator({StageKind.IMAGE_SECURITY_SCAN: HIGH_POLICY})
        gates.policies.clear()
        assert StageKind.IMAGE_SECURITY_SCAN in gates.policies
