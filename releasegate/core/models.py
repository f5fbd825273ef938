"""Shared domain dataclasses for releasegate.

This module provides the value types used across the orchestrator, the
gate evaluator, the runner adapters and the notification sinks. Keeping
them in one leaf module avoids circular imports between those layers.

Types:
- Severity: Ordered severity scale for findings
- Finding: A single issue reported by an analysis or scanning tool
- StageKind: The kinds of stage a pipeline can contain
- StageStatus: Outcome of one stage execution
- RunStatus: Lifecycle status of a pipeline run
- HaltReason: Why a run stopped before completing every stage
- RetryPolicy: Attempt count and backoff for transient stage faults
- StageDefinition: Immutable configuration of one stage
- GatePolicy: Severity threshold applied to a gating stage's findings
- TriggerInput: Opaque identifiers a run is started with
- StageResult: Outcome of one stage, appended to a run's history
- StageContext: Everything a runner receives for one invocation
"""

from __future__ import annotations

import asyncio  # noqa: TC003 - needed at runtime for dataclass field
from collections import Counter
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class Severity(Enum):
    """Severity of a finding, ordered from least to most severe."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"
    BLOCKER = "BLOCKER"

    @property
    def rank(self) -> int:
        return _SEVERITY_ORDER.index(self)

    def __ge__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank >= other.rank

    def __gt__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank > other.rank

    def __le__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank <= other.rank

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank

    @classmethod
    def parse(cls, value: str) -> Severity:
        """Parse a severity name case-insensitively.

        Raises:
            ValueError: If the name is not a known severity.
        """
        try:
            return cls(value.strip().upper())
        except ValueError:
            valid = ", ".join(s.value.lower() for s in _SEVERITY_ORDER)
            raise ValueError(
                f"Unknown severity '{value}'. Valid values: {valid}"
            ) from None


_SEVERITY_ORDER = (
    Severity.LOW,
    Severity.MEDIUM,
    Severity.HIGH,
    Severity.CRITICAL,
    Severity.BLOCKER,
)


@dataclass(frozen=True)
class Finding:
    """A single severity-tagged issue reported by a tool.

    Attributes:
        id: Tool-specific identifier (CVE id, Sonar rule key, ...).
        severity: Normalized severity.
        description: Human-readable summary.
    """

    id: str
    severity: Severity
    description: str = ""


class StageKind(Enum):
    """Kinds of pipeline stage. Each kind has exactly one runner adapter."""

    CHECKOUT = "checkout"
    STATIC_ANALYSIS = "static_analysis"
    QUALITY_GATE = "quality_gate"
    DEPENDENCY_INSTALL = "dependency_install"
    FS_SECURITY_SCAN = "fs_security_scan"
    IMAGE_BUILD = "image_build"
    IMAGE_PUBLISH = "image_publish"
    IMAGE_SECURITY_SCAN = "image_security_scan"
    DEPLOY_TRIGGER = "deploy_trigger"


class StageStatus(Enum):
    """Outcome of a single stage execution."""

    SUCCESS = "success"
    FAILURE = "failure"
    TIMEOUT = "timeout"
    ERROR = "error"

    @property
    def is_transient(self) -> bool:
        """TIMEOUT and ERROR carry no conclusive tool verdict."""
        return self in (StageStatus.TIMEOUT, StageStatus.ERROR)


class RunStatus(Enum):
    """Lifecycle status of a pipeline run."""

    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    ABORTED = "aborted"

    @property
    def is_terminal(self) -> bool:
        return self is not RunStatus.RUNNING


class HaltReason(Enum):
    """Why a run stopped early. Each reason has a different remediation."""

    STAGE_FAILED = "stage_failed"
    GATE_REJECTED = "gate_rejected"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class RetryPolicy:
    """Retry behavior for transient stage faults (TIMEOUT, ERROR).

    Attributes:
        max_attempts: Total attempts including the first one.
        backoff_seconds: Delay before the first retry.
        backoff_multiplier: Exponential multiplier applied per further retry.
        max_backoff_seconds: Cap on any single delay.
    """

    max_attempts: int = 1
    backoff_seconds: float = 0.0
    backoff_multiplier: float = 2.0
    max_backoff_seconds: float = 300.0

    def __post_init__(self) -> None:
        """Validate configuration invariants."""
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.backoff_seconds < 0:
            raise ValueError("backoff_seconds must be non-negative")
        if self.backoff_multiplier < 1:
            raise ValueError("backoff_multiplier must be at least 1")
        if self.max_backoff_seconds < 0:
            raise ValueError("max_backoff_seconds must be non-negative")

    def delay_before(self, attempt: int) -> float:
        """Seconds to wait before the given attempt number (1-indexed)."""
        if attempt <= 1:
            return 0.0
        delay = self.backoff_seconds * self.backoff_multiplier ** (attempt - 2)
        return min(delay, self.max_backoff_seconds)


@dataclass(frozen=True)
class StageDefinition:
    """Immutable configuration of one pipeline stage.

    Attributes:
        name: Unique stage name within the pipeline.
        kind: Which runner adapter executes the stage.
        gating: Whether the kind's GatePolicy threshold applies to findings.
        timeout_seconds: Deadline for a single attempt.
        retry: Retry policy for transient faults.
        options: Adapter parameters (command overrides, paths, ...).
    """

    name: str
    kind: StageKind
    gating: bool = False
    timeout_seconds: float = 600.0
    retry: RetryPolicy = field(default_factory=RetryPolicy)
    options: dict[str, Any] = field(default_factory=dict, hash=False, compare=False)


@dataclass(frozen=True)
class GatePolicy:
    """Severity threshold for a gating stage kind.

    A finding blocks the gate when its severity is at or above threshold.
    """

    kind: StageKind
    threshold: Severity

    def blocks(self, finding: Finding) -> bool:
        return finding.severity >= self.threshold


@dataclass(frozen=True)
class TriggerInput:
    """Identifiers a run is started with, passed through to runners.

    Attributes:
        source_ref: Commit or branch identifier.
        image_tag: Container image reference to build, scan and publish.
        target: Deployment target descriptor (cluster context, app name).
    """

    source_ref: str
    image_tag: str
    target: str


def utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class StageResult:
    """Outcome of one stage, owned by the run that produced it.

    Attributes:
        stage_name: Name of the StageDefinition that ran.
        status: SUCCESS, FAILURE, TIMEOUT or ERROR.
        started_at: When the first attempt started.
        ended_at: When the final attempt ended.
        findings: Ordered findings (empty for non-scanning stages).
        exit_detail: Free-form diagnostic text.
        attempts: Number of invocations that led to this result.
        cancelled: True when the ERROR was caused by external cancellation.
    """

    stage_name: str
    status: StageStatus
    started_at: datetime
    ended_at: datetime
    findings: tuple[Finding, ...] = ()
    exit_detail: str = ""
    attempts: int = 1
    cancelled: bool = False

    @property
    def duration_seconds(self) -> float:
        return (self.ended_at - self.started_at).total_seconds()

    def finding_counts(self) -> dict[Severity, int]:
        """Count findings per severity, most severe first, omitting zeros."""
        counts = Counter(f.severity for f in self.findings)
        return {s: counts[s] for s in reversed(_SEVERITY_ORDER) if counts[s]}


@dataclass(frozen=True)
class StageContext:
    """Input for a single ExternalRunner invocation.

    Attributes:
        run_id: Run this invocation belongs to.
        stage: The stage being executed.
        trigger: Trigger identifiers for the run.
        attempt: Current attempt number (1-indexed).
        history: Finalized results of earlier stages, in order.
        cancel_event: Set when the run is cancelled externally.
        pipeline: The full ordered stage list of the run.
        workdir: Working directory shared by the run's stages.
    """

    run_id: str
    stage: StageDefinition
    trigger: TriggerInput
    attempt: int
    history: tuple[StageResult, ...]
    cancel_event: asyncio.Event
    pipeline: tuple[StageDefinition, ...] = ()
    workdir: str = "."

    @property
    def timeout_seconds(self) -> float:
        return self.stage.timeout_seconds

    def latest_result_for(self, kind: StageKind) -> StageResult | None:
        """Most recent earlier result produced by a stage of the given kind."""
        kinds = {s.name: s.kind for s in self.pipeline}
        for result in reversed(self.history):
            if kinds.get(result.stage_name) is kind:
                return result
        return None
