"""Pipeline configuration: the ordered stage list and its gate policies.

The stage sequence is data, interpreted by a single orchestrator loop.
This module holds that data, the configuration errors raised before a
run starts, and the canonical nine-stage build-and-release pipeline.
"""

from __future__ import annotations

from collections.abc import Collection, Mapping, Sequence
from dataclasses import dataclass, field

from releasegate.core.models import (
    GatePolicy,
    RetryPolicy,
    Severity,
    StageDefinition,
    StageKind,
)


class ConfigError(Exception):
    """Base exception for pipeline configuration errors.

    Raised when releasegate.yaml has invalid content, or when a pipeline
    cannot be run as configured (empty stage list, missing runner, ...).
    Always raised before a run starts; never enters a RunState.
    """


class ConfigMissingError(ConfigError):
    """Raised when the pipeline configuration file does not exist."""

    def __init__(self, path: object) -> None:
        self.path = path
        super().__init__(
            f"Pipeline configuration not found: {path}. "
            "Run `releasegate init` to create one."
        )


@dataclass(frozen=True)
class PipelineConfig:
    """Static configuration shared read-only by every run.

    Attributes:
        stages: Stages in execution order.
        policies: Gate policy per stage kind.
        webhook_url: Optional notification webhook from the pipeline file.
    """

    stages: tuple[StageDefinition, ...]
    policies: Mapping[StageKind, GatePolicy] = field(default_factory=dict)
    webhook_url: str | None = None

    def stage(self, name: str) -> StageDefinition:
        for stage in self.stages:
            if stage.name == name:
                return stage
        raise KeyError(name)


def validate_pipeline(
    stages: Sequence[StageDefinition],
    policies: Mapping[StageKind, GatePolicy],
    registered_kinds: Collection[StageKind] | None = None,
) -> None:
    """Reject a pipeline that cannot run, before any run starts.

    Args:
        stages: Stages in execution order.
        policies: Gate policies keyed by kind.
        registered_kinds: Kinds that have a runner. None skips that check
            (used when validating a file without building runners).

    Raises:
        ConfigError: On the first problem found.
    """
    if not stages:
        raise ConfigError("Pipeline has no stages")

    seen: set[str] = set()
    for stage in stages:
        if not stage.name.strip():
            raise ConfigError("Stage name cannot be empty")
        if stage.name in seen:
            raise ConfigError(f"Duplicate stage name '{stage.name}'")
        seen.add(stage.name)
        if stage.timeout_seconds <= 0:
            raise ConfigError(f"Stage '{stage.name}' timeout must be positive")
        if stage.gating and stage.kind not in policies:
            raise ConfigError(
                f"Stage '{stage.name}' is gating but no policy is configured "
                f"for kind '{stage.kind.value}'"
            )

    for kind, policy in policies.items():
        if policy.kind is not kind:
            raise ConfigError(
                f"Policy registered under '{kind.value}' targets '{policy.kind.value}'"
            )

    if registered_kinds is not None:
        missing = sorted(
            {s.kind.value for s in stages if s.kind not in registered_kinds}
        )
        if missing:
            raise ConfigError(f"No runner registered for stage kind(s): {', '.join(missing)}")


def default_pipeline_config() -> PipelineConfig:
    """The canonical build-and-release pipeline.

    Thresholds here are starter values for ``releasegate init``; the
    orchestrator itself never assumes a threshold.
    """
    transient = RetryPolicy(max_attempts=2, backoff_seconds=10.0)
    stages = (
        StageDefinition("checkout", StageKind.CHECKOUT, timeout_seconds=300, retry=transient),
        StageDefinition("static-analysis", StageKind.STATIC_ANALYSIS, timeout_seconds=900),
        StageDefinition(
            "quality-gate",
            StageKind.QUALITY_GATE,
            gating=True,
            timeout_seconds=300,
            retry=transient,
        ),
        StageDefinition(
            "install-dependencies",
            StageKind.DEPENDENCY_INSTALL,
            timeout_seconds=900,
            retry=transient,
        ),
        StageDefinition(
            "trivy-fs-scan", StageKind.FS_SECURITY_SCAN, gating=True, timeout_seconds=600
        ),
        StageDefinition("docker-build", StageKind.IMAGE_BUILD, timeout_seconds=1800),
        StageDefinition(
            "docker-push", StageKind.IMAGE_PUBLISH, timeout_seconds=900, retry=transient
        ),
        StageDefinition(
            "trivy-image-scan",
            StageKind.IMAGE_SECURITY_SCAN,
            gating=True,
            timeout_seconds=900,
        ),
        StageDefinition("deploy", StageKind.DEPLOY_TRIGGER, timeout_seconds=600, retry=transient),
    )
    policies = {
        StageKind.QUALITY_GATE: GatePolicy(StageKind.QUALITY_GATE, Severity.BLOCKER),
        StageKind.FS_SECURITY_SCAN: GatePolicy(StageKind.FS_SECURITY_SCAN, Severity.CRITICAL),
        StageKind.IMAGE_SECURITY_SCAN: GatePolicy(
            StageKind.IMAGE_SECURITY_SCAN, Severity.HIGH
        ),
    }
    return PipelineConfig(stages=stages, policies=policies)
