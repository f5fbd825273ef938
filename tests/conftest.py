"""Pytest configuration for releasegate tests."""

import os
from pathlib import Path

import pytest

from releasegate.core.models import (
    GatePolicy,
    RetryPolicy,
    Severity,
    StageDefinition,
    StageKind,
    TriggerInput,
)


def pytest_configure(config: pytest.Config) -> None:
    """Configure test environment before collection.

    Redirects run records and debug logs to /tmp so tests never write into
    ~/.config/releasegate/runs/, and clears settings that would make the
    default adapters reach real servers.
    """
    os.environ["RELEASEGATE_RUNS_DIR"] = "/tmp/releasegate-test-runs"
    for name in ("RELEASEGATE_WEBHOOK_URL", "SONAR_HOST_URL", "SONAR_TOKEN"):
        os.environ.pop(name, None)


def pytest_collection_modifyitems(
    config: pytest.Config, items: list[pytest.Item]
) -> None:
    """Default unmarked tests to unit category."""
    for item in items:
        if any(marker in item.keywords for marker in ("unit", "integration")):
            continue
        item.add_marker(pytest.mark.unit)


@pytest.fixture
def trigger() -> TriggerInput:
    return TriggerInput(source_ref="main", image_tag="registry.local/app:1.0", target="prod")


@pytest.fixture
def full_pipeline() -> tuple[StageDefinition, ...]:
    """The nine canonical stages, no retries, short timeouts."""
    gated = {
        StageKind.QUALITY_GATE,
        StageKind.FS_SECURITY_SCAN,
        StageKind.IMAGE_SECURITY_SCAN,
    }
    return tuple(
        StageDefinition(
            name=kind.value.replace("_", "-"),
            kind=kind,
            gating=kind in gated,
            timeout_seconds=5.0,
        )
        for kind in StageKind
    )


@pytest.fixture
def policies() -> dict[StageKind, GatePolicy]:
    return {
        StageKind.QUALITY_GATE: GatePolicy(StageKind.QUALITY_GATE, Severity.BLOCKER),
        StageKind.FS_SECURITY_SCAN: GatePolicy(StageKind.FS_SECURITY_SCAN, Severity.CRITICAL),
        StageKind.IMAGE_SECURITY_SCAN: GatePolicy(
            StageKind.IMAGE_SECURITY_SCAN, Severity.HIGH
        ),
    }


@pytest.fixture
def no_retry() -> RetryPolicy:
    return RetryPolicy()


@pytest.fixture
def tmp_runs_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    runs_dir = tmp_path / "runs"
    monkeypatch.setenv("RELEASEGATE_RUNS_DIR", str(runs_dir))
    return runs_dir
