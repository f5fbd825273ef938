"""Shared types for orchestrator construction.

Kept separate from factory.py so both the factory and the CLI can import
them without circular imports.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from releasegate.pipeline.stage_executor import DEFAULT_TIMEOUT_GRACE_SECONDS

if TYPE_CHECKING:
    from collections.abc import Mapping
    from pathlib import Path

    from releasegate.core.models import StageKind
    from releasegate.core.protocols import (
        ExternalRunner,
        NotificationSink,
        PipelineEventSink,
    )


@dataclass
class OrchestratorConfig:
    """Scalar configuration for PipelineOrchestrator.

    Attributes:
        workdir: Working directory shared by every stage of a run.
        runs_dir: Where run records and debug logs are written.
        debug_log: Attach a per-run debug log file while a run executes.
        console_report: Also print the final report to the console.
        timeout_grace_seconds: Extra time past a stage's deadline before
            the orchestrator stops waiting on its runner.
    """

    workdir: Path
    runs_dir: Path | None = None
    debug_log: bool = False
    console_report: bool = False
    timeout_grace_seconds: float = DEFAULT_TIMEOUT_GRACE_SECONDS


@dataclass
class OrchestratorDependencies:
    """Protocol implementations; None means "build the default".

    Attributes:
        runners: ExternalRunner per stage kind.
        notification_sink: Receives the final RunState of every run.
        event_sink: Receives progress events.
    """

    runners: Mapping[StageKind, ExternalRunner] | None = None
    notification_sink: NotificationSink | None = None
    event_sink: PipelineEventSink | None = None
