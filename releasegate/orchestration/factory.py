"""Factory function for PipelineOrchestrator initialization.

Usage:
    # CLI usage with defaults
    pipeline = load_pipeline_config(Path("."))
    orchestrator = create_orchestrator(pipeline, OrchestratorConfig(workdir=Path(".")))

    # With custom dependencies for testing
    deps = OrchestratorDependencies(runners=fake_runners, notification_sink=sink)
    orchestrator = create_orchestrator(pipeline, config, deps=deps)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from releasegate.infra.io.config import ReleasegateConfig
from releasegate.infra.io.event_sink import NullEventSink
from releasegate.infra.notify.sinks import (
    CompositeNotificationSink,
    ConsoleNotificationSink,
    RunRecordSink,
    WebhookNotificationSink,
)
from releasegate.infra.runners.registry import build_default_runners
from releasegate.orchestration.orchestrator import PipelineOrchestrator
from releasegate.orchestration.types import OrchestratorConfig, OrchestratorDependencies

__all__ = [
    "OrchestratorConfig",
    "OrchestratorDependencies",
    "build_notification_sink",
    "create_orchestrator",
]

if TYPE_CHECKING:
    from releasegate.core.protocols import NotificationSink
    from releasegate.domain.pipeline_config import PipelineConfig


def build_notification_sink(
    pipeline: PipelineConfig,
    config: OrchestratorConfig,
    releasegate_config: ReleasegateConfig,
) -> CompositeNotificationSink:
    """Default channels: run record, optional console report, optional webhook.

    RELEASEGATE_WEBHOOK_URL takes precedence over ``notify.webhook_url``
    from the pipeline file.
    """
    sinks: list[NotificationSink] = []
    runs_dir = config.runs_dir or releasegate_config.runs_dir
    sinks.append(RunRecordSink(runs_dir))
    if config.console_report:
        sinks.append(ConsoleNotificationSink())
    webhook_url = releasegate_config.webhook_url or pipeline.webhook_url
    if webhook_url:
        sinks.append(
            WebhookNotificationSink(
                webhook_url, timeout_seconds=releasegate_config.webhook_timeout_seconds
            )
        )
    return CompositeNotificationSink(sinks)


def create_orchestrator(
    pipeline: PipelineConfig,
    config: OrchestratorConfig,
    *,
    releasegate_config: ReleasegateConfig | None = None,
    deps: OrchestratorDependencies | None = None,
) -> PipelineOrchestrator:
    """Create a PipelineOrchestrator with default adapters where none are given.

    Args:
        pipeline: Stages and gate policies.
        config: Scalar orchestrator configuration.
        releasegate_config: Environment configuration. If None, it is read
            with ReleasegateConfig.from_env().
        deps: Explicit runners and sinks (tests, embedding).

    Raises:
        ConfigError: If the pipeline cannot run with the resolved runners.
        ConfigurationError: If the environment configuration is invalid.
    """
    deps = deps or OrchestratorDependencies()
    if releasegate_config is None:
        releasegate_config = ReleasegateConfig.from_env()

    runners = deps.runners
    if runners is None:
        runners = build_default_runners(releasegate_config)
    notification_sink = deps.notification_sink
    if notification_sink is None:
        notification_sink = build_notification_sink(pipeline, config, releasegate_config)

    return PipelineOrchestrator(
        pipeline.stages,
        runners,
        notification_sink,
        policies=pipeline.policies,
        event_sink=deps.event_sink or NullEventSink(),
        workdir=config.workdir,
        runs_dir=config.runs_dir or releasegate_config.runs_dir,
        debug_log=config.debug_log and releasegate_config.debug_log_enabled,
        timeout_grace_seconds=config.timeout_grace_seconds,
    )
