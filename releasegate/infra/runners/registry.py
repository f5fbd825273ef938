"""Default runner registry: one adapter per StageKind."""

from __future__ import annotations

import functools
from typing import TYPE_CHECKING

from releasegate.infra.runners.checkout import CheckoutRunner
from releasegate.infra.runners.dependencies import DependencyInstallRunner
from releasegate.infra.runners.deploy import DeployRunner
from releasegate.infra.runners.docker import ImageBuildRunner, ImagePublishRunner
from releasegate.infra.runners.sonarqube import (
    QualityGateRunner,
    SonarClient,
    SonarSettings,
    StaticAnalysisRunner,
)
from releasegate.infra.runners.trivy import FsScanRunner, ImageScanRunner

if TYPE_CHECKING:
    from collections.abc import Callable

    from releasegate.core.models import StageKind
    from releasegate.core.protocols import ExternalRunner
    from releasegate.infra.io.config import ReleasegateConfig


def build_default_runners(config: ReleasegateConfig) -> dict[StageKind, ExternalRunner]:
    """Instantiate the stock adapters for every stage kind.

    SonarQube-backed stages are still registered when SONAR_HOST_URL is
    unset; they report a FAILURE explaining the missing setting.
    """
    sonar_factory: Callable[[], SonarClient] | None = None
    scanner_env: dict[str, str] = {}
    if config.sonar_host_url:
        settings = SonarSettings(host_url=config.sonar_host_url, token=config.sonar_token)
        sonar_factory = functools.partial(SonarClient, settings)
        scanner_env["SONAR_HOST_URL"] = config.sonar_host_url
        if config.sonar_token:
            scanner_env["SONAR_TOKEN"] = config.sonar_token

    runners: list[ExternalRunner] = [
        CheckoutRunner(),
        StaticAnalysisRunner(sonar_factory, env=scanner_env),
        QualityGateRunner(sonar_factory),
        DependencyInstallRunner(),
        FsScanRunner(),
        ImageBuildRunner(),
        ImagePublishRunner(),
        ImageScanRunner(),
        DeployRunner(),
    ]
    return {runner.kind: runner for runner in runners}  # type: ignore[attr-defined]
