"""Configuration dataclass for releasegate.

Provides ReleasegateConfig for centralized runtime configuration. This lets
programmatic users construct configuration without environment variables,
while CLI users continue using env vars via from_env().

Environment Variables:
    RELEASEGATE_RUNS_DIR: Directory for run reports (default: ~/.config/releasegate/runs)
    RELEASEGATE_WORKDIR: Working directory for stage commands (default: cwd)
    RELEASEGATE_WEBHOOK_URL: Chat/webhook endpoint for the final report
    RELEASEGATE_WEBHOOK_TIMEOUT: Webhook request timeout in seconds (default: 10)
    RELEASEGATE_DISABLE_DEBUG_LOG: Set to 1 to skip the per-run debug log
    SONAR_HOST_URL: SonarQube server URL
    SONAR_TOKEN: SonarQube token
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from releasegate.infra.tools.env import USER_CONFIG_DIR, get_runs_dir, get_workdir


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        message = "Configuration validation failed:\n" + "\n".join(
            f"  - {e}" for e in errors
        )
        super().__init__(message)


@dataclass(frozen=True)
class ReleasegateConfig:
    """Centralized runtime configuration for releasegate.

    Attributes:
        runs_dir: Directory where run reports and debug logs are written.
            Env: RELEASEGATE_RUNS_DIR (default: ~/.config/releasegate/runs)
        workdir: Working directory for stage commands.
            Env: RELEASEGATE_WORKDIR (default: current directory)
        webhook_url: Endpoint receiving the final report as JSON.
            Env: RELEASEGATE_WEBHOOK_URL
        webhook_timeout_seconds: Timeout for the webhook request.
            Env: RELEASEGATE_WEBHOOK_TIMEOUT (default: 10)
        sonar_host_url: SonarQube server used by analysis and quality gate.
            Env: SONAR_HOST_URL
        sonar_token: SonarQube token.
            Env: SONAR_TOKEN
        debug_log_enabled: Whether to write a per-run debug log file.
            Env: RELEASEGATE_DISABLE_DEBUG_LOG=1 disables it.
    """

    runs_dir: Path = field(default_factory=lambda: USER_CONFIG_DIR / "runs")
    workdir: Path = field(default_factory=Path.cwd)
    webhook_url: str | None = None
    webhook_timeout_seconds: float = 10.0
    sonar_host_url: str | None = None
    sonar_token: str | None = None
    debug_log_enabled: bool = True

    @classmethod
    def from_env(cls, *, validate: bool = True) -> ReleasegateConfig:
        """Create ReleasegateConfig from environment variables.

        Args:
            validate: If True (default), run validation and raise
                ConfigurationError on any errors.

        Raises:
            ConfigurationError: On unparseable values, or when validate=True
                and validation fails.
        """
        parse_errors: list[str] = []

        runs_dir = get_runs_dir()
        workdir = get_workdir()

        webhook_timeout = 10.0
        webhook_timeout_raw = os.environ.get("RELEASEGATE_WEBHOOK_TIMEOUT")
        if webhook_timeout_raw:
            try:
                webhook_timeout = float(webhook_timeout_raw)
            except ValueError:
                parse_errors.append(
                    f"RELEASEGATE_WEBHOOK_TIMEOUT: invalid number '{webhook_timeout_raw}'"
                )

        config = cls(
            runs_dir=runs_dir,
            workdir=workdir,
            webhook_url=os.environ.get("RELEASEGATE_WEBHOOK_URL") or None,
            webhook_timeout_seconds=webhook_timeout,
            sonar_host_url=os.environ.get("SONAR_HOST_URL") or None,
            sonar_token=os.environ.get("SONAR_TOKEN") or None,
            debug_log_enabled=os.environ.get("RELEASEGATE_DISABLE_DEBUG_LOG") != "1",
        )

        if validate:
            errors = config.validate()
            errors.extend(parse_errors)
            if errors:
                raise ConfigurationError(errors)
        elif parse_errors:
            raise ConfigurationError(parse_errors)

        return config

    def validate(self) -> list[str]:
        """Validate configuration and return a list of errors.

        Checks:
            - Paths are absolute
            - URLs use http(s)
            - Timeouts are positive
        """
        errors: list[str] = []
        if not self.runs_dir.is_absolute():
            errors.append(f"runs_dir must be an absolute path, got: {self.runs_dir}")
        if not self.workdir.is_absolute():
            errors.append(f"workdir must be an absolute path, got: {self.workdir}")
        for name, url in (
            ("webhook_url", self.webhook_url),
            ("sonar_host_url", self.sonar_host_url),
        ):
            if url is not None and not url.startswith(("http://", "https://")):
                errors.append(f"{name} must start with http:// or https://, got: {url}")
        if self.webhook_timeout_seconds <= 0:
            errors.append("webhook_timeout_seconds must be positive")
        return errors
