"""STATIC_ANALYSIS and QUALITY_GATE adapters (SonarQube).

Static analysis runs sonar-scanner, waits for the server to process the
uploaded report, then reads the project's open issues through the web
API. The quality gate stage asks the server for the project's gate
status; its findings are the latest static-analysis findings plus one
BLOCKER finding when the gate is red, so the configured GatePolicy
makes the call.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

import httpx

from releasegate.core.models import (
    Finding,
    Severity,
    StageKind,
    StageResult,
    StageStatus,
    utc_now,
)
from releasegate.infra.runners.base import (
    CANCELLED_DETAIL,
    CommandStageRunner,
    FindingsError,
    StageSetupError,
)
from releasegate.infra.sigint_guard import run_with_timeout_and_interrupt

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from releasegate.core.models import StageContext
    from releasegate.infra.tools.command_runner import CommandResult, CommandRunner

logger = logging.getLogger(__name__)

# Sonar issue severities mapped onto the pipeline's scale
SONAR_SEVERITIES = {
    "BLOCKER": Severity.BLOCKER,
    "CRITICAL": Severity.CRITICAL,
    "MAJOR": Severity.MEDIUM,
    "MINOR": Severity.LOW,
    "INFO": Severity.LOW,
}

_PAGE_SIZE = 500
# The issues endpoint refuses to page past 10k results
_MAX_ISSUES = 10_000
_TASK_DONE = frozenset({"SUCCESS", "FAILED", "CANCELED"})
REPORT_TASK_FILE = Path(".scannerwork") / "report-task.txt"


@dataclass(frozen=True)
class SonarSettings:
    host_url: str
    token: str | None = None
    timeout_seconds: float = 30.0


class SonarClient:
    """Minimal async SonarQube web API client.

    Usage:
        async with SonarClient(settings) as sonar:
            findings = await sonar.search_issues("my-project")
    """

    def __init__(
        self,
        settings: SonarSettings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.settings = settings
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> SonarClient:
        # Sonar tokens authenticate as the basic-auth username
        auth = (self.settings.token, "") if self.settings.token else None
        self._client = httpx.AsyncClient(
            base_url=self.settings.host_url.rstrip("/"),
            timeout=self.settings.timeout_seconds,
            auth=auth,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type: type | None, exc_val: Exception | None, exc_tb: Any) -> None:  # noqa: ANN401
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("SonarClient must be used as async context manager")
        return self._client

    async def _get(self, endpoint: str, params: dict[str, Any]) -> dict[str, Any]:
        response = await self.client.get(endpoint, params=params)
        response.raise_for_status()
        return response.json()

    async def search_issues(self, project_key: str) -> tuple[Finding, ...]:
        """Open issues of a project, as Findings, in server order."""
        findings: list[Finding] = []
        page = 1
        while True:
            data = await self._get(
                "/api/issues/search",
                {
                    "componentKeys": project_key,
                    "resolved": "false",
                    "p": page,
                    "ps": _PAGE_SIZE,
                },
            )
            issues = data.get("issues") or []
            for issue in issues:
                findings.append(_issue_to_finding(issue))
            total = int(data.get("paging", {}).get("total", data.get("total", 0)))
            if not issues or page * _PAGE_SIZE >= min(total, _MAX_ISSUES):
                return tuple(findings)
            page += 1

    async def task_status(self, task_id: str) -> str:
        data = await self._get("/api/ce/task", {"id": task_id})
        return str(data.get("task", {}).get("status", ""))

    async def quality_gate_status(
        self, project_key: str
    ) -> tuple[str, list[dict[str, Any]]]:
        """Gate status (OK, WARN, ERROR or NONE) and its conditions."""
        data = await self._get(
            "/api/qualitygates/project_status", {"projectKey": project_key}
        )
        status = data.get("projectStatus", {})
        return str(status.get("status", "NONE")), list(status.get("conditions") or [])


def _issue_to_finding(issue: dict[str, Any]) -> Finding:
    raw = str(issue.get("severity", "INFO")).upper()
    severity = SONAR_SEVERITIES.get(raw)
    if severity is None:
        raise FindingsError(f"Unknown Sonar severity: {raw!r}")
    location = issue.get("component", "")
    if issue.get("line"):
        location = f"{location}:{issue['line']}"
    message = issue.get("message", "")
    description = f"{location}: {message}" if location else message
    return Finding(
        id=str(issue.get("rule") or issue.get("key", "unknown")),
        severity=severity,
        description=description,
    )


def read_report_task(workdir: Path) -> dict[str, str]:
    """Parse the scanner's report-task.txt (key=value lines), if present."""
    path = workdir / REPORT_TASK_FILE
    if not path.exists():
        return {}
    values: dict[str, str] = {}
    for line in path.read_text().splitlines():
        key, sep, value = line.partition("=")
        if sep:
            values[key.strip()] = value.strip()
    return values


def project_key(context: StageContext) -> str:
    """Stage option, else the static-analysis stage's option, else workdir name."""
    key = context.stage.options.get("project_key")
    if key:
        return str(key)
    for stage in context.pipeline:
        if stage.kind is StageKind.STATIC_ANALYSIS and stage.options.get("project_key"):
            return str(stage.options["project_key"])
    return Path(context.workdir).resolve().name


class StaticAnalysisRunner(CommandStageRunner):
    """sonar-scanner, then the project's open issues as findings.

    Options:
        project_key: Sonar project key (default: workdir name).
        sources: Source directories (default: ".").
        poll_interval: Seconds between background-task polls (default: 2).
    """

    kind = StageKind.STATIC_ANALYSIS
    tool = "sonar-scanner"

    def __init__(
        self,
        client_factory: Callable[[], SonarClient] | None,
        command_runner: CommandRunner | None = None,
        env: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(command_runner=command_runner, env=env)
        self._client_factory = client_factory

    def build_commands(self, context: StageContext) -> list[list[str]]:
        if self._client_factory is None:
            raise StageSetupError("SonarQube is not configured (set SONAR_HOST_URL)")
        sources = str(context.stage.options.get("sources", "."))
        return [
            [
                "sonar-scanner",
                f"-Dsonar.projectKey={project_key(context)}",
                f"-Dsonar.sources={sources}",
            ]
        ]

    async def collect_findings(
        self, context: StageContext, result: CommandResult
    ) -> tuple[Finding, ...]:
        if self._client_factory is None:
            raise StageSetupError("SonarQube is not configured (set SONAR_HOST_URL)")
        task_id = read_report_task(Path(context.workdir)).get("ceTaskId")
        interval = float(context.stage.options.get("poll_interval", 2.0))
        try:
            async with self._client_factory() as sonar:
                if task_id:
                    await self._wait_for_task(sonar, task_id, interval)
                return await sonar.search_issues(project_key(context))
        except httpx.HTTPError as e:
            raise FindingsError(f"SonarQube request failed: {e}") from e

    async def _wait_for_task(self, sonar: SonarClient, task_id: str, interval: float) -> None:
        """Poll the server-side analysis task until it finishes.

        Runs inside the stage deadline and cancellation guard of execute().
        """
        while True:
            status = await sonar.task_status(task_id)
            if status in _TASK_DONE:
                break
            logger.debug("Sonar task %s is %s", task_id, status)
            await asyncio.sleep(interval)
        if status != "SUCCESS":
            raise FindingsError(f"SonarQube background task {task_id} ended {status}")


class QualityGateRunner:
    """Reads the project's quality gate status from SonarQube."""

    kind = StageKind.QUALITY_GATE

    def __init__(self, client_factory: Callable[[], SonarClient] | None) -> None:
        self._client_factory = client_factory

    async def _fetch(self, key: str) -> tuple[str, list[dict[str, Any]]]:
        assert self._client_factory is not None
        async with self._client_factory() as sonar:
            return await sonar.quality_gate_status(key)

    async def execute(self, context: StageContext) -> StageResult:
        started = utc_now()

        def result(
            status: StageStatus,
            detail: str = "",
            findings: tuple[Finding, ...] = (),
            cancelled: bool = False,
        ) -> StageResult:
            return StageResult(
                stage_name=context.stage.name,
                status=status,
                started_at=started,
                ended_at=utc_now(),
                findings=findings,
                exit_detail=detail,
                attempts=context.attempt,
                cancelled=cancelled,
            )

        if self._client_factory is None:
            return result(
                StageStatus.FAILURE, "SonarQube is not configured (set SONAR_HOST_URL)"
            )
        key = project_key(context)
        try:
            outcome = await run_with_timeout_and_interrupt(
                self._fetch(key), context.timeout_seconds, context.cancel_event
            )
        except httpx.HTTPError as e:
            return result(StageStatus.ERROR, f"SonarQube request failed: {e}")
        if outcome.interrupted:
            return result(StageStatus.ERROR, CANCELLED_DETAIL, cancelled=True)
        if outcome.timed_out:
            return result(
                StageStatus.TIMEOUT,
                f"quality gate query exceeded {context.timeout_seconds:g}s",
            )

        assert outcome.result is not None
        gate_status, conditions = outcome.result
        analysis = context.latest_result_for(StageKind.STATIC_ANALYSIS)
        findings = list(analysis.findings) if analysis is not None else []
        if gate_status == "ERROR":
            failed = [
                f"{c.get('metricKey')} {c.get('actualValue')} "
                f"(threshold {c.get('errorThreshold')})"
                for c in conditions
                if c.get("status") == "ERROR"
            ]
            findings.append(
                Finding(
                    id=f"quality-gate:{key}",
                    severity=Severity.BLOCKER,
                    description="Quality gate failed: " + (", ".join(failed) or "ERROR"),
                )
            )
        return result(
            StageStatus.SUCCESS, f"quality gate {gate_status}", findings=tuple(findings)
        )
