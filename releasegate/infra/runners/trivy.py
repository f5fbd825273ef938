"""FS_SECURITY_SCAN and IMAGE_SECURITY_SCAN adapters (Trivy).

Trivy runs with ``--format json`` and exits 0 whether or not it finds
vulnerabilities, leaving the pass/fail decision to the gate policy.
Vulnerabilities and misconfigurations from every result target become
Findings, in report order.
"""

from __future__ import annotations

import json
from typing import TYPE_CHECKING, Any

from releasegate.core.models import Finding, Severity, StageKind
from releasegate.infra.runners.base import CommandStageRunner, FindingsError

if TYPE_CHECKING:
    from releasegate.core.models import StageContext
    from releasegate.infra.tools.command_runner import CommandResult

# Trivy's own scale has no BLOCKER; UNKNOWN is treated as LOW
_TRIVY_SEVERITIES = {
    "UNKNOWN": Severity.LOW,
    "LOW": Severity.LOW,
    "MEDIUM": Severity.MEDIUM,
    "HIGH": Severity.HIGH,
    "CRITICAL": Severity.CRITICAL,
}


def _finding(entry: dict[str, Any], id_key: str, target: str) -> Finding:
    severity = _TRIVY_SEVERITIES.get(str(entry.get("Severity", "UNKNOWN")).upper())
    if severity is None:
        raise FindingsError(f"Unknown Trivy severity: {entry.get('Severity')!r}")
    title = entry.get("Title") or entry.get("Description") or ""
    pkg = entry.get("PkgName")
    if pkg:
        installed = entry.get("InstalledVersion", "")
        where = f"{pkg} {installed}".strip()
    else:
        where = target
    description = f"{where}: {title}" if title else where
    return Finding(id=str(entry.get(id_key, "unknown")), severity=severity, description=description)


def parse_trivy_report(output: str) -> tuple[Finding, ...]:
    """Convert a Trivy JSON report into Findings.

    Raises:
        FindingsError: If the output is not a Trivy JSON report.
    """
    if not output.strip():
        return ()
    try:
        data = json.loads(output)
    except json.JSONDecodeError as e:
        raise FindingsError(f"Trivy output is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise FindingsError("Trivy report must be a JSON object")

    findings: list[Finding] = []
    for result in data.get("Results") or []:
        if not isinstance(result, dict):
            continue
        target = str(result.get("Target", ""))
        for vuln in result.get("Vulnerabilities") or []:
            findings.append(_finding(vuln, "VulnerabilityID", target))
        for misconfig in result.get("Misconfigurations") or []:
            findings.append(_finding(misconfig, "ID", target))
    return tuple(findings)


class _TrivyRunner(CommandStageRunner):
    tool = "trivy"

    async def collect_findings(
        self, context: StageContext, result: CommandResult
    ) -> tuple[Finding, ...]:
        return parse_trivy_report(result.stdout)


class FsScanRunner(_TrivyRunner):
    """``trivy fs --format json --quiet <workdir>``."""

    kind = StageKind.FS_SECURITY_SCAN

    def build_commands(self, context: StageContext) -> list[list[str]]:
        return [["trivy", "fs", "--format", "json", "--quiet", context.workdir]]


class ImageScanRunner(_TrivyRunner):
    """``trivy image --format json --quiet <image_tag>``."""

    kind = StageKind.IMAGE_SECURITY_SCAN

    def build_commands(self, context: StageContext) -> list[list[str]]:
        return [
            ["trivy", "image", "--format", "json", "--quiet", context.trigger.image_tag]
        ]
