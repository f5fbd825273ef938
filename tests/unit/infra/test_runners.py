"""Unit tests for the subprocess-backed stage adapters.

Commands go through FakeCommandRunner; no external tool is executed.
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

import pytest

from releasegate.core.models import (
    Severity,
    StageContext,
    StageDefinition,
    StageKind,
    StageResult,
    StageStatus,
    TriggerInput,
)
from releasegate.infra.io.config import ReleasegateConfig
from releasegate.infra.runners.base import FindingsError, StageSetupError, render_command
from releasegate.infra.runners.checkout import CheckoutRunner
from releasegate.infra.runners.dependencies import DependencyInstallRunner
from releasegate.infra.runners.deploy import DeployRunner
from releasegate.infra.runners.docker import ImageBuildRunner, ImagePublishRunner
from releasegate.infra.runners.registry import build_default_runners
from releasegate.infra.runners.trivy import FsScanRunner, ImageScanRunner, parse_trivy_report
from tests.fakes import FakeCommandRunner

TRIGGER = TriggerInput("v2.0.0", "registry.local/app:2.0.0", "prod-cluster")


def make_context(
    kind: StageKind,
    workdir: Path,
    *,
    options: dict[str, Any] | None = None,
    timeout: float = 60.0,
    history: tuple[StageResult, ...] = (),
    pipeline: tuple[StageDefinition, ...] = (),
) -> StageContext:
    stage = StageDefinition(
        name=kind.value, kind=kind, timeout_seconds=timeout, options=options or {}
    )
    return StageContext(
        run_id="abcdef12-3456",
        stage=stage,
        trigger=TRIGGER,
        attempt=1,
        history=history,
        cancel_event=asyncio.Event(),
        pipeline=pipeline or (stage,),
        workdir=str(workdir),
    )


def trivy_report(*vulns: dict[str, Any], misconfigs: tuple[dict[str, Any], ...] = ()) -> str:
    return json.dumps(
        {
            "SchemaVersion": 2,
            "Results": [
                {
                    "Target": "package-lock.json",
                    "Vulnerabilities": list(vulns),
                    "Misconfigurations": list(misconfigs),
                }
            ],
        }
    )


class TestCommandStageRunner:
    @pytest.mark.asyncio
    async def test_success(self, tmp_path: Path) -> None:
        fake = FakeCommandRunner()
        fake.register(["docker", "push", TRIGGER.image_tag])
        result = await ImagePublishRunner(command_runner=fake).execute(
            make_context(StageKind.IMAGE_PUBLISH, tmp_path)
        )
        assert result.status is StageStatus.SUCCESS
        assert result.stage_name == "image_publish"
        assert result.attempts == 1
        assert fake.timeouts[0] is not None and fake.timeouts[0] <= 60.0

    @pytest.mark.asyncio
    async def test_nonzero_exit_is_failure_with_stderr(self, tmp_path: Path) -> None:
        fake = FakeCommandRunner()
        fake.register(
            ["docker", "push", TRIGGER.image_tag],
            returncode=1,
            stderr="denied: requested access to the resource is denied\n",
        )
        result = await ImagePublishRunner(command_runner=fake).execute(
            make_context(StageKind.IMAGE_PUBLISH, tmp_path)
        )
        assert result.status is StageStatus.FAILURE
        assert result.exit_detail == (
            "docker exited with 1: denied: requested access to the resource is denied"
        )

    @pytest.mark.asyncio
    async def test_missing_executable_is_error(self, tmp_path: Path) -> None:
        fake = FakeCommandRunner(missing={"npm"})
        result = await DependencyInstallRunner(command_runner=fake).execute(
            make_context(StageKind.DEPENDENCY_INSTALL, tmp_path)
        )
        assert result.status is StageStatus.ERROR
        assert result.exit_detail.startswith("Could not run npm:")

    @pytest.mark.asyncio
    async def test_timeout(self, tmp_path: Path) -> None:
        fake = FakeCommandRunner()
        fake.register(["npm", "ci"], timed_out=True)
        result = await DependencyInstallRunner(command_runner=fake).execute(
            make_context(StageKind.DEPENDENCY_INSTALL, tmp_path, options={"ci": True}, timeout=30)
        )
        assert result.status is StageStatus.TIMEOUT
        assert result.exit_detail == "npm exceeded 30s"

    @pytest.mark.asyncio
    async def test_cancelled(self, tmp_path: Path) -> None:
        fake = FakeCommandRunner()
        fake.register(["npm", "install"], cancelled=True)
        result = await DependencyInstallRunner(command_runner=fake).execute(
            make_context(StageKind.DEPENDENCY_INSTALL, tmp_path)
        )
        assert result.status is StageStatus.ERROR
        assert result.cancelled

    @pytest.mark.asyncio
    async def test_command_override_with_placeholders(self, tmp_path: Path) -> None:
        fake = FakeCommandRunner()
        fake.register(["podman", "push", TRIGGER.image_tag])
        context = make_context(
            StageKind.IMAGE_PUBLISH,
            tmp_path,
            options={"command": ["podman", "push", "{image_tag}"]},
        )
        result = await ImagePublishRunner(command_runner=fake).execute(context)
        assert result.status is StageStatus.SUCCESS
        assert fake.calls == [["podman", "push", TRIGGER.image_tag]]

    @pytest.mark.asyncio
    async def test_bad_override_is_failure(self, tmp_path: Path) -> None:
        fake = FakeCommandRunner()
        context = make_context(
            StageKind.IMAGE_PUBLISH, tmp_path, options={"command": ["push", "{registry}"]}
        )
        result = await ImagePublishRunner(command_runner=fake).execute(context)
        assert result.status is StageStatus.FAILURE
        assert "Invalid placeholder" in result.exit_detail
        assert fake.calls == []

    def test_render_command_rejects_non_list(self, tmp_path: Path) -> None:
        with pytest.raises(StageSetupError, match="list of strings"):
            render_command("docker push", make_context(StageKind.IMAGE_PUBLISH, tmp_path))


class TestCheckoutRunner:
    @pytest.mark.asyncio
    async def test_existing_clone_fetches_and_checks_out(self, tmp_path: Path) -> None:
        (tmp_path / ".git").mkdir()
        fake = FakeCommandRunner()
        fake.register(["git", "fetch", "--tags", "origin"])
        fake.register(["git", "checkout", "--force", "v2.0.0"])
        result = await CheckoutRunner(command_runner=fake).execute(
            make_context(StageKind.CHECKOUT, tmp_path)
        )
        assert result.status is StageStatus.SUCCESS
        assert [c[1] for c in fake.calls] == ["fetch", "checkout"]

    @pytest.mark.asyncio
    async def test_empty_workdir_clones(self, tmp_path: Path) -> None:
        fake = FakeCommandRunner()
        url = "https://git.example.com/app.git"
        fake.register(["git", "clone", "--origin", "upstream", url, "."])
        fake.register(["git", "checkout", "--force", "v2.0.0"])
        context = make_context(
            StageKind.CHECKOUT, tmp_path, options={"repo_url": url, "remote": "upstream"}
        )
        result = await CheckoutRunner(command_runner=fake).execute(context)
        assert result.status is StageStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_no_repo_and_no_url_is_failure(self, tmp_path: Path) -> None:
        result = await CheckoutRunner(command_runner=FakeCommandRunner()).execute(
            make_context(StageKind.CHECKOUT, tmp_path)
        )
        assert result.status is StageStatus.FAILURE
        assert "no repo_url option" in result.exit_detail

    @pytest.mark.asyncio
    async def test_stops_after_first_failing_command(self, tmp_path: Path) -> None:
        (tmp_path / ".git").mkdir()
        fake = FakeCommandRunner()
        fake.register(["git", "fetch", "--tags", "origin"], returncode=128, stderr="fatal: no remote")
        result = await CheckoutRunner(command_runner=fake).execute(
            make_context(StageKind.CHECKOUT, tmp_path)
        )
        assert result.status is StageStatus.FAILURE
        assert len(fake.calls) == 1


class TestImageBuildRunner:
    def test_default_command(self, tmp_path: Path) -> None:
        commands = ImageBuildRunner().build_commands(make_context(StageKind.IMAGE_BUILD, tmp_path))
        assert commands == [["docker", "build", "-t", TRIGGER.image_tag, "."]]

    def test_dockerfile_and_context_options(self, tmp_path: Path) -> None:
        context = make_context(
            StageKind.IMAGE_BUILD,
            tmp_path,
            options={"dockerfile": "docker/Dockerfile", "context": "app"},
        )
        assert ImageBuildRunner().build_commands(context) == [
            ["docker", "build", "-t", TRIGGER.image_tag, "-f", "docker/Dockerfile", "app"]
        ]


class TestDeployRunner:
    def test_kubectl_default(self, tmp_path: Path) -> None:
        commands = DeployRunner().build_commands(make_context(StageKind.DEPLOY_TRIGGER, tmp_path))
        assert commands == [["kubectl", "apply", "-f", "k8s", "--context", "prod-cluster"]]

    def test_argocd_with_wait(self, tmp_path: Path) -> None:
        context = make_context(
            StageKind.DEPLOY_TRIGGER, tmp_path, options={"mode": "argocd", "wait": True}, timeout=300
        )
        assert DeployRunner().build_commands(context) == [
            ["argocd", "app", "sync", "prod-cluster"],
            ["argocd", "app", "wait", "prod-cluster", "--health", "--timeout", "300"],
        ]

    @pytest.mark.asyncio
    async def test_unknown_mode_is_failure(self, tmp_path: Path) -> None:
        context = make_context(StageKind.DEPLOY_TRIGGER, tmp_path, options={"mode": "helm"})
        result = await DeployRunner(command_runner=FakeCommandRunner()).execute(context)
        assert result.status is StageStatus.FAILURE
        assert "Unknown deploy mode 'helm'" in result.exit_detail


class TestTrivy:
    def test_parse_vulnerabilities_and_misconfigurations(self) -> None:
        output = trivy_report(
            {
                "VulnerabilityID": "CVE-2024-1234",
                "PkgName": "lodash",
                "InstalledVersion": "4.17.20",
                "Severity": "CRITICAL",
                "Title": "Prototype pollution",
            },
            {"VulnerabilityID": "CVE-2024-9999", "PkgName": "left-pad", "Severity": "UNKNOWN"},
            misconfigs=(
                {"ID": "DS002", "Severity": "HIGH", "Title": "Image user should not be root"},
            ),
        )
        findings = parse_trivy_report(output)
        assert [(f.id, f.severity) for f in findings] == [
            ("CVE-2024-1234", Severity.CRITICAL),
            ("CVE-2024-9999", Severity.LOW),
            ("DS002", Severity.HIGH),
        ]
        assert findings[0].description == "lodash 4.17.20: Prototype pollution"
        assert findings[2].description == "package-lock.json: Image user should not be root"

    def test_empty_and_clean_reports(self) -> None:
        assert parse_trivy_report("") == ()
        assert parse_trivy_report(json.dumps({"Results": [{"Target": "x"}]})) == ()

    def test_invalid_output(self) -> None:
        with pytest.raises(FindingsError, match="not valid JSON"):
            parse_trivy_report("Fatal error: unable to initialize")

    @pytest.mark.asyncio
    async def test_image_scan_reports_findings(self, tmp_path: Path) -> None:
        fake = FakeCommandRunner()
        fake.register(
            ["trivy", "image", "--format", "json", "--quiet", TRIGGER.image_tag],
            stdout=trivy_report({"VulnerabilityID": "CVE-1", "Severity": "HIGH"}),
        )
        result = await ImageScanRunner(command_runner=fake).execute(
            make_context(StageKind.IMAGE_SECURITY_SCAN, tmp_path)
        )
        assert result.status is StageStatus.SUCCESS
        assert [f.id for f in result.findings] == ["CVE-1"]

    @pytest.mark.asyncio
    async def test_unparseable_scan_output_is_error(self, tmp_path: Path) -> None:
        fake = FakeCommandRunner()
        fake.register(
            ["trivy", "fs", "--format", "json", "--quiet", str(tmp_path)], stdout="{not json"
        )
        result = await FsScanRunner(command_runner=fake).execute(
            make_context(StageKind.FS_SECURITY_SCAN, tmp_path)
        )
        assert result.status is StageStatus.ERROR


class TestRegistry:
    def test_every_kind_has_a_runner(self, tmp_path: Path) -> None:
        runners = build_default_runners(ReleasegateConfig(runs_dir=tmp_path, workdir=tmp_path))
        assert set(runners) == set(StageKind)
        assert all(runner.kind is kind for kind, runner in runners.items())  # type: ignore[attr-defined]
