"""DEPLOY_TRIGGER adapter: hand the release to the cluster tooling."""

from __future__ import annotations

from typing import TYPE_CHECKING

from releasegate.core.models import StageKind
from releasegate.infra.runners.base import CommandStageRunner, StageSetupError

if TYPE_CHECKING:
    from releasegate.core.models import StageContext


class DeployRunner(CommandStageRunner):
    """Trigger a deployment with kubectl (default) or Argo CD.

    Options:
        mode: "kubectl" (default) or "argocd".
        manifests: Manifest path for kubectl apply (default: k8s).
        wait: With argocd, also wait for the app to become healthy.
    """

    kind = StageKind.DEPLOY_TRIGGER
    tool = "deploy"

    def build_commands(self, context: StageContext) -> list[list[str]]:
        options = context.stage.options
        target = context.trigger.target
        mode = str(options.get("mode", "kubectl"))
        if mode == "argocd":
            commands = [["argocd", "app", "sync", target]]
            if options.get("wait"):
                commands.append(
                    [
                        "argocd",
                        "app",
                        "wait",
                        target,
                        "--health",
                        "--timeout",
                        str(int(context.timeout_seconds)),
                    ]
                )
            return commands
        if mode == "kubectl":
            manifests = str(options.get("manifests", "k8s"))
            return [["kubectl", "apply", "-f", manifests, "--context", target]]
        raise StageSetupError(f"Unknown deploy mode '{mode}' (expected kubectl or argocd)")
