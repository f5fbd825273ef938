"""DEPENDENCY_INSTALL adapter."""

from __future__ import annotations

from typing import TYPE_CHECKING

from releasegate.core.models import StageKind
from releasegate.infra.runners.base import CommandStageRunner

if TYPE_CHECKING:
    from releasegate.core.models import StageContext


class DependencyInstallRunner(CommandStageRunner):
    """Runs ``npm install`` (or ``npm ci`` with ``options.ci: true``)."""

    kind = StageKind.DEPENDENCY_INSTALL
    tool = "npm"

    def build_commands(self, context: StageContext) -> list[list[str]]:
        if context.stage.options.get("ci"):
            return [["npm", "ci"]]
        return [["npm", "install"]]
