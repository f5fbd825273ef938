"""CHECKOUT adapter: materialize source_ref in the run's working directory."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from releasegate.core.models import StageKind
from releasegate.infra.runners.base import CommandStageRunner, StageSetupError

if TYPE_CHECKING:
    from releasegate.core.models import StageContext


class CheckoutRunner(CommandStageRunner):
    """git fetch/checkout in an existing clone, or clone into an empty workdir.

    Options:
        repo_url: Remote to clone when the workdir is not a git repository.
        remote: Remote name to fetch from (default: origin).
    """

    kind = StageKind.CHECKOUT
    tool = "git"

    def build_commands(self, context: StageContext) -> list[list[str]]:
        ref = context.trigger.source_ref
        remote = str(context.stage.options.get("remote", "origin"))
        if (Path(context.workdir) / ".git").exists():
            return [
                ["git", "fetch", "--tags", remote],
                ["git", "checkout", "--force", ref],
            ]
        repo_url = context.stage.options.get("repo_url")
        if not repo_url:
            raise StageSetupError(
                f"{context.workdir} is not a git repository and "
                "no repo_url option is configured"
            )
        return [
            ["git", "clone", "--origin", remote, str(repo_url), "."],
            ["git", "checkout", "--force", ref],
        ]
