"""IMAGE_BUILD and IMAGE_PUBLISH adapters (docker CLI)."""

from __future__ import annotations

from typing import TYPE_CHECKING

from releasegate.core.models import StageKind
from releasegate.infra.runners.base import CommandStageRunner

if TYPE_CHECKING:
    from releasegate.core.models import StageContext


class ImageBuildRunner(CommandStageRunner):
    """``docker build -t <image_tag> [-f <dockerfile>] <context>``.

    Options:
        dockerfile: Path to the Dockerfile, relative to the workdir.
        context: Build context (default: the workdir itself).
    """

    kind = StageKind.IMAGE_BUILD
    tool = "docker build"

    def build_commands(self, context: StageContext) -> list[list[str]]:
        argv = ["docker", "build", "-t", context.trigger.image_tag]
        dockerfile = context.stage.options.get("dockerfile")
        if dockerfile:
            argv += ["-f", str(dockerfile)]
        argv.append(str(context.stage.options.get("context", ".")))
        return [argv]


class ImagePublishRunner(CommandStageRunner):
    kind = StageKind.IMAGE_PUBLISH
    tool = "docker push"

    def build_commands(self, context: StageContext) -> list[list[str]]:
        return [["docker", "push", context.trigger.image_tag]]
