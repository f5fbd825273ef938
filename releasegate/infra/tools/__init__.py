"""Tools package: command execution and environment utilities."""

from releasegate.infra.tools.command_runner import CommandResult, CommandRunner
from releasegate.infra.tools.env import get_runs_dir, get_workdir

__all__ = [
    "CommandResult",
    "CommandRunner",
    "get_runs_dir",
    "get_workdir",
]
