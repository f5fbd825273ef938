"""Standardized subprocess execution for stage adapters.

Every external tool (git, sonar-scanner, npm, trivy, docker, kubectl,
argocd) is launched through CommandRunner so that timeouts and
cancellation behave the same way everywhere:

- the child runs in its own process group (start_new_session=True);
- on timeout or cancellation the whole group receives SIGTERM, then
  SIGKILL after a grace period, so no orphaned tool keeps running;
- the result records whether the command timed out or was cancelled.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from releasegate.infra.sigint_guard import run_with_timeout_and_interrupt

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence
    from pathlib import Path

logger = logging.getLogger(__name__)

# Exit code reported for timed-out commands (matches coreutils `timeout`)
TIMEOUT_EXIT_CODE = 124
# Exit code reported for cancelled commands (128 + SIGINT)
CANCELLED_EXIT_CODE = 130
DEFAULT_KILL_GRACE_SECONDS = 2.0


@dataclass
class CommandResult:
    """Outcome of a single command execution."""

    command: list[str]
    returncode: int
    stdout: str
    stderr: str
    duration_seconds: float
    timed_out: bool = False
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out and not self.cancelled

    def stdout_tail(self, max_lines: int = 20) -> str:
        lines = self.stdout.splitlines()
        return "\n".join(lines[-max_lines:])

    def stderr_tail(self, max_chars: int = 800) -> str:
        return self.stderr[-max_chars:]


class CommandRunner:
    """Runs commands with process-group termination on timeout/cancel.

    Usage:
        runner = CommandRunner(cwd=workdir, timeout_seconds=60)
        result = await runner.run_async(["docker", "build", "."])
        if result.timed_out: ...
    """

    def __init__(
        self,
        cwd: Path,
        timeout_seconds: float | None = None,
        kill_grace_seconds: float = DEFAULT_KILL_GRACE_SECONDS,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self.cwd = cwd
        self.timeout_seconds = timeout_seconds
        self.kill_grace_seconds = kill_grace_seconds
        self.env = dict(env) if env is not None else None

    def _merged_env(self, extra: Mapping[str, str] | None) -> dict[str, str] | None:
        if self.env is None and extra is None:
            return None
        merged = dict(os.environ)
        merged.update(self.env or {})
        merged.update(extra or {})
        return merged

    async def run_async(
        self,
        cmd: Sequence[str],
        *,
        timeout: float | None = None,
        cancel_event: asyncio.Event | None = None,
        env: Mapping[str, str] | None = None,
        cwd: Path | None = None,
    ) -> CommandResult:
        """Run a command, honoring timeout and cancellation.

        Args:
            cmd: Argument vector (no shell).
            timeout: Overrides the runner's default timeout.
            cancel_event: When set, the command is terminated.
            env: Extra environment variables.
            cwd: Overrides the runner's working directory.

        Returns:
            CommandResult. Timed-out commands report TIMEOUT_EXIT_CODE and
            cancelled commands report CANCELLED_EXIT_CODE.

        Raises:
            OSError: If the executable cannot be started (e.g. not installed).
        """
        argv = list(cmd)
        effective_timeout = timeout if timeout is not None else self.timeout_seconds
        start = time.monotonic()
        logger.debug("Running %s (timeout=%s)", argv, effective_timeout)

        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(cwd or self.cwd),
            env=self._merged_env(env),
            start_new_session=True,
        )

        try:
            outcome = await run_with_timeout_and_interrupt(
                proc.communicate(), effective_timeout, cancel_event
            )
        except asyncio.CancelledError:
            await self._terminate(proc)
            raise

        duration = time.monotonic() - start
        if outcome.completed:
            assert outcome.result is not None
            stdout, stderr = outcome.result
            return CommandResult(
                command=argv,
                returncode=proc.returncode if proc.returncode is not None else -1,
                stdout=stdout.decode(errors="replace"),
                stderr=stderr.decode(errors="replace"),
                duration_seconds=duration,
            )

        await self._terminate(proc)
        if outcome.timed_out:
            logger.warning("Command timed out after %.1fs: %s", duration, argv)
            return CommandResult(
                command=argv,
                returncode=TIMEOUT_EXIT_CODE,
                stdout="",
                stderr=f"Command timed out after {effective_timeout}s",
                duration_seconds=duration,
                timed_out=True,
            )
        logger.info("Command cancelled: %s", argv)
        return CommandResult(
            command=argv,
            returncode=CANCELLED_EXIT_CODE,
            stdout="",
            stderr="Command cancelled",
            duration_seconds=duration,
            cancelled=True,
        )

    async def _terminate(self, proc: asyncio.subprocess.Process) -> None:
        """SIGTERM the process group, then SIGKILL after the grace period."""
        if proc.returncode is not None:
            return
        _signal_group(proc.pid, signal.SIGTERM)
        try:
            await asyncio.wait_for(proc.wait(), timeout=self.kill_grace_seconds)
            return
        except TimeoutError:
            pass
        _signal_group(proc.pid, signal.SIGKILL)
        await proc.wait()


def _signal_group(pid: int, sig: signal.Signals) -> None:
    try:
        os.killpg(os.getpgid(pid), sig)
    except ProcessLookupError:
        # Already exited between the check and the signal
        pass

