"""Unit tests for CommandRunner helpers that do not spawn processes."""

from __future__ import annotations

import signal
import sys
from pathlib import Path
from unittest.mock import patch

import pytest

from releasegate.infra.tools import command_runner
from releasegate.infra.tools.command_runner import CommandResult, CommandRunner

unix_only = pytest.mark.skipif(sys.platform == "win32", reason="Unix-only test")


def _result(**kwargs: object) -> CommandResult:
    defaults: dict[str, object] = {
        "command": ["docker", "build", "."],
        "returncode": 0,
        "stdout": "",
        "stderr": "",
        "duration_seconds": 0.1,
    }
    defaults.update(kwargs)
    return CommandResult(**defaults)  # type: ignore[arg-type]


class TestCommandResult:
    def test_ok_requires_zero_exit(self) -> None:
        assert _result().ok
        assert not _result(returncode=1).ok
        assert not _result(timed_out=True).ok
        assert not _result(cancelled=True).ok

    def test_stdout_tail_keeps_last_lines(self) -> None:
        stdout = "\n".join(f"line {i}" for i in range(50))
        tail = _result(stdout=stdout).stdout_tail(max_lines=3)
        assert tail == "line 47\nline 48\nline 49"

    def test_stderr_tail_keeps_last_chars(self) -> None:
        assert _result(stderr="a" * 10 + "END").stderr_tail(max_chars=3) == "END"


class TestMergedEnv:
    def test_inherits_when_nothing_given(self) -> None:
        assert CommandRunner(cwd=Path("."))._merged_env(None) is None

    def test_layers_runner_and_call_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RELEASEGATE_TEST_BASE", "os")
        runner = CommandRunner(cwd=Path("."), env={"SONAR_HOST_URL": "http://a"})
        merged = runner._merged_env({"SONAR_HOST_URL": "http://b"})
        assert merged is not None
        assert merged["RELEASEGATE_TEST_BASE"] == "os"
        assert merged["SONAR_HOST_URL"] == "http://b"


class TestSignalGroup:
    @unix_only
    def test_signals_process_group(self) -> None:
        with patch("os.getpgid", return_value=4242), patch("os.killpg") as mock_killpg:
            command_runner._signal_group(1234, signal.SIGTERM)
        mock_killpg.assert_called_once_with(4242, signal.SIGTERM)

    @unix_only
    def test_process_already_gone(self) -> None:
        with patch("os.getpgid", side_effect=ProcessLookupError):
            command_runner._signal_group(1234, signal.SIGKILL)
