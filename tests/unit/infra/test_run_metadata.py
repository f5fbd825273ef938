"""Tests for run records and per-run debug logging."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

import pytest

from releasegate.core.models import RunStatus, TriggerInput
from releasegate.domain.report import build_run_report
from releasegate.domain.run_state import RunState
from releasegate.infra.io.run_metadata import (
    cleanup_debug_logging,
    configure_debug_logging,
    load_run_record,
    run_record_path,
    save_run_record,
)

if TYPE_CHECKING:
    from pathlib import Path

    from releasegate.domain.report import RunReport


def _report() -> RunReport:
    state = RunState(trigger=TriggerInput("main", "app:3", "prod"), run_id="feedbeef-0001")
    state.finalize(RunStatus.SUCCEEDED)
    return build_run_report(state)


class TestRunRecords:
    def test_path_sorts_by_start_time(self, tmp_path: Path) -> None:
        report = _report()
        path = run_record_path(tmp_path, report)
        assert path.parent == tmp_path
        assert path.name.endswith("_feedbeef.json")
        assert path.name[:4].isdigit()

    def test_save_and_load(self, tmp_path: Path) -> None:
        report = _report()
        path = save_run_record(tmp_path / "nested" / "runs", report)
        assert path.exists()
        assert load_run_record(path) == report.to_dict()


class TestDebugLogging:
    def test_handler_lifecycle(self, tmp_path: Path) -> None:
        run_id = "deb00001-aaaa"
        log_path = configure_debug_logging(tmp_path, run_id)
        assert log_path is not None

        logging.getLogger("releasegate.test").debug("stage detail for %s", run_id)
        assert cleanup_debug_logging(run_id)
        assert "stage detail for deb00001-aaaa" in log_path.read_text()
        assert not cleanup_debug_logging(run_id)

    def test_unwritable_directory_returns_none(self, tmp_path: Path) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("")
        assert configure_debug_logging(blocker / "runs", "deb00002") is None

    def test_logger_level_restored(self, tmp_path: Path) -> None:
        package_logger = logging.getLogger("releasegate")
        previous = package_logger.level
        package_logger.setLevel(logging.WARNING)
        try:
            configure_debug_logging(tmp_path, "deb00003-aaaa")
            assert package_logger.level == logging.DEBUG
            cleanup_debug_logging("deb00003-aaaa")
            assert package_logger.level == logging.WARNING
        finally:
            package_logger.setLevel(previous)

    @pytest.mark.asyncio
    async def test_concurrent_runs_keep_separate_files(self, tmp_path: Path) -> None:
        started = asyncio.Event()

        async def run(run_id: str) -> Path | None:
            log_path = configure_debug_logging(tmp_path, run_id)
            try:
                logging.getLogger("releasegate.test").debug("first line of %s", run_id)
                if started.is_set():
                    await asyncio.sleep(0)
                else:
                    started.set()
                    await asyncio.sleep(0.01)
                logging.getLogger("releasegate.test").debug("last line of %s", run_id)
            finally:
                cleanup_debug_logging(run_id)
            return log_path

        first, second = await asyncio.gather(run("aaaa0001-x"), run("bbbb0002-y"))

        assert first is not None and second is not None
        first_text = first.read_text()
        second_text = second.read_text()
        assert "first line of aaaa0001-x" in first_text
        assert "last line of aaaa0001-x" in first_text
        assert "bbbb0002-y" not in first_text
        assert "last line of bbbb0002-y" in second_text
        assert "aaaa0001-x" not in second_text
