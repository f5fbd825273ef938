"""Run records and per-run debug logging.

A run record is the JSON rendering of a finalized run's report, written
to {runs_dir}/{timestamp}_{short-uuid}.json. The `releasegate logs`
command reads these files back for display; the orchestrator never does.
"""

from __future__ import annotations

import json
import logging
import os
from contextvars import ContextVar, Token
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from pathlib import Path

    from releasegate.domain.report import RunReport

logger = logging.getLogger(__name__)

_HANDLER_PREFIX = "releasegate_debug_"

# Run whose code is executing in the current asyncio task
_current_run_id: ContextVar[str | None] = ContextVar("releasegate_run_id", default=None)
_run_tokens: dict[str, Token[str | None]] = {}
# Level of the 'releasegate' logger before the first debug handler was attached
_saved_level: int | None = None


class _RunFilter(logging.Filter):
    """Passes only records emitted while the given run is the current one."""

    def __init__(self, run_id: str) -> None:
        super().__init__()
        self.run_id = run_id

    def filter(self, record: logging.LogRecord) -> bool:
        return _current_run_id.get() == self.run_id


def _debug_handlers(package_logger: logging.Logger) -> list[logging.Handler]:
    return [
        h for h in package_logger.handlers if (h.get_name() or "").startswith(_HANDLER_PREFIX)
    ]


def configure_debug_logging(runs_dir: Path, run_id: str) -> Path | None:
    """Write DEBUG+ records of the 'releasegate' logger to a per-run file.

    The run id is bound to the calling task's context, and the handler only
    accepts records emitted under that binding, so concurrent runs each get
    their own file. Call cleanup_debug_logging() from the same task.

    Best-effort: if the directory or file cannot be created, returns None
    and the run continues without a debug log.

    Args:
        runs_dir: Directory receiving {timestamp}_{short-id}.debug.log.
        run_id: Run ID (UUID) for the filename and handler name.

    Returns:
        Path to the debug log file, or None if it could not be opened.
    """
    global _saved_level
    try:
        runs_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now(UTC).strftime("%Y-%m-%dT%H-%M-%S")
        log_path = runs_dir / f"{timestamp}_{run_id[:8]}.debug.log"
        handler = logging.FileHandler(log_path)
    except OSError:
        # Read-only filesystem, permission denied, disk full
        return None

    handler.setLevel(logging.DEBUG)
    handler.setFormatter(
        logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    handler.set_name(f"{_HANDLER_PREFIX}{run_id}")
    handler.addFilter(_RunFilter(run_id))

    package_logger = logging.getLogger("releasegate")
    if not _debug_handlers(package_logger):
        _saved_level = package_logger.level
    package_logger.setLevel(logging.DEBUG)
    package_logger.addHandler(handler)
    _run_tokens[run_id] = _current_run_id.set(run_id)
    return log_path


def cleanup_debug_logging(run_id: str) -> bool:
    """Remove and close the debug FileHandler of a finished run.

    The logger level is restored once the last run's handler is gone.

    Returns:
        True if a handler was found and cleaned up, False otherwise.
    """
    global _saved_level
    token = _run_tokens.pop(run_id, None)
    if token is not None:
        try:
            _current_run_id.reset(token)
        except ValueError:
            # Bound in another context; that context is discarded with its task
            logger.debug("Run id %s was bound in a different context", run_id)

    package_logger = logging.getLogger("releasegate")
    handler_name = f"{_HANDLER_PREFIX}{run_id}"
    for handler in _debug_handlers(package_logger):
        if handler.get_name() == handler_name:
            handler.close()
            package_logger.removeHandler(handler)
            if not _debug_handlers(package_logger) and _saved_level is not None:
                package_logger.setLevel(_saved_level)
                _saved_level = None
            return True
    return False


def run_record_path(runs_dir: Path, report: RunReport) -> Path:
    """File path of a report's run record (timestamp first, so names sort)."""
    started = datetime.fromisoformat(report.started_at)
    timestamp = started.strftime("%Y-%m-%dT%H-%M-%S")
    return runs_dir / f"{timestamp}_{report.run_id[:8]}.json"


def save_run_record(runs_dir: Path, report: RunReport) -> Path:
    """Write the report as JSON and fsync it.

    Returns:
        Path to the saved record.
    """
    runs_dir.mkdir(parents=True, exist_ok=True)
    path = run_record_path(runs_dir, report)
    with open(path, "w") as f:
        json.dump(report.to_dict(), f, indent=2)
        f.flush()
        os.fsync(f.fileno())
    return path


def load_run_record(path: Path) -> dict[str, Any]:
    """Read a run record written by save_run_record().

    Raises:
        OSError, json.JSONDecodeError: If the file cannot be read or parsed.
    """
    with path.open() as f:
        return json.load(f)
