"""Console output helpers for releasegate.

Every line is timestamped and, when it belongs to a run, prefixed with the
short run id in a color stable for that run, so concurrent runs stay
readable in one terminal. Status styles (icon + color) for stages and runs
live here so the event sink and the notification sink render them alike.
"""

from collections.abc import Mapping
from datetime import datetime

from releasegate.core.models import RunStatus, StageStatus

_verbose_enabled: bool = False


def set_verbose(enabled: bool) -> None:
    """Toggle verbose output (full details, log_verbose lines)."""
    global _verbose_enabled
    _verbose_enabled = enabled


def truncate_text(text: str, max_length: int) -> str:
    """Shorten text to max_length with an ellipsis, unless verbose is on."""
    if _verbose_enabled or len(text) <= max_length:
        return text
    return text[:max_length] + "..."


class Colors:
    """ANSI color codes for terminal output (bright variants)."""

    RESET = "\033[0m"
    BOLD = "\033[1m"
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    BLUE = "\033[94m"
    MAGENTA = "\033[95m"
    CYAN = "\033[96m"
    RED = "\033[91m"
    GRAY = "\033[90m"
    WHITE = "\033[97m"
    MUTED = "\033[90m"


STAGE_STYLES: dict[StageStatus, tuple[str, str]] = {
    StageStatus.SUCCESS: ("✓", Colors.GREEN),
    StageStatus.FAILURE: ("✗", Colors.RED),
    StageStatus.TIMEOUT: ("⏱", Colors.YELLOW),
    StageStatus.ERROR: ("✗", Colors.RED),
}

RUN_STYLES: dict[RunStatus, tuple[str, str]] = {
    RunStatus.RUNNING: ("●", Colors.CYAN),
    RunStatus.SUCCEEDED: ("✓", Colors.GREEN),
    RunStatus.FAILED: ("✗", Colors.RED),
    RunStatus.ABORTED: ("■", Colors.YELLOW),
}

_PALETTE = (
    Colors.CYAN,
    Colors.YELLOW,
    Colors.MAGENTA,
    Colors.GREEN,
    Colors.BLUE,
    Colors.WHITE,
)

_run_colors: dict[str, str] = {}


def run_color(run_id: str) -> str:
    """Color assigned to run_id; runs get palette colors in first-seen order."""
    color = _run_colors.get(run_id)
    if color is None:
        color = _PALETTE[len(_run_colors) % len(_PALETTE)]
        _run_colors[run_id] = color
    return color


def format_counts(counts: Mapping[object, int]) -> str:
    """Render severity counts as ``high=2, low=1`` (empty string if none)."""
    parts = []
    for severity, count in counts.items():
        name = getattr(severity, "value", severity)
        parts.append(f"{str(name).lower()}={count}")
    return ", ".join(parts)


def log(
    icon: str,
    message: str,
    color: str = Colors.RESET,
    dim: bool = False,
    run_id: str | None = None,
) -> None:
    style = Colors.MUTED if dim else ""
    timestamp = datetime.now().strftime("%H:%M:%S")
    prefix = f"{run_color(run_id)}[{run_id[:8]}]{Colors.RESET} " if run_id else ""
    print(
        f"{Colors.GRAY}{timestamp}{Colors.RESET} {prefix}{style}{color}{icon} {message}{Colors.RESET}"
    )


def log_verbose(
    icon: str,
    message: str,
    color: str = Colors.MUTED,
    run_id: str | None = None,
) -> None:
    """Like log(), but only printed when verbose output is enabled."""
    if _verbose_enabled:
        log(icon, message, color, run_id=run_id)
