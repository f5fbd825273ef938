"""Environment configuration and loading for releasegate.

Centralizes config paths and dotenv loading. Call load_user_env() early
so credentials (SONAR_TOKEN, webhook URLs) are in the environment before
the configuration is read.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# User config directory (stores .env, runs, etc.)
USER_CONFIG_DIR = Path.home() / ".config" / "releasegate"


def get_runs_dir() -> Path:
    """Get the runs directory, respecting RELEASEGATE_RUNS_DIR env var.

    This function evaluates the env var at call time, so it respects
    values loaded from .env via load_user_env().
    """
    return Path(os.environ.get("RELEASEGATE_RUNS_DIR", str(USER_CONFIG_DIR / "runs")))


def get_workdir() -> Path:
    """Get the default stage working directory (RELEASEGATE_WORKDIR or cwd)."""
    raw = os.environ.get("RELEASEGATE_WORKDIR")
    return Path(raw) if raw else Path.cwd()


def load_user_env() -> None:
    """Load environment from the user config directory.

    Loads ${USER_CONFIG_DIR}/.env (typically ~/.config/releasegate/.env).
    Existing environment variables win over file values.
    """
    load_dotenv(dotenv_path=USER_CONFIG_DIR / ".env")

