"""File path resolution using platformdirs.

Set JOURNEYSYNC_HOME to pin every path under one directory (useful for
containers and tests). Otherwise paths use the platform user data dir:
  macOS: ~/Library/Application Support/journeysync/
  Linux: ~/.local/share/journeysync/
"""

import os
from pathlib import Path

import platformdirs

APP_NAME = "journeysync"


def get_data_dir() -> Path:
    """Return the directory for persistent data (DB, legacy state files)."""
    override = os.environ.get("JOURNEYSYNC_HOME", "").strip()
    if override:
        return Path(override).expanduser()
    return Path(platformdirs.user_data_dir(APP_NAME, appauthor=False))


def get_config_dir() -> Path:
    """Return the per-user configuration directory (~/.journeysync)."""
    return Path.home() / ".journeysync"


def get_default_db_path() -> Path:
    """Return the default SQLite database file path."""
    return get_data_dir() / "journeysync.db"


def ensure_dirs_exist() -> None:
    """Create the data directory if it doesn't exist."""
    get_data_dir().mkdir(parents=True, exist_ok=True)
