"""File path resolution using platformdirs.

LEADRELAY_DATA_DIR overrides the data directory. Otherwise paths use the
platform user data directory:
  macOS: ~/Library/Application Support/leadrelay/
  Linux: ~/.local/share/leadrelay/
"""

import os
from pathlib import Path

import platformdirs

APP_NAME = "leadrelay"


def get_data_dir() -> Path:
    """Return the directory for persistent data (SQLite database)."""
    override = os.environ.get("LEADRELAY_DATA_DIR", "").strip()
    if override:
        return Path(override).expanduser()
    return Path(platformdirs.user_data_dir(APP_NAME, appauthor=False))


def get_default_db_path() -> Path:
    """Return the default SQLite database file path."""
    return get_data_dir() / "leadrelay.db"


def ensure_dirs_exist() -> None:
    """Create all required directories if they don't exist."""
    get_data_dir().mkdir(parents=True, exist_ok=True)
