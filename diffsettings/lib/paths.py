"""Path utilities for the settings store.

- Resolves the user-scope local application data directory
- Provides the canonical path for the project settings file

Uses %LOCALAPPDATA% and avoids extra deps; the settings never roam.
"""
from __future__ import annotations

import os
from pathlib import Path


_APP_DIR_NAME = "OpenDBDiff"
_SETTINGS_FILENAME = "settings.sqlite"


def get_user_local_data_dir() -> Path:
    """Return the user-scope local application data directory.

    Prefers %LOCALAPPDATA%. Falls back to ~/AppData/Local if unset.
    """
    local_appdata = os.getenv("LOCALAPPDATA")
    if local_appdata:
        base = Path(local_appdata)
    else:
        base = Path.home() / "AppData" / "Local"
    return base / _APP_DIR_NAME


def ensure_user_local_data_dir() -> Path:
    """Ensure the local data directory exists and return it."""
    p = get_user_local_data_dir()
    p.mkdir(parents=True, exist_ok=True)
    return p


def settings_file_path() -> Path:
    """Return the full path to the protected project settings file."""
    return ensure_user_local_data_dir() / _SETTINGS_FILENAME
