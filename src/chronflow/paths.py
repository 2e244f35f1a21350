"""Helpers for locating application directories."""

from __future__ import annotations

from pathlib import Path

from platformdirs import PlatformDirs

from .config import STORE_FILENAME

APP_NAME = "Chronflow"
APP_AUTHOR = "Chronflow"


def get_data_dir() -> Path:
    """Return the base directory for persistent data."""
    dirs = PlatformDirs(appname=APP_NAME, appauthor=APP_AUTHOR, roaming=True)
    path = Path(dirs.user_data_path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_default_store_path() -> Path:
    return get_data_dir() / STORE_FILENAME


def get_settings_path() -> Path:
    return get_data_dir() / "settings.json"


def get_log_path() -> Path:
    return get_data_dir() / "collector.log"
