"""Persisted application settings (storage location)."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from .config import STORE_FILENAME
from .paths import get_default_store_path, get_settings_path

logger = logging.getLogger(__name__)


class AppSettings(BaseModel):
    """User settings kept in ``settings.json`` beside the default store."""

    activity_store_dir_path: Optional[str] = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    def store_path(self) -> Path:
        if self.activity_store_dir_path:
            return Path(self.activity_store_dir_path) / STORE_FILENAME
        return get_default_store_path()


def load_settings(path: Optional[Path] = None) -> AppSettings:
    path = path or get_settings_path()
    if not path.exists():
        return AppSettings()
    try:
        return AppSettings.model_validate(json.loads(path.read_text(encoding="utf-8")))
    except (OSError, json.JSONDecodeError, ValidationError):
        logger.exception("Could not read settings from %s; using defaults.", path)
        return AppSettings()


def save_settings(settings: AppSettings, path: Optional[Path] = None) -> None:
    path = path or get_settings_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(settings.model_dump(by_alias=True), indent=2), encoding="utf-8"
    )
