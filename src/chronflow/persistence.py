"""JSON file persistence for the heartbeat store."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from .config import STORE_VERSION
from .errors import StoreCorruptionError, StoreWriteError
from .heartbeats import HeartbeatLog
from .models import AppWindow, Heartbeat, TeamsMeeting, UserActivity
from .timeutils import is_date_key, now_ms

logger = logging.getLogger(__name__)


class _Document(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AppWindowDocument(_Document):
    app: str
    title: str


class TeamsMeetingDocument(_Document):
    title: str
    status: str = "active"


class HeartbeatDataDocument(_Document):
    user_activity: UserActivity = UserActivity.ACTIVE
    app_window: Optional[AppWindowDocument] = None
    teams_meeting: Union[TeamsMeetingDocument, Literal[False], None] = False


class HeartbeatDocument(_Document):
    timestamp: int = Field(ge=0, strict=True)
    data: HeartbeatDataDocument = Field(default_factory=HeartbeatDataDocument)

    @classmethod
    def from_heartbeat(cls, beat: Heartbeat) -> "HeartbeatDocument":
        return cls(
            timestamp=beat.timestamp,
            data=HeartbeatDataDocument(
                user_activity=beat.user_activity,
                app_window=(
                    AppWindowDocument(app=beat.app_window.app, title=beat.app_window.title)
                    if beat.app_window
                    else None
                ),
                teams_meeting=(
                    TeamsMeetingDocument(
                        title=beat.teams_meeting.title, status=beat.teams_meeting.status
                    )
                    if beat.teams_meeting
                    else False
                ),
            ),
        )

    def to_heartbeat(self) -> Heartbeat:
        data = self.data
        return Heartbeat(
            timestamp=self.timestamp,
            user_activity=data.user_activity,
            app_window=AppWindow(data.app_window.app, data.app_window.title)
            if data.app_window
            else None,
            teams_meeting=TeamsMeeting(data.teams_meeting.title, data.teams_meeting.status)
            if data.teams_meeting
            else None,
        )


class StoreHeader(_Document):
    version: int = Field(strict=True)
    start_time: int = 0
    last_cleanup: int = 0
    days: dict[str, Any]


@dataclass(slots=True)
class StoreData:
    """The process-wide persisted aggregate: metadata plus the heartbeat log."""

    version: int = STORE_VERSION
    start_time: int = field(default_factory=now_ms)
    last_cleanup: int = 0
    log: HeartbeatLog = field(default_factory=HeartbeatLog)

    def to_document(self) -> dict[str, Any]:
        days = self.log.snapshot()
        return {
            "version": self.version,
            "startTime": self.start_time,
            "lastCleanup": self.last_cleanup,
            "days": {
                key: {
                    "heartbeats": [
                        HeartbeatDocument.from_heartbeat(beat).model_dump(
                            by_alias=True, mode="json"
                        )
                        for beat in days[key]
                    ]
                }
                for key in sorted(days)
            },
        }

    @classmethod
    def from_document(cls, raw: Any) -> "StoreData":
        """Build a store from a parsed document.

        Raises ``StoreCorruptionError`` when the document as a whole is unusable.
        Malformed days and heartbeats are skipped with a warning.
        """
        if not isinstance(raw, dict):
            raise StoreCorruptionError("store document is not an object", reason="invalid-object")
        try:
            header = StoreHeader.model_validate(raw)
        except ValidationError as exc:
            raise StoreCorruptionError(
                f"store document header is invalid: {exc.error_count()} errors",
                reason="invalid-header",
            ) from exc
        if header.version != STORE_VERSION:
            raise StoreCorruptionError(
                f"unsupported store version {header.version}", reason="wrong-version"
            )

        days: dict[str, list[Heartbeat]] = {}
        for key, day in header.days.items():
            if not is_date_key(key):
                logger.warning("Skipping day with invalid key %r.", key)
                continue
            if not isinstance(day, dict) or not isinstance(day.get("heartbeats"), list):
                logger.warning("Skipping day %s with invalid structure.", key)
                continue
            beats: list[Heartbeat] = []
            for entry in day["heartbeats"]:
                try:
                    beats.append(HeartbeatDocument.model_validate(entry).to_heartbeat())
                except ValidationError:
                    logger.warning("Skipping malformed heartbeat in %s: %r", key, entry)
            days[key] = beats

        start_time = header.start_time if header.start_time > 0 else now_ms()
        return cls(
            version=header.version,
            start_time=start_time,
            last_cleanup=max(header.last_cleanup, 0),
            log=HeartbeatLog(days),
        )


@dataclass(slots=True)
class LoadResult:
    store: StoreData
    error: Optional[StoreCorruptionError] = None
    existed: bool = False


class StorePersistence:
    """Reads and atomically writes the store document at ``path``."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)

    def load(self) -> LoadResult:
        if not self.path.exists():
            logger.info("No store found at %s; starting fresh.", self.path)
            return LoadResult(store=StoreData())

        try:
            content = self.path.read_bytes()
        except OSError as exc:
            # Read failures leave the file in place.
            error = StoreCorruptionError(
                f"could not read store {self.path}: {exc}", reason="read-error"
            )
            logger.warning(
                "Store at %s is unreadable; starting with an empty store: %s", self.path, exc
            )
            return LoadResult(store=StoreData(), error=error, existed=True)

        try:
            raw = json.loads(content.decode("utf-8"))
            store = StoreData.from_document(raw)
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            error = StoreCorruptionError(
                f"could not parse store {self.path}: {exc}", reason="parse-error"
            )
            return self._recover(error)
        except StoreCorruptionError as exc:
            return self._recover(exc)

        logger.info("Loaded %d heartbeats from %s.", len(store.log), self.path)
        return LoadResult(store=store, existed=True)

    def read(self) -> StoreData:
        """Parse the file strictly, raising on any problem. Does not back up."""
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise StoreCorruptionError(
                f"could not read store {self.path}: {exc}", reason="parse-error"
            ) from exc
        return StoreData.from_document(raw)

    def save(self, document: dict[str, Any]) -> None:
        """Write ``document`` to a temp file beside the target, then replace it."""
        payload = json.dumps(document, indent=2, ensure_ascii=False)
        directory = self.path.parent
        tmp_name: Optional[str] = None
        try:
            directory.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                mode="w",
                encoding="utf-8",
                dir=directory,
                prefix=f".{self.path.name}.",
                suffix=".tmp",
                delete=False,
            ) as tmp:
                tmp_name = tmp.name
                tmp.write(payload)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_name, self.path)
        except OSError as exc:
            if tmp_name and os.path.exists(tmp_name):
                try:
                    os.remove(tmp_name)
                except OSError:
                    logger.warning("Could not remove temporary file %s", tmp_name)
            raise StoreWriteError(f"failed to write store {self.path}: {exc}") from exc

    def _recover(self, error: StoreCorruptionError) -> LoadResult:
        error.backup_path = self._backup_invalid_file(error.reason)
        logger.warning(
            "Store at %s is corrupt (%s); starting with an empty store. Backup: %s",
            self.path,
            error,
            error.backup_path,
        )
        return LoadResult(store=StoreData(), error=error, existed=True)

    def _backup_invalid_file(self, reason: str) -> Optional[str]:
        backup = self.path.with_name(f"{self.path.name}.invalid-{reason}-{now_ms()}")
        try:
            os.replace(self.path, backup)
        except OSError:
            logger.exception("Failed to back up invalid store file %s", self.path)
            return None
        return str(backup)
