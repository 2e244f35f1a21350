"""The activity store: owner of the heartbeat log and its on-disk document.

Lifecycle: construct with ``ActivityStore.open(path)`` at startup, append
heartbeats while running, call ``save()`` periodically and ``close()`` once at
shutdown. No other component mutates the store.
"""

from __future__ import annotations

import logging
import shutil
import threading
from datetime import timedelta
from pathlib import Path
from typing import Iterable, Optional

from .config import RETENTION_DAYS, STORE_FILENAME
from .errors import RelocationError, StoreCorruptionError, StoreWriteError
from .models import Heartbeat
from .persistence import LoadResult, StoreData, StorePersistence
from .timeutils import now_ms, parse_date_key, to_local

logger = logging.getLogger(__name__)

CLEANUP_EVERY = timedelta(days=1)


class ActivityStore:
    """Thread-safe wrapper around ``StoreData`` with durable, serialized saves."""

    def __init__(self, path: Path) -> None:
        self._persistence = StorePersistence(Path(path))
        self._data = StoreData()
        self._lock = threading.RLock()
        self._save_lock = threading.Lock()
        self._dirty = False
        self.load_error: Optional[StoreCorruptionError] = None
        self._write_protected = False
        self.last_save_error: Optional[StoreWriteError] = None

    @classmethod
    def open(cls, path: Path) -> "ActivityStore":
        store = cls(path)
        store.load()
        return store

    @property
    def path(self) -> Path:
        return self._persistence.path

    @property
    def dirty(self) -> bool:
        with self._lock:
            return self._dirty

    @property
    def start_time(self) -> int:
        with self._lock:
            return self._data.start_time

    @property
    def last_cleanup(self) -> int:
        with self._lock:
            return self._data.last_cleanup

    def load(self) -> LoadResult:
        result = self._persistence.load()
        with self._lock:
            self._data = result.store
            self._dirty = False
        self.load_error = result.error
        # An unreadable file that is still in place must not be overwritten.
        self._write_protected = result.error is not None and result.error.backup_path is None
        if self._write_protected:
            logger.error("Store at %s could not be loaded; saving is disabled.", self.path)
        return result

    def append_heartbeat(self, heartbeat: Heartbeat) -> str:
        with self._lock:
            key = self._data.log.append(heartbeat)
            self._dirty = True
        return key

    def append_many(self, heartbeats: Iterable[Heartbeat]) -> int:
        with self._lock:
            appended = self._data.log.append_many(heartbeats)
            if appended:
                self._dirty = True
        return appended

    def heartbeats_for_day(self, day: str) -> list[Heartbeat]:
        with self._lock:
            return self._data.log.heartbeats_for_day(day)

    def available_dates(self) -> list[str]:
        with self._lock:
            return self._data.log.dates()

    def heartbeat_count(self) -> int:
        with self._lock:
            return len(self._data.log)

    def save(self, force: bool = False) -> bool:
        """Write the store if it changed. Returns ``False`` on a write failure.

        Saves are serialized; a save requested while another is writing waits
        for it and is skipped if nothing changed in the meantime.
        """
        with self._save_lock:
            with self._lock:
                if not self._dirty and not force:
                    return True
                if self._write_protected:
                    self.last_save_error = StoreWriteError(
                        f"refusing to overwrite unreadable store {self.path}"
                    )
                    logger.error("Not saving: %s", self.last_save_error)
                    return False
                document = self._data.to_document()
                self._dirty = False
            try:
                self._persistence.save(document)
            except StoreWriteError as exc:
                with self._lock:
                    self._dirty = True
                self.last_save_error = exc
                logger.exception("Saving store failed; will retry on next save: %s", exc)
                return False
            self.last_save_error = None
            logger.debug("Saved store to %s.", self.path)
            return True

    def cleanup(self, now: Optional[int] = None) -> list[str]:
        """Drop day buckets more than ``RETENTION_DAYS`` days before ``now``.

        A bucket exactly ``RETENTION_DAYS`` days old is kept.
        """
        now = now_ms() if now is None else now
        cutoff = to_local(now).date() - timedelta(days=RETENTION_DAYS)
        with self._lock:
            removed = [
                key for key in self._data.log.dates() if parse_date_key(key) < cutoff
            ]
            for key in removed:
                self._data.log.delete_day(key)
            self._data.last_cleanup = now
            self._dirty = True
        if removed:
            logger.info("Removed %d expired days: %s", len(removed), ", ".join(removed))
        return removed

    def cleanup_if_due(self, now: Optional[int] = None) -> list[str]:
        now = now_ms() if now is None else now
        if now - self.last_cleanup < CLEANUP_EVERY.total_seconds() * 1000:
            return []
        removed = self.cleanup(now)
        self.save()
        return removed

    def relocate(self, directory: Path) -> Path:
        """Copy the store into ``directory`` and continue writing there.

        The previous file is left in place.
        """
        target = Path(directory) / STORE_FILENAME
        if target.resolve() == self.path.resolve():
            return self.path
        if target.exists():
            raise RelocationError(f"a store already exists at {target}")
        if self._write_protected:
            return self._start_fresh_at(target)
        if not self.save(force=True):
            raise RelocationError(f"could not flush the current store to {self.path}")

        with self._save_lock:
            try:
                target.parent.mkdir(parents=True, exist_ok=True)
                shutil.copy2(self.path, target)
                copied = StorePersistence(target).read()
                original = self._persistence.read()
            except (OSError, StoreCorruptionError) as exc:
                raise RelocationError(f"could not copy store to {target}: {exc}") from exc
            if copied.to_document() != original.to_document():
                target.unlink(missing_ok=True)
                raise RelocationError(f"copy at {target} does not match {self.path}")
            previous = self.path
            self._persistence = StorePersistence(target)
        logger.info("Relocated store from %s to %s.", previous, target)
        return target

    def _start_fresh_at(self, target: Path) -> Path:
        """Write the in-memory store to ``target``, leaving the unreadable file alone."""
        persistence = StorePersistence(target)
        with self._save_lock:
            with self._lock:
                document = self._data.to_document()
            try:
                persistence.save(document)
            except StoreWriteError as exc:
                raise RelocationError(f"could not write store to {target}: {exc}") from exc
            with self._lock:
                self._persistence = persistence
                self._write_protected = False
        self.save()
        logger.info("Moved away from unreadable store; now writing %s.", target)
        return target

    def use_existing(self, directory: Path) -> Path:
        """Switch to a store file that already exists in ``directory``."""
        target = Path(directory) / STORE_FILENAME
        if not target.exists():
            raise RelocationError(f"no store found at {target}")
        if not self.save():
            raise RelocationError(f"could not flush the current store to {self.path}")
        persistence = StorePersistence(target)
        try:
            data = persistence.read()
        except StoreCorruptionError as exc:
            raise RelocationError(f"store at {target} is unusable: {exc}") from exc
        with self._save_lock, self._lock:
            self._persistence = persistence
            self._data = data
            self._dirty = False
            self._write_protected = False
            self.load_error = None
        logger.info("Switched to existing store at %s.", target)
        return target

    def close(self) -> bool:
        """Force a final save. The store may still be read afterwards."""
        saved = self.save(force=True)
        logger.info("Store closed (saved=%s).", saved)
        return saved

    def __enter__(self) -> "ActivityStore":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
