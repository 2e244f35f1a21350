"""Activity service: lifecycle of the store, collector and periodic tasks."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional, Sequence

from .collector import HeartbeatCollector
from .config import TrackerSettings
from .models import DayTotals, Heartbeat, ReducedEvent
from .scheduler import SchedulerHandle, TaskScheduler
from .settings import load_settings, save_settings
from .sources import SampleSource, default_sources
from .store import ActivityStore
from .timeline import build_day_summary, calculate_totals
from .timeutils import date_key, is_date_key, now_ms

logger = logging.getLogger(__name__)


class ActivityService:
    """Query interface and background task owner for one store.

    Sampling, autosave and cleanup run as tasks on a single scheduler thread.
    ``shutdown`` cancels them together and forces a final save.
    """

    def __init__(
        self,
        store: ActivityStore,
        *,
        settings: Optional[TrackerSettings] = None,
        sources: Sequence[SampleSource] = (),
        scheduler: Optional[TaskScheduler] = None,
        settings_path: Optional[Path] = None,
    ) -> None:
        self.store = store
        self.settings = settings or TrackerSettings()
        self.collector = HeartbeatCollector(store, sources)
        self.scheduler = scheduler or TaskScheduler()
        self._settings_path = settings_path
        self._handle: Optional[SchedulerHandle] = None

        self.scheduler.add("sample", self.settings.sample_interval, self.collector.tick)
        self.scheduler.add("autosave", self.settings.autosave_interval, self.store.save)
        self.scheduler.add("cleanup", self.settings.cleanup_interval, self.store.cleanup_if_due)

    @classmethod
    def from_settings(
        cls,
        *,
        store_path: Optional[Path] = None,
        settings: Optional[TrackerSettings] = None,
        sources: Optional[Sequence[SampleSource]] = None,
        settings_path: Optional[Path] = None,
    ) -> "ActivityService":
        settings = settings or TrackerSettings()
        path = store_path or load_settings(settings_path).store_path()
        store = ActivityStore.open(path)
        if store.load_error is not None:
            logger.warning("Started with an empty store: %s", store.load_error)
        return cls(
            store,
            settings=settings,
            sources=default_sources(settings) if sources is None else sources,
            settings_path=settings_path,
        )

    @property
    def running(self) -> bool:
        return bool(self._handle and self._handle.running)

    def start(self) -> SchedulerHandle:
        if self._handle and self._handle.running:
            return self._handle
        self.store.cleanup_if_due()
        self._handle = self.scheduler.start()
        logger.info("Activity service started; store at %s", self.store.path)
        return self._handle

    def shutdown(self) -> bool:
        if self._handle is not None:
            self._handle.stop()
            self._handle = None
        return self.store.close()

    def pause_tracking(self) -> None:
        self.collector.set_tracking(False)
        self.store.save()

    def resume_tracking(self) -> None:
        self.collector.set_tracking(True)

    def get_heartbeats(self, day: Optional[str] = None) -> list[Heartbeat]:
        return self.store.heartbeats_for_day(self._resolve_day(day))

    def get_day_summary(self, day: Optional[str] = None) -> list[ReducedEvent]:
        return build_day_summary(self.get_heartbeats(day), self.settings)

    def get_day_totals(self, day: Optional[str] = None) -> DayTotals:
        heartbeats = self.get_heartbeats(day)
        summary = build_day_summary(heartbeats, self.settings)
        return calculate_totals(heartbeats, summary, self.settings)

    def available_dates(self) -> list[str]:
        return self.store.available_dates()

    def relocate_storage(self, directory: Path) -> Path:
        target = self.store.relocate(Path(directory))
        self._remember_store_dir(target.parent)
        return target

    def use_existing_storage(self, directory: Path) -> Path:
        target = self.store.use_existing(Path(directory))
        self._remember_store_dir(target.parent)
        return target

    def status(self) -> dict[str, Any]:
        return {
            "running": self.running,
            "tracking": self.collector.tracking,
            "store_path": str(self.store.path),
            "heartbeats": self.store.heartbeat_count(),
            "dirty": self.store.dirty,
            "load_error": str(self.store.load_error) if self.store.load_error else None,
            "last_save_error": (
                str(self.store.last_save_error) if self.store.last_save_error else None
            ),
            "sample_seconds": self.settings.sample_interval.total_seconds(),
        }

    def _remember_store_dir(self, directory: Path) -> None:
        app_settings = load_settings(self._settings_path)
        app_settings.activity_store_dir_path = str(directory)
        save_settings(app_settings, self._settings_path)

    @staticmethod
    def _resolve_day(day: Optional[str]) -> str:
        if day is None:
            return date_key(now_ms())
        if not is_date_key(day):
            raise ValueError(f"invalid date {day!r}; expected YYYY-MM-DD")
        return day
