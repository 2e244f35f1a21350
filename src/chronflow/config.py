"""Configuration models and constants for the activity timeline."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

RETENTION_DAYS = 30
STORE_VERSION = 1
STORE_FILENAME = "chronflow-activity-store.json"
SLOT_LENGTHS = (timedelta(minutes=5), timedelta(minutes=10), timedelta(minutes=15))


@dataclass(slots=True)
class TrackerSettings:
    """Runtime configuration for sampling, reduction and housekeeping."""

    sample_interval: timedelta = timedelta(seconds=30)
    autosave_interval: timedelta = timedelta(minutes=5)
    cleanup_interval: timedelta = timedelta(hours=1)
    slot_length: timedelta = timedelta(minutes=15)
    rounding: timedelta = timedelta(minutes=5)
    min_meeting_duration: timedelta = timedelta(minutes=5)
    run_break_gap: timedelta = timedelta(minutes=5)
    may_be_inactive_after: timedelta = timedelta(seconds=30)
    inactive_after: timedelta = timedelta(seconds=150)

    def __post_init__(self) -> None:
        if self.slot_length not in SLOT_LENGTHS:
            raise ValueError(
                f"slot_length must be 5, 10 or 15 minutes, got {self.slot_length}"
            )

    @property
    def sample_interval_ms(self) -> int:
        return _millis(self.sample_interval)

    @property
    def run_break_gap_ms(self) -> int:
        return _millis(self.run_break_gap)

    @property
    def min_meeting_duration_ms(self) -> int:
        return _millis(self.min_meeting_duration)

    @classmethod
    def from_intervals(
        cls,
        sample_seconds: float,
        autosave_minutes: float | None = None,
        inactive_seconds: float | None = None,
    ) -> "TrackerSettings":
        autosave = autosave_minutes if autosave_minutes is not None else 5.0
        inactive = inactive_seconds if inactive_seconds is not None else 150.0
        return cls(
            sample_interval=timedelta(seconds=sample_seconds),
            autosave_interval=timedelta(minutes=autosave),
            run_break_gap=timedelta(seconds=max(sample_seconds * 10, 300.0)),
            inactive_after=timedelta(seconds=inactive),
        )


def _millis(value: timedelta) -> int:
    return int(round(value.total_seconds() * 1000))
