"""Append-only heartbeat log bucketed by local calendar day."""

from __future__ import annotations

import logging
import math
from dataclasses import replace
from typing import Iterable, Iterator

from .errors import MalformedHeartbeatError
from .models import Heartbeat
from .timeutils import date_key

logger = logging.getLogger(__name__)


def validate_timestamp(value: object) -> int:
    """Return ``value`` as an int timestamp or raise ``MalformedHeartbeatError``."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedHeartbeatError(f"timestamp must be a number, got {value!r}")
    if isinstance(value, float):
        if not math.isfinite(value) or not value.is_integer():
            raise MalformedHeartbeatError(f"timestamp must be a finite integer, got {value!r}")
        value = int(value)
    if value < 0:
        raise MalformedHeartbeatError(f"timestamp must be non-negative, got {value!r}")
    return value


class HeartbeatLog:
    """Raw heartbeats per day. Entries are never mutated, only appended."""

    def __init__(self, days: dict[str, list[Heartbeat]] | None = None) -> None:
        self._days: dict[str, list[Heartbeat]] = {
            key: list(beats) for key, beats in (days or {}).items()
        }

    def append(self, heartbeat: Heartbeat) -> str:
        """Route a heartbeat into the bucket of its local date and return that date."""
        timestamp = validate_timestamp(heartbeat.timestamp)
        if type(heartbeat.timestamp) is not int:
            heartbeat = replace(heartbeat, timestamp=timestamp)
        key = date_key(timestamp)
        self._days.setdefault(key, []).append(heartbeat)
        return key

    def append_many(self, heartbeats: Iterable[Heartbeat]) -> int:
        """Append a batch, skipping malformed entries. Returns the number appended."""
        appended = 0
        for heartbeat in heartbeats:
            try:
                self.append(heartbeat)
            except MalformedHeartbeatError as exc:
                logger.warning("Rejected heartbeat: %s", exc)
                continue
            appended += 1
        return appended

    def heartbeats_for_day(self, day: str) -> list[Heartbeat]:
        return sorted(self._days.get(day, ()), key=lambda beat: beat.timestamp)

    def dates(self) -> list[str]:
        return sorted(self._days)

    def delete_day(self, day: str) -> bool:
        return self._days.pop(day, None) is not None

    def snapshot(self) -> dict[str, list[Heartbeat]]:
        return {key: list(beats) for key, beats in self._days.items()}

    def __contains__(self, day: object) -> bool:
        return day in self._days

    def __iter__(self) -> Iterator[str]:
        return iter(self.dates())

    def __len__(self) -> int:
        return sum(len(beats) for beats in self._days.values())
