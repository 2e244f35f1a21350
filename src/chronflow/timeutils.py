"""Local wall-clock helpers for epoch-millisecond timestamps."""

from __future__ import annotations

import re
import time
from datetime import date, datetime, timedelta

DATE_KEY_FMT = "%Y-%m-%d"
_DATE_KEY_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def now_ms() -> int:
    return int(time.time() * 1000)


def to_local(timestamp: int) -> datetime:
    return datetime.fromtimestamp(timestamp / 1000)


def from_local(value: datetime) -> int:
    return int(round(value.timestamp() * 1000))


def date_key(timestamp: int) -> str:
    """Return the local calendar date (YYYY-MM-DD) of a timestamp."""
    return to_local(timestamp).strftime(DATE_KEY_FMT)


def is_date_key(value: str) -> bool:
    if not _DATE_KEY_PATTERN.match(value):
        return False
    try:
        datetime.strptime(value, DATE_KEY_FMT)
    except ValueError:
        return False
    return True


def parse_date_key(value: str) -> date:
    return datetime.strptime(value, DATE_KEY_FMT).date()


def floor_to_boundary(timestamp: int, step: timedelta) -> int:
    """Floor a timestamp to the previous wall-clock multiple of ``step``.

    ``step`` must divide an hour evenly (5, 10, 15 minutes ...).
    """
    step_minutes = int(step.total_seconds() // 60)
    local = to_local(timestamp)
    floored = local.replace(
        minute=local.minute - local.minute % step_minutes, second=0, microsecond=0
    )
    return from_local(floored)


def round_to_boundary(timestamp: int, step: timedelta) -> int:
    """Round to the nearest wall-clock multiple of ``step``; halves round up."""
    step_ms = int(step.total_seconds() * 1000)
    floored = floor_to_boundary(timestamp, step)
    if timestamp - floored >= step_ms / 2:
        return floored + step_ms
    return floored
