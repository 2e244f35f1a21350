"""Domain models for heartbeats and the timelines derived from them."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class UserActivity(str, Enum):
    ACTIVE = "active"
    MAY_BE_INACTIVE = "may_be_inactive"
    INACTIVE = "inactive"


class EventType(str, Enum):
    """Discriminant of reduced events and day summary entries."""

    PRIMARY_WINDOW = "primaryWindow"
    INACTIVE = "inactive"
    MEETING = "meeting"


# Higher wins when events overlap in the day summary.
EVENT_PRIORITY: dict[EventType, int] = {
    EventType.MEETING: 3,
    EventType.INACTIVE: 2,
    EventType.PRIMARY_WINDOW: 1,
}


@dataclass(slots=True, frozen=True)
class AppWindow:
    app: str
    title: str


@dataclass(slots=True, frozen=True)
class TeamsMeeting:
    title: str
    status: str = "active"


@dataclass(slots=True, frozen=True)
class Sample:
    """Partial heartbeat fields produced by a single source for one tick."""

    user_activity: Optional[UserActivity] = None
    app_window: Optional[AppWindow] = None
    teams_meeting: Optional[TeamsMeeting] = None


@dataclass(slots=True, frozen=True)
class Heartbeat:
    """One timestamped sample combining every source's observation."""

    timestamp: int
    user_activity: UserActivity = UserActivity.ACTIVE
    app_window: Optional[AppWindow] = None
    teams_meeting: Optional[TeamsMeeting] = None

    @property
    def is_inactive(self) -> bool:
        return self.user_activity is UserActivity.INACTIVE


@dataclass(slots=True)
class ReducedEvent:
    """A contiguous, type-tagged interval in epoch milliseconds."""

    start: int
    end: int
    type: EventType
    payload: dict[str, Any] = field(default_factory=dict)

    @property
    def duration(self) -> int:
        return self.end - self.start

    def same_kind(self, other: "ReducedEvent") -> bool:
        return self.type is other.type and self.payload == other.payload

    def clipped(self, start: int, end: int) -> "ReducedEvent":
        return ReducedEvent(start=start, end=end, type=self.type, payload=dict(self.payload))

    def to_dict(self) -> dict[str, Any]:
        return {
            "start": self.start,
            "end": self.end,
            "duration": self.duration,
            "type": self.type.value,
            "payload": dict(self.payload),
        }


@dataclass(slots=True)
class DayTotals:
    """Durations in milliseconds summed from a day summary."""

    tracked_duration: int = 0
    active_duration: int = 0
    inactive_duration: int = 0
    meeting_duration: int = 0
    summarized_duration: int = 0
    app_usage: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "trackedDuration": self.tracked_duration,
            "activeDuration": self.active_duration,
            "inactiveDuration": self.inactive_duration,
            "meetingDuration": self.meeting_duration,
            "summarizedDuration": self.summarized_duration,
            "appUsage": dict(self.app_usage),
        }
