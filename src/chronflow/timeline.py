"""Merge reduced event lists into a prioritized day summary."""

from __future__ import annotations

from typing import Iterable, Optional, Sequence

from .config import TrackerSettings
from .models import EVENT_PRIORITY, DayTotals, EventType, Heartbeat, ReducedEvent
from .reducers import reduce_inactivity, reduce_meetings, reduce_primary_windows


def merge_timeline(*event_lists: Sequence[ReducedEvent]) -> list[ReducedEvent]:
    """Overlay sorted, non-overlapping event lists by type priority.

    Each elementary interval between two consecutive boundaries is assigned to
    the highest priority event covering it. Uncovered intervals are omitted, so
    the result is sparse.
    """
    lists = [[event for event in events if event.end > event.start] for events in event_lists]
    boundaries = sorted(
        {event.start for events in lists for event in events}
        | {event.end for events in lists for event in events}
    )

    cursors = [0] * len(lists)
    pieces: list[ReducedEvent] = []
    for low, high in zip(boundaries, boundaries[1:]):
        winner: Optional[ReducedEvent] = None
        for index, events in enumerate(lists):
            cursor = cursors[index]
            while cursor < len(events) and events[cursor].end <= low:
                cursor += 1
            cursors[index] = cursor
            if cursor == len(events) or events[cursor].start > low:
                continue
            candidate = events[cursor]
            if winner is None or EVENT_PRIORITY[candidate.type] > EVENT_PRIORITY[winner.type]:
                winner = candidate
        if winner is not None:
            pieces.append(winner.clipped(low, high))

    return _merge_adjacent(pieces)


def _merge_adjacent(pieces: Iterable[ReducedEvent]) -> list[ReducedEvent]:
    merged: list[ReducedEvent] = []
    for piece in pieces:
        if merged and merged[-1].end == piece.start and merged[-1].same_kind(piece):
            merged[-1].end = piece.end
        else:
            merged.append(piece)
    return merged


def build_day_summary(
    heartbeats: Iterable[Heartbeat], settings: Optional[TrackerSettings] = None
) -> list[ReducedEvent]:
    """Reduce a day's heartbeats per source and merge them into one timeline."""
    settings = settings or TrackerSettings()
    beats = sorted(heartbeats, key=lambda beat: beat.timestamp)
    return merge_timeline(
        reduce_meetings(beats, settings),
        reduce_inactivity(beats, settings),
        reduce_primary_windows(beats, settings),
    )


def calculate_totals(
    heartbeats: Sequence[Heartbeat],
    summary: Iterable[ReducedEvent],
    settings: Optional[TrackerSettings] = None,
) -> DayTotals:
    settings = settings or TrackerSettings()
    totals = DayTotals()
    if heartbeats:
        first = min(beat.timestamp for beat in heartbeats)
        last = max(beat.timestamp for beat in heartbeats)
        totals.tracked_duration = last + settings.sample_interval_ms - first

    for entry in summary:
        totals.summarized_duration += entry.duration
        if entry.type is EventType.INACTIVE:
            totals.inactive_duration += entry.duration
        elif entry.type is EventType.MEETING:
            totals.meeting_duration += entry.duration
            totals.active_duration += entry.duration
        else:
            totals.active_duration += entry.duration
            app = entry.payload.get("app", "Unknown")
            totals.app_usage[app] = totals.app_usage.get(app, 0) + entry.duration
    return totals
