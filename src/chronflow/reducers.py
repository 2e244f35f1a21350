"""Per-source reducers that turn a day's heartbeats into typed event lists.

Every reducer takes heartbeats for a single day and returns a fresh list of
``ReducedEvent`` objects that is sorted by start, free of overlaps and free of
equal-and-adjacent neighbours. Nothing here touches the store.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Callable, Hashable, Iterable, Optional, Sequence

from .config import TrackerSettings
from .models import AppWindow, EventType, Heartbeat, ReducedEvent
from .normalization import window_subtitle
from .timeutils import floor_to_boundary, round_to_boundary


@dataclass(slots=True)
class _Run:
    key: Hashable
    first: int
    last: int


def reduce_primary_windows(
    heartbeats: Iterable[Heartbeat], settings: Optional[TrackerSettings] = None
) -> list[ReducedEvent]:
    """Attribute each quarter-hour slot to its most frequent (app, title)."""
    settings = settings or TrackerSettings()
    slot_ms = int(settings.slot_length.total_seconds() * 1000)
    sample_ms = settings.sample_interval_ms

    slots: dict[int, list[Heartbeat]] = {}
    for beat in _ordered(heartbeats):
        if beat.app_window is None:
            continue
        slot_start = floor_to_boundary(beat.timestamp, settings.slot_length)
        slots.setdefault(slot_start, []).append(beat)

    events: list[ReducedEvent] = []
    previous_slot_end: Optional[int] = None
    for slot_start in sorted(slots):
        beats = slots[slot_start]
        slot_end = slot_start + slot_ms
        window = _dominant_window(beats)
        event = ReducedEvent(
            start=max(slot_start, beats[0].timestamp),
            end=min(slot_end, beats[-1].timestamp + sample_ms),
            type=EventType.PRIMARY_WINDOW,
            payload=_window_payload(window),
        )
        if events and previous_slot_end == slot_start and events[-1].same_kind(event):
            events[-1].end = event.end
        else:
            events.append(event)
        previous_slot_end = slot_end
    return events


def reduce_inactivity(
    heartbeats: Iterable[Heartbeat], settings: Optional[TrackerSettings] = None
) -> list[ReducedEvent]:
    """Collapse runs of ``inactive`` heartbeats into rounded inactivity blocks."""
    settings = settings or TrackerSettings()
    runs = _collect_runs(
        heartbeats,
        lambda beat: True if beat.is_inactive else None,
        settings.run_break_gap_ms,
    )
    events: list[ReducedEvent] = []
    for run in runs:
        start, end = _rounded_span(run, settings)
        if end <= start:
            continue
        if events and start <= events[-1].end:
            events[-1].end = max(events[-1].end, end)
            continue
        events.append(ReducedEvent(start=start, end=end, type=EventType.INACTIVE))
    return events


def reduce_meetings(
    heartbeats: Iterable[Heartbeat], settings: Optional[TrackerSettings] = None
) -> list[ReducedEvent]:
    """Collapse runs of same-titled meeting heartbeats, dropping short flickers."""
    settings = settings or TrackerSettings()
    statuses: dict[str, str] = {}

    def meeting_title(beat: Heartbeat) -> Optional[str]:
        if not beat.teams_meeting:
            return None
        statuses.setdefault(beat.teams_meeting.title, beat.teams_meeting.status)
        return beat.teams_meeting.title

    runs = _collect_runs(heartbeats, meeting_title, settings.run_break_gap_ms)
    events: list[ReducedEvent] = []
    for run in runs:
        raw_duration = run.last + settings.sample_interval_ms - run.first
        if raw_duration < settings.min_meeting_duration_ms:
            continue
        start, end = _rounded_span(run, settings)
        previous = events[-1] if events else None
        if previous is not None and start <= previous.end:
            if previous.payload["title"] == run.key:
                previous.end = max(previous.end, end)
                continue
            # A new title never eats into the previous meeting.
            start = previous.end
        if end <= start:
            continue
        events.append(
            ReducedEvent(
                start=start,
                end=end,
                type=EventType.MEETING,
                payload={"title": run.key, "status": statuses.get(run.key, "active")},
            )
        )
    return events


def _ordered(heartbeats: Iterable[Heartbeat]) -> list[Heartbeat]:
    return sorted(heartbeats, key=lambda beat: beat.timestamp)


def _collect_runs(
    heartbeats: Iterable[Heartbeat],
    key: Callable[[Heartbeat], Optional[Hashable]],
    break_gap_ms: int,
) -> list[_Run]:
    runs: list[_Run] = []
    current: Optional[_Run] = None
    previous_ts: Optional[int] = None
    for beat in _ordered(heartbeats):
        identity = key(beat)
        gap_broken = previous_ts is not None and beat.timestamp - previous_ts > break_gap_ms
        previous_ts = beat.timestamp
        if identity is None:
            current = None
            continue
        if current is not None and current.key == identity and not gap_broken:
            current.last = beat.timestamp
            continue
        current = _Run(key=identity, first=beat.timestamp, last=beat.timestamp)
        runs.append(current)
    return runs


def _rounded_span(run: _Run, settings: TrackerSettings) -> tuple[int, int]:
    end = run.last + settings.sample_interval_ms
    return (
        round_to_boundary(run.first, settings.rounding),
        round_to_boundary(end, settings.rounding),
    )


def _dominant_window(beats: Sequence[Heartbeat]) -> AppWindow:
    counts: Counter[AppWindow] = Counter()
    first_seen: dict[AppWindow, int] = {}
    for index, beat in enumerate(beats):
        window = beat.app_window
        if window is None:
            continue
        counts[window] += 1
        first_seen.setdefault(window, index)
    return max(counts, key=lambda window: (counts[window], -first_seen[window]))


def _window_payload(window: AppWindow) -> dict[str, str]:
    payload = {"app": window.app, "title": window.title}
    subtitle = window_subtitle(window.app, window.title)
    if subtitle:
        payload["subTitle"] = subtitle
    return payload
