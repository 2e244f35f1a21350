"""Simple reporting utilities for CLI output."""

from __future__ import annotations

from typing import Iterable

from .models import DayTotals, EventType, ReducedEvent
from .service import ActivityService
from .timeutils import to_local


class SummaryPrinter:
    """Render human-readable day summaries in the console."""

    def __init__(self, service: ActivityService) -> None:
        self.service = service

    def print_daily_summary(self, day: str) -> None:
        summary = self.service.get_day_summary(day)
        if not summary:
            print("No activity recorded for the selected day.")
            return

        totals = self.service.get_day_totals(day)
        print(f"Summary for {day}")
        print("-" * 40)
        for line in render_totals(totals):
            print(line)
        print()
        print("Timeline:")
        for line in render_timeline(summary):
            print(f"  {line}")


def render_totals(totals: DayTotals) -> list[str]:
    lines = [
        f"Tracked time:  {format_duration(totals.tracked_duration / 1000)}",
        f"Active time:   {format_duration(totals.active_duration / 1000)}",
        f"Meeting time:  {format_duration(totals.meeting_duration / 1000)}",
        f"Inactive time: {format_duration(totals.inactive_duration / 1000)}",
    ]
    if totals.app_usage:
        lines.append("")
        lines.append("Top applications:")
        ranked = sorted(totals.app_usage.items(), key=lambda item: item[1], reverse=True)
        for app, duration in ranked[:5]:
            lines.append(f"  {app[:30]:<30} {format_duration(duration / 1000)}")
    return lines


def render_timeline(entries: Iterable[ReducedEvent]) -> list[str]:
    lines = []
    for entry in entries:
        span = f"{format_clock(entry.start)}-{format_clock(entry.end)}"
        lines.append(f"{span}  {describe(entry):<50} {format_duration(entry.duration / 1000)}")
    return lines


def describe(entry: ReducedEvent) -> str:
    if entry.type is EventType.MEETING:
        return f"Meeting: {entry.payload.get('title', '')}"
    if entry.type is EventType.INACTIVE:
        return "Inactive"
    label = entry.payload.get("subTitle") or entry.payload.get("title") or "(untitled)"
    return f"{entry.payload.get('app', 'Unknown')}: {label}"[:50]


def format_clock(timestamp: int) -> str:
    return to_local(timestamp).strftime("%H:%M")


def format_duration(seconds: float) -> str:
    total_seconds = int(round(seconds))
    hours, remainder = divmod(total_seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"
