"""Utilities to derive display subtitles from raw window titles."""

from __future__ import annotations

import re
from typing import Optional

_BROWSER_SUFFIXES: dict[str, tuple[str, ...]] = {
    "msedge.exe": (" - Work - Microsoft Edge", " - Microsoft Edge"),
    "microsoft edge": (" - Microsoft Edge",),
    "chrome.exe": (" - Google Chrome",),
    "google chrome": (" - Google Chrome",),
    "firefox.exe": (" - Mozilla Firefox",),
    "firefox": (" - Mozilla Firefox", " — Mozilla Firefox"),
    "brave.exe": (" - Brave",),
    "brave browser": (" - Brave",),
    "opera.exe": (" - Opera",),
    "opera": (" - Opera",),
}


def normalize_window_title(app: Optional[str], window_title: Optional[str]) -> Optional[str]:
    """Remove common browser suffixes and tab counters to surface the tab name."""
    if not window_title:
        return None
    normalized = window_title.strip()
    if not app:
        return normalized or None

    suffixes = _BROWSER_SUFFIXES.get(app.lower())
    if suffixes:
        for suffix in suffixes:
            if normalized.endswith(suffix):
                normalized = normalized[: -len(suffix)].rstrip(" -")
                break

    normalized = _strip_tab_count(normalized)
    normalized = re.sub(r"\s{2,}", " ", normalized).strip()
    return normalized or None


def window_subtitle(app: str, window_title: str) -> Optional[str]:
    """Return the normalized title when it differs from the raw one."""
    normalized = normalize_window_title(app, window_title)
    if normalized is None or normalized == window_title:
        return None
    return normalized


_EXTRA_TAB_COUNT_PATTERN = re.compile(r"\s+and\s+\d+\s+more\s+pages?", re.IGNORECASE)


def _strip_tab_count(value: str) -> str:
    cleaned = _EXTRA_TAB_COUNT_PATTERN.sub("", value)
    return cleaned.strip(" -|")
