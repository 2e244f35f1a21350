"""Sample sources that observe the desktop once per tick.

Each source returns a partial ``Sample``; a field it cannot determine is left
as ``None``. Only the Windows probes touch the OS directly.
"""

from __future__ import annotations

import ctypes
import logging
import os
import re
import sys
from datetime import timedelta
from pathlib import Path
from typing import Optional, Protocol

import psutil

from .config import TrackerSettings
from .models import AppWindow, Sample, TeamsMeeting, UserActivity

logger = logging.getLogger(__name__)


class SampleSource(Protocol):
    def produce_sample(self) -> Sample:
        ...


def classify_idle(
    idle: timedelta,
    may_be_inactive_after: timedelta,
    inactive_after: timedelta,
) -> UserActivity:
    if idle < may_be_inactive_after:
        return UserActivity.ACTIVE
    if idle < inactive_after:
        return UserActivity.MAY_BE_INACTIVE
    return UserActivity.INACTIVE


class WindowsIdleSource:
    """Derives the activity status from the time since the last input event."""

    def __init__(self, settings: TrackerSettings) -> None:
        from ctypes import wintypes

        class LASTINPUTINFO(ctypes.Structure):
            _fields_ = [("cbSize", wintypes.UINT), ("dwTime", wintypes.DWORD)]

        self._info_type = LASTINPUTINFO
        self._settings = settings
        self._user32 = ctypes.windll.user32  # type: ignore[attr-defined]
        self._kernel32 = ctypes.windll.kernel32  # type: ignore[attr-defined]
        self._kernel32.GetTickCount64.restype = ctypes.c_ulonglong

    def milliseconds_since_input(self) -> int:
        last_input = self._info_type()
        last_input.cbSize = ctypes.sizeof(last_input)
        if not self._user32.GetLastInputInfo(ctypes.byref(last_input)):
            raise ctypes.WinError()  # type: ignore[attr-defined]
        # dwTime wraps every ~49 days; compare against the low 32 bits.
        elapsed = (self._kernel32.GetTickCount64() & 0xFFFFFFFF) - last_input.dwTime
        return int(elapsed % 0x100000000)

    def produce_sample(self) -> Sample:
        idle = timedelta(milliseconds=self.milliseconds_since_input())
        return Sample(
            user_activity=classify_idle(
                idle, self._settings.may_be_inactive_after, self._settings.inactive_after
            )
        )


class WindowsActiveWindowSource:
    """Retrieves the foreground window title and process name."""

    def __init__(self) -> None:
        self._user32 = ctypes.windll.user32  # type: ignore[attr-defined]

    def get_active_window(self) -> Optional[AppWindow]:
        from ctypes import wintypes

        hwnd = self._user32.GetForegroundWindow()
        if not hwnd:
            return None

        length = self._user32.GetWindowTextLengthW(hwnd)
        buffer = ctypes.create_unicode_buffer(length + 1)
        self._user32.GetWindowTextW(hwnd, buffer, length + 1)
        window_title = buffer.value.strip()

        pid = wintypes.DWORD()
        self._user32.GetWindowThreadProcessId(hwnd, ctypes.byref(pid))
        process_name: Optional[str]
        try:
            process_name = psutil.Process(pid.value).name() if pid.value else None
        except (psutil.Error, ProcessLookupError):
            process_name = None

        if not process_name:
            return None
        return AppWindow(app=process_name, title=window_title)

    def produce_sample(self) -> Sample:
        return Sample(app_window=self.get_active_window())


_TEAMS_PROCESS_NAMES = {"teams.exe", "ms-teams.exe", "microsoft teams", "msteams", "teams"}
_MEETING_TITLE_PATTERN = re.compile(r'meetingTitle:\s*"([^"]+)"')
_LOG_TAIL_BYTES = 1000


class TeamsMeetingSource:
    """Reports the current Teams meeting, read from the tail of the Teams log."""

    def __init__(self, log_path: Optional[Path] = None) -> None:
        self.log_path = log_path or _default_teams_log_path()

    @staticmethod
    def teams_running() -> bool:
        for proc in psutil.process_iter(["name"]):
            name = (proc.info.get("name") or "").lower()
            if name in _TEAMS_PROCESS_NAMES:
                return True
        return False

    def read_log_tail(self) -> Optional[str]:
        if self.log_path is None or not self.log_path.exists():
            return None
        with self.log_path.open("rb") as handle:
            handle.seek(0, os.SEEK_END)
            size = handle.tell()
            handle.seek(max(0, size - _LOG_TAIL_BYTES))
            return handle.read().decode("utf-8", errors="replace")

    def produce_sample(self) -> Sample:
        if not self.teams_running():
            return Sample()
        return Sample(teams_meeting=parse_meeting_log(self.read_log_tail()))


def parse_meeting_log(tail: Optional[str]) -> Optional[TeamsMeeting]:
    if not tail:
        return None
    if "meetingStateChanged" not in tail or "isInMeeting: true" not in tail:
        return None
    match = _MEETING_TITLE_PATTERN.search(tail)
    return TeamsMeeting(title=match.group(1) if match else "Teams Meeting", status="active")


def _default_teams_log_path() -> Optional[Path]:
    appdata = os.environ.get("APPDATA")
    if not appdata:
        return None
    return Path(appdata) / "Microsoft" / "Teams" / "logs.txt"


def default_sources(settings: TrackerSettings) -> list[SampleSource]:
    """Return the sources supported on the current platform."""
    sources: list[SampleSource] = [TeamsMeetingSource()]
    if sys.platform == "win32":
        sources[:0] = [WindowsIdleSource(settings), WindowsActiveWindowSource()]
    else:
        logger.warning(
            "Window and idle probes are only available on Windows; "
            "recording meeting presence only."
        )
    return sources
