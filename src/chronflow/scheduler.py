"""Cooperative periodic tasks run by a single background worker."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Optional

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class PeriodicTask:
    name: str
    interval: timedelta
    callback: Callable[[], object]
    next_run: float = 0.0

    def schedule_from(self, now: float) -> None:
        self.next_run = now + self.interval.total_seconds()


class SchedulerHandle:
    """Returned by ``TaskScheduler.start``; stops every task together."""

    def __init__(self, thread: threading.Thread, stop_event: threading.Event) -> None:
        self._thread = thread
        self._stop_event = stop_event

    @property
    def running(self) -> bool:
        return self._thread.is_alive()

    def stop(self, timeout: float = 10.0) -> None:
        self._stop_event.set()
        if self._thread is not threading.current_thread():
            self._thread.join(timeout=timeout)


class TaskScheduler:
    """Runs registered tasks one at a time on one thread.

    ``run_pending`` can be called directly with an explicit ``now`` so tests can
    drive ticks without wall-clock timers.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._tasks: list[PeriodicTask] = []
        self._lock = threading.Lock()
        self._handle: Optional[SchedulerHandle] = None

    def add(
        self,
        name: str,
        interval: timedelta,
        callback: Callable[[], object],
        *,
        run_immediately: bool = False,
    ) -> PeriodicTask:
        if interval <= timedelta(0):
            raise ValueError(f"interval for {name} must be positive")
        task = PeriodicTask(name=name, interval=interval, callback=callback)
        if run_immediately:
            task.next_run = self._clock()
        else:
            task.schedule_from(self._clock())
        with self._lock:
            self._tasks.append(task)
        return task

    @property
    def tasks(self) -> list[PeriodicTask]:
        with self._lock:
            return list(self._tasks)

    def run_pending(self, now: Optional[float] = None) -> list[str]:
        """Run every task that is due at ``now`` and return their names."""
        now = self._clock() if now is None else now
        ran: list[str] = []
        for task in self.tasks:
            if task.next_run > now:
                continue
            try:
                task.callback()
            except Exception:
                logger.exception("Scheduled task %s failed.", task.name)
            task.schedule_from(now)
            ran.append(task.name)
        return ran

    def seconds_until_next(self, now: Optional[float] = None) -> float:
        now = self._clock() if now is None else now
        tasks = self.tasks
        if not tasks:
            return 1.0
        return max(0.0, min(task.next_run for task in tasks) - now)

    def start(self) -> SchedulerHandle:
        if self._handle and self._handle.running:
            return self._handle
        stop_event = threading.Event()
        thread = threading.Thread(
            target=self._run_loop, args=(stop_event,), name="chronflow-scheduler", daemon=True
        )
        self._handle = SchedulerHandle(thread, stop_event)
        thread.start()
        logger.info("Scheduler started with %d tasks.", len(self.tasks))
        return self._handle

    def _run_loop(self, stop_event: threading.Event) -> None:
        while not stop_event.is_set():
            self.run_pending()
            # Sleep in an interruptible manner.
            stop_event.wait(self.seconds_until_next())
        logger.info("Scheduler stopped.")
