"""Heartbeat collector: one sample from every source per tick."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional, Sequence

from .errors import MalformedHeartbeatError
from .models import Heartbeat, Sample, UserActivity
from .sources import SampleSource
from .store import ActivityStore
from .timeutils import now_ms

logger = logging.getLogger(__name__)


def combine_samples(samples: Sequence[Sample]) -> Sample:
    """Merge partial samples; the first source to report a field wins."""
    user_activity = next((s.user_activity for s in samples if s.user_activity), None)
    app_window = next((s.app_window for s in samples if s.app_window), None)
    teams_meeting = next((s.teams_meeting for s in samples if s.teams_meeting), None)
    return Sample(user_activity=user_activity, app_window=app_window, teams_meeting=teams_meeting)


class HeartbeatCollector:
    """Polls sample sources and forwards the combined heartbeat to the store.

    Sources never see the store. A failing source only blanks its own fields.
    """

    def __init__(
        self,
        store: ActivityStore,
        sources: Sequence[SampleSource],
        *,
        clock: Callable[[], int] = now_ms,
        tracking: bool = True,
    ) -> None:
        self._store = store
        self._sources = list(sources)
        self._clock = clock
        self._tracking = tracking
        self._lock = threading.Lock()

    @property
    def tracking(self) -> bool:
        with self._lock:
            return self._tracking

    def set_tracking(self, enabled: bool) -> None:
        with self._lock:
            changed = self._tracking != enabled
            self._tracking = enabled
        if changed:
            logger.info("Tracking %s.", "resumed" if enabled else "paused")

    def sample_sources(self) -> Sample:
        samples: list[Sample] = []
        for source in self._sources:
            try:
                samples.append(source.produce_sample())
            except Exception:
                logger.warning(
                    "Source %s failed; recording its fields as unknown.",
                    type(source).__name__,
                    exc_info=True,
                )
        return combine_samples(samples)

    def tick(self) -> Optional[Heartbeat]:
        """Record one heartbeat. Returns it, or ``None`` when nothing was recorded."""
        if not self.tracking:
            return None
        sample = self.sample_sources()
        heartbeat = Heartbeat(
            timestamp=self._clock(),
            user_activity=sample.user_activity or UserActivity.ACTIVE,
            app_window=sample.app_window,
            teams_meeting=sample.teams_meeting,
        )
        try:
            self._store.append_heartbeat(heartbeat)
        except MalformedHeartbeatError as exc:
            logger.warning("Dropped heartbeat: %s", exc)
            return None
        logger.debug(
            "Heartbeat recorded: activity=%s app=%s meeting=%s",
            heartbeat.user_activity.value,
            heartbeat.app_window.app if heartbeat.app_window else None,
            heartbeat.teams_meeting.title if heartbeat.teams_meeting else None,
        )
        return heartbeat
