"""Presence detection from luma variance in the face zone of the camera frame.

No ML: a textured centre zone (skin, features, shadows) has a high luma
standard deviation, an empty chair or a wall a low one.  Presence is only
revoked after ``absence_threshold`` seconds without a detection, so a
single blurred frame never flips the state.
"""

from __future__ import annotations

import time
from typing import Callable

import numpy as np
import structlog

from ambient_health.errors import DeviceUnavailableError
from ambient_health.models import PresenceState, UserLeft, UserReturned
from ambient_health.scheduler.periodic import PeriodicService
from ambient_health.sensors.base import FrameSource
from ambient_health.sensors.frames import crop
from ambient_health.streaming.bus import EventBus

logger = structlog.get_logger(__name__)

# Face zone as fractions of the sampled frame: middle 40% wide, 60% tall.
FACE_ZONE = (0.3, 0.2, 0.4, 0.6)


def face_zone_stddev(luma: np.ndarray) -> float:
    """Standard deviation of luma inside :data:`FACE_ZONE`."""
    zone = crop(luma, *FACE_ZONE)
    if zone.size == 0:
        return 0.0
    return float(np.std(zone))


class PresenceDetector(PeriodicService):
    """Classify the user as present or away on every tick.

    Publishes :class:`UserLeft` once per present→away transition and
    :class:`UserReturned` once per away→present transition.  When the
    camera cannot be opened the detector fails open: the user is assumed
    present so proactive features keep running.
    """

    log_name = "presence"

    def __init__(
        self,
        source: FrameSource,
        *,
        bus: EventBus | None = None,
        interval: float = 2.0,
        absence_threshold: float = 10.0,
        stddev_threshold: float = 35.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(interval)
        self._source = source
        self._bus = bus
        self._absence_threshold = absence_threshold
        self._stddev_threshold = stddev_threshold
        self._clock = clock

        now = clock()
        self._was_present = True
        self._last_seen = now
        self._away_since: float | None = None
        self._state = PresenceState(last_seen_at=now)

    @property
    def state(self) -> PresenceState:
        return self._state

    # ── Lifecycle ─────────────────────────────────────────────

    async def start(self) -> None:
        try:
            await self._source.open()
        except DeviceUnavailableError as exc:
            logger.warning("presence.camera_unavailable", error=str(exc))
            self._state = self._state.model_copy(
                update={"device_available": False, "is_present": True, "away_duration_ms": 0},
            )
            return
        self._state = self._state.model_copy(update={"device_available": True})
        await super().start()

    async def tick(self) -> None:
        luma = await self._source.sample()
        if luma is None:
            return
        self.evaluate(face_zone_stddev(luma))

    # ── Classification ────────────────────────────────────────

    def evaluate(self, stddev: float, now: float | None = None) -> PresenceState:
        """Apply one face-zone measurement and return the updated state."""
        now = self._clock() if now is None else now

        if stddev > self._stddev_threshold:
            self._last_seen = now
            if not self._was_present:
                away_ms = int((now - self._away_since) * 1000) if self._away_since is not None else 0
                self._was_present = True
                self._away_since = None
                logger.info("presence.user_returned", away_ms=away_ms)
                self._emit(UserReturned(away_ms=away_ms))
            self._state = self._state.model_copy(
                update={"is_present": True, "away_duration_ms": 0, "last_seen_at": now},
            )
            return self._state

        since_seen = now - self._last_seen
        if self._was_present and since_seen >= self._absence_threshold:
            self._was_present = False
            self._away_since = now
            logger.info("presence.user_left", unseen_seconds=round(since_seen, 1))
            self._state = self._state.model_copy(
                update={"is_present": False, "away_duration_ms": int(since_seen * 1000)},
            )
            self._emit(UserLeft())
        elif not self._was_present and self._away_since is not None:
            self._state = self._state.model_copy(
                update={"away_duration_ms": int((now - self._away_since) * 1000)},
            )
        return self._state

    def _emit(self, event: UserLeft | UserReturned) -> None:
        if self._bus is not None:
            self._bus.publish_nowait(event)
