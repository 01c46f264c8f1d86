"""Blink-rate estimation from brightness drops in the eye region.

Runs on its own camera session at ~15 Hz.  The first frames calibrate a
per-user drop threshold (3 % of the average eye-region brightness); after
that a blink is counted whenever brightness falls by more than the
threshold between consecutive frames, at most once per debounce period.
"""

from __future__ import annotations

import time
from typing import Callable

import numpy as np
import structlog

from ambient_health.errors import DeviceUnavailableError
from ambient_health.estimators.window import RollingWindow
from ambient_health.models import BlinkStats, BlinkStatus
from ambient_health.scheduler.periodic import PeriodicService
from ambient_health.sensors.base import FrameSource
from ambient_health.sensors.frames import crop

logger = structlog.get_logger(__name__)

# Sampled frame size for the blink session and the eye band within it.
BLINK_FRAME_SIZE = (320, 240)
EYE_REGION = (0.3125, 0.25, 0.375, 1 / 6)

_HISTORY = 30
_LOW_RATE = 10
_HIGH_RATE = 20

_MESSAGES = {
    BlinkStatus.NORMAL: "Blink rate is normal.",
    BlinkStatus.LOW: "Low blink rate: deep focus or eye fatigue. A short break is recommended.",
    BlinkStatus.HIGH: "High blink rate: possible stress or dry eyes. Rest your eyes for a moment.",
}


def eye_brightness(luma: np.ndarray) -> float:
    region = crop(luma, *EYE_REGION)
    return float(region.mean()) if region.size else 0.0


def classify_blink_rate(blinks_per_minute: int) -> BlinkStatus:
    if blinks_per_minute < _LOW_RATE:
        return BlinkStatus.LOW
    if blinks_per_minute > _HIGH_RATE:
        return BlinkStatus.HIGH
    return BlinkStatus.NORMAL


class BlinkRateEstimator(PeriodicService):
    """Count blinks and report a per-minute rate every ``stats_interval`` seconds.

    Calibration happens once per :meth:`start`; :meth:`stop` releases the
    camera and discards every derived value.
    """

    log_name = "blink"

    def __init__(
        self,
        source: FrameSource,
        *,
        sample_interval: float = 1 / 15,
        stats_interval: float = 5.0,
        calibration_frames: int = 30,
        drop_ratio: float = 0.03,
        debounce: float = 0.2,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(sample_interval)
        self._source = source
        self._stats_interval = stats_interval
        self._calibration_frames = calibration_frames
        self._drop_ratio = drop_ratio
        self._debounce = debounce
        self._clock = clock
        self.device_available = False
        self._reset()

    def _reset(self) -> None:
        self._history: RollingWindow[float] = RollingWindow(maxlen=_HISTORY)
        self._frame_count = 0
        self._threshold = 0.0
        self._calibrated = False
        self._prev: float | None = None
        self._blink_count = 0
        self._last_blink: float | None = None
        self._started_at: float | None = None
        self._last_stats_at: float | None = None
        self._stats: BlinkStats | None = None

    # ── Public state ──────────────────────────────────────────

    @property
    def stats(self) -> BlinkStats | None:
        """Latest published stats; ``None`` while stopped."""
        return self._stats

    @property
    def calibrated(self) -> bool:
        return self._calibrated

    @property
    def threshold(self) -> float:
        return self._threshold

    @property
    def blink_count(self) -> int:
        return self._blink_count

    # ── Lifecycle ─────────────────────────────────────────────

    async def start(self) -> None:
        if self.is_running:
            return
        self._reset()
        try:
            await self._source.open()
        except DeviceUnavailableError as exc:
            self.device_available = False
            logger.warning("blink.camera_unavailable", error=str(exc))
            return
        self.device_available = True
        self._started_at = self._clock()
        self._stats = BlinkStats(message="Calibrating, look at the camera.")
        await super().start()

    async def stop(self) -> None:
        await super().stop()
        await self._source.close()
        self.device_available = False
        self._reset()

    async def tick(self) -> None:
        luma = await self._source.sample()
        if luma is None:
            return
        now = self._clock()
        self.process_brightness(eye_brightness(luma), now)
        if self._last_stats_at is None or now - self._last_stats_at >= self._stats_interval:
            self.compute_stats(now)

    # ── Detection ─────────────────────────────────────────────

    def process_brightness(self, brightness: float, now: float | None = None) -> bool:
        """Feed one eye-region brightness sample.  Return ``True`` if a blink was counted."""
        now = self._clock() if now is None else now
        if self._started_at is None:
            self._started_at = now

        self._history.append(brightness, now)
        self._frame_count += 1

        if not self._calibrated:
            if self._frame_count < self._calibration_frames:
                self._prev = brightness
                return False
            self._threshold = self._history.mean() * self._drop_ratio
            self._calibrated = True
            logger.info("blink.calibrated", threshold=round(self._threshold, 3), frames=self._frame_count)

        blinked = False
        if self._prev is not None:
            drop = self._prev - brightness
            debounced = self._last_blink is None or now - self._last_blink > self._debounce
            if drop > self._threshold and debounced:
                self._blink_count += 1
                self._last_blink = now
                blinked = True
        self._prev = brightness
        return blinked

    def compute_stats(self, now: float | None = None) -> BlinkStats:
        """Recompute the blink rate, normalised to at least a one-minute window."""
        now = self._clock() if now is None else now
        self._last_stats_at = now

        if not self._calibrated:
            self._stats = BlinkStats(message="Calibrating, look at the camera.")
            return self._stats

        elapsed = now - (self._started_at if self._started_at is not None else now)
        rate = round(self._blink_count / max(elapsed, 60.0) * 60)
        status = classify_blink_rate(rate)
        self._stats = BlinkStats(
            blinks_per_minute=rate,
            status=status,
            calibrated=True,
            message=_MESSAGES[status],
        )
        logger.debug("blink.stats", blinks_per_minute=rate, status=status.value)
        return self._stats
