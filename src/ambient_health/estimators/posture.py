"""Posture estimation from the brightness centroid of the camera frame.

Shares the presence detector's camera source.  The head position is
approximated by the luma-weighted centroid of bright pixels; a centroid
that sits too low means slouching, too high means leaning into the screen.
Raw scores are smoothed over the last ten readings before being exposed.
"""

from __future__ import annotations

import time
from typing import Callable

import numpy as np
import structlog

from ambient_health.estimators.window import RollingWindow
from ambient_health.models import BadPostureDetected, HeadPosition, PostureState
from ambient_health.scheduler.periodic import PeriodicService
from ambient_health.sensors.base import FrameSource
from ambient_health.streaming.bus import EventBus

logger = structlog.get_logger(__name__)

# ── Constants ─────────────────────────────────────────────────

_MIN_PIXEL_LUMA = 50.0    # darker pixels do not contribute
_MIN_TOTAL_WEIGHT = 100.0  # below this the frame has no usable bright region
_BAD_SCORE = 60
_SMOOTHING_WINDOW = 10

_LOW_PENALTY_MAX, _LOW_PENALTY_SLOPE = 60, 300
_HIGH_PENALTY_MAX, _HIGH_PENALTY_SLOPE = 40, 200
_X_TOLERANCE = 0.15
_X_PENALTY_MAX, _X_PENALTY_SLOPE = 20, 100


def brightness_centroid(luma: np.ndarray) -> HeadPosition | None:
    """Weighted centroid of bright pixels, normalised to [0, 1].

    Pixel weight is ``luma * (1 - 0.5 * |x/w - 0.5|)`` so pixels at the
    horizontal edges count less.  Returns ``None`` when the total weight is
    too small to be meaningful.
    """
    rows, cols = luma.shape
    x_norm = np.arange(cols, dtype=np.float32) / cols
    x_weight = 1.0 - np.abs(x_norm - 0.5) * 0.5
    weights = np.where(luma > _MIN_PIXEL_LUMA, luma * x_weight[np.newaxis, :], 0.0)

    total = float(weights.sum())
    if total < _MIN_TOTAL_WEIGHT:
        return None

    x = float(weights.sum(axis=0) @ np.arange(cols)) / total / cols
    y = float(weights.sum(axis=1) @ np.arange(rows)) / total / rows
    return HeadPosition(x=min(max(x, 0.0), 1.0), y=min(max(y, 0.0), 1.0))


def score_head_position(head: HeadPosition, *, y_low: float = 0.65, y_high: float = 0.2) -> int:
    """Instantaneous posture score in [0, 100] for one head position."""
    score = 100.0
    if head.y > y_low:
        score -= min(_LOW_PENALTY_MAX, (head.y - y_low) * _LOW_PENALTY_SLOPE)
    elif head.y < y_high:
        score -= min(_HIGH_PENALTY_MAX, (y_high - head.y) * _HIGH_PENALTY_SLOPE)

    x_deviation = abs(head.x - 0.5)
    if x_deviation > _X_TOLERANCE:
        score -= min(_X_PENALTY_MAX, (x_deviation - _X_TOLERANCE) * _X_PENALTY_SLOPE)

    return max(0, min(100, round(score)))


class PostureEstimator(PeriodicService):
    """Track a smoothed posture score and latch a bad-posture alert per streak.

    :class:`BadPostureDetected` is published once when a continuous bad
    streak exceeds ``bad_threshold`` seconds; the latch resets when the
    smoothed score recovers.
    """

    log_name = "posture"

    def __init__(
        self,
        source: FrameSource,
        *,
        bus: EventBus | None = None,
        interval: float = 3.0,
        bad_threshold: float = 300.0,
        y_low: float = 0.65,
        y_high: float = 0.2,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(interval)
        self._source = source
        self._bus = bus
        self._bad_threshold = bad_threshold
        self._y_low = y_low
        self._y_high = y_high
        self._clock = clock

        self._scores: RollingWindow[int] = RollingWindow(maxlen=_SMOOTHING_WINDOW)
        self._bad_since: float | None = None
        self._alerted = False
        self._state = PostureState()

    @property
    def state(self) -> PostureState:
        return self._state

    async def tick(self) -> None:
        luma = await self._source.sample()
        if luma is None:
            return
        self.analyze(luma)

    def analyze(self, luma: np.ndarray, now: float | None = None) -> PostureState:
        """Score one sampled frame.  Blank frames leave the state untouched."""
        head = brightness_centroid(luma)
        if head is None:
            logger.debug("posture.frame_skipped")
            return self._state
        raw = score_head_position(head, y_low=self._y_low, y_high=self._y_high)
        return self.record_score(raw, head, now)

    def record_score(
        self,
        raw_score: int,
        head: HeadPosition | None = None,
        now: float | None = None,
    ) -> PostureState:
        """Fold a raw score into the rolling average and update the bad-posture latch."""
        now = self._clock() if now is None else now
        self._scores.append(max(0, min(100, int(raw_score))), now)
        smoothed = max(0, min(100, round(self._scores.mean())))
        is_bad = smoothed < _BAD_SCORE

        if not is_bad:
            self._bad_since = None
            self._alerted = False
            self._state = PostureState(score=smoothed, head_position=head)
            return self._state

        if self._bad_since is None:
            self._bad_since = now
        duration = now - self._bad_since
        duration_ms = int(duration * 1000)

        if duration > self._bad_threshold and not self._alerted:
            self._alerted = True
            logger.info("posture.bad_posture", duration_ms=duration_ms, score=smoothed)
            if self._bus is not None:
                self._bus.publish_nowait(BadPostureDetected(duration_ms=duration_ms))

        self._state = PostureState(
            score=smoothed,
            is_bad=True,
            bad_duration_ms=duration_ms,
            head_position=head,
        )
        return self._state
