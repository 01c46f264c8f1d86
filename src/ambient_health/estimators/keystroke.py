"""Typing cadence: words per minute, short-term trend and fatigue.

Fatigue is always relative to a per-session baseline: the peak WPM seen
during the first minutes of the session.  Once calibration closes the
baseline is frozen, so a slowly tiring typist cannot drag their own
detection threshold down.
"""

from __future__ import annotations

import time
from typing import Callable

import structlog

from ambient_health.estimators.window import RollingWindow
from ambient_health.models import FatigueLevel, WpmSnapshot, WpmTrend
from ambient_health.scheduler.periodic import PeriodicService

logger = structlog.get_logger(__name__)

# ── Constants ─────────────────────────────────────────────────

CHARS_PER_WORD = 5
_TREND_SAMPLES = 12  # ~1 minute of 5 s samples
_TREND_MIN_SAMPLES = 4
_RISING_RATIO = 1.1
_DECLINING_RATIO = 0.9

# Relative drop from baseline → fatigue level, checked in order.
_FATIGUE_BANDS = (
    (0.50, FatigueLevel.HIGH),
    (0.30, FatigueLevel.MODERATE),
    (0.15, FatigueLevel.MILD),
)

_COUNTED_NAMES = frozenset({"backspace", "enter"})


def is_counted_key(key: str) -> bool:
    """Character-producing keys plus Backspace/Enter; modifiers and navigation are ignored."""
    return len(key) == 1 or key.lower() in _COUNTED_NAMES


def classify_trend(history: list[int]) -> WpmTrend:
    """Compare the averages of the first and second half of recent samples."""
    if len(history) < _TREND_MIN_SAMPLES:
        return WpmTrend.STABLE
    mid = len(history) // 2
    first, second = history[:mid], history[mid:]
    avg_first = sum(first) / len(first)
    avg_second = sum(second) / len(second)
    if avg_second > avg_first * _RISING_RATIO:
        return WpmTrend.RISING
    if avg_second < avg_first * _DECLINING_RATIO:
        return WpmTrend.DECLINING
    return WpmTrend.STABLE


def classify_fatigue(wpm: int, baseline: int) -> FatigueLevel:
    if baseline <= 0 or wpm <= 0:
        return FatigueLevel.NONE
    drop = 1 - wpm / baseline
    for threshold, level in _FATIGUE_BANDS:
        if drop >= threshold:
            return level
    return FatigueLevel.NONE


class KeystrokeMonitor(PeriodicService):
    """Keep a rolling window of key-press timestamps and sample WPM every tick."""

    log_name = "keystroke"

    def __init__(
        self,
        *,
        window: float = 60.0,
        interval: float = 5.0,
        calibration: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(interval)
        self._window_seconds = window
        self._calibration = calibration
        self._clock = clock

        self._keystrokes: RollingWindow[str] = RollingWindow(duration=window)
        self._history: RollingWindow[int] = RollingWindow(maxlen=_TREND_SAMPLES)
        self._session_start = clock()
        self._baseline = 0
        self._calibrating = True
        self._snapshot = WpmSnapshot()

    @property
    def snapshot(self) -> WpmSnapshot:
        return self._snapshot

    @property
    def calibrating(self) -> bool:
        return self._calibrating

    def record_key(self, key: str, now: float | None = None) -> bool:
        """Record a key press.  Return ``False`` for keys that are not counted."""
        if not is_counted_key(key):
            return False
        self._keystrokes.append(key, self._clock() if now is None else now)
        return True

    async def tick(self) -> None:
        self.sample()

    def sample(self, now: float | None = None) -> WpmSnapshot:
        """Prune the window and publish a fresh :class:`WpmSnapshot`."""
        now = self._clock() if now is None else now
        self._keystrokes.prune(now)

        wpm = round(len(self._keystrokes) / CHARS_PER_WORD * (60.0 / self._window_seconds))
        elapsed = now - self._session_start

        if self._calibrating:
            self._baseline = max(self._baseline, wpm)
            if elapsed >= self._calibration and self._baseline > 0:
                self._calibrating = False
                logger.info("keystroke.calibrated", baseline=self._baseline)

        self._history.append(wpm, now)
        trend = classify_trend(self._history.values())
        fatigue = FatigueLevel.NONE if self._calibrating else classify_fatigue(wpm, self._baseline)

        self._snapshot = WpmSnapshot(
            wpm=wpm,
            trend=trend,
            fatigue=fatigue,
            session_minutes=int(elapsed // 60),
            baseline=self._baseline,
        )
        return self._snapshot
