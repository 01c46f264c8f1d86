"""Focus-session bookkeeping: minutes since the last break and breaks taken."""

from __future__ import annotations

import time
from typing import Callable

import structlog

from ambient_health.models import HealthEvent, UserReturned

logger = structlog.get_logger(__name__)


class FocusTracker:
    """Derive focus counters from presence events.

    An absence of at least ``break_threshold`` seconds counts as a break and
    restarts the focus clock; shorter absences are ignored.  Register
    :meth:`handle_event` as an event-bus subscriber.
    """

    def __init__(
        self,
        *,
        break_threshold: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._break_threshold_ms = int(break_threshold * 1000)
        self._clock = clock
        self._focus_start = clock()
        self._breaks_taken = 0

    @property
    def breaks_taken(self) -> int:
        return self._breaks_taken

    def focus_duration_min(self, now: float | None = None) -> int:
        now = self._clock() if now is None else now
        return max(0, int((now - self._focus_start) // 60))

    def record_return(self, away_ms: int, now: float | None = None) -> bool:
        """Account for a return after *away_ms*.  Return ``True`` if it was a break."""
        if away_ms < self._break_threshold_ms:
            return False
        self._breaks_taken += 1
        self._focus_start = self._clock() if now is None else now
        logger.info("focus.break_recorded", away_ms=away_ms, breaks_taken=self._breaks_taken)
        return True

    async def handle_event(self, event: HealthEvent) -> None:
        if isinstance(event, UserReturned):
            self.record_return(event.away_ms)
