"""Tests for focus-session bookkeeping."""

import pytest

from ambient_health.models import UserLeft, UserReturned
from ambient_health.monitors.focus import FocusTracker


class TestFocusTracker:
    def test_focus_minutes_accumulate(self, clock):
        tracker = FocusTracker(clock=clock)
        clock.advance(95 * 60 + 30)
        assert tracker.focus_duration_min() == 95

    def test_short_absence_is_not_a_break(self, clock):
        tracker = FocusTracker(break_threshold=300, clock=clock)
        clock.advance(3600)
        assert tracker.record_return(away_ms=60_000) is False
        assert tracker.breaks_taken == 0
        assert tracker.focus_duration_min() == 60

    def test_long_absence_counts_and_restarts_focus(self, clock):
        tracker = FocusTracker(break_threshold=300, clock=clock)
        clock.advance(3600)
        assert tracker.record_return(away_ms=300_000) is True
        assert tracker.breaks_taken == 1
        assert tracker.focus_duration_min() == 0

    @pytest.mark.asyncio
    async def test_handles_bus_events(self, clock):
        tracker = FocusTracker(break_threshold=300, clock=clock)
        await tracker.handle_event(UserLeft())
        await tracker.handle_event(UserReturned(away_ms=600_000))
        assert tracker.breaks_taken == 1
