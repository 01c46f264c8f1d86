"""Tests for the keystroke cadence monitor."""

from types import SimpleNamespace

import pytest

from ambient_health.estimators.keystroke import (
    KeystrokeMonitor,
    classify_fatigue,
    classify_trend,
    is_counted_key,
)
from ambient_health.models import FatigueLevel, WpmTrend
from ambient_health.sensors.keyboard import key_name


def _type(monitor: KeystrokeMonitor, count: int, at: float) -> None:
    for _ in range(count):
        monitor.record_key("a", now=at)


class TestHelpers:
    @pytest.mark.parametrize("key", ["a", "Z", "1", " ", "backspace", "enter"])
    def test_counted_keys(self, key):
        assert is_counted_key(key) is True

    @pytest.mark.parametrize("key", ["shift", "ctrl", "left", "page_down", "f5"])
    def test_ignored_keys(self, key):
        assert is_counted_key(key) is False

    @pytest.mark.parametrize(
        ("char", "name"), [(None, "space"), (None, "backspace"), (None, "enter"), ("e", None)]
    )
    def test_listener_keys_that_type_are_counted(self, char, name):
        assert is_counted_key(key_name(SimpleNamespace(char=char, name=name))) is True

    @pytest.mark.parametrize("name", ["shift_l", "ctrl_r", "tab", "caps_lock"])
    def test_listener_modifiers_are_ignored(self, name):
        assert is_counted_key(key_name(SimpleNamespace(char=None, name=name))) is False

    def test_trend_needs_enough_samples(self):
        assert classify_trend([10, 50, 90]) is WpmTrend.STABLE

    def test_trend_rising_and_declining(self):
        assert classify_trend([40, 40, 40, 60, 60, 60]) is WpmTrend.RISING
        assert classify_trend([60, 60, 60, 40, 40, 40]) is WpmTrend.DECLINING
        assert classify_trend([50, 50, 52, 51]) is WpmTrend.STABLE

    @pytest.mark.parametrize(
        ("wpm", "level"),
        [(80, FatigueLevel.NONE), (66, FatigueLevel.MILD), (52, FatigueLevel.MODERATE), (35, FatigueLevel.HIGH)],
    )
    def test_fatigue_bands(self, wpm, level):
        assert classify_fatigue(wpm, 80) is level

    def test_no_fatigue_without_baseline(self):
        assert classify_fatigue(30, 0) is FatigueLevel.NONE


class TestKeystrokeMonitor:
    def test_modifier_keys_are_not_recorded(self, clock):
        monitor = KeystrokeMonitor(clock=clock)
        assert monitor.record_key("shift") is False
        assert monitor.record_key("x") is True

    def test_wpm_from_window(self, clock):
        monitor = KeystrokeMonitor(clock=clock)
        _type(monitor, 250, at=clock.advance(10))
        assert monitor.sample(now=clock.advance(5)).wpm == 50

    def test_old_keys_leave_the_window(self, clock):
        monitor = KeystrokeMonitor(clock=clock)
        _type(monitor, 250, at=clock.advance(10))
        assert monitor.sample(now=clock.advance(61)).wpm == 0

    def test_baseline_ratchets_then_freezes(self, clock):
        monitor = KeystrokeMonitor(window=60, calibration=300, clock=clock)
        start = clock()
        baselines = []
        for minute, keys in enumerate([200, 400, 100, 300], start=1):
            _type(monitor, keys, at=start + minute * 60 - 30)
            baselines.append(monitor.sample(now=start + minute * 60).baseline)
        assert baselines == [40, 80, 80, 80]
        assert monitor.calibrating is True

        monitor.sample(now=start + 300)
        assert monitor.calibrating is False

        _type(monitor, 600, at=start + 330)
        snap = monitor.sample(now=start + 360)
        assert snap.wpm == 120
        assert snap.baseline == 80

    def test_fatigue_high_after_large_drop(self, clock):
        monitor = KeystrokeMonitor(window=60, calibration=300, clock=clock)
        start = clock()
        _type(monitor, 400, at=start + 30)
        assert monitor.sample(now=start + 60).baseline == 80
        monitor.sample(now=start + 300)

        _type(monitor, 175, at=start + 330)
        snap = monitor.sample(now=start + 360)
        assert snap.wpm == 35
        assert snap.fatigue is FatigueLevel.HIGH
        assert snap.session_minutes == 6

    def test_no_fatigue_while_calibrating(self, clock):
        monitor = KeystrokeMonitor(clock=clock)
        _type(monitor, 400, at=clock.advance(30))
        monitor.sample(now=clock.advance(30))
        _type(monitor, 10, at=clock.advance(90))
        assert monitor.sample(now=clock.advance(5)).fatigue is FatigueLevel.NONE
