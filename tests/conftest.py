"""Shared pytest fixtures and in-memory device fakes."""

from __future__ import annotations

import asyncio
import struct

import numpy as np
import pytest

from ambient_health.errors import DeviceUnavailableError
from ambient_health.models import Alert, HealthMetrics
from ambient_health.monitors.defaults import create_default_engine
from ambient_health.monitors.rules import RuleEngine
from ambient_health.notifications.handlers import NotificationDispatcher, NotificationHandler
from ambient_health.sensors.base import AudioOutput, FrameSource, MicrophoneSource
from ambient_health.streaming.bus import EventBus

BLOCK = 512
RATE = 16_000
BLOCK_SECONDS = BLOCK / RATE


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


class StaticFrameSource(FrameSource):
    """Replays a list of frames; the last one repeats forever."""

    name = "static"

    def __init__(self, frames: list[np.ndarray] | None = None, *, available: bool = True) -> None:
        self._frames = list(frames or [])
        self._available = available
        self._open = False
        self.open_calls = 0
        self.close_calls = 0

    @property
    def is_open(self) -> bool:
        return self._open

    async def open(self) -> None:
        self.open_calls += 1
        if not self._available:
            raise DeviceUnavailableError("fake camera unavailable")
        self._open = True

    async def sample(self) -> np.ndarray | None:
        if not self._open or not self._frames:
            return None
        if len(self._frames) > 1:
            return self._frames.pop(0)
        return self._frames[0]

    async def close(self) -> None:
        self.close_calls += 1
        self._open = False


class ScriptedMicrophone(MicrophoneSource):
    """Yields scripted blocks, advancing *clock* by one block duration per read.

    Once the script runs out it keeps returning silence.
    """

    name = "scripted"

    def __init__(self, blocks: list[np.ndarray] | None = None, *, clock: FakeClock, available: bool = True) -> None:
        self.sample_rate = RATE
        self._blocks = list(blocks or [])
        self._clock = clock
        self._available = available
        self.is_open = False
        self.open_calls = 0
        self.close_calls = 0

    async def open(self) -> None:
        self.open_calls += 1
        if not self._available:
            raise DeviceUnavailableError("fake microphone unavailable")
        self.is_open = True

    async def read(self) -> np.ndarray:
        await asyncio.sleep(0)
        self._clock.advance(BLOCK_SECONDS)
        if self._blocks:
            return self._blocks.pop(0)
        return silence()

    async def close(self) -> None:
        self.close_calls += 1
        self.is_open = False


class RecordingOutput(AudioOutput):
    """Records played buffers and the peak number of overlapping plays."""

    name = "recording"
    instances: list[RecordingOutput] = []

    def __init__(self) -> None:
        self.played: list[int] = []
        self._closed = False
        RecordingOutput.instances.append(self)

    active = 0
    peak = 0

    @property
    def closed(self) -> bool:
        return self._closed

    async def play(self, samples: np.ndarray, sample_rate: int) -> None:
        RecordingOutput.active += 1
        RecordingOutput.peak = max(RecordingOutput.peak, RecordingOutput.active)
        try:
            await asyncio.sleep(0.005)
            self.played.append(len(samples))
        finally:
            RecordingOutput.active -= 1

    async def close(self) -> None:
        self._closed = True


class RecordingHandler(NotificationHandler):
    name = "recording"

    def __init__(self) -> None:
        super().__init__()
        self.alerts: list[Alert] = []

    async def send(self, alert: Alert) -> None:
        self.alerts.append(alert)


def truncated_wav(declared: int, payload: bytes, *, channels: int = 1, width: int = 2) -> bytes:
    """PCM WAV whose data chunk header claims *declared* bytes but carries *payload*."""
    block_align = channels * width
    fmt = struct.pack("<HHIIHH", 1, channels, RATE, RATE * block_align, block_align, width * 8)
    return (
        b"RIFF" + struct.pack("<I", 36 + declared) + b"WAVE"
        + b"fmt " + struct.pack("<I", len(fmt)) + fmt
        + b"data" + struct.pack("<I", declared) + payload
    )


def tone(amplitude: float = 0.5, n: int = BLOCK) -> np.ndarray:
    return np.full(n, amplitude, dtype=np.float32)


def silence(n: int = BLOCK) -> np.ndarray:
    return np.zeros(n, dtype=np.float32)


def textured_frame(seed: int = 0) -> np.ndarray:
    """High-variance luma frame, like a face in front of the camera."""
    rng = np.random.default_rng(seed)
    return rng.uniform(0, 255, size=(120, 160)).astype(np.float32)


def flat_frame(value: float = 90.0) -> np.ndarray:
    """Uniform luma frame, like an empty chair against a wall."""
    return np.full((120, 160), value, dtype=np.float32)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def recording_output():
    RecordingOutput.instances = []
    RecordingOutput.active = 0
    RecordingOutput.peak = 0
    yield RecordingOutput


@pytest.fixture
def recording_handler() -> RecordingHandler:
    return RecordingHandler()


@pytest.fixture
def dispatcher(recording_handler: RecordingHandler) -> NotificationDispatcher:
    return NotificationDispatcher(handlers=[recording_handler])


@pytest.fixture
def rule_engine() -> RuleEngine:
    return create_default_engine()


@pytest.fixture
def calm_metrics() -> HealthMetrics:
    return HealthMetrics(wpm=60, posture_score=90, focus_duration_min=20)
