"""No-op backends used when no real device is wanted (headless, CI, dev)."""

from __future__ import annotations

import asyncio
from typing import Callable

import numpy as np

from ambient_health.errors import DeviceUnavailableError, HotkeyUnavailableError
from ambient_health.sensors.base import (
    AudioOutput,
    FrameSource,
    HotkeyBackend,
    KeyboardSource,
    KeyCallback,
    MicrophoneSource,
)


class NullFrameSource(FrameSource):
    """A camera that is never available."""

    name = "null"

    def __init__(self, *args: object, **kwargs: object) -> None:
        pass

    @property
    def is_open(self) -> bool:
        return False

    async def open(self) -> None:
        raise DeviceUnavailableError("No camera backend configured.")

    async def sample(self) -> np.ndarray | None:
        return None

    async def close(self) -> None:
        return None


class NullMicrophone(MicrophoneSource):
    """A microphone that is never available."""

    name = "null"

    def __init__(self, sample_rate: int = 16_000, **kwargs: object) -> None:
        self.sample_rate = sample_rate

    async def open(self) -> None:
        raise DeviceUnavailableError("No microphone backend configured.")

    async def read(self) -> np.ndarray:
        raise DeviceUnavailableError("No microphone backend configured.")

    async def close(self) -> None:
        return None


class NullAudioOutput(AudioOutput):
    """Discards audio, waiting for its nominal duration so queue timing stays realistic."""

    name = "null"

    def __init__(self) -> None:
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def play(self, samples: np.ndarray, sample_rate: int) -> None:
        await asyncio.sleep(len(samples) / max(sample_rate, 1))

    async def close(self) -> None:
        self._closed = True


class NullKeyboard(KeyboardSource):
    name = "null"

    def start(self, on_press: KeyCallback, on_release: KeyCallback | None = None) -> None:
        return None

    def stop(self) -> None:
        return None


class NullHotkeyBackend(HotkeyBackend):
    name = "null"

    def register(self, chord: str, callback: Callable[[], None]) -> None:
        raise HotkeyUnavailableError("No global hotkey backend configured.")

    def unregister(self) -> None:
        return None
