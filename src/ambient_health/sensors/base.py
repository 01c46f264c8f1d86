"""Abstract capability interfaces for capture, output and input devices."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable

import numpy as np

KeyCallback = Callable[[str], None]


class FrameSource(ABC):
    """Contract for a video capture device.

    A source yields *sampled* frames: a downscaled 2-D ``float32`` array of
    luma values (0–255).  All estimator math runs on this buffer, never on
    the native-resolution stream.
    """

    name: str = "base"

    @abstractmethod
    async def open(self) -> None:
        """Acquire the device.  Raise :class:`DeviceUnavailableError` on failure."""

    @abstractmethod
    async def sample(self) -> np.ndarray | None:
        """Return the current sampled frame, or ``None`` if no frame is ready."""

    @abstractmethod
    async def close(self) -> None:
        """Release the device.  Safe to call when not open."""

    @property
    @abstractmethod
    def is_open(self) -> bool: ...


class MicrophoneSource(ABC):
    """Contract for an amplitude stream of mono ``float32`` samples in [-1, 1]."""

    name: str = "base"
    sample_rate: int = 16_000

    @abstractmethod
    async def open(self) -> None:
        """Start capture.  Raise :class:`DeviceUnavailableError` on failure."""

    @abstractmethod
    async def read(self) -> np.ndarray:
        """Wait for and return the next block of samples."""

    @abstractmethod
    async def close(self) -> None:
        """Stop capture and release the device."""


class AudioOutput(ABC):
    """Contract for the shared speech output device."""

    name: str = "base"

    @abstractmethod
    async def play(self, samples: np.ndarray, sample_rate: int) -> None:
        """Play *samples* and return once playback has ended."""

    @abstractmethod
    async def close(self) -> None:
        """Release the device handle."""

    @property
    @abstractmethod
    def closed(self) -> bool: ...


class KeyboardSource(ABC):
    """Contract for a stream of key events.

    Keys are reported as single characters for character-producing keys and
    as lower-case names (``"backspace"``, ``"enter"``, ``"shift"``, ...) for
    everything else.  Callbacks may run on a listener thread.
    """

    name: str = "base"

    @abstractmethod
    def start(self, on_press: KeyCallback, on_release: KeyCallback | None = None) -> None: ...

    @abstractmethod
    def stop(self) -> None: ...


class HotkeyBackend(ABC):
    """Contract for system-wide hotkey registration."""

    name: str = "base"

    @abstractmethod
    def register(self, chord: str, callback: Callable[[], None]) -> None:
        """Bind *chord*.  Raise :class:`HotkeyUnavailableError` when unsupported."""

    @abstractmethod
    def unregister(self) -> None: ...
