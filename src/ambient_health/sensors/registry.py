"""Backend registry — pick real or null device implementations by name."""

from __future__ import annotations

from dataclasses import dataclass

from ambient_health.sensors.audio import SoundDeviceMicrophone, SoundDeviceOutput
from ambient_health.sensors.base import (
    AudioOutput,
    FrameSource,
    HotkeyBackend,
    KeyboardSource,
    MicrophoneSource,
)
from ambient_health.sensors.camera import OpenCVFrameSource
from ambient_health.sensors.keyboard import PynputHotkeyBackend, PynputKeyboard
from ambient_health.sensors.null import (
    NullAudioOutput,
    NullFrameSource,
    NullHotkeyBackend,
    NullKeyboard,
    NullMicrophone,
)


@dataclass(frozen=True, slots=True)
class BackendSet:
    """The classes implementing each capability for one backend family."""

    frame_source: type[FrameSource]
    microphone: type[MicrophoneSource]
    audio_output: type[AudioOutput]
    keyboard: type[KeyboardSource]
    hotkey: type[HotkeyBackend]


# ── Registry ──────────────────────────────────────────────────

_REGISTRY: dict[str, BackendSet] = {
    "device": BackendSet(
        frame_source=OpenCVFrameSource,
        microphone=SoundDeviceMicrophone,
        audio_output=SoundDeviceOutput,
        keyboard=PynputKeyboard,
        hotkey=PynputHotkeyBackend,
    ),
    "null": BackendSet(
        frame_source=NullFrameSource,
        microphone=NullMicrophone,
        audio_output=NullAudioOutput,
        keyboard=NullKeyboard,
        hotkey=NullHotkeyBackend,
    ),
}


def register_backend(name: str, backends: BackendSet) -> None:
    """Register (or replace) a backend family."""
    _REGISTRY[name] = backends


def get_backends(name: str) -> BackendSet:
    """Return the backend family registered under *name*.

    Raises :class:`ValueError` if no family is registered.
    """
    backends = _REGISTRY.get(name)
    if backends is None:
        raise ValueError(
            f"No sensor backend registered for {name!r}. "
            f"Available: {sorted(_REGISTRY)}"
        )
    return backends


def available_backends() -> list[str]:
    return list(_REGISTRY.keys())
