"""pynput-backed keyboard listener and global hotkey registration.

pynput binds to the display server at import time, so it is imported
only when a listener is started.
"""

from __future__ import annotations

from typing import Any, Callable

import structlog

from ambient_health.errors import HotkeyUnavailableError
from ambient_health.sensors.base import HotkeyBackend, KeyboardSource, KeyCallback

logger = structlog.get_logger(__name__)

_MODIFIER_ALIASES = {
    "ctrl_l": "ctrl",
    "ctrl_r": "ctrl",
    "shift_l": "shift",
    "shift_r": "shift",
    "alt_l": "alt",
    "alt_r": "alt",
    "alt_gr": "alt",
    "cmd_l": "cmd",
    "cmd_r": "cmd",
}

# Named keys that still type a character.
_CHAR_KEYS = {"space": " "}


def key_name(key: Any) -> str | None:
    """Normalise a pynput key object to a character or a lower-case key name."""
    char = getattr(key, "char", None)
    if char:
        return char
    name = getattr(key, "name", None)
    if name is None:
        return None
    if name in _CHAR_KEYS:
        return _CHAR_KEYS[name]
    return _MODIFIER_ALIASES.get(name, name)


class PynputKeyboard(KeyboardSource):
    name = "pynput"

    def __init__(self) -> None:
        self._listener = None

    def start(self, on_press: KeyCallback, on_release: KeyCallback | None = None) -> None:
        if self._listener is not None:
            return
        from pynput import keyboard

        def _press(key: Any) -> None:
            name = key_name(key)
            if name is not None:
                on_press(name)

        def _release(key: Any) -> None:
            name = key_name(key)
            if name is not None and on_release is not None:
                on_release(name)

        self._listener = keyboard.Listener(on_press=_press, on_release=_release)
        self._listener.start()
        logger.info("keyboard.listener_started")

    def stop(self) -> None:
        if self._listener is not None:
            self._listener.stop()
            self._listener = None
            logger.info("keyboard.listener_stopped")


class PynputHotkeyBackend(HotkeyBackend):
    """System-wide chord via ``pynput.keyboard.GlobalHotKeys``."""

    name = "pynput"

    def __init__(self) -> None:
        self._hotkeys = None

    def register(self, chord: str, callback: Callable[[], None]) -> None:
        try:
            from pynput import keyboard

            hotkeys = keyboard.GlobalHotKeys({chord: callback})
            hotkeys.start()
        except Exception as exc:
            raise HotkeyUnavailableError(f"Global hotkey {chord!r} unavailable: {exc}") from exc
        self._hotkeys = hotkeys

    def unregister(self) -> None:
        if self._hotkeys is not None:
            self._hotkeys.stop()
            self._hotkeys = None
