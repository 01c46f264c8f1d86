"""Activation chord for voice capture: global hotkey first, local matcher as fallback."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable

import structlog

from ambient_health.errors import HotkeyUnavailableError
from ambient_health.sensors.base import HotkeyBackend

logger = structlog.get_logger(__name__)

HotkeyCallback = Callable[[], Awaitable[object]]


def parse_chord(chord: str) -> frozenset[str]:
    """``"<ctrl>+<shift>+h"`` → ``{"ctrl", "shift", "h"}``."""
    parts = [p.strip().strip("<>").lower() for p in chord.split("+")]
    if not all(parts):
        raise ValueError(f"Malformed hotkey chord: {chord!r}")
    return frozenset(parts)


def normalise_key(key: str) -> str:
    # With ctrl held, letters arrive as ASCII control characters.
    if len(key) == 1 and ord(key) < 32:
        return chr(ord(key) + 96)
    if key == " ":
        return "space"
    return key.lower()


class HotkeyBinding:
    """Bind one chord to an async callback exactly once.

    :meth:`bind` registers the chord with the global backend; when that is
    unavailable the binding switches to *local* mode, where the owner feeds
    key events through :meth:`handle_press` / :meth:`handle_release`.  Key
    events may arrive on listener threads; the callback always runs on the
    event loop that called :meth:`bind`.
    """

    def __init__(self, chord: str, callback: HotkeyCallback) -> None:
        self._chord = chord
        self._keys = parse_chord(chord)
        self._callback = callback
        self._backend: HotkeyBackend | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._mode: str | None = None
        self._pressed: set[str] = set()
        self._tasks: set[asyncio.Task] = set()

    @property
    def mode(self) -> str | None:
        """``"global"``, ``"local"`` or ``None`` when unbound."""
        return self._mode

    @property
    def is_bound(self) -> bool:
        return self._mode is not None

    def bind(self, backend: HotkeyBackend) -> str:
        if self._mode is not None:
            logger.debug("hotkey.already_bound", chord=self._chord, mode=self._mode)
            return self._mode
        self._loop = asyncio.get_running_loop()
        try:
            backend.register(self._chord, self._trigger)
        except HotkeyUnavailableError as exc:
            logger.warning("hotkey.global_unavailable", chord=self._chord, error=str(exc))
            self._mode = "local"
        else:
            self._backend = backend
            self._mode = "global"
        logger.info("hotkey.bound", chord=self._chord, mode=self._mode)
        return self._mode

    def unbind(self) -> None:
        if self._mode is None:
            return
        if self._backend is not None:
            self._backend.unregister()
            self._backend = None
        self._pressed.clear()
        logger.info("hotkey.unbound", chord=self._chord, mode=self._mode)
        self._mode = None

    # ── Local matcher ─────────────────────────────────────────

    def handle_press(self, key: str) -> None:
        if self._mode != "local":
            return
        name = normalise_key(key)
        already = name in self._pressed
        self._pressed.add(name)
        # Auto-repeat of a held chord must not retrigger.
        if not already and name in self._keys and self._keys <= self._pressed:
            self._trigger()

    def handle_release(self, key: str) -> None:
        self._pressed.discard(normalise_key(key))

    # ── Dispatch ──────────────────────────────────────────────

    def _trigger(self) -> None:
        if self._loop is None or self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(self._spawn)

    def _spawn(self) -> None:
        task = asyncio.ensure_future(self._run())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _run(self) -> None:
        logger.debug("hotkey.triggered", chord=self._chord)
        try:
            await self._callback()
        except Exception:
            logger.exception("hotkey.callback_error", chord=self._chord)
