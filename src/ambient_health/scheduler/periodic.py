"""Base class for components driven by a fixed-interval timer."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod

import structlog

logger = structlog.get_logger(__name__)


class PeriodicService(ABC):
    """Run :meth:`tick` every ``interval`` seconds on the event loop.

    Integration::

        service = SomeService(...)
        await service.start()
        ...
        await service.stop()

    A tick that raises is logged and the loop carries on; ticks of different
    services are not synchronised with each other.
    """

    #: Log-event prefix, e.g. ``"presence"`` → ``presence.started``.
    log_name: str = "periodic"

    def __init__(self, interval: float, *, initial_delay: float = 0.0) -> None:
        self._interval = interval
        self._initial_delay = initial_delay
        self._running = False
        self._task: asyncio.Task | None = None

    # ── Lifecycle ─────────────────────────────────────────────

    async def start(self) -> None:
        """Start the periodic loop."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(f"{self.log_name}.started", interval_seconds=self._interval)

    async def stop(self) -> None:
        """Cancel the loop and wait for it to finish."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info(f"{self.log_name}.stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def interval(self) -> float:
        return self._interval

    # ── Main loop ─────────────────────────────────────────────

    async def _run_loop(self) -> None:
        if self._initial_delay > 0:
            await asyncio.sleep(self._initial_delay)
        while self._running:
            try:
                await self.tick()
            except Exception:
                logger.exception(f"{self.log_name}.tick_error")
            await asyncio.sleep(self._interval)

    @abstractmethod
    async def tick(self) -> None:
        """One evaluation step."""
