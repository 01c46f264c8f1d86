"""Async event bus connecting estimators → focus tracker / voice / observers."""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable

import structlog

from ambient_health.models import HealthEvent

logger = structlog.get_logger(__name__)

Subscriber = Callable[[HealthEvent], Awaitable[None]]


class EventBus:
    """In-process async channel of typed :class:`HealthEvent` objects.

    Estimators publish from their own ticks with :meth:`publish_nowait`
    (they never await delivery); a single consumer loop forwards every
    event to every subscriber.  A subscriber that raises is logged and
    skipped so the others still receive the event.
    """

    def __init__(self, maxsize: int = 1_000) -> None:
        self._queue: asyncio.Queue[HealthEvent] = asyncio.Queue(maxsize=maxsize)
        self._subscribers: list[Subscriber] = []
        self._running = False
        self._delivered_total = 0

    # ── Configuration ─────────────────────────────────────────

    def subscribe(self, fn: Subscriber) -> None:
        """Register an async callback that receives every event."""
        self._subscribers.append(fn)

    # ── Producer side ─────────────────────────────────────────

    async def publish(self, event: HealthEvent) -> None:
        await self._queue.put(event)

    def publish_nowait(self, event: HealthEvent) -> None:
        """Enqueue without waiting; drops (and logs) the event when the bus is full."""
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning("event_bus.full", kind=event.kind, pending=self._queue.qsize())

    # ── Consumer loop ─────────────────────────────────────────

    async def start(self) -> None:
        """Run the delivery loop (run as a background task)."""
        self._running = True
        logger.info("event_bus.started", subscribers=len(self._subscribers))

        last_stats_time = time.monotonic()

        while self._running:
            try:
                event = await asyncio.wait_for(self._queue.get(), timeout=1.0)
            except asyncio.TimeoutError:
                continue

            for subscriber in self._subscribers:
                try:
                    await subscriber(event)
                except Exception as exc:
                    logger.error(
                        "event_bus.subscriber_error",
                        subscriber=getattr(subscriber, "__qualname__", repr(subscriber)),
                        kind=event.kind,
                        error=str(exc),
                    )

            self._delivered_total += 1
            self._queue.task_done()

            now = time.monotonic()
            if now - last_stats_time >= 60:
                logger.debug(
                    "event_bus.stats",
                    delivered_total=self._delivered_total,
                    pending=self._queue.qsize(),
                )
                last_stats_time = now

    async def stop(self) -> None:
        """Stop the delivery loop; undelivered events are discarded."""
        self._running = False
        dropped = len(self.drain())
        logger.info("event_bus.stopped", dropped=dropped)

    def drain(self) -> list[HealthEvent]:
        """Remove and return every pending event without delivering it."""
        events: list[HealthEvent] = []
        while True:
            try:
                events.append(self._queue.get_nowait())
            except asyncio.QueueEmpty:
                return events

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def delivered_total(self) -> int:
        return self._delivered_total
