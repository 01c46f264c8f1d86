"""Health context aggregator — periodic proactive-alert evaluation.

Architecture
~~~~~~~~~~~~
Every ``interval`` seconds (plus one early pass ``initial_delay`` seconds
after start) the ``HealthContext``:

1. Pulls a fresh :class:`HealthMetrics` snapshot from the engine.
2. Does nothing while the user is away.
3. Does nothing if the last alert was emitted less than ``min_alert_gap``
   seconds ago, however many rules currently match.
4. Otherwise lets the :class:`RuleEngine` pick one rule, turns it into an
   :class:`Alert`, records it and hands it to the notification dispatcher.
"""

from __future__ import annotations

import time
from collections import deque
from typing import Callable

import structlog

from ambient_health.models import Alert, AlertEmitted, HealthMetrics
from ambient_health.monitors.rules import RuleEngine
from ambient_health.notifications.handlers import NotificationDispatcher
from ambient_health.scheduler.periodic import PeriodicService
from ambient_health.streaming.bus import EventBus

logger = structlog.get_logger(__name__)

MetricsSnapshot = Callable[[], HealthMetrics]


class HealthContext(PeriodicService):
    """Turn matching rules into rate-limited alerts.

    Integration::

        context = HealthContext(engine.snapshot, create_default_engine(), dispatcher)
        await context.start()
        ...
        await context.stop()
    """

    log_name = "health_context"

    def __init__(
        self,
        snapshot: MetricsSnapshot,
        rule_engine: RuleEngine,
        dispatcher: NotificationDispatcher | None = None,
        *,
        bus: EventBus | None = None,
        interval: float = 300.0,
        initial_delay: float = 10.0,
        min_alert_gap: float = 600.0,
        history_size: int = 20,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        super().__init__(interval, initial_delay=initial_delay)
        self._snapshot = snapshot
        self._rules = rule_engine
        self._dispatcher = dispatcher
        self._bus = bus
        self._min_alert_gap = min_alert_gap
        self._clock = clock
        self._history: deque[Alert] = deque(maxlen=history_size)
        self._last_alert_at: float | None = None
        self._latest: HealthMetrics | None = None

    @property
    def history(self) -> list[Alert]:
        """Emitted alerts, most recent first."""
        return list(self._history)

    @property
    def latest_metrics(self) -> HealthMetrics | None:
        return self._latest

    async def tick(self) -> None:
        await self.evaluate()

    async def evaluate(self, now: float | None = None) -> Alert | None:
        """Run one evaluation pass; return the emitted alert, if any."""
        now = self._clock() if now is None else now
        metrics = self._snapshot()
        self._latest = metrics

        if not metrics.is_present:
            logger.debug("health_context.user_away")
            return None

        if self._last_alert_at is not None and now - self._last_alert_at < self._min_alert_gap:
            logger.debug(
                "health_context.rate_limited",
                seconds_since_last=round(now - self._last_alert_at, 1),
            )
            return None

        rule = self._rules.select(metrics)
        if rule is None:
            return None

        alert = Alert(
            type=rule.alert_type,
            message=rule.message,
            priority=rule.priority,
            rule_id=rule.rule_id,
        )
        self._last_alert_at = now
        self._history.appendleft(alert)
        logger.info(
            "health_context.alert_emitted",
            alert_id=alert.id,
            rule_id=rule.rule_id,
            priority=alert.priority,
            type=alert.type.value,
        )

        if self._dispatcher is not None:
            await self._dispatcher.dispatch(alert)
        if self._bus is not None:
            self._bus.publish_nowait(AlertEmitted(alert=alert))
        return alert
