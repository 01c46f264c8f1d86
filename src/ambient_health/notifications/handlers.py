"""Alert delivery: channels gated by alert priority, fanned out together.

A channel only sees alerts at or above its priority cut-off (priority 1 is
the most urgent).  ``LogHandler`` takes everything, ``WebhookHandler``
takes what ``webhook_max_priority`` allows and ``SpeechHandler`` only the
urgent ones.  Channels signal failure by raising; the dispatcher turns that
into a :class:`DeliveryReport` entry so one dead channel never blocks the
rest.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import httpx
import structlog

from ambient_health.errors import NotificationError

if TYPE_CHECKING:
    from ambient_health.config import Settings
    from ambient_health.models import Alert
    from ambient_health.voice.playback import SpeechQueue

logger = structlog.get_logger(__name__)

LOWEST_PRIORITY = 3


@dataclass(frozen=True, slots=True)
class DeliveryReport:
    """Which channels took an alert, which filtered it out and which failed."""

    alert_id: str
    delivered: tuple[str, ...] = ()
    skipped: tuple[str, ...] = ()
    failed: dict[str, str] = field(default_factory=dict)

    @property
    def all_ok(self) -> bool:
        return not self.failed


class NotificationHandler(ABC):
    """One delivery channel.  ``send`` raises on failure."""

    name: str = "channel"

    def __init__(self, *, max_priority: int = LOWEST_PRIORITY) -> None:
        self.max_priority = max_priority

    def accepts(self, alert: Alert) -> bool:
        return alert.priority <= self.max_priority

    @abstractmethod
    async def send(self, alert: Alert) -> None: ...

    async def aclose(self) -> None:
        return None


class LogHandler(NotificationHandler):
    name = "log"

    async def send(self, alert: Alert) -> None:
        log = logger.warning if alert.priority == 1 else logger.info
        log(
            "alert.raised",
            alert_id=alert.id,
            type=alert.type.value,
            priority=alert.priority,
            rule_id=alert.rule_id,
            message=alert.message,
        )


class WebhookHandler(NotificationHandler):
    """POST ``{"event": "alert", "alert": {...}}`` to a fixed URL.

    The httpx client is created on first use and reused; :meth:`aclose`
    releases it.  A client may be injected (tests pass one built on
    ``httpx.MockTransport``).
    """

    name = "webhook"

    def __init__(
        self,
        url: str,
        *,
        max_priority: int = LOWEST_PRIORITY,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(max_priority=max_priority)
        self._url = url
        self._timeout = timeout
        self._client = client

    @staticmethod
    def payload(alert: Alert) -> dict[str, Any]:
        return {"event": "alert", "alert": alert.model_dump(mode="json")}

    async def send(self, alert: Alert) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        try:
            resp = await self._client.post(self._url, json=self.payload(alert))
            resp.raise_for_status()
        except httpx.HTTPError as exc:
            raise NotificationError(f"webhook {self._url}: {exc}") from exc
        logger.debug("notification.webhook_sent", alert_id=alert.id, status=resp.status_code)

    async def aclose(self) -> None:
        client, self._client = self._client, None
        if client is not None:
            await client.aclose()


class SpeechHandler(NotificationHandler):
    """Read urgent alerts aloud.

    Only enqueues: playback happens on the speech queue's worker, in line
    with every other utterance.
    """

    name = "speech"

    def __init__(self, speech: SpeechQueue, *, max_priority: int = 1) -> None:
        super().__init__(max_priority=max_priority)
        self._speech = speech

    async def send(self, alert: Alert) -> None:
        self._speech.speak(alert.message, label=f"alert:{alert.id}")


class NotificationDispatcher:
    """Deliver each alert to every accepting channel concurrently."""

    def __init__(self, handlers: list[NotificationHandler] | None = None) -> None:
        self._handlers: dict[str, NotificationHandler] = {}
        for handler in handlers if handlers is not None else [LogHandler()]:
            self.register(handler)

    def register(self, handler: NotificationHandler) -> None:
        """Add *handler*, replacing any channel already registered under its name."""
        self._handlers[handler.name] = handler

    def unregister(self, name: str) -> NotificationHandler | None:
        return self._handlers.pop(name, None)

    @property
    def channels(self) -> list[str]:
        return list(self._handlers)

    async def dispatch(self, alert: Alert) -> DeliveryReport:
        targets = [h for h in self._handlers.values() if h.accepts(alert)]
        skipped = tuple(n for n, h in self._handlers.items() if h not in targets)
        outcomes = await asyncio.gather(
            *(h.send(alert) for h in targets), return_exceptions=True
        )

        delivered: list[str] = []
        failed: dict[str, str] = {}
        for handler, outcome in zip(targets, outcomes):
            if isinstance(outcome, NotificationError):
                logger.error("notification.failed", channel=handler.name, alert_id=alert.id, error=str(outcome))
                failed[handler.name] = str(outcome)
            elif isinstance(outcome, BaseException):
                logger.error(
                    "notification.channel_error",
                    channel=handler.name,
                    alert_id=alert.id,
                    exc_info=outcome,
                )
                failed[handler.name] = repr(outcome)
            else:
                delivered.append(handler.name)

        return DeliveryReport(
            alert_id=alert.id,
            delivered=tuple(delivered),
            skipped=skipped,
            failed=failed,
        )

    async def aclose(self) -> None:
        for handler in self._handlers.values():
            try:
                await handler.aclose()
            except Exception:
                logger.exception("notification.close_failed", channel=handler.name)


def create_dispatcher(settings: Settings, speech: SpeechQueue | None = None) -> NotificationDispatcher:
    """Log always; webhook when a URL is configured; speech when auto-speak is on."""
    handlers: list[NotificationHandler] = [LogHandler()]
    if settings.webhook_url:
        handlers.append(
            WebhookHandler(
                settings.webhook_url,
                max_priority=settings.webhook_max_priority,
                timeout=settings.webhook_timeout,
            )
        )
    if speech is not None and settings.auto_speak:
        handlers.append(SpeechHandler(speech))
    return NotificationDispatcher(handlers)
