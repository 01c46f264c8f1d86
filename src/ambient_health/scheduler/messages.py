"""Periodic poll of the reasoning service for a new agent message."""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from ambient_health.models import AgentMessage
from ambient_health.scheduler.periodic import PeriodicService
from ambient_health.services.clients import MessageProvider

if TYPE_CHECKING:
    from ambient_health.voice.playback import SpeechQueue

logger = structlog.get_logger(__name__)


class MessagePoller(PeriodicService):
    """Fetch the current agent message and speak it when its text is new."""

    log_name = "message_poller"

    def __init__(
        self,
        provider: MessageProvider,
        speech: SpeechQueue | None = None,
        *,
        auto_speak: bool = True,
        interval: float = 900.0,
    ) -> None:
        super().__init__(interval)
        self._provider = provider
        self._speech = speech
        self._auto_speak = auto_speak
        self._last_spoken: str | None = None
        self.message: AgentMessage | None = None

    async def tick(self) -> None:
        await self.poll()

    async def poll(self) -> AgentMessage | None:
        try:
            message = await self._provider.get_message()
        except Exception as exc:
            logger.error("message_poller.fetch_failed", error=str(exc))
            return self.message

        self.message = message
        logger.debug("message_poller.received", category=message.category, priority=message.priority.value)

        if self._auto_speak and self._speech is not None and message.text and message.text != self._last_spoken:
            self._last_spoken = message.text
            self._speech.speak(message.text, label="agent_message")
        return message
