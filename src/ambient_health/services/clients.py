"""Clients for the external collaborators: transcription, TTS, day stats, messages.

Architecture
~~~~~~~~~~~~
* **Protocols** — ``Transcriber``, ``Synthesizer``, ``DailyStatsProvider``,
  ``MessageProvider``: the only surface the engine depends on.
* **Http*** — httpx implementations talking to a local companion service.
* **Offline*** — used when no URL is configured.
* **create_*()** — factories that pick one from settings.

HTTP and payload failures are wrapped into the package's typed errors so
callers never have to know about httpx.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

import httpx
import structlog
from pydantic import ValidationError

from ambient_health.errors import CollaboratorError, SynthesisError, TranscriptionError
from ambient_health.models import AgentMessage, DayStats

if TYPE_CHECKING:
    from ambient_health.config import Settings

logger = structlog.get_logger(__name__)


# ── Protocols ─────────────────────────────────────────────────


class Transcriber(Protocol):
    async def transcribe(self, audio: bytes) -> str: ...


class Synthesizer(Protocol):
    async def synthesize(self, text: str) -> bytes: ...


class DailyStatsProvider(Protocol):
    async def get_daily_stats(self) -> DayStats: ...


class MessageProvider(Protocol):
    async def get_message(self) -> AgentMessage: ...


# ── HTTP implementations ──────────────────────────────────────


class HttpTranscriber:
    """``POST {base_url}/transcribe`` with a WAV body → ``{"text": ...}``."""

    def __init__(self, base_url: str, *, language: str = "en", timeout: float = 30.0) -> None:
        self._base_url = base_url.rstrip("/")
        self._language = language
        self._timeout = timeout

    async def transcribe(self, audio: bytes) -> str:
        try:
            async with httpx.AsyncClient(base_url=self._base_url, timeout=self._timeout) as client:
                resp = await client.post(
                    "/transcribe",
                    content=audio,
                    params={"language": self._language},
                    headers={"Content-Type": "audio/wav"},
                )
                resp.raise_for_status()
                text = resp.json().get("text", "")
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("transcriber.request_failed", error=str(exc))
            raise TranscriptionError(str(exc)) from exc
        return str(text).strip()


class HttpSynthesizer:
    """``POST {base_url}/synthesize`` with ``{"text": ...}`` → WAV bytes."""

    def __init__(self, base_url: str, *, timeout: float = 30.0) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    async def synthesize(self, text: str) -> bytes:
        try:
            async with httpx.AsyncClient(base_url=self._base_url, timeout=self._timeout) as client:
                resp = await client.post("/synthesize", json={"text": text})
                resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("synthesizer.request_failed", error=str(exc))
            raise SynthesisError(str(exc)) from exc
        if not resp.content:
            raise SynthesisError("Synthesis returned no audio")
        return resp.content


class HttpDailyStatsProvider:
    """``GET {base_url}/stats/daily`` → :class:`DayStats` JSON (camelCase)."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    async def get_daily_stats(self) -> DayStats:
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url, timeout=self._timeout, transport=self._transport
            ) as client:
                resp = await client.get("/stats/daily")
                resp.raise_for_status()
                return DayStats.model_validate(resp.json())
        except (httpx.HTTPError, ValidationError, ValueError) as exc:
            logger.error("stats_provider.request_failed", error=str(exc))
            raise CollaboratorError(f"daily stats: {exc}") from exc


class HttpMessageProvider:
    """``GET {base_url}/message`` → :class:`AgentMessage` JSON."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    async def get_message(self) -> AgentMessage:
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url, timeout=self._timeout, transport=self._transport
            ) as client:
                resp = await client.get("/message")
                resp.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("message_provider.request_failed", error=str(exc))
            raise CollaboratorError(f"agent message: {exc}") from exc
        try:
            return AgentMessage.model_validate(resp.json())
        except (ValidationError, ValueError) as exc:
            logger.error("message_provider.invalid_payload", body=resp.text[:200])
            raise CollaboratorError(f"agent message payload: {exc}") from exc


# ── Offline fallbacks ─────────────────────────────────────────


class OfflineTranscriber:
    async def transcribe(self, audio: bytes) -> str:
        raise TranscriptionError("No transcription service configured.")


class OfflineSynthesizer:
    async def synthesize(self, text: str) -> bytes:
        raise SynthesisError("No synthesis service configured.")


class StaticDailyStatsProvider:
    """Fixed snapshot for development without a stats service."""

    def __init__(self, stats: DayStats | None = None) -> None:
        self._stats = stats or DayStats(
            adherence_percent=80,
            breaks_taken=3,
            avg_posture_score=72,
            focus_minutes=360,
            voice_commands=8,
        )

    async def get_daily_stats(self) -> DayStats:
        return self._stats


class StaticMessageProvider:
    async def get_message(self) -> AgentMessage:
        return AgentMessage(text="System stable. Monitoring recovery indicators.")


# ── Factories ─────────────────────────────────────────────────


def create_transcriber(settings: Settings) -> Transcriber:
    if settings.transcription_url:
        return HttpTranscriber(
            settings.transcription_url,
            language=settings.transcription_language,
            timeout=settings.collaborator_timeout,
        )
    return OfflineTranscriber()


def create_synthesizer(settings: Settings) -> Synthesizer:
    if settings.synthesis_url:
        return HttpSynthesizer(settings.synthesis_url, timeout=settings.collaborator_timeout)
    return OfflineSynthesizer()


def create_stats_provider(settings: Settings) -> DailyStatsProvider:
    if settings.stats_url:
        return HttpDailyStatsProvider(settings.stats_url)
    return StaticDailyStatsProvider()


def create_message_provider(settings: Settings) -> MessageProvider:
    if settings.message_url:
        return HttpMessageProvider(settings.message_url, timeout=settings.collaborator_timeout)
    return StaticMessageProvider()
