"""Tests for the external collaborator clients."""

import httpx
import pytest

from ambient_health.config import Settings
from ambient_health.errors import CollaboratorError, SynthesisError, TranscriptionError
from ambient_health.services.clients import (
    HttpDailyStatsProvider,
    HttpMessageProvider,
    HttpSynthesizer,
    HttpTranscriber,
    OfflineSynthesizer,
    OfflineTranscriber,
    StaticDailyStatsProvider,
    StaticMessageProvider,
    create_message_provider,
    create_stats_provider,
    create_synthesizer,
    create_transcriber,
)


class TestFactories:
    def test_offline_without_urls(self):
        s = Settings(_env_file=None)
        assert isinstance(create_transcriber(s), OfflineTranscriber)
        assert isinstance(create_synthesizer(s), OfflineSynthesizer)
        assert isinstance(create_stats_provider(s), StaticDailyStatsProvider)
        assert isinstance(create_message_provider(s), StaticMessageProvider)

    def test_http_with_urls(self):
        s = Settings(
            _env_file=None,
            transcription_url="http://localhost:8765",
            synthesis_url="http://localhost:8765",
            stats_url="http://localhost:8765",
        )
        assert isinstance(create_transcriber(s), HttpTranscriber)
        assert isinstance(create_synthesizer(s), HttpSynthesizer)
        assert isinstance(create_stats_provider(s), HttpDailyStatsProvider)


class TestOfflineClients:
    @pytest.mark.asyncio
    async def test_offline_voice_services_raise_typed_errors(self):
        with pytest.raises(TranscriptionError):
            await OfflineTranscriber().transcribe(b"RIFF")
        with pytest.raises(SynthesisError):
            await OfflineSynthesizer().synthesize("hello")

    @pytest.mark.asyncio
    async def test_static_day_stats(self):
        stats = await StaticDailyStatsProvider().get_daily_stats()
        assert (stats.adherence_percent, stats.breaks_taken, stats.focus_minutes) == (80, 3, 360)


class TestHttpClients:
    @pytest.mark.asyncio
    async def test_unreachable_transcriber_wraps_error(self):
        client = HttpTranscriber("http://127.0.0.1:9", timeout=0.5)
        with pytest.raises(TranscriptionError):
            await client.transcribe(b"RIFF")

    @pytest.mark.asyncio
    async def test_unreachable_synthesizer_wraps_error(self):
        client = HttpSynthesizer("http://127.0.0.1:9", timeout=0.5)
        with pytest.raises(SynthesisError):
            await client.synthesize("hello")

    @pytest.mark.asyncio
    async def test_stats_server_error_wraps_error(self):
        transport = httpx.MockTransport(lambda r: httpx.Response(503))
        client = HttpDailyStatsProvider("http://stats.local", transport=transport)
        with pytest.raises(CollaboratorError):
            await client.get_daily_stats()

    @pytest.mark.asyncio
    async def test_stats_parsed_from_camel_case(self):
        payload = {"adherencePercent": 91, "breaksTaken": 4, "focusMinutes": 300}
        transport = httpx.MockTransport(lambda r: httpx.Response(200, json=payload))
        stats = await HttpDailyStatsProvider("http://stats.local", transport=transport).get_daily_stats()
        assert (stats.adherence_percent, stats.breaks_taken, stats.focus_minutes) == (91, 4, 300)

    @pytest.mark.asyncio
    async def test_stats_invalid_payload_wraps_error(self):
        transport = httpx.MockTransport(lambda r: httpx.Response(200, content=b"<html>"))
        client = HttpDailyStatsProvider("http://stats.local", transport=transport)
        with pytest.raises(CollaboratorError):
            await client.get_daily_stats()

    @pytest.mark.asyncio
    async def test_message_invalid_payload_wraps_error(self):
        transport = httpx.MockTransport(lambda r: httpx.Response(200, json={"unexpected": True}))
        client = HttpMessageProvider("http://agent.local", transport=transport)
        with pytest.raises(CollaboratorError):
            await client.get_message()

    @pytest.mark.asyncio
    async def test_unreachable_message_service_wraps_error(self):
        client = HttpMessageProvider("http://127.0.0.1:9", timeout=0.5)
        with pytest.raises(CollaboratorError):
            await client.get_message()
