"""Tests for the push-to-talk voice capture state machine."""

from __future__ import annotations

import asyncio

import numpy as np
import pytest

from ambient_health.errors import DeviceUnavailableError, TranscriptionError
from ambient_health.models import TranscriptReceived, VoiceCaptureState, VoiceStateChanged
from ambient_health.voice.capture import VoiceCaptureController
from ambient_health.voice.vad import UtteranceSegmenter, rms
from conftest import ScriptedMicrophone, silence, tone

S = VoiceCaptureState


class FakeTranscriber:
    def __init__(self, text: str = "what's my posture", *, error: Exception | None = None) -> None:
        self.text = text
        self.error = error
        self.calls: list[bytes] = []
        self.gate: asyncio.Event | None = None

    async def transcribe(self, audio: bytes) -> str:
        self.calls.append(audio)
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.text


class UnpluggedMicrophone(ScriptedMicrophone):
    """Fails mid-capture, like a USB headset being pulled out."""

    def __init__(self, *args, fail_after: int = 3, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.fail_after = fail_after
        self.reads = 0
        self.unplugged = True

    async def read(self) -> np.ndarray:
        self.reads += 1
        if self.unplugged and self.reads > self.fail_after:
            raise DeviceUnavailableError("microphone unplugged")
        return await super().read()


def utterance(loud: int = 20, quiet: int = 60) -> list[np.ndarray]:
    """~0.64 s of speech followed by ~1.9 s of silence at 32 ms per block."""
    return [tone() for _ in range(loud)] + [silence() for _ in range(quiet)]


def states(bus) -> list[VoiceCaptureState]:
    return [e.state for e in bus.drain() if isinstance(e, VoiceStateChanged)]


async def wait_for_state(ctrl: VoiceCaptureController, state: VoiceCaptureState) -> None:
    for _ in range(20_000):
        if ctrl.state is state:
            return
        await asyncio.sleep(0)
    raise AssertionError(f"never reached {state}")


def _controller(mic, transcriber, bus=None, clock=None, **kwargs) -> VoiceCaptureController:
    kwargs.setdefault("cooldown", 0.01)
    return VoiceCaptureController(mic, transcriber, bus=bus, clock=clock, **kwargs)


class TestSegmenter:
    def test_rms(self):
        assert rms(tone(0.5)) == pytest.approx(0.5)
        assert rms(np.array([], dtype=np.float32)) == 0.0

    def test_utterance_is_returned_after_silence(self):
        seg = UtteranceSegmenter(silence=1.0, min_speech=0.5)
        t = 0.0
        result = None
        for block in utterance(loud=20, quiet=40):
            result = seg.process(block, t) if result is None else result
            t += 0.032
        assert result is not None
        assert len(result) > 20 * 512

    def test_short_burst_is_dropped(self):
        seg = UtteranceSegmenter(silence=0.2, min_speech=0.5)
        t = 0.0
        for block in utterance(loud=3, quiet=20):
            assert seg.process(block, t) is None
            t += 0.032
        assert seg.speaking is False


class TestVoiceCaptureController:
    @pytest.mark.asyncio
    async def test_full_cycle_transcribes(self, clock, bus):
        mic = ScriptedMicrophone(utterance(), clock=clock)
        transcriber = FakeTranscriber("take a break")
        received: list[str] = []

        async def on_transcript(text: str) -> None:
            received.append(text)

        ctrl = _controller(mic, transcriber, bus, clock, on_transcript=on_transcript)
        assert await ctrl.activate() is True
        await ctrl.join()

        assert ctrl.state is S.READY
        assert ctrl.last_transcript == "take a break"
        assert received == ["take a break"]
        assert len(transcriber.calls) == 1
        assert mic.is_open is False
        events = bus.drain()
        assert [e.state for e in events if isinstance(e, VoiceStateChanged)] == [
            S.LISTENING, S.PROCESSING, S.COOLDOWN, S.READY,
        ]
        assert any(isinstance(e, TranscriptReceived) for e in events)

    @pytest.mark.asyncio
    async def test_timeout_skips_processing(self, clock, bus):
        mic = ScriptedMicrophone([], clock=clock)
        transcriber = FakeTranscriber()
        ctrl = _controller(mic, transcriber, bus, clock, listen_timeout=1.0)
        await ctrl.activate()
        await ctrl.join()

        assert states(bus) == [S.LISTENING, S.COOLDOWN, S.READY]
        assert transcriber.calls == []
        assert mic.close_calls >= 1

    @pytest.mark.asyncio
    async def test_activation_ignored_while_processing(self, clock, bus):
        mic = ScriptedMicrophone(utterance(), clock=clock)
        transcriber = FakeTranscriber()
        transcriber.gate = asyncio.Event()
        ctrl = _controller(mic, transcriber, bus, clock)

        await ctrl.activate()
        await wait_for_state(ctrl, S.PROCESSING)
        assert await ctrl.activate() is False
        assert await ctrl.deactivate() is False
        assert ctrl.state is S.PROCESSING

        transcriber.gate.set()
        await ctrl.join()
        assert mic.open_calls == 1
        assert states(bus) == [S.LISTENING, S.PROCESSING, S.COOLDOWN, S.READY]

    @pytest.mark.asyncio
    async def test_activation_ignored_during_cooldown(self, clock):
        mic = ScriptedMicrophone(utterance(), clock=clock)
        ctrl = _controller(mic, FakeTranscriber(), clock=clock, cooldown=0.2)
        await ctrl.activate()
        await wait_for_state(ctrl, S.COOLDOWN)
        assert await ctrl.activate() is False
        await ctrl.join()
        assert ctrl.state is S.READY

    @pytest.mark.asyncio
    async def test_manual_deactivation_from_listening(self, clock, bus):
        mic = ScriptedMicrophone([], clock=clock)
        ctrl = _controller(mic, FakeTranscriber(), bus, clock)
        await ctrl.activate()
        assert await ctrl.deactivate() is True

        assert ctrl.state is S.READY
        assert mic.is_open is False
        assert states(bus) == [S.LISTENING, S.READY]
        assert await ctrl.deactivate() is False

    @pytest.mark.asyncio
    async def test_toggle(self, clock):
        mic = ScriptedMicrophone([], clock=clock)
        ctrl = _controller(mic, FakeTranscriber(), clock=clock)
        await ctrl.toggle()
        assert ctrl.state is S.LISTENING
        await ctrl.toggle()
        assert ctrl.state is S.READY

    @pytest.mark.asyncio
    async def test_microphone_unavailable_surfaces_error(self, clock, bus):
        mic = ScriptedMicrophone(clock=clock, available=False)
        ctrl = _controller(mic, FakeTranscriber(), bus, clock)
        assert await ctrl.activate() is False
        assert ctrl.state is S.READY
        assert ctrl.error is not None
        events = [e for e in bus.drain() if isinstance(e, VoiceStateChanged)]
        assert events[0].error == ctrl.error

    @pytest.mark.asyncio
    async def test_transcription_failure_returns_to_ready(self, clock):
        mic = ScriptedMicrophone(utterance(), clock=clock)
        transcriber = FakeTranscriber(error=TranscriptionError("service down"))
        ctrl = _controller(mic, transcriber, clock=clock)
        await ctrl.activate()
        await ctrl.join()

        assert ctrl.state is S.READY
        assert ctrl.error == "service down"
        assert ctrl.last_transcript is None

    @pytest.mark.asyncio
    async def test_small_segment_is_discarded(self, clock):
        mic = ScriptedMicrophone(utterance(), clock=clock)
        transcriber = FakeTranscriber()
        ctrl = _controller(mic, transcriber, clock=clock, listen_timeout=5.0, min_segment_bytes=10**9)
        await ctrl.activate()
        await ctrl.join()

        assert transcriber.calls == []
        assert ctrl.error is None

    @pytest.mark.asyncio
    async def test_close_from_any_state(self, clock):
        mic = ScriptedMicrophone(utterance(), clock=clock)
        transcriber = FakeTranscriber()
        transcriber.gate = asyncio.Event()
        ctrl = _controller(mic, transcriber, clock=clock)
        await ctrl.activate()
        await wait_for_state(ctrl, S.PROCESSING)
        await ctrl.close()
        assert ctrl.state is S.READY
        assert mic.is_open is False

    @pytest.mark.asyncio
    async def test_microphone_read_failure_goes_to_cooldown(self, clock, bus):
        mic = UnpluggedMicrophone(utterance(loud=5), clock=clock)
        transcriber = FakeTranscriber()
        ctrl = _controller(mic, transcriber, bus, clock)
        assert await ctrl.activate() is True
        await ctrl.join()

        assert ctrl.state is S.READY
        assert ctrl.error == "microphone unplugged"
        assert transcriber.calls == []
        assert mic.is_open is False
        assert states(bus) == [S.LISTENING, S.COOLDOWN, S.READY]

        # The controller is usable again once the device comes back.
        mic.unplugged = False
        mic.reads = 0
        assert await ctrl.activate() is True
        assert ctrl.error is None
        await ctrl.close()
