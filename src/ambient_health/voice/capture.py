"""Push-to-talk voice capture: ready → listening → processing → cooldown → ready.

Activation opens the microphone and starts a fixed countdown.  While
listening, an amplitude VAD cuts the first qualifying utterance, which is
handed to the transcription collaborator.  Whatever the outcome, the
controller then dwells in cooldown (reactivation ignored) before returning
to ready.  Manual deactivation is only honoured while listening.
"""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable

import structlog

from ambient_health.errors import DeviceUnavailableError
from ambient_health.models import TranscriptReceived, VoiceCaptureState, VoiceStateChanged
from ambient_health.sensors.base import MicrophoneSource
from ambient_health.sensors.wav import encode_wav
from ambient_health.services.clients import Transcriber
from ambient_health.streaming.bus import EventBus
from ambient_health.voice.vad import UtteranceSegmenter

logger = structlog.get_logger(__name__)

_S = VoiceCaptureState

# Every transition the controller may take; anything else is a bug.
_TRANSITIONS: dict[VoiceCaptureState, frozenset[VoiceCaptureState]] = {
    _S.READY: frozenset({_S.LISTENING}),
    _S.LISTENING: frozenset({_S.PROCESSING, _S.COOLDOWN, _S.READY}),
    _S.PROCESSING: frozenset({_S.COOLDOWN}),
    _S.COOLDOWN: frozenset({_S.READY}),
}

TranscriptCallback = Callable[[str], Awaitable[None]]


class VoiceCaptureController:
    """Own one microphone session and its capture state machine."""

    def __init__(
        self,
        microphone: MicrophoneSource,
        transcriber: Transcriber,
        *,
        bus: EventBus | None = None,
        on_transcript: TranscriptCallback | None = None,
        listen_timeout: float = 30.0,
        silence: float = 1.5,
        min_speech: float = 0.5,
        amplitude_threshold: float = 0.015,
        cooldown: float = 2.0,
        min_segment_bytes: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._mic = microphone
        self._transcriber = transcriber
        self._bus = bus
        self._on_transcript = on_transcript
        self._listen_timeout = listen_timeout
        self._cooldown = cooldown
        self._min_segment_bytes = min_segment_bytes
        self._clock = clock
        self._segmenter = UtteranceSegmenter(
            amplitude_threshold=amplitude_threshold,
            silence=silence,
            min_speech=min_speech,
        )

        self._state = VoiceCaptureState.READY
        self._task: asyncio.Task | None = None
        self.error: str | None = None
        self.last_transcript: str | None = None

    # ── Public state ──────────────────────────────────────────

    @property
    def state(self) -> VoiceCaptureState:
        return self._state

    @property
    def is_speaking(self) -> bool:
        return self._segmenter.speaking

    # ── Commands ──────────────────────────────────────────────

    async def activate(self) -> bool:
        """Start listening.  Ignored (returns ``False``) unless ready."""
        if self._state is not VoiceCaptureState.READY:
            logger.debug("voice.activate_ignored", state=self._state.value)
            return False
        try:
            await self._mic.open()
        except DeviceUnavailableError as exc:
            self.error = str(exc)
            logger.warning("voice.microphone_unavailable", error=self.error)
            self._publish(VoiceStateChanged(state=self._state, error=self.error))
            return False

        self.error = None
        self._segmenter.reset()
        self._set_state(VoiceCaptureState.LISTENING)
        self._task = asyncio.create_task(self._run())
        return True

    async def deactivate(self) -> bool:
        """Abort an in-progress capture.  Only accepted while listening."""
        if self._state is not VoiceCaptureState.LISTENING:
            logger.debug("voice.deactivate_ignored", state=self._state.value)
            return False
        await self._cancel_task()
        await self._mic.close()
        self._segmenter.reset()
        self._set_state(VoiceCaptureState.READY)
        return True

    async def toggle(self) -> bool:
        if self._state is VoiceCaptureState.LISTENING:
            return await self.deactivate()
        return await self.activate()

    async def close(self) -> None:
        """Tear everything down from any state (shutdown path)."""
        await self._cancel_task()
        await self._mic.close()
        self._segmenter.reset()
        if self._state is not VoiceCaptureState.READY:
            self._state = VoiceCaptureState.READY
            self._publish(VoiceStateChanged(state=self._state))

    async def join(self) -> None:
        """Wait for the current capture cycle (if any) to return to ready."""
        if self._task is not None:
            await asyncio.shield(self._task)

    # ── Capture cycle ─────────────────────────────────────────

    async def _run(self) -> None:
        audio: bytes | None = None
        try:
            audio = await self._listen()
        except Exception as exc:
            self.error = str(exc) or type(exc).__name__
            logger.exception("voice.listen_failed")
        finally:
            await self._mic.close()

        if audio is not None:
            self._set_state(VoiceCaptureState.PROCESSING)
            await self._transcribe(audio)
        elif self.error is None:
            logger.info("voice.listen_timeout", timeout_seconds=self._listen_timeout)

        self._set_state(VoiceCaptureState.COOLDOWN)
        await asyncio.sleep(self._cooldown)
        self._set_state(VoiceCaptureState.READY)
        self._task = None

    async def _listen(self) -> bytes | None:
        """Return the first valid utterance as WAV bytes, or ``None`` on timeout."""
        deadline = self._clock() + self._listen_timeout
        while True:
            remaining = deadline - self._clock()
            if remaining <= 0:
                return None
            try:
                block = await asyncio.wait_for(self._mic.read(), timeout=remaining)
            except asyncio.TimeoutError:
                return None

            samples = self._segmenter.process(block, self._clock())
            if samples is None:
                continue
            audio = encode_wav(samples, self._mic.sample_rate)
            if len(audio) < self._min_segment_bytes:
                logger.debug("voice.segment_discarded", size=len(audio))
                continue
            return audio

    async def _transcribe(self, audio: bytes) -> None:
        try:
            text = await self._transcriber.transcribe(audio)
        except Exception as exc:
            self.error = str(exc)
            logger.error("voice.transcription_failed", error=self.error, size=len(audio))
            return

        text = text.strip()
        if not text:
            logger.info("voice.empty_transcript")
            return
        self.last_transcript = text
        logger.info("voice.transcript", chars=len(text))
        self._publish(TranscriptReceived(text=text))
        if self._on_transcript is not None:
            try:
                await self._on_transcript(text)
            except Exception:
                logger.exception("voice.transcript_handler_error")

    # ── Internals ─────────────────────────────────────────────

    def _set_state(self, new: VoiceCaptureState) -> None:
        if new not in _TRANSITIONS[self._state]:
            raise RuntimeError(f"Illegal voice capture transition {self._state.value} -> {new.value}")
        logger.debug("voice.state", previous=self._state.value, state=new.value)
        self._state = new
        self._publish(VoiceStateChanged(state=new, error=self.error))

    def _publish(self, event: VoiceStateChanged | TranscriptReceived) -> None:
        if self._bus is not None:
            self._bus.publish_nowait(event)

    async def _cancel_task(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
