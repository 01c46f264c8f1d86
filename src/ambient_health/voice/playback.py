"""Serialised speech playback through one shared output device.

Every caller (alert auto-speak, agent messages, daily summary, manual
speak) enqueues a *producer*: a coroutine function returning audio bytes.
A single worker pops producers in enqueue order, awaits the bytes, decodes
them and plays them to completion before touching the next one, so two
utterances can never overlap.
"""

from __future__ import annotations

import asyncio
import itertools
from dataclasses import dataclass, field
from typing import Awaitable, Callable

import structlog

from ambient_health.errors import AudioDecodeError
from ambient_health.sensors.base import AudioOutput
from ambient_health.sensors.wav import decode_wav
from ambient_health.services.clients import Synthesizer

logger = structlog.get_logger(__name__)

AudioProducer = Callable[[], Awaitable[bytes]]
OutputFactory = Callable[[], AudioOutput]

_sequence = itertools.count(1)


@dataclass(slots=True)
class SpeechTask:
    """A deferred audio producer plus bookkeeping."""

    produce: AudioProducer
    label: str = ""
    seq: int = field(default_factory=lambda: next(_sequence))
    done: asyncio.Future | None = None


class SpeechQueue:
    """FIFO of :class:`SpeechTask` with an owned, lazily created output handle.

    Integration::

        queue = SpeechQueue(SoundDeviceOutput, synthesizer=synth)
        await queue.start()
        await queue.speak("Time for a break.")
        ...
        await queue.stop()

    A failing producer, decoder or device only loses its own task.  Decode
    and playback failures also discard the output handle; the next task
    gets a fresh one.
    """

    def __init__(
        self,
        output_factory: OutputFactory,
        *,
        synthesizer: Synthesizer | None = None,
        decoder: Callable[[bytes], tuple] = decode_wav,
    ) -> None:
        self._output_factory = output_factory
        self._synthesizer = synthesizer
        self._decode = decoder
        self._queue: asyncio.Queue[SpeechTask] = asyncio.Queue()
        self._output: AudioOutput | None = None
        self._worker: asyncio.Task | None = None
        self._active: SpeechTask | None = None
        self._played_total = 0
        self._failed_total = 0

    # ── Lifecycle ─────────────────────────────────────────────

    async def start(self) -> None:
        if self._worker is not None:
            return
        self._worker = asyncio.create_task(self._process_loop())
        logger.info("speech_queue.started")

    async def stop(self) -> None:
        """Cancel the worker, drop pending tasks and release the output device."""
        worker, self._worker = self._worker, None
        if worker is not None:
            worker.cancel()
            try:
                await worker
            except asyncio.CancelledError:
                pass
        dropped = 0
        while not self._queue.empty():
            task = self._queue.get_nowait()
            if task.done is not None and not task.done.done():
                task.done.cancel()
            dropped += 1
        await self._discard_output()
        logger.info("speech_queue.stopped", dropped=dropped, played_total=self._played_total)

    # ── Producer side ─────────────────────────────────────────

    def enqueue(self, produce: AudioProducer, label: str = "") -> asyncio.Future:
        """Append a producer; the returned future resolves once it has been handled."""
        task = SpeechTask(produce=produce, label=label, done=asyncio.get_running_loop().create_future())
        self._queue.put_nowait(task)
        logger.debug("speech_queue.enqueued", label=label, seq=task.seq, pending=self._queue.qsize())
        return task.done

    def speak(self, text: str, label: str = "speech") -> asyncio.Future:
        """Enqueue *text*; synthesis happens lazily when the task reaches the head."""
        if self._synthesizer is None:
            raise RuntimeError("SpeechQueue has no synthesizer")
        synthesizer = self._synthesizer

        async def _produce() -> bytes:
            return await synthesizer.synthesize(text)

        return self.enqueue(_produce, label=label)

    # ── Introspection ─────────────────────────────────────────

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def active(self) -> SpeechTask | None:
        return self._active

    @property
    def played_total(self) -> int:
        return self._played_total

    @property
    def failed_total(self) -> int:
        return self._failed_total

    # ── Worker ────────────────────────────────────────────────

    async def _process_loop(self) -> None:
        while True:
            task = await self._queue.get()
            self._active = task
            ok = False
            try:
                ok = await self._play(task)
            finally:
                self._active = None
                if ok:
                    self._played_total += 1
                else:
                    self._failed_total += 1
                if task.done is not None and not task.done.done():
                    task.done.set_result(ok)
                self._queue.task_done()

    async def _play(self, task: SpeechTask) -> bool:
        try:
            audio = await task.produce()
        except Exception as exc:
            logger.error("speech_queue.produce_failed", label=task.label, seq=task.seq, error=str(exc))
            return False

        try:
            samples, rate = self._decode(audio)
        except AudioDecodeError as exc:
            logger.error("speech_queue.decode_failed", label=task.label, seq=task.seq, error=str(exc))
            await self._discard_output()
            return False
        except Exception:
            logger.exception("speech_queue.decoder_error", label=task.label, seq=task.seq)
            await self._discard_output()
            return False

        output = self._ensure_output()
        try:
            await output.play(samples, rate)
        except Exception as exc:
            logger.error("speech_queue.playback_failed", label=task.label, seq=task.seq, error=str(exc))
            await self._discard_output()
            return False

        logger.debug("speech_queue.played", label=task.label, seq=task.seq)
        return True

    def _ensure_output(self) -> AudioOutput:
        if self._output is None or self._output.closed:
            self._output = self._output_factory()
            logger.debug("speech_queue.output_created", backend=self._output.name)
        return self._output

    async def _discard_output(self) -> None:
        output, self._output = self._output, None
        if output is None or output.closed:
            return
        try:
            await output.close()
        except Exception as exc:
            logger.warning("speech_queue.output_close_failed", error=str(exc))
