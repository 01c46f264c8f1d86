"""sounddevice-backed microphone and speech output.

``sounddevice`` loads PortAudio when imported, so the import is deferred
until a device is actually opened; the null backend never touches it.
"""

from __future__ import annotations

import asyncio

import numpy as np
import structlog

from ambient_health.errors import DeviceUnavailableError
from ambient_health.sensors.base import AudioOutput, MicrophoneSource

logger = structlog.get_logger(__name__)


class SoundDeviceMicrophone(MicrophoneSource):
    """Capture mono blocks from the default input device.

    The PortAudio callback runs on its own thread; blocks are handed to the
    event loop with ``call_soon_threadsafe``.
    """

    name = "sounddevice"

    def __init__(self, sample_rate: int = 16_000, block_size: int = 512, max_blocks: int = 256) -> None:
        self.sample_rate = sample_rate
        self._block_size = block_size
        self._blocks: asyncio.Queue[np.ndarray] = asyncio.Queue(maxsize=max_blocks)
        self._loop: asyncio.AbstractEventLoop | None = None
        self._stream = None

    async def open(self) -> None:
        if self._stream is not None:
            return
        self._loop = asyncio.get_running_loop()
        try:
            import sounddevice as sd

            stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=1,
                dtype="float32",
                blocksize=self._block_size,
                callback=self._on_block,
            )
            stream.start()
        except Exception as exc:
            logger.warning("microphone.open_failed", error=str(exc))
            raise DeviceUnavailableError(f"Microphone not available: {exc}") from exc
        self._stream = stream
        logger.info("microphone.opened", sample_rate=self.sample_rate, block_size=self._block_size)

    def _on_block(self, indata, frames, time_info, status) -> None:  # noqa: ARG002
        if status:
            logger.debug("microphone.status", status=str(status))
        if self._loop is not None:
            self._loop.call_soon_threadsafe(self._enqueue, indata[:, 0].copy())

    def _enqueue(self, block: np.ndarray) -> None:
        if self._blocks.full():
            self._blocks.get_nowait()  # keep the freshest audio
        self._blocks.put_nowait(block)

    async def read(self) -> np.ndarray:
        return await self._blocks.get()

    async def close(self) -> None:
        stream, self._stream = self._stream, None
        if stream is not None:
            try:
                stream.stop()
                stream.close()
            except Exception as exc:
                logger.error("microphone.close_failed", error=str(exc))
            logger.info("microphone.released")
        while not self._blocks.empty():
            self._blocks.get_nowait()


class SoundDeviceOutput(AudioOutput):
    """Blocking playback through the default output device, run in a worker thread."""

    name = "sounddevice"

    def __init__(self) -> None:
        self._stream = None
        self._rate: int | None = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _ensure_stream(self, sample_rate: int, channels: int):
        import sounddevice as sd

        if self._stream is not None and self._rate == sample_rate and self._stream.channels == channels:
            return self._stream
        if self._stream is not None:
            self._stream.close()
        self._stream = sd.OutputStream(samplerate=sample_rate, channels=channels, dtype="float32")
        self._stream.start()
        self._rate = sample_rate
        return self._stream

    def _play_blocking(self, samples: np.ndarray, sample_rate: int) -> None:
        data = samples if samples.ndim == 2 else samples.reshape(-1, 1)
        stream = self._ensure_stream(sample_rate, data.shape[1])
        stream.write(np.ascontiguousarray(data, dtype=np.float32))

    async def play(self, samples: np.ndarray, sample_rate: int) -> None:
        if self._closed:
            raise DeviceUnavailableError("Audio output has been closed.")
        try:
            await asyncio.to_thread(self._play_blocking, samples, sample_rate)
        except Exception:
            self._closed = True
            raise

    async def close(self) -> None:
        self._closed = True
        stream, self._stream = self._stream, None
        if stream is not None:
            await asyncio.to_thread(stream.close)
