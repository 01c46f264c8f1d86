"""WAV packing/unpacking for captured utterances and synthesized speech."""

from __future__ import annotations

import io
import wave

import numpy as np

from ambient_health.errors import AudioDecodeError

# sample width in bytes -> (numpy dtype, zero offset, full scale)
_SAMPLE_FORMATS: dict[int, tuple[str, float, float]] = {
    1: ("u1", 128.0, 128.0),
    2: ("<i2", 0.0, 32768.0),
    4: ("<i4", 0.0, 2_147_483_648.0),
}


def encode_wav(samples: np.ndarray, sample_rate: int) -> bytes:
    """Pack mono ``float32`` samples in [-1, 1] as 16-bit PCM WAV bytes."""
    pcm = (np.clip(samples, -1.0, 1.0) * 32767).astype("<i2")
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wav_file:
        wav_file.setnchannels(1)
        wav_file.setsampwidth(2)
        wav_file.setframerate(sample_rate)
        wav_file.writeframes(pcm.tobytes())
    return buf.getvalue()


def decode_wav(data: bytes) -> tuple[np.ndarray, int]:
    """Unpack 8/16/32-bit PCM WAV bytes into ``float32`` samples.

    Multi-channel audio is returned as an ``(frames, channels)`` array.
    Raises :class:`AudioDecodeError` for anything that is not a readable WAV.
    """
    try:
        with wave.open(io.BytesIO(data), "rb") as wav_file:
            channels = wav_file.getnchannels()
            width = wav_file.getsampwidth()
            rate = wav_file.getframerate()
            frames = wav_file.readframes(wav_file.getnframes())
    except (wave.Error, EOFError) as exc:
        raise AudioDecodeError(f"Unreadable WAV data: {exc}") from exc

    if width not in _SAMPLE_FORMATS:
        raise AudioDecodeError(f"Unsupported sample width: {width} bytes")
    dtype, offset, scale = _SAMPLE_FORMATS[width]

    # A truncated data chunk can end mid-sample or mid-frame.
    try:
        samples = (np.frombuffer(frames, dtype=dtype).astype(np.float32) - offset) / scale
        if channels > 1:
            samples = samples.reshape(-1, channels)
    except ValueError as exc:
        raise AudioDecodeError(f"Truncated WAV data: {exc}") from exc

    if samples.size == 0:
        raise AudioDecodeError("WAV data contains no frames")
    return samples, rate
