"""Tests for backend selection, frame helpers and WAV packing."""

import asyncio
import threading
import time

import numpy as np
import pytest

from conftest import truncated_wav

from ambient_health.errors import AudioDecodeError, DeviceUnavailableError
from ambient_health.sensors import camera
from ambient_health.sensors.camera import to_luma
from ambient_health.sensors.frames import crop, luma_from_rgb
from ambient_health.sensors.null import NullAudioOutput, NullFrameSource, NullMicrophone
from ambient_health.sensors.registry import available_backends, get_backends, register_backend
from ambient_health.sensors.wav import decode_wav, encode_wav


class TestRegistry:
    def test_builtin_backends(self):
        assert {"device", "null"} <= set(available_backends())

    def test_unknown_backend_lists_available(self):
        with pytest.raises(ValueError, match="Available"):
            get_backends("quantum")

    def test_register_custom_backend(self):
        register_backend("custom", get_backends("null"))
        assert get_backends("custom").frame_source is NullFrameSource


class TestNullBackends:
    @pytest.mark.asyncio
    async def test_null_camera_and_microphone_are_unavailable(self):
        with pytest.raises(DeviceUnavailableError):
            await NullFrameSource().open()
        with pytest.raises(DeviceUnavailableError):
            await NullMicrophone().open()

    @pytest.mark.asyncio
    async def test_null_output_closes(self):
        out = NullAudioOutput()
        await out.play(np.zeros(16, dtype=np.float32), 16_000)
        await out.close()
        assert out.closed is True


class TestFrames:
    def test_crop_uses_fractions(self):
        luma = np.arange(100, dtype=np.float32).reshape(10, 10)
        zone = crop(luma, 0.3, 0.2, 0.4, 0.6)
        assert zone.shape == (6, 4)
        assert zone[0, 0] == 23

    def test_luma_weights(self):
        rgb = np.zeros((1, 3, 3), dtype=np.uint8)
        rgb[0, 0] = (255, 0, 0)
        rgb[0, 1] = (0, 255, 0)
        rgb[0, 2] = (255, 255, 255)
        luma = luma_from_rgb(rgb)
        assert luma[0, 0] == pytest.approx(76.245, abs=0.01)
        assert luma[0, 1] == pytest.approx(149.685, abs=0.01)
        assert luma[0, 2] == pytest.approx(255.0, abs=0.01)

    def test_to_luma_downscales_bgr(self):
        frame = np.zeros((480, 640, 3), dtype=np.uint8)
        frame[..., 2] = 255  # red in BGR order
        luma = to_luma(frame, (160, 120))
        assert luma.shape == (120, 160)
        assert float(luma.mean()) == pytest.approx(76.245, abs=0.5)


class TestWav:
    def test_encoded_audio_decodes_to_same_length(self):
        samples = np.sin(np.linspace(0, 20, 1600)).astype(np.float32) * 0.5
        decoded, rate = decode_wav(encode_wav(samples, 16_000))
        assert rate == 16_000
        assert decoded.shape == samples.shape
        assert np.max(np.abs(decoded - samples)) < 1e-3

    @pytest.mark.parametrize("payload", [b"", b"not a wav file", b"RIFF\x00\x00"])
    def test_garbage_raises_decode_error(self, payload):
        with pytest.raises(AudioDecodeError):
            decode_wav(payload)

    def test_data_chunk_ending_mid_sample(self):
        with pytest.raises(AudioDecodeError):
            decode_wav(truncated_wav(200, b"\x01\x02\x03"))

    def test_stereo_data_ending_mid_frame(self):
        with pytest.raises(AudioDecodeError):
            decode_wav(truncated_wav(8, b"\x00" * 6, channels=2))

    def test_empty_wav_is_rejected(self):
        with pytest.raises(AudioDecodeError):
            decode_wav(encode_wav(np.zeros(0, dtype=np.float32), 16_000))


class CountingCapture:
    """Stand-in for ``cv2.VideoCapture`` that records overlapping reads."""

    def __init__(self, index: int) -> None:
        self.index = index
        self.active = 0
        self.peak = 0
        self.released = False
        self._guard = threading.Lock()

    def isOpened(self) -> bool:
        return True

    def read(self):
        with self._guard:
            self.active += 1
            self.peak = max(self.peak, self.active)
        time.sleep(0.02)
        with self._guard:
            self.active -= 1
        return True, np.zeros((480, 640, 3), dtype=np.uint8)

    def release(self) -> None:
        self.released = True


class TestOpenCVFrameSource:
    @pytest.mark.asyncio
    async def test_shared_source_reads_one_frame_at_a_time(self, monkeypatch):
        captures: list[CountingCapture] = []

        def factory(index: int) -> CountingCapture:
            captures.append(CountingCapture(index))
            return captures[-1]

        monkeypatch.setattr(camera.cv2, "VideoCapture", factory)
        source = camera.OpenCVFrameSource(0)
        await source.open()

        frames = await asyncio.gather(*(source.sample() for _ in range(4)))
        await source.close()

        assert all(f is not None and f.shape == (120, 160) for f in frames)
        assert captures[0].peak == 1
        assert captures[0].released is True
        assert source.is_open is False
