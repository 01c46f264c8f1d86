"""OpenCV-backed camera source producing downscaled luma frames."""

from __future__ import annotations

import asyncio

import cv2
import numpy as np
import structlog

from ambient_health.errors import DeviceUnavailableError
from ambient_health.sensors.base import FrameSource
from ambient_health.sensors.frames import SAMPLE_SIZE, luma_from_rgb

logger = structlog.get_logger(__name__)


def to_luma(frame: np.ndarray, size: tuple[int, int] = SAMPLE_SIZE) -> np.ndarray:
    """Downscale a BGR (or grayscale) capture frame and convert it to luma."""
    small = cv2.resize(frame, size, interpolation=cv2.INTER_AREA)
    if small.ndim == 2:
        return small.astype(np.float32)
    return luma_from_rgb(cv2.cvtColor(small, cv2.COLOR_BGR2RGB))


class OpenCVFrameSource(FrameSource):
    """Read frames from a local camera through ``cv2.VideoCapture``.

    Blocking device calls run in a worker thread so the event loop is never
    stalled while a frame is being grabbed.
    """

    name = "opencv"

    def __init__(self, camera_index: int = 0, *, size: tuple[int, int] = SAMPLE_SIZE) -> None:
        self._index = camera_index
        self._size = size
        self._cap: cv2.VideoCapture | None = None
        # VideoCapture is not thread-safe; presence and posture share one source.
        self._read_lock = asyncio.Lock()

    @property
    def is_open(self) -> bool:
        return self._cap is not None

    async def open(self) -> None:
        if self._cap is not None:
            return
        cap = await asyncio.to_thread(cv2.VideoCapture, self._index)
        if not cap.isOpened():
            cap.release()
            logger.warning("camera.open_failed", index=self._index)
            raise DeviceUnavailableError(f"Failed to open video capture on index {self._index}.")
        self._cap = cap
        logger.info("camera.opened", index=self._index, size=self._size)

    async def sample(self) -> np.ndarray | None:
        async with self._read_lock:
            if self._cap is None:
                return None
            ok, frame = await asyncio.to_thread(self._cap.read)
        if not ok or frame is None:
            logger.debug("camera.read_failed", index=self._index)
            return None
        return to_luma(frame, self._size)

    async def close(self) -> None:
        async with self._read_lock:
            if self._cap is None:
                return
            cap, self._cap = self._cap, None
            await asyncio.to_thread(cap.release)
        logger.info("camera.released", index=self._index)
