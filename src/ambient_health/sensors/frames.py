"""Helpers over sampled luma frames."""

from __future__ import annotations

import numpy as np

# Sampled frame size (width, height) used by presence and posture.
SAMPLE_SIZE = (160, 120)


def crop(luma: np.ndarray, x: float, y: float, w: float, h: float) -> np.ndarray:
    """Return the sub-rectangle given as fractions of the frame size."""
    rows, cols = luma.shape[:2]
    x0 = int(cols * x)
    y0 = int(rows * y)
    return luma[y0:y0 + int(rows * h), x0:x0 + int(cols * w)]


def luma_from_rgb(rgb: np.ndarray) -> np.ndarray:
    """Weighted luma (ITU-R BT.601) from an ``H×W×3`` RGB array."""
    rgb = rgb.astype(np.float32)
    return rgb[..., 0] * 0.299 + rgb[..., 1] * 0.587 + rgb[..., 2] * 0.114
