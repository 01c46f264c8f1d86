"""Amplitude-based voice activity detection and utterance segmentation."""

from __future__ import annotations

import numpy as np


def rms(samples: np.ndarray) -> float:
    """Root-mean-square amplitude of a block of ``float`` samples."""
    if samples.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(np.square(samples, dtype=np.float64))))


class UtteranceSegmenter:
    """Cut a stream of sample blocks into utterances.

    Recording starts on the first block whose RMS exceeds
    ``amplitude_threshold``.  It ends once the signal has stayed below the
    threshold for ``silence`` seconds; the utterance is returned only when
    the speech before that silence lasted at least ``min_speech`` seconds,
    otherwise it is dropped.
    """

    def __init__(
        self,
        *,
        amplitude_threshold: float = 0.015,
        silence: float = 1.5,
        min_speech: float = 0.5,
    ) -> None:
        self._threshold = amplitude_threshold
        self._silence = silence
        self._min_speech = min_speech
        self.reset()

    def reset(self) -> None:
        self._speaking = False
        self._speech_start = 0.0
        self._silence_start: float | None = None
        self._blocks: list[np.ndarray] = []

    @property
    def speaking(self) -> bool:
        return self._speaking

    def process(self, samples: np.ndarray, now: float) -> np.ndarray | None:
        """Consume one block; return the finished utterance's samples, if any."""
        if rms(samples) > self._threshold:
            if not self._speaking:
                self._speaking = True
                self._speech_start = now
                self._blocks = []
            self._silence_start = None
            self._blocks.append(samples)
            return None

        if not self._speaking:
            return None

        self._blocks.append(samples)
        if self._silence_start is None:
            self._silence_start = now
            return None
        if now - self._silence_start < self._silence:
            return None

        speech_duration = self._silence_start - self._speech_start
        blocks = self._blocks
        self.reset()
        if speech_duration < self._min_speech:
            return None
        return np.concatenate(blocks)
