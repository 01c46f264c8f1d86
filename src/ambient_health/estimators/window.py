"""Bounded rolling windows of timestamped samples."""

from __future__ import annotations

from collections import deque
from typing import Generic, Iterator, TypeVar

T = TypeVar("T")


class RollingWindow(Generic[T]):
    """Ordered samples bounded by count, by duration, or both.

    Samples are ``(timestamp, value)`` pairs appended in time order.  With a
    *duration*, :meth:`prune` drops everything older than ``now - duration``;
    with a *maxlen*, the oldest sample is evicted on overflow.
    """

    def __init__(self, *, maxlen: int | None = None, duration: float | None = None) -> None:
        if maxlen is None and duration is None:
            raise ValueError("RollingWindow needs a maxlen, a duration, or both")
        self._samples: deque[tuple[float, T]] = deque(maxlen=maxlen)
        self._duration = duration

    def append(self, value: T, at: float) -> None:
        self._samples.append((at, value))

    def prune(self, now: float) -> None:
        """Drop samples outside ``(now - duration, now]``."""
        if self._duration is None:
            return
        cutoff = now - self._duration
        while self._samples and self._samples[0][0] <= cutoff:
            self._samples.popleft()

    def values(self) -> list[T]:
        return [v for _, v in self._samples]

    def mean(self) -> float:
        """Arithmetic mean of numeric values (0.0 when empty)."""
        if not self._samples:
            return 0.0
        return sum(v for _, v in self._samples) / len(self._samples)  # type: ignore[misc]

    def clear(self) -> None:
        self._samples.clear()

    @property
    def full(self) -> bool:
        return self._samples.maxlen is not None and len(self._samples) == self._samples.maxlen

    def __len__(self) -> int:
        return len(self._samples)

    def __iter__(self) -> Iterator[tuple[float, T]]:
        return iter(self._samples)
