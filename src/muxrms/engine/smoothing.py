from __future__ import annotations

from collections import deque
from typing import Deque, List, Sequence, Tuple

import numpy as np


class SmoothingMatrix:
    """
    Trailing moving average over the last `depth` readings of every probe.
    Rows are recency (row 0 oldest), columns are probes.
    """

    def __init__(self, depth: int = 7, probes: int = 7) -> None:
        if depth <= 0 or probes <= 0:
            raise ValueError("depth and probes must be positive")
        self.depth = depth
        self.probes = probes
        self._rows = np.zeros((depth, probes), dtype=float)

    def push(self, values: Sequence[float]) -> np.ndarray:
        newest = np.asarray(values, dtype=float)
        if newest.shape != (self.probes,):
            raise ValueError(f"expected {self.probes} readings, got {newest.size}")
        self._rows = np.vstack([self._rows[1:], newest])
        return self.filtered()

    def filtered(self) -> np.ndarray:
        return self._rows.mean(axis=0)

    def rows(self) -> np.ndarray:
        return self._rows.copy()

    def reset(self) -> None:
        self._rows = np.zeros((self.depth, self.probes), dtype=float)


class ProbeHistory:
    """One bounded FIFO per probe; the oldest entry is evicted at capacity."""

    def __init__(self, probes: int = 7, capacity: int = 200) -> None:
        if probes <= 0 or capacity <= 0:
            raise ValueError("probes and capacity must be positive")
        self.capacity = capacity
        self._buffers: List[Deque[float]] = [deque(maxlen=capacity) for _ in range(probes)]

    def __len__(self) -> int:
        return len(self._buffers)

    def append(self, values: Sequence[float]) -> None:
        if len(values) != len(self._buffers):
            raise ValueError(f"expected {len(self._buffers)} values, got {len(values)}")
        for buffer, value in zip(self._buffers, values):
            buffer.append(float(value))

    def series(self, probe: int) -> List[float]:
        return list(self._buffers[probe])

    def snapshot(self) -> Tuple[Tuple[float, ...], ...]:
        return tuple(tuple(buffer) for buffer in self._buffers)

    def points(self, probe: int) -> List[Tuple[float, float]]:
        return history_points(self._buffers[probe])

    def clear(self) -> None:
        for buffer in self._buffers:
            buffer.clear()


def history_points(values: Sequence[float]) -> List[Tuple[float, float]]:
    """Pair history values with the chart x-axis `(i + 1) / len / 2`."""
    count = len(values)
    return [((i + 1.0) / count / 2.0, float(value)) for i, value in enumerate(values)]
