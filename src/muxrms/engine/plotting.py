from __future__ import annotations

import logging
import threading
from typing import List, Optional, Sequence, Tuple

import matplotlib.pyplot as plt
from matplotlib.animation import FuncAnimation

from .processing import BlockResult

Points = List[Tuple[float, float]]


class LivePlotter:
    """Realtime chart with one smoothed history trace per probe."""

    def __init__(
        self,
        *,
        probes: int = 7,
        mode_label: str = "Impedance",
        visible: Optional[Sequence[int]] = None,
        refresh_ms: int = 200,
    ) -> None:
        self._logger = logging.getLogger(__name__)
        self._lock = threading.Lock()
        self._probes = probes
        self._visible = list(visible) if visible is not None else list(range(probes))
        self._points: List[Points] = [[] for _ in range(probes)]
        self._mode_label = mode_label
        self._running = True
        self._autoscale_every = 5
        self._autoscale_counter = 0

        self.fig, self.ax = plt.subplots(figsize=(11, 6))
        self.ax.set_title(mode_label)
        self.ax.set_xlabel("History position")
        self.ax.set_ylabel(mode_label)
        self.lines = []
        for probe in range(probes):
            line, = self.ax.plot([], [], label=f"probe {probe}")
            line.set_visible(probe in self._visible)
            self.lines.append(line)
        self.ax.legend(loc="upper left")

        self._anim = FuncAnimation(self.fig, self._update_plot, interval=refresh_ms, blit=False)

        self._thread = threading.Thread(target=self._loop, daemon=True)
        self._thread.start()

    def _loop(self) -> None:  # pragma: no cover - GUI loop
        plt.show(block=False)
        while self._running:
            try:
                plt.pause(0.1)
            except Exception:
                break

    def on_result(self, result: BlockResult) -> None:
        with self._lock:
            self._mode_label = result.mode_label
            for probe in range(min(self._probes, len(result.history))):
                self._points[probe] = result.points(probe)

    def _update_plot(self, _frame):  # pragma: no cover - GUI callback
        with self._lock:
            series = [list(points) for points in self._points]
            label = self._mode_label

        if self.ax.get_title() != label:
            self.ax.set_title(label)
            self.ax.set_ylabel(label)
        for line, points in zip(self.lines, series):
            if not points:
                continue
            xs, ys = zip(*points)
            line.set_data(xs, ys)
        self.ax.set_xlim(0.0, 0.5)

        self._autoscale_counter = (self._autoscale_counter + 1) % self._autoscale_every
        if self._autoscale_counter == 0:
            self.ax.relim()
            self.ax.autoscale_view(scalex=False)

        return tuple(self.lines)

    def close(self) -> None:
        self._running = False
        try:
            plt.close(self.fig)
        except Exception:
            self._logger.debug("Closing figure failed", exc_info=True)
        thread = getattr(self, "_thread", None)
        if thread and thread.is_alive():
            thread.join(timeout=1.0)
