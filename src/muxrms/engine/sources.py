"""
Block sources standing in for the acquisition hardware. Each source yields
`RawBlock`s of a fixed length, one at a time.
"""
from __future__ import annotations

import logging
import time
from typing import Iterator, Optional, Protocol, Sequence, Tuple

import numpy as np

from .config import MuxConfig
from .frames import RawBlock

logger = logging.getLogger(__name__)


class BlockSource(Protocol):
    def blocks(self) -> Iterator[RawBlock]:
        ...

    def close(self) -> None:
        ...


def synthesize_frame(
    config: MuxConfig,
    levels: Sequence[float],
    *,
    reference_level: float = 1.0,
    carrier_hz: float = 1000.0,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    One multiplexer sweep: the quiet control window followed by one segment
    per probe. Probe `p` carries a sine whose RMS equals `levels[p]` on the
    primary channel and `reference_level` on the reference channel.
    """
    seg = config.segment
    if len(levels) != config.probe_count:
        raise ValueError(f"expected {config.probe_count} probe levels, got {len(levels)}")
    frame_len = seg.samples_control + config.probe_count * seg.segment_length
    t = np.arange(frame_len) / config.acquisition.sample_rate_hz
    carrier = np.sqrt(2.0) * np.sin(2.0 * np.pi * carrier_hz * t)
    primary = np.zeros(frame_len)
    reference = np.zeros(frame_len)
    for probe, level in enumerate(levels):
        start = seg.samples_control + probe * seg.segment_length
        window = slice(start, start + seg.segment_length)
        primary[window] = level * carrier[window]
        reference[window] = reference_level * carrier[window]
    return primary, reference


class SyntheticSource:
    """
    Continuous multiplexed signal cut into blocks. `phase_step` shifts the
    frame by that many samples per block to emulate clock drift.
    """

    def __init__(
        self,
        config: MuxConfig,
        levels: Optional[Sequence[float]] = None,
        *,
        reference_level: float = 1.0,
        carrier_hz: float = 1000.0,
        noise_std: float = 0.002,
        phase: int = 0,
        phase_step: int = 0,
        max_blocks: Optional[int] = None,
        realtime: bool = False,
        seed: Optional[int] = None,
    ) -> None:
        self.config = config
        self.levels = list(levels) if levels is not None else [float(p + 1) for p in range(config.probe_count)]
        self._primary, self._reference = synthesize_frame(
            config, self.levels, reference_level=reference_level, carrier_hz=carrier_hz
        )
        self.noise_std = noise_std
        self.phase = phase
        self.phase_step = phase_step
        self.max_blocks = max_blocks
        self.realtime = realtime
        self._rng = np.random.default_rng(seed)
        self._closed = False

    @property
    def frame_length(self) -> int:
        return int(self._primary.size)

    def blocks(self) -> Iterator[RawBlock]:
        n = self.config.acquisition.block_length
        period = n / self.config.acquisition.sample_rate_hz
        position = self.phase
        emitted = 0
        while not self._closed and (self.max_blocks is None or emitted < self.max_blocks):
            idx = (position + np.arange(n)) % self.frame_length
            primary = self._primary[idx]
            reference = self._reference[idx]
            if self.noise_std > 0:
                primary = primary + self._rng.normal(scale=self.noise_std, size=n)
                reference = reference + self._rng.normal(scale=self.noise_std, size=n)
            yield RawBlock(primary=primary, reference=reference)
            emitted += 1
            position = (position + n + self.phase_step) % self.frame_length
            if self.realtime:
                time.sleep(period)

    def close(self) -> None:
        self._closed = True


class RecordedSource:
    """Replays a recorded two-channel waveform in consecutive blocks."""

    def __init__(
        self,
        primary: np.ndarray,
        reference: np.ndarray,
        block_length: int,
        *,
        loop: bool = False,
        sample_rate_hz: Optional[float] = None,
    ) -> None:
        self._block = RawBlock.from_arrays(primary, reference)
        if block_length <= 0:
            raise ValueError("block_length must be positive")
        self.block_length = block_length
        self.loop = loop
        self.sample_rate_hz = sample_rate_hz
        self._closed = False
        remainder = len(self._block) % block_length
        if remainder:
            logger.info("Recording tail of %d samples does not fill a block and is ignored", remainder)

    @property
    def block_count(self) -> int:
        return len(self._block) // self.block_length

    def blocks(self) -> Iterator[RawBlock]:
        if self.block_count == 0:
            logger.warning("Recording shorter than one block (%d samples)", len(self._block))
            return
        while not self._closed:
            for idx in range(self.block_count):
                if self._closed:
                    return
                window = slice(idx * self.block_length, (idx + 1) * self.block_length)
                yield RawBlock(
                    primary=self._block.primary[window].copy(),
                    reference=self._block.reference[window].copy(),
                )
                if self.sample_rate_hz:
                    time.sleep(self.block_length / self.sample_rate_hz)
            if not self.loop:
                return

    def close(self) -> None:
        self._closed = True
