from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np
from numpy.lib.stride_tricks import sliding_window_view

from .config import SegmentConfig

logger = logging.getLogger(__name__)

Span = Tuple[int, int]


class BlockError(ValueError):
    """Raised when raw sample arrays cannot form a block."""


@dataclass(frozen=True)
class RawBlock:
    """Two synchronously captured channels of equal length."""

    primary: np.ndarray
    reference: np.ndarray

    @staticmethod
    def from_arrays(primary: Sequence[float] | np.ndarray, reference: Sequence[float] | np.ndarray) -> "RawBlock":
        p = np.asarray(primary, dtype=float)
        r = np.asarray(reference, dtype=float)
        if p.ndim != 1 or r.ndim != 1:
            raise BlockError("primary and reference must be 1-D arrays")
        if p.shape != r.shape:
            raise BlockError(f"channel length mismatch: primary={p.size} reference={r.size}")
        return RawBlock(primary=p, reference=r)

    def __len__(self) -> int:
        return int(self.primary.size)


@dataclass(frozen=True)
class Segment:
    start: int
    end: int
    usable_start: int
    usable_end: int

    @property
    def span(self) -> Span:
        return (self.start, self.end)


@dataclass(frozen=True)
class SplitTail:
    """
    One side of the probe that straddles the block edge. `usable_start` and
    `usable_end` bound the samples that were consumed in whole chunks.
    """

    span: Span
    usable_start: int
    usable_end: int
    chunks: int


@dataclass(frozen=True)
class FrameLayout:
    anchor: int
    forward: List[Segment]
    right_tail: SplitTail
    control: Span
    backward: List[Segment]  # probe order, i.e. reversed capture order
    left_tail: SplitTail

    def spans(self) -> List[Span]:
        """Every region of the block in index order."""
        regions = [self.left_tail.span]
        regions.extend(seg.span for seg in self.backward)
        regions.append(self.control)
        regions.extend(seg.span for seg in self.forward)
        regions.append(self.right_tail.span)
        return [span for span in regions if span[1] > span[0]]

    @property
    def probe_slots(self) -> int:
        has_split = self.right_tail.chunks > 0 or self.left_tail.chunks > 0
        return len(self.forward) + len(self.backward) + (1 if has_split else 0)


def _quiet_starts(primary: np.ndarray, threshold: float, window: int) -> np.ndarray:
    quiet = np.abs(primary) < threshold
    return np.flatnonzero(sliding_window_view(quiet, window).all(axis=1))


def locate_gap(primary: np.ndarray, threshold: float, window: int) -> Optional[int]:
    """
    Return the anchor of the rightmost quiet run, i.e. `i + window - 1` for
    the largest start `i` whose `window` samples all stay below `threshold`.
    """
    samples = np.asarray(primary, dtype=float)
    if window <= 0 or window > samples.size:
        return None
    starts = _quiet_starts(samples, threshold, window)
    if starts.size == 0:
        return None
    return int(starts[-1]) + window - 1


def locate_anchor(
    primary: np.ndarray,
    threshold: float,
    window: int,
    samples_control: int,
) -> Optional[int]:
    """
    Locate the gap anchor and move it to the left edge when the rightmost
    run sits within `samples_control` of the block end.
    """
    samples = np.asarray(primary, dtype=float)
    anchor = locate_gap(samples, threshold, window)
    if anchor is None:
        return None
    if anchor > samples.size - samples_control:
        starts = _quiet_starts(samples, threshold, window)
        left = starts[starts < samples_control]
        if left.size:
            corrected = int(left[-1]) + window - 1
            logger.debug("Anchor %d near right edge, using left-edge anchor %d", anchor, corrected)
            return corrected
        logger.debug("Anchor %d near right edge, no left-edge run; keeping it", anchor)
    return anchor


def plan_segments(n: int, anchor: int, seg: SegmentConfig) -> FrameLayout:
    """Compute the per-probe index plan of an `n`-sample block around `anchor`."""

    if not 0 <= anchor < n:
        raise ValueError(f"anchor {anchor} outside block of {n} samples")
    length = seg.segment_length
    chunk = seg.split_chunk

    forward: List[Segment] = []
    pos = anchor
    while pos + length <= n:
        forward.append(Segment(pos, pos + length, pos + seg.cutoff_left, pos + length - seg.cutoff_right))
        pos += length
    forward_end = pos

    tail_start = min(forward_end + seg.cutoff_left, n)
    right_chunks = (n - tail_start) // chunk
    right_tail = SplitTail(
        span=(forward_end, n),
        usable_start=tail_start,
        usable_end=tail_start + right_chunks * chunk,
        chunks=right_chunks,
    )

    control_start = max(anchor - seg.samples_control, 0)
    captured: List[Segment] = []
    pos = control_start
    while pos > length:
        captured.append(
            Segment(
                pos - length,
                pos,
                pos - (length - seg.cutoff_left),
                pos - seg.cutoff_right,
            )
        )
        pos -= length
    backward_low = pos

    tail_end = max(backward_low - seg.cutoff_right, 0)
    left_chunks = tail_end // chunk
    left_tail = SplitTail(
        span=(0, backward_low),
        usable_start=tail_end - left_chunks * chunk,
        usable_end=tail_end,
        chunks=left_chunks,
    )

    return FrameLayout(
        anchor=anchor,
        forward=forward,
        right_tail=right_tail,
        control=(control_start, anchor),
        backward=captured[::-1],
        left_tail=left_tail,
    )
