"""Root-mean-square extraction over segment interiors and split tails."""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from .frames import FrameLayout, RawBlock, Segment, SplitTail

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RmsPair:
    primary: float
    reference: float


def rms(samples: np.ndarray) -> float:
    """`sqrt(mean(x**2))`; an empty range yields 0.0."""
    values = np.asarray(samples, dtype=float)
    if values.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(np.square(values))))


def segment_rms(block: RawBlock, segment: Segment) -> RmsPair:
    window = slice(segment.usable_start, segment.usable_end)
    return RmsPair(primary=rms(block.primary[window]), reference=rms(block.reference[window]))


def _chunked_rms(samples: np.ndarray, chunks: int) -> float:
    if chunks == 0:
        return 0.0
    blocks = samples.reshape(chunks, -1)
    energy = np.square(blocks).sum(axis=1).sum()
    return float(math.sqrt(energy / samples.size))


def tail_rms(block: RawBlock, tail: SplitTail) -> RmsPair:
    window = slice(tail.usable_start, tail.usable_end)
    return RmsPair(
        primary=_chunked_rms(block.primary[window], tail.chunks),
        reference=_chunked_rms(block.reference[window], tail.chunks),
    )


def merge_split(right: SplitTail, right_rms: RmsPair, left: SplitTail, left_rms: RmsPair) -> Optional[RmsPair]:
    """
    Combine both halves of the split probe. A side without chunks does not
    contribute; with both sides present each channel is averaged.
    """
    if right.chunks == 0 and left.chunks == 0:
        return None
    if right.chunks == 0:
        return left_rms
    if left.chunks == 0:
        return right_rms
    return RmsPair(
        primary=(right_rms.primary + left_rms.primary) / 2.0,
        reference=(right_rms.reference + left_rms.reference) / 2.0,
    )


def extract_pairs(block: RawBlock, layout: FrameLayout, max_probes: int) -> List[RmsPair]:
    """
    Per-probe RMS pairs in probe order: forward segments, the merged split
    probe, then the backward segments. Truncated to `max_probes`, never padded.
    """
    pairs = [segment_rms(block, seg) for seg in layout.forward]
    merged = merge_split(
        layout.right_tail,
        tail_rms(block, layout.right_tail),
        layout.left_tail,
        tail_rms(block, layout.left_tail),
    )
    if merged is not None:
        pairs.append(merged)
    pairs.extend(segment_rms(block, seg) for seg in layout.backward)
    return pairs[:max_probes]


def probe_reading(pair: RmsPair, use_rms: bool) -> float:
    if use_rms:
        return pair.primary
    if pair.reference == 0.0:
        logger.warning("Reference RMS is zero (primary=%.6g); impedance undefined", pair.primary)
        return math.inf
    return pair.primary / pair.reference
