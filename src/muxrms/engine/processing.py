from __future__ import annotations

import csv
import enum
import logging
import math
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, TextIO, Tuple

from .config import MuxConfig
from .frames import FrameLayout, RawBlock, locate_anchor, plan_segments
from .rms import extract_pairs, probe_reading
from .smoothing import ProbeHistory, SmoothingMatrix, history_points

logger = logging.getLogger(__name__)


class SessionState(str, enum.Enum):
    IDLE = "idle"
    RUNNING = "running"


class SkipReason(str, enum.Enum):
    BLOCK_LENGTH = "block_length"
    NO_GAP = "no_gap"
    SHORT_FRAME = "short_frame"
    ZERO_REFERENCE = "zero_reference"
    NON_FINITE = "non_finite"


class SessionError(RuntimeError):
    """Raised when blocks are fed to a pipeline that is not running."""


class AcquisitionFault(RuntimeError):
    """Hardware or driver failure reported by the acquisition layer."""


@dataclass(frozen=True)
class Diagnostic:
    block_index: int
    reason: SkipReason
    message: str


@dataclass(frozen=True)
class BlockResult:
    """Values published for one block. Every field is a private copy."""

    block_index: int
    anchor: int
    mode_label: str
    readings: Tuple[float, ...]
    filtered: Tuple[float, ...]
    history: Tuple[Tuple[float, ...], ...]

    def points(self, probe: int) -> List[Tuple[float, float]]:
        return history_points(self.history[probe])


@dataclass
class Session:
    smoothing: SmoothingMatrix
    history: ProbeHistory
    blocks: int = 0
    published: int = 0
    skipped: Dict[str, int] = field(default_factory=lambda: {reason.value: 0 for reason in SkipReason})

    @staticmethod
    def create(config: MuxConfig) -> "Session":
        return Session(
            smoothing=SmoothingMatrix(config.smoothing_depth, config.probe_count),
            history=ProbeHistory(config.probe_count, config.history_capacity),
        )


class ReadingsCsvLogger:
    """
    Per-block CSV log of raw and smoothed readings. The file is opened when
    the first published block arrives; skipped blocks are never written.
    """

    def __init__(self, path: Path, probes: int):
        self.path = path
        self.probes = probes
        self._handle: Optional[Any] = None
        self._file_handle: Optional[TextIO] = None

    def append(self, result: BlockResult) -> None:
        if self._handle is None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._file_handle = self.path.open("w", newline="", encoding="utf-8")
            self._handle = csv.writer(self._file_handle)
            header = ["block", "anchor", "mode"]
            header += [f"raw_{idx}" for idx in range(self.probes)]
            header += [f"filtered_{idx}" for idx in range(self.probes)]
            self._handle.writerow(header)
        assert self._handle is not None
        self._handle.writerow(
            [result.block_index, result.anchor, result.mode_label, *result.readings, *result.filtered]
        )
        if self._file_handle is not None:
            self._file_handle.flush()

    def close(self) -> None:
        if self._file_handle:
            self._file_handle.close()
            self._file_handle = None
            self._handle = None


class MuxPipeline:
    """
    Per-block driver: gap location, segmentation, RMS extraction, smoothing
    and history. Calls are serialised; a skipped block leaves the session
    state untouched.
    """

    def __init__(self, config: MuxConfig):
        self.config = config
        self._use_rms = config.use_rms
        self._lock = threading.Lock()
        self._session: Optional[Session] = None
        self._callbacks: List[Callable[[BlockResult], None]] = []
        self._diagnostic_callbacks: List[Callable[[Diagnostic], None]] = []
        self.logger = ReadingsCsvLogger(config.output_csv, config.probe_count) if config.output_csv else None
        self.last_diagnostic: Optional[Diagnostic] = None

    @property
    def state(self) -> SessionState:
        return SessionState.RUNNING if self._session is not None else SessionState.IDLE

    @property
    def use_rms(self) -> bool:
        return self._use_rms

    @use_rms.setter
    def use_rms(self, value: bool) -> None:
        self._use_rms = bool(value)
        logger.info("Measurement mode set to %s", self.mode_label)

    @property
    def mode_label(self) -> str:
        return "Voltage" if self._use_rms else "Impedance"

    @property
    def session(self) -> Optional[Session]:
        return self._session

    def start(self) -> None:
        self.config.validate()
        with self._lock:
            self._session = Session.create(self.config)
        logger.info(
            "Session started (probes=%d, block_length=%d, mode=%s)",
            self.config.probe_count,
            self.config.acquisition.block_length,
            self.mode_label,
        )

    def stop(self) -> None:
        with self._lock:
            session = self._session
            self._session = None
        if session is not None:
            logger.info(
                "Session stopped (blocks=%d published=%d skipped=%s)",
                session.blocks,
                session.published,
                session.skipped,
            )

    def fault(self, exc: BaseException) -> None:
        """Drop the session and re-raise the acquisition fault unchanged."""
        with self._lock:
            self._session = None
        logger.error("Acquisition fault, session stopped: %s", exc)
        raise exc

    def register_callback(self, callback: Callable[[BlockResult], None]) -> None:
        self._callbacks.append(callback)

    def register_diagnostic_callback(self, callback: Callable[[Diagnostic], None]) -> None:
        self._diagnostic_callbacks.append(callback)

    def stats(self) -> Dict[str, int]:
        session = self._session
        if session is None:
            return {}
        stats = {"blocks": session.blocks, "published": session.published}
        stats.update(session.skipped)
        return stats

    def on_block(self, block: RawBlock) -> Optional[BlockResult]:
        with self._lock:
            session = self._session
            if session is None:
                raise SessionError("on_block called while the pipeline is idle")
            block_index = session.blocks
            session.blocks += 1
            outcome = self._process(session, block, block_index)
        if isinstance(outcome, Diagnostic):
            self._emit_diagnostic(outcome)
            return None
        if self.logger:
            self.logger.append(outcome)
        for callback in self._callbacks:
            callback(outcome)
        return outcome

    def layout_for(self, block: RawBlock) -> Optional[FrameLayout]:
        """Locate the gap and plan the segments without touching session state."""
        gap = self.config.gap
        seg = self.config.segment
        anchor = locate_anchor(block.primary, gap.threshold, gap.window, seg.samples_control)
        if anchor is None:
            return None
        return plan_segments(len(block), anchor, seg)

    def _process(self, session: Session, block: RawBlock, block_index: int) -> BlockResult | Diagnostic:
        expected = self.config.acquisition.block_length
        if len(block) != expected:
            return self._skip(
                session, block_index, SkipReason.BLOCK_LENGTH, f"block has {len(block)} samples, expected {expected}"
            )
        layout = self.layout_for(block)
        if layout is None:
            return self._skip(
                session,
                block_index,
                SkipReason.NO_GAP,
                f"no run of {self.config.gap.window} samples below {self.config.gap.threshold}",
            )
        pairs = extract_pairs(block, layout, self.config.probe_count)
        if len(pairs) < self.config.probe_count:
            return self._skip(
                session,
                block_index,
                SkipReason.SHORT_FRAME,
                f"{len(pairs)} probes at anchor {layout.anchor}, expected {self.config.probe_count}",
            )
        use_rms = self._use_rms
        zero_ref = [probe for probe, pair in enumerate(pairs) if pair.reference == 0.0]
        if zero_ref and not use_rms:
            return self._skip(
                session, block_index, SkipReason.ZERO_REFERENCE, f"reference RMS is zero for probes {zero_ref}"
            )
        readings = [probe_reading(pair, use_rms) for pair in pairs]
        bad = [probe for probe, value in enumerate(readings) if not math.isfinite(value)]
        if bad:
            return self._skip(session, block_index, SkipReason.NON_FINITE, f"non-finite readings for probes {bad}")

        filtered = session.smoothing.push(readings)
        session.history.append(filtered)
        session.published += 1
        return BlockResult(
            block_index=block_index,
            anchor=layout.anchor,
            mode_label="Voltage" if use_rms else "Impedance",
            readings=tuple(float(value) for value in readings),
            filtered=tuple(float(value) for value in filtered),
            history=session.history.snapshot(),
        )

    def _skip(self, session: Session, block_index: int, reason: SkipReason, message: str) -> Diagnostic:
        session.skipped[reason.value] += 1
        return Diagnostic(block_index=block_index, reason=reason, message=message)

    def _emit_diagnostic(self, diagnostic: Diagnostic) -> None:
        self.last_diagnostic = diagnostic
        logger.warning("Skipping block %d (%s): %s", diagnostic.block_index, diagnostic.reason.value, diagnostic.message)
        for callback in self._diagnostic_callbacks:
            callback(diagnostic)

    def close(self) -> None:
        self.stop()
        if self.logger:
            self.logger.close()
