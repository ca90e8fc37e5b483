from __future__ import annotations

import csv
import math
from pathlib import Path

import numpy as np
import pytest

from muxrms.engine.config import MuxConfig, load_config
from muxrms.engine.frames import RawBlock
from muxrms.engine.processing import (
    AcquisitionFault,
    BlockResult,
    Diagnostic,
    MuxPipeline,
    SessionError,
    SessionState,
    SkipReason,
)

LEVELS = (1.0, 2.0, 3.0, 4.0, 5.0, 6.0, 7.0)


def build_block(
    anchor: int = 2509,
    levels: tuple[float, ...] = LEVELS,
    reference: float = 1.0,
    n: int = 3000,
    segment_length: int = 400,
) -> RawBlock:
    """Probes laid out contiguously from `anchor`, wrapping around the block end."""
    primary = np.full(n, 0.5)
    for probe, level in enumerate(levels):
        for offset in range(segment_length):
            primary[(anchor + probe * segment_length + offset) % n] = level
    primary[anchor - 9 : anchor + 1] = 0.0
    return RawBlock.from_arrays(primary, np.full(n, reference))


def _started(config: MuxConfig | None = None) -> MuxPipeline:
    pipeline = MuxPipeline(config or MuxConfig())
    pipeline.start()
    return pipeline


def test_end_to_end_voltage_readings() -> None:
    pipeline = _started(load_config(overrides=["use_rms=true"]))
    result = pipeline.on_block(build_block())
    assert isinstance(result, BlockResult)
    assert result.anchor == 2509
    assert result.mode_label == "Voltage"
    assert result.readings == pytest.approx(LEVELS, rel=1e-9)
    assert result.filtered == pytest.approx([level / 7 for level in LEVELS], rel=1e-9)
    assert len(result.history) == 7
    assert all(len(series) == 1 for series in result.history)


def test_filtered_converges_after_seven_blocks() -> None:
    pipeline = _started(load_config(overrides=["use_rms=true"]))
    block = build_block()
    for _ in range(7):
        result = pipeline.on_block(block)
    assert result is not None
    assert result.filtered == pytest.approx(LEVELS, rel=1e-9)
    assert len(result.history[0]) == 7
    assert result.points(0)[-1] == pytest.approx((0.5, 1.0))


def test_impedance_divides_by_reference() -> None:
    pipeline = _started()
    result = pipeline.on_block(build_block(reference=2.0))
    assert result is not None
    assert result.mode_label == "Impedance"
    assert result.readings == pytest.approx([level / 2 for level in LEVELS], rel=1e-9)


def test_mode_toggle_keeps_layout() -> None:
    pipeline = _started()
    block = build_block(reference=4.0)
    impedance = pipeline.on_block(block)
    pipeline.use_rms = True
    voltage = pipeline.on_block(block)
    assert impedance is not None and voltage is not None
    assert impedance.anchor == voltage.anchor
    assert voltage.mode_label == "Voltage"
    for imp, volt in zip(impedance.readings, voltage.readings):
        assert volt == pytest.approx(imp * 4.0, rel=1e-9)


def test_anchor_near_right_edge() -> None:
    pipeline = _started(load_config(overrides=["use_rms=true"]))
    block = build_block(anchor=2509)
    primary = block.primary.copy()
    primary[2950:2960] = 0.0
    edge = RawBlock.from_arrays(primary, block.reference)
    layout = pipeline.layout_for(edge)
    assert layout is not None
    assert layout.anchor == 2959  # no quiet run near the left edge

    quiet_left = primary.copy()
    quiet_left[2990:3000] = 0.0
    quiet_left[100:110] = 0.0
    layout = pipeline.layout_for(RawBlock.from_arrays(quiet_left, block.reference))
    assert layout is not None
    assert layout.anchor == 109


def test_no_gap_skips_without_touching_state() -> None:
    pipeline = _started(load_config(overrides=["use_rms=true"]))
    diagnostics: list[Diagnostic] = []
    pipeline.register_diagnostic_callback(diagnostics.append)
    pipeline.on_block(build_block())
    session = pipeline.session
    assert session is not None
    rows_before = session.smoothing.rows()
    history_before = session.history.snapshot()

    result = pipeline.on_block(RawBlock.from_arrays(np.full(3000, 0.5), np.ones(3000)))
    assert result is None
    assert [diag.reason for diag in diagnostics] == [SkipReason.NO_GAP]
    assert diagnostics[0].block_index == 1
    assert np.array_equal(session.smoothing.rows(), rows_before)
    assert session.history.snapshot() == history_before
    assert pipeline.stats()["no_gap"] == 1
    assert pipeline.stats()["published"] == 1

    follow_up = pipeline.on_block(build_block())
    assert follow_up is not None
    assert follow_up.block_index == 2
    assert len(follow_up.history[0]) == 2


def test_short_frame_is_skipped() -> None:
    pipeline = _started(load_config(overrides=["probe_count=8"]))
    assert pipeline.on_block(build_block()) is None
    assert pipeline.last_diagnostic is not None
    assert pipeline.last_diagnostic.reason == SkipReason.SHORT_FRAME
    assert pipeline.session is not None
    assert len(pipeline.session.history.series(0)) == 0


def test_zero_reference_skips_in_impedance_mode_only() -> None:
    pipeline = _started()
    block = build_block(reference=0.0)
    assert pipeline.on_block(block) is None
    assert pipeline.last_diagnostic is not None
    assert pipeline.last_diagnostic.reason == SkipReason.ZERO_REFERENCE

    pipeline.use_rms = True
    result = pipeline.on_block(block)
    assert result is not None
    assert all(math.isfinite(value) for value in result.readings)


def test_nan_samples_skip_as_non_finite() -> None:
    pipeline = _started()
    block = build_block()
    reference = block.reference.copy()
    reference[2700] = np.nan  # inside the usable interior of probe 0
    assert pipeline.on_block(RawBlock.from_arrays(block.primary, reference)) is None
    assert pipeline.last_diagnostic is not None
    assert pipeline.last_diagnostic.reason == SkipReason.NON_FINITE
    assert "[0]" in pipeline.last_diagnostic.message

    pipeline.use_rms = True
    primary = block.primary.copy()
    primary[2700] = np.nan
    assert pipeline.on_block(RawBlock.from_arrays(primary, block.reference)) is None
    assert pipeline.last_diagnostic.reason == SkipReason.NON_FINITE
    assert pipeline.stats()["non_finite"] == 2
    assert pipeline.stats()["zero_reference"] == 0
    assert pipeline.session is not None
    assert len(pipeline.session.history.series(0)) == 0


def test_wrong_block_length_is_skipped() -> None:
    pipeline = _started()
    assert pipeline.on_block(build_block(n=2900)) is None
    assert pipeline.last_diagnostic is not None
    assert pipeline.last_diagnostic.reason == SkipReason.BLOCK_LENGTH


def test_published_results_are_detached() -> None:
    pipeline = _started()
    seen: list[BlockResult] = []
    pipeline.register_callback(seen.append)
    block = build_block()
    first = pipeline.on_block(block)
    pipeline.on_block(block)
    assert first is not None
    assert len(first.history[0]) == 1
    assert len(seen) == 2
    assert seen[1].block_index == 1


def test_session_state_machine() -> None:
    pipeline = MuxPipeline(MuxConfig())
    assert pipeline.state == SessionState.IDLE
    assert pipeline.stats() == {}
    with pytest.raises(SessionError):
        pipeline.on_block(build_block())

    pipeline.start()
    assert pipeline.state == SessionState.RUNNING
    pipeline.on_block(build_block())
    pipeline.stop()
    pipeline.stop()
    assert pipeline.state == SessionState.IDLE

    pipeline.start()
    assert pipeline.session is not None
    assert pipeline.session.blocks == 0
    assert len(pipeline.session.history.series(0)) == 0


def test_start_rejects_bad_config() -> None:
    pipeline = MuxPipeline(load_config(overrides=["acquisition.block_length=100"]))
    with pytest.raises(ValueError):
        pipeline.start()
    assert pipeline.state == SessionState.IDLE


def test_fault_returns_to_idle_and_reraises() -> None:
    pipeline = _started()
    fault = AcquisitionFault("driver lost")
    with pytest.raises(AcquisitionFault) as excinfo:
        pipeline.fault(fault)
    assert excinfo.value is fault
    assert pipeline.state == SessionState.IDLE
    with pytest.raises(SessionError):
        pipeline.on_block(build_block())


def test_csv_logger_writes_published_rows(tmp_path: Path) -> None:
    out = tmp_path / "logs" / "readings.csv"
    pipeline = _started(load_config(overrides=[f"output_csv={out}"]))
    pipeline.on_block(build_block())
    pipeline.on_block(RawBlock.from_arrays(np.full(3000, 0.5), np.ones(3000)))
    pipeline.close()

    with out.open(newline="", encoding="utf-8") as fh:
        rows = list(csv.reader(fh))
    assert rows[0][:4] == ["block", "anchor", "mode", "raw_0"]
    assert len(rows[0]) == 3 + 14
    assert len(rows) == 2
    assert rows[1][:3] == ["0", "2509", "Impedance"]
    assert float(rows[1][3]) == pytest.approx(1.0)
