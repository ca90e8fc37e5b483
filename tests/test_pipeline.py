from __future__ import annotations

from pathlib import Path

import numpy as np
import pandas as pd
import pytest
from typer.testing import CliRunner

from muxrms.cli import app
from muxrms.data import load_waveform, save_waveform_csv
from muxrms.demo import create_demo_recording, run_demo
from muxrms.engine.config import MuxConfig
from muxrms.engine.processing import SkipReason
from muxrms.pipeline import run_analysis
from muxrms.reporting import export_results


def _recording(tmp_path: Path, blocks: int = 12) -> Path:
    primary, reference = create_demo_recording(MuxConfig(), blocks=blocks)
    return save_waveform_csv(tmp_path / "recording.csv", primary, reference)


def test_run_analysis_on_recording(tmp_path: Path) -> None:
    result = run_analysis(_recording(tmp_path))

    assert result.blocks == 12
    assert len(result.results) == 11
    assert [diag.reason for diag in result.diagnostics] == [SkipReason.NO_GAP]
    assert result.diagnostics[0].block_index == 5
    assert list(result.readings["block"]) == [0, 1, 2, 3, 4, 6, 7, 8, 9, 10, 11]

    # impedance against a 0.5 reference doubles every probe level
    expected = [2.0 * (probe + 1) for probe in range(7)]
    assert result.summary["mean"].tolist() == pytest.approx(expected, rel=1e-2)
    assert result.summary["final_filtered"].tolist() == pytest.approx(expected, rel=1e-2)


def test_export_results_writes_reports(tmp_path: Path) -> None:
    csv_path = _recording(tmp_path)
    result = run_analysis(csv_path)
    out_dir = tmp_path / "report"
    export_results(result, out_dir, input_path=csv_path)

    readings = pd.read_csv(out_dir / "readings.csv")
    assert {"block", "anchor", "mode", "raw_0", "filtered_6"}.issubset(readings.columns)
    summary = pd.read_csv(out_dir / "summary.csv")
    assert list(summary["probe"]) == list(range(7))
    report = (out_dir / "report.md").read_text(encoding="utf-8")
    assert "| no_gap | 1 |" in report
    assert "Impedance" in report


def test_load_waveform_npy(tmp_path: Path) -> None:
    path = tmp_path / "recording.npy"
    np.save(path, np.column_stack([np.arange(5.0), np.ones(5)]))
    data = load_waveform(path)
    assert len(data) == 5
    assert data.primary[-1] == 4.0


def test_load_waveform_requires_columns(tmp_path: Path) -> None:
    path = tmp_path / "bad.csv"
    pd.DataFrame({"primary": [0.0, 1.0]}).to_csv(path, index=False)
    with pytest.raises(ValueError):
        load_waveform(path)
    with pytest.raises(FileNotFoundError):
        load_waveform(tmp_path / "missing.csv")


def test_run_demo_writes_figure(tmp_path: Path) -> None:
    pytest.importorskip("matplotlib")
    run_demo(tmp_path)
    assert (tmp_path / "demo_recording.csv").exists()
    assert (tmp_path / "history.png").exists()
    assert "history.png" in (tmp_path / "report.md").read_text(encoding="utf-8")


def test_cli_locate(tmp_path: Path) -> None:
    csv_path = _recording(tmp_path, blocks=6)
    outcome = CliRunner().invoke(app, ["locate", "--in", str(csv_path)])
    assert outcome.exit_code == 0, outcome.output
    assert "block 0: 2200" in outcome.output
    assert "block 5: no gap" in outcome.output
