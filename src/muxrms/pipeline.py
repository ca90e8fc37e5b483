"""Offline replay of a recorded waveform through the block engine."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import pandas as pd

from .data import WaveformData, load_waveform
from .engine.config import MuxConfig
from .engine.processing import BlockResult, Diagnostic, MuxPipeline
from .engine.sources import RecordedSource


@dataclass(frozen=True)
class AnalysisResult:
    data: WaveformData
    config: MuxConfig
    results: list[BlockResult]
    diagnostics: list[Diagnostic]
    readings: pd.DataFrame
    summary: pd.DataFrame

    @property
    def blocks(self) -> int:
        return len(self.results) + len(self.diagnostics)


def run_analysis(path: str | Path, config: MuxConfig | None = None) -> AnalysisResult:
    """Replay the recording block by block and collect published values."""

    config = config or MuxConfig()
    data = load_waveform(path)
    source = RecordedSource(data.primary, data.reference, config.acquisition.block_length)

    pipeline = MuxPipeline(config)
    diagnostics: list[Diagnostic] = []
    pipeline.register_diagnostic_callback(diagnostics.append)
    results: list[BlockResult] = []
    pipeline.start()
    try:
        for block in source.blocks():
            result = pipeline.on_block(block)
            if result is not None:
                results.append(result)
    finally:
        pipeline.close()

    readings = _build_readings_table(results, config.probe_count)
    summary = _build_summary(readings, config.probe_count)
    return AnalysisResult(
        data=data,
        config=config,
        results=results,
        diagnostics=diagnostics,
        readings=readings,
        summary=summary,
    )


def _build_readings_table(results: list[BlockResult], probes: int) -> pd.DataFrame:
    columns = ["block", "anchor", "mode"]
    columns += [f"raw_{idx}" for idx in range(probes)]
    columns += [f"filtered_{idx}" for idx in range(probes)]
    rows = [
        [result.block_index, result.anchor, result.mode_label, *result.readings, *result.filtered]
        for result in results
    ]
    return pd.DataFrame(rows, columns=columns)


def _build_summary(readings: pd.DataFrame, probes: int) -> pd.DataFrame:
    rows = []
    for idx in range(probes):
        raw = readings[f"raw_{idx}"] if not readings.empty else pd.Series(dtype=float)
        final = readings[f"filtered_{idx}"].iloc[-1] if not readings.empty else float("nan")
        rows.append(
            {
                "probe": idx,
                "mean": float(raw.mean()) if not raw.empty else float("nan"),
                "std": float(raw.std(ddof=0)) if not raw.empty else float("nan"),
                "min": float(raw.min()) if not raw.empty else float("nan"),
                "max": float(raw.max()) if not raw.empty else float("nan"),
                "final_filtered": float(final),
            }
        )
    return pd.DataFrame(rows)
