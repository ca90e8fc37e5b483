"""Report writers for offline analysis results."""
from __future__ import annotations

from collections import Counter
from pathlib import Path

from .pipeline import AnalysisResult


def export_results(
    result: AnalysisResult,
    output_dir: Path,
    *,
    figure_path: Path | None = None,
    input_path: Path | None = None,
) -> None:
    """Persist readings, per-probe summary and markdown report to *output_dir*."""

    output_dir.mkdir(parents=True, exist_ok=True)
    result.readings.to_csv(output_dir / "readings.csv", index=False)
    result.summary.to_csv(output_dir / "summary.csv", index=False)
    _write_report_md(result, output_dir, figure_path=figure_path, input_path=input_path)


def _write_report_md(
    result: AnalysisResult,
    output_dir: Path,
    *,
    figure_path: Path | None,
    input_path: Path | None,
) -> None:
    cfg = result.config
    seg = cfg.segment
    lines: list[str] = []
    lines.append("# Multiplexed probe RMS report")
    if input_path is not None:
        lines.append(f"*Input file:* `{input_path}`  ")
    lines.append(f"*Samples:* {len(result.data)}  ")
    lines.append(f"*Blocks:* {result.blocks} ({len(result.results)} published)  ")
    lines.append(f"*Mode:* {cfg.mode_label}  ")
    lines.append(
        f"*Segment:* {seg.segment_length} samples, cutoff {seg.cutoff_left}/{seg.cutoff_right}, "
        f"control {seg.samples_control}  "
    )
    lines.append("")

    lines.append("## Probes")
    lines.append("| Probe | Mean | Std | Min | Max | Final (smoothed) |")
    lines.append("| ---: | ---: | ---: | ---: | ---: | ---: |")
    for row in result.summary.itertuples(index=False):
        lines.append(
            f"| {row.probe} | {row.mean:.6g} | {row.std:.3g} | {row.min:.6g} | {row.max:.6g} "
            f"| {row.final_filtered:.6g} |"
        )
    lines.append("")

    if result.diagnostics:
        lines.append("## Skipped blocks")
        lines.append("| Reason | Count |")
        lines.append("| --- | ---: |")
        counts = Counter(diag.reason.value for diag in result.diagnostics)
        for reason, count in sorted(counts.items()):
            lines.append(f"| {reason} | {count} |")
        lines.append("")

    if figure_path is not None:
        lines.append(f"![Probe history]({figure_path.name})")
        lines.append("")

    lines.append("### Notes")
    lines.append("- Raw values are per-block readings; smoothed values use a trailing mean over "
                 f"{cfg.smoothing_depth} blocks.")
    if not cfg.use_rms:
        lines.append("- Impedance readings are primary RMS divided by reference RMS.")

    (output_dir / "report.md").write_text("\n".join(lines), encoding="utf-8")
