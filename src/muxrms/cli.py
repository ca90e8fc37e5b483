"""Command line interface for the muxrms package."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

import typer

from .data import load_waveform
from .demo import run_demo
from .engine.config import ConfigError, MuxConfig, load_config
from .engine.frames import locate_anchor
from .engine.runner import run as run_host
from .pipeline import run_analysis
from .plotting import generate_plots
from .reporting import export_results

app = typer.Typer(
    add_completion=False,
    help="Per-probe RMS and impedance extraction for multiplexed waveforms.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


@app.callback()
def main(
    log_level: str = typer.Option("INFO", "--log-level", help="Logging level (DEBUG, INFO, WARNING)."),
) -> None:
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


app.command("run")(run_host)


def _load(config_path: Optional[Path], override: Optional[list[str]], voltage: bool) -> MuxConfig:
    try:
        cfg = load_config(config_path, override or None)
        if voltage:
            cfg.use_rms = True
        cfg.validate()
    except (ConfigError, ValueError) as exc:
        raise typer.BadParameter(str(exc)) from exc
    return cfg


@app.command()
def analyze(
    input_path: Path = typer.Option(..., "--in", help="Recorded waveform (.csv or .npy)."),
    report_dir: Path = typer.Option(..., "--report", help="Output directory for reports."),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to host config JSON."),
    override: Optional[list[str]] = typer.Option(None, "--set", help="Override config keys."),
    voltage: bool = typer.Option(False, "--voltage", help="Report raw primary RMS instead of impedance."),
) -> None:
    """Replay a recording through the engine and write reports."""

    cfg = _load(config_path, override, voltage)
    result = run_analysis(input_path, cfg)

    figure_path = None
    try:
        figure_path = generate_plots(result, report_dir)
    except RuntimeError as exc:
        typer.echo(f"[warning] plotting skipped: {exc}")

    export_results(result, report_dir, figure_path=figure_path, input_path=input_path)
    typer.echo(
        f"{len(result.results)} of {result.blocks} blocks published; report written to {report_dir}"
    )


@app.command()
def locate(
    input_path: Path = typer.Option(..., "--in", help="Recorded waveform (.csv or .npy)."),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to host config JSON."),
    override: Optional[list[str]] = typer.Option(None, "--set", help="Override config keys."),
) -> None:
    """Print the gap anchor found in every block of a recording."""

    cfg = _load(config_path, override, False)
    data = load_waveform(input_path)
    n = cfg.acquisition.block_length
    for idx in range(len(data) // n):
        window = data.primary[idx * n : (idx + 1) * n]
        anchor = locate_anchor(window, cfg.gap.threshold, cfg.gap.window, cfg.segment.samples_control)
        typer.echo(f"block {idx}: {'no gap' if anchor is None else anchor}")


@app.command()
def demo(
    out_dir: Path = typer.Option(Path("demo_output"), "--out", help="Target directory for demo report."),
) -> None:
    """Generate a synthetic recording and its report."""

    run_demo(out_dir)
    typer.echo(f"Demo recording and report written to {out_dir}")


def run() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    run()
