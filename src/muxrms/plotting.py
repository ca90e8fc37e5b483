"""Static plots for offline analysis results."""
from __future__ import annotations

from pathlib import Path
from typing import Any

from .pipeline import AnalysisResult


def generate_plots(result: AnalysisResult, output_dir: Path) -> Path:
    plt = _require_matplotlib()
    output_dir.mkdir(parents=True, exist_ok=True)
    fig, axes = plt.subplots(1, 2, figsize=(14, 5))

    _plot_raw(result, axes[0])
    _plot_history(result, axes[1])

    fig.tight_layout()
    out_path = output_dir / "history.png"
    fig.savefig(out_path, dpi=150)
    plt.close(fig)
    return out_path


def _plot_raw(result: AnalysisResult, ax) -> None:
    df = result.readings
    for idx in range(result.config.probe_count):
        key = f"raw_{idx}"
        if key in df.columns:
            ax.plot(df["block"], df[key], marker=".", linestyle="-", label=f"probe {idx}")
    ax.set_title(f"Raw {result.config.mode_label.lower()} per block")
    ax.set_xlabel("Block")
    ax.set_ylabel(result.config.mode_label)
    ax.legend(loc="best")


def _plot_history(result: AnalysisResult, ax) -> None:
    if result.results:
        last = result.results[-1]
        for idx in range(len(last.history)):
            points = last.points(idx)
            if not points:
                continue
            xs, ys = zip(*points)
            ax.plot(xs, ys, label=f"probe {idx}")
    ax.set_title("Smoothed history")
    ax.set_xlabel("History position")
    ax.set_ylabel(result.config.mode_label)
    ax.legend(loc="best")


def _require_matplotlib() -> Any:
    try:
        import matplotlib
        matplotlib.use("Agg", force=True)
        import matplotlib.pyplot as plt  # type: ignore
    except ImportError as exc:  # pragma: no cover - optional dependency
        raise RuntimeError("matplotlib is required for plotting; install muxrms[plot]") from exc
    except Exception as exc:  # pragma: no cover - environment issues
        raise RuntimeError(f"matplotlib initialisation failed: {exc}") from exc
    return plt
