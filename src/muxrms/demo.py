"""Demo dataset utilities."""
from __future__ import annotations

import logging
from pathlib import Path

import numpy as np

from .data import save_waveform_csv
from .engine.config import MuxConfig
from .engine.sources import SyntheticSource
from .pipeline import run_analysis
from .plotting import generate_plots
from .reporting import export_results

logger = logging.getLogger(__name__)


def create_demo_recording(
    config: MuxConfig,
    blocks: int = 40,
    *,
    reference_level: float = 0.5,
    dropout_blocks: tuple[int, ...] = (5,),
    seed: int = 42,
) -> tuple[np.ndarray, np.ndarray]:
    """
    Synthetic multiplexer recording with slow phase drift. Blocks listed in
    `dropout_blocks` carry a DC offset that hides the quiet gap.
    """
    source = SyntheticSource(
        config,
        reference_level=reference_level,
        phase=config.acquisition.block_length // 3,
        phase_step=17,
        max_blocks=blocks,
        seed=seed,
    )
    primary_parts = []
    reference_parts = []
    for idx, block in enumerate(source.blocks()):
        primary = block.primary
        if idx in dropout_blocks:
            primary = primary + 0.2
        primary_parts.append(primary)
        reference_parts.append(block.reference)
    return np.concatenate(primary_parts), np.concatenate(reference_parts)


def run_demo(out_dir: Path, config: MuxConfig | None = None) -> None:
    config = config or MuxConfig()
    out_dir.mkdir(parents=True, exist_ok=True)
    primary, reference = create_demo_recording(config)
    csv_path = save_waveform_csv(out_dir / "demo_recording.csv", primary, reference)

    result = run_analysis(csv_path, config)
    figure_path = None
    try:
        figure_path = generate_plots(result, out_dir)
    except RuntimeError as exc:
        # text report is still useful without the figure
        logger.warning("plotting skipped: %s", exc)

    export_results(result, out_dir, figure_path=figure_path, input_path=csv_path)
