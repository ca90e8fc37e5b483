"""Loading and saving of recorded two-channel waveforms."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import numpy as np
import pandas as pd

REQUIRED_COLUMNS = {"primary", "reference"}


@dataclass(frozen=True)
class WaveformData:
    """Recorded primary/reference channels, sample-aligned."""

    dataframe: pd.DataFrame
    primary: np.ndarray
    reference: np.ndarray

    def __len__(self) -> int:
        return int(self.primary.size)


def load_waveform(path: str | Path) -> WaveformData:
    """Load a recording from *path*.

    Parameters
    ----------
    path:
        Either a CSV file with `primary` and `reference` columns, or a numpy
        `.npy` array of shape `(N, 2)` holding the same two channels.

    Returns
    -------
    WaveformData
        Channels as float arrays plus the backing dataframe.
    """

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(path)

    if path.suffix.lower() == ".npy":
        array = np.load(path)
        if array.ndim != 2 or array.shape[1] != 2:
            raise ValueError(f"Expected an (N, 2) array, got shape {array.shape}")
        df = pd.DataFrame({"primary": array[:, 0], "reference": array[:, 1]})
    else:
        df = pd.read_csv(path, comment="#")
        missing = REQUIRED_COLUMNS - set(df.columns)
        if missing:
            raise ValueError(f"Missing required columns: {sorted(missing)}")

    df = df[["primary", "reference"]].astype(float)
    if df.isna().to_numpy().any():
        raise ValueError("Recording contains empty or non-numeric samples")
    df.reset_index(drop=True, inplace=True)

    return WaveformData(
        dataframe=df,
        primary=df["primary"].to_numpy(dtype=float),
        reference=df["reference"].to_numpy(dtype=float),
    )


def save_waveform_csv(path: str | Path, primary: np.ndarray, reference: np.ndarray) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    pd.DataFrame({"primary": primary, "reference": reference}).to_csv(path, index=False)
    return path
