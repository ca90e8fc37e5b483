"""Text and byte dumps of the per-probe readings."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import BinaryIO, Optional, Sequence

from .processing import BlockResult

logger = logging.getLogger(__name__)


def format_values(readings: Sequence[float]) -> str:
    """Comma-joined readings using `repr` floats so values round-trip exactly."""
    return ",".join(repr(float(value)) for value in readings)


def parse_values(text: str) -> list[float]:
    stripped = text.strip()
    if not stripped:
        return []
    return [float(item) for item in stripped.split(",")]


class ValuesFileWriter:
    """Overwrites `path` with the raw readings of the latest block."""

    def __init__(self, path: Path):
        self.path = path

    def on_result(self, result: BlockResult) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(format_values(result.readings), encoding="utf-8")


class LatestValueSink:
    """
    Writes the latest raw reading of one probe as UTF-8 text into a byte sink.
    The sink is rewound before every write so readers always see one value.
    """

    def __init__(self, probe: int = 0, *, path: Optional[Path] = None, handle: Optional[BinaryIO] = None):
        if (path is None) == (handle is None):
            raise ValueError("Provide exactly one of path or handle")
        self.probe = probe
        self.path = path
        self._handle = handle
        self._owns_handle = False

    def on_result(self, result: BlockResult) -> None:
        if self.probe >= len(result.readings):
            logger.debug("Probe %d missing from block %d", self.probe, result.block_index)
            return
        payload = str(result.readings[self.probe]).encode("utf-8")
        handle = self._ensure_handle()
        handle.seek(0)
        handle.write(payload)
        handle.truncate()
        handle.flush()

    def _ensure_handle(self) -> BinaryIO:
        if self._handle is None:
            assert self.path is not None
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self._handle = self.path.open("wb")
            self._owns_handle = True
        return self._handle

    def close(self) -> None:
        if self._owns_handle and self._handle is not None:
            self._handle.close()
            self._handle = None
            self._owns_handle = False
