from __future__ import annotations

import io
from pathlib import Path

import pytest

from muxrms.engine.export import LatestValueSink, ValuesFileWriter, format_values, parse_values
from muxrms.engine.processing import BlockResult


def _result(readings: tuple[float, ...], block_index: int = 0) -> BlockResult:
    return BlockResult(
        block_index=block_index,
        anchor=2509,
        mode_label="Impedance",
        readings=readings,
        filtered=readings,
        history=tuple((value,) for value in readings),
    )


def test_format_values_keeps_full_precision() -> None:
    values = [1.0, 0.1 + 0.2, -3.5e-7]
    text = format_values(values)
    assert text.count(",") == 2
    assert parse_values(text) == values
    assert parse_values("  ") == []


def test_values_file_overwritten_per_block(tmp_path: Path) -> None:
    path = tmp_path / "out" / "values.txt"
    writer = ValuesFileWriter(path)
    writer.on_result(_result((1.0, 2.0, 3.0)))
    writer.on_result(_result((4.0, 5.0, 6.0), block_index=1))
    assert parse_values(path.read_text(encoding="utf-8")) == [4.0, 5.0, 6.0]


def test_latest_value_sink_rewinds_handle() -> None:
    handle = io.BytesIO()
    sink = LatestValueSink(1, handle=handle)
    sink.on_result(_result((1.0, 123.456, 3.0)))
    sink.on_result(_result((1.0, 2.5, 3.0), block_index=1))
    assert handle.getvalue() == b"2.5"
    sink.close()
    assert not handle.closed


def test_latest_value_sink_owns_path_handle(tmp_path: Path) -> None:
    path = tmp_path / "latest.bin"
    sink = LatestValueSink(0, path=path)
    sink.on_result(_result((0.75, 1.0)))
    sink.close()
    assert path.read_bytes() == b"0.75"


def test_latest_value_sink_needs_one_target(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        LatestValueSink(0)
    with pytest.raises(ValueError):
        LatestValueSink(0, path=tmp_path / "x", handle=io.BytesIO())
