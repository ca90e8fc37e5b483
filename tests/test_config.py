from __future__ import annotations

from pathlib import Path

import pytest

from muxrms.engine.config import ConfigError, MuxConfig, load_config


def test_load_config_overrides(tmp_path: Path) -> None:
    cfg_path = tmp_path / "config.json"
    cfg_path.write_text(
        """
        {
          "probe_count": 7,
          "segment": {"segment_length": 400, "cutoff_left": 150},
          "gap": {"threshold": 0.05},
          "values_path": "out/values.txt"
        }
        """,
        encoding="utf-8",
    )
    cfg = load_config(cfg_path, overrides=["segment.cutoff_left=120", "use_rms=true", "gap.window=12"])
    assert isinstance(cfg, MuxConfig)
    assert cfg.segment.cutoff_left == 120
    assert cfg.segment.cutoff_right == 50
    assert cfg.gap.window == 12
    assert cfg.use_rms is True
    assert cfg.mode_label == "Voltage"
    assert cfg.values_path == Path("out/values.txt")
    assert cfg.latest_path is None


def test_defaults_without_file() -> None:
    cfg = load_config()
    assert cfg.probe_count == 7
    assert cfg.segment.usable_length == 200
    assert cfg.acquisition.block_length == 3000
    assert cfg.mode_label == "Impedance"
    cfg.validate()


def test_override_requires_key_value() -> None:
    with pytest.raises(ValueError):
        load_config(overrides=["segment.cutoff_left"])


@pytest.mark.parametrize(
    "overrides",
    [
        ["segment.cutoff_left=300", "segment.cutoff_right=100"],
        ["acquisition.block_length=500"],
        ["gap.window=0"],
        ["gap.threshold=0"],
        ["probe_count=0"],
        ["latest_probe=7"],
        ["segment.split_chunk=0"],
    ],
)
def test_validate_rejects_bad_settings(overrides: list[str]) -> None:
    cfg = load_config(overrides=overrides)
    with pytest.raises(ConfigError):
        cfg.validate()


def test_sample_host_config_is_valid() -> None:
    cfg = load_config(Path(__file__).resolve().parents[1] / "host" / "config.json")
    cfg.validate()
    assert cfg.values_path == Path("output/values_muxes.txt")
    assert cfg.host.queue_maxsize == 1
