from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Sequence


class ConfigError(ValueError):
    """Raised when a configuration cannot drive an acquisition session."""


@dataclass
class SegmentConfig:
    segment_length: int = 400
    cutoff_left: int = 150  # left edge carries the larger switching transient
    cutoff_right: int = 50
    samples_control: int = 200
    split_chunk: int = 50

    @property
    def usable_length(self) -> int:
        return self.segment_length - self.cutoff_left - self.cutoff_right


@dataclass
class GapConfig:
    threshold: float = 0.05
    window: int = 10


@dataclass
class AcquisitionConfig:
    sample_rate_hz: float = 100_000.0
    block_length: int = 3000
    v_min: float = -10.0
    v_max: float = 10.0


@dataclass
class HostRuntime:
    queue_maxsize: int = 1
    block_timeout_sec: float = 1.0
    stats_log_interval: float = 60.0


@dataclass
class MuxConfig:
    probe_count: int = 7
    smoothing_depth: int = 7
    history_capacity: int = 200
    use_rms: bool = False  # True: raw primary RMS (voltage), False: impedance ratio
    latest_probe: int = 0
    segment: SegmentConfig = field(default_factory=SegmentConfig)
    gap: GapConfig = field(default_factory=GapConfig)
    acquisition: AcquisitionConfig = field(default_factory=AcquisitionConfig)
    host: HostRuntime = field(default_factory=HostRuntime)
    output_csv: Path | None = None
    values_path: Path | None = None
    latest_path: Path | None = None

    @property
    def mode_label(self) -> str:
        return "Voltage" if self.use_rms else "Impedance"

    def validate(self) -> None:
        seg = self.segment
        if seg.segment_length <= seg.cutoff_left + seg.cutoff_right:
            raise ConfigError(
                f"segment_length ({seg.segment_length}) must exceed "
                f"cutoff_left + cutoff_right ({seg.cutoff_left + seg.cutoff_right})"
            )
        if seg.cutoff_left < 0 or seg.cutoff_right < 0:
            raise ConfigError("cutoff_left and cutoff_right must be non-negative")
        if seg.samples_control < 0:
            raise ConfigError("samples_control must be non-negative")
        if seg.split_chunk <= 0:
            raise ConfigError("split_chunk must be positive")
        block_length = self.acquisition.block_length
        if block_length < seg.segment_length + seg.samples_control:
            raise ConfigError(
                f"block_length ({block_length}) cannot hold one segment plus the control "
                f"window ({seg.segment_length + seg.samples_control})"
            )
        if self.gap.window <= 0 or self.gap.window > block_length:
            raise ConfigError("gap.window must be in 1..block_length")
        if self.gap.threshold <= 0:
            raise ConfigError("gap.threshold must be positive")
        for name in ("probe_count", "smoothing_depth", "history_capacity"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive")
        if not 0 <= self.latest_probe < self.probe_count:
            raise ConfigError(f"latest_probe must be in 0..{self.probe_count - 1}")
        if self.host.queue_maxsize <= 0:
            raise ConfigError("host.queue_maxsize must be positive")
        if self.acquisition.sample_rate_hz <= 0:
            raise ConfigError("acquisition.sample_rate_hz must be positive")


def _load_json(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as fh:
        return json.load(fh)


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged: Dict[str, Any] = {**base}
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            merged[key] = _merge(base[key], value)  # type: ignore[index]
        else:
            merged[key] = value
    return merged


def _optional_path(value: Any) -> Optional[Path]:
    return Path(value) if value else None


def load_config(path: Path | str | None = None, overrides: Sequence[str] | None = None) -> MuxConfig:
    """
    Load a host configuration from JSON and apply CLI-style overrides.

    Overrides are expressed as dotted `key=value` pairs, e.g.:
        ["segment.cutoff_left=120", "use_rms=true"]
    Missing keys fall back to the dataclass defaults; `path=None` starts from
    defaults only.
    """
    data = _load_json(Path(path)) if path is not None else {}
    override_data: Dict[str, Any] = {}
    for override in overrides or []:
        key, raw_value = _parse_override(override)
        _assign_nested(override_data, key, raw_value)
    merged = _merge(data, override_data)
    seg = merged.get("segment") or {}
    gap = merged.get("gap") or {}
    acq = merged.get("acquisition") or {}
    host = merged.get("host") or {}
    defaults = MuxConfig()
    return MuxConfig(
        probe_count=int(merged.get("probe_count", defaults.probe_count)),
        smoothing_depth=int(merged.get("smoothing_depth", defaults.smoothing_depth)),
        history_capacity=int(merged.get("history_capacity", defaults.history_capacity)),
        use_rms=bool(merged.get("use_rms", defaults.use_rms)),
        latest_probe=int(merged.get("latest_probe", defaults.latest_probe)),
        segment=SegmentConfig(
            segment_length=int(seg.get("segment_length", defaults.segment.segment_length)),
            cutoff_left=int(seg.get("cutoff_left", defaults.segment.cutoff_left)),
            cutoff_right=int(seg.get("cutoff_right", defaults.segment.cutoff_right)),
            samples_control=int(seg.get("samples_control", defaults.segment.samples_control)),
            split_chunk=int(seg.get("split_chunk", defaults.segment.split_chunk)),
        ),
        gap=GapConfig(
            threshold=float(gap.get("threshold", defaults.gap.threshold)),
            window=int(gap.get("window", defaults.gap.window)),
        ),
        acquisition=AcquisitionConfig(
            sample_rate_hz=float(acq.get("sample_rate_hz", defaults.acquisition.sample_rate_hz)),
            block_length=int(acq.get("block_length", defaults.acquisition.block_length)),
            v_min=float(acq.get("v_min", defaults.acquisition.v_min)),
            v_max=float(acq.get("v_max", defaults.acquisition.v_max)),
        ),
        host=HostRuntime(
            queue_maxsize=int(host.get("queue_maxsize", defaults.host.queue_maxsize)),
            block_timeout_sec=float(host.get("block_timeout_sec", defaults.host.block_timeout_sec)),
            stats_log_interval=float(host.get("stats_log_interval", defaults.host.stats_log_interval)),
        ),
        output_csv=_optional_path(merged.get("output_csv")),
        values_path=_optional_path(merged.get("values_path")),
        latest_path=_optional_path(merged.get("latest_path")),
    )


def _parse_override(item: str) -> tuple[str, Any]:
    if "=" not in item:
        raise ValueError(f"Override '{item}' must use key=value syntax")
    key, raw_value = item.split("=", 1)
    key = key.strip()
    if not key:
        raise ValueError("Override key may not be empty")
    value = _coerce_value(raw_value.strip())
    return key, value


def _coerce_value(raw: str) -> Any:
    if raw.lower() in {"true", "false"}:
        return raw.lower() == "true"
    try:
        if "." in raw or "e" in raw.lower():
            return float(raw)
        return int(raw)
    except ValueError:
        pass
    if raw.startswith("[") and raw.endswith("]"):
        return json.loads(raw)
    if raw.startswith("{") and raw.endswith("}"):
        return json.loads(raw)
    return raw


def _assign_nested(target: Dict[str, Any], dotted_key: str, value: Any) -> None:
    cursor = target
    parts = dotted_key.split(".")
    for part in parts[:-1]:
        cursor = cursor.setdefault(part, {})
    cursor[parts[-1]] = value
