"""
Frame synchronisation and batch-RMS extraction for multiplexed probe signals.

The subpackage holds the per-block engine (gap location, segmentation, RMS,
smoothing, history), the session driver, block sources and the host loop
used by the command line application.
"""

from .config import AcquisitionConfig, ConfigError, GapConfig, HostRuntime, MuxConfig, SegmentConfig, load_config
from .export import LatestValueSink, ValuesFileWriter, format_values, parse_values
from .frames import BlockError, FrameLayout, RawBlock, Segment, SplitTail, locate_anchor, locate_gap, plan_segments
from .processing import (
    AcquisitionFault,
    BlockResult,
    Diagnostic,
    MuxPipeline,
    ReadingsCsvLogger,
    SessionError,
    SessionState,
    SkipReason,
)
from .rms import RmsPair, extract_pairs, merge_split, probe_reading, rms
from .runner import BlockReaderThread, MuxHost, SerialProbeNotifier, SerialSettings
from .smoothing import ProbeHistory, SmoothingMatrix, history_points
from .sources import BlockSource, RecordedSource, SyntheticSource, synthesize_frame

__all__ = [
    "AcquisitionConfig",
    "ConfigError",
    "GapConfig",
    "HostRuntime",
    "MuxConfig",
    "SegmentConfig",
    "load_config",
    "LatestValueSink",
    "ValuesFileWriter",
    "format_values",
    "parse_values",
    "BlockError",
    "FrameLayout",
    "RawBlock",
    "Segment",
    "SplitTail",
    "locate_anchor",
    "locate_gap",
    "plan_segments",
    "AcquisitionFault",
    "BlockResult",
    "Diagnostic",
    "MuxPipeline",
    "ReadingsCsvLogger",
    "SessionError",
    "SessionState",
    "SkipReason",
    "RmsPair",
    "extract_pairs",
    "merge_split",
    "probe_reading",
    "rms",
    "BlockReaderThread",
    "MuxHost",
    "SerialProbeNotifier",
    "SerialSettings",
    "ProbeHistory",
    "SmoothingMatrix",
    "history_points",
    "BlockSource",
    "RecordedSource",
    "SyntheticSource",
    "synthesize_frame",
]
