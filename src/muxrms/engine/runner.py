from __future__ import annotations

import logging
import queue
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Optional

import typer

try:
    import serial  # type: ignore[import]
except ImportError:  # pragma: no cover - handled in CLI validation
    serial = None  # type: ignore[assignment]

from ..data import load_waveform
from .config import ConfigError, MuxConfig, load_config
from .export import LatestValueSink, ValuesFileWriter
from .frames import RawBlock
from .processing import BlockResult, MuxPipeline
from .sources import BlockSource, RecordedSource, SyntheticSource

logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from .plotting import LivePlotter


@dataclass
class SerialSettings:
    port: str
    baudrate: int = 9600
    timeout: float = 2.0


class SerialProbeNotifier:
    """
    Tells the multiplexer controller which probe slot is active by writing
    the 1-based slot number as ASCII once per processed block.
    """

    def __init__(self, settings: SerialSettings, cycle_length: int):
        if serial is None:
            raise ImportError("pyserial is required but not installed. Install extra 'serial'.")
        if cycle_length <= 0:
            raise ValueError("cycle_length must be positive")
        self.settings = settings
        self.cycle_length = cycle_length
        self._active = 1
        self._serial = serial.Serial(
            port=settings.port,
            baudrate=settings.baudrate,
            timeout=settings.timeout,
        )

    @property
    def active(self) -> int:
        return self._active

    def notify(self) -> None:
        payload = str(self._active).encode("ascii")
        try:
            self._serial.write(payload)
        except serial.SerialException as exc:  # type: ignore[union-attr]
            logger.warning("Probe notification failed on %s: %s", self.settings.port, exc)
        self._active = self._active % self.cycle_length + 1

    def close(self) -> None:
        try:
            self._serial.close()
        except Exception:
            logger.debug("Serial close failed", exc_info=True)


class BlockReaderThread(threading.Thread):
    """
    Pulls blocks from the acquisition source into a bounded queue. When the
    consumer falls behind the newest block is dropped and counted.
    """

    def __init__(self, source: BlockSource, block_queue: "queue.Queue[RawBlock]") -> None:
        super().__init__(daemon=True)
        self.source = source
        self.queue = block_queue
        self._stop_event = threading.Event()
        self.finished = threading.Event()
        self._produced = 0
        self._dropped = 0
        self.last_exception: Optional[BaseException] = None
        self._log = logging.getLogger(__name__)

    def run(self) -> None:
        try:
            for block in self.source.blocks():
                if self._stop_event.is_set():
                    break
                self._emit(block)
        except Exception as exc:
            self.last_exception = exc
            self._log.error("Acquisition source failed: %s", exc)
        finally:
            self.finished.set()

    def stop(self) -> None:
        self._stop_event.set()
        self.source.close()

    def stats(self) -> dict[str, int]:
        return {"produced": self._produced, "dropped": self._dropped}

    def _emit(self, block: RawBlock) -> None:
        self._produced += 1
        try:
            self.queue.put_nowait(block)
        except queue.Full:
            self._dropped += 1
            self._log.warning("Block queue full (%d), dropping block", self.queue.qsize())


class MuxHost:
    """Host-side loop feeding acquired blocks through the pipeline."""

    def __init__(
        self,
        config: MuxConfig,
        source: BlockSource,
        *,
        notifier: Optional[SerialProbeNotifier] = None,
        plotter: Optional["LivePlotter"] = None,
        sinks: Optional[List[Callable[[BlockResult], None]]] = None,
    ):
        self.config = config
        self.source = source
        self.notifier = notifier
        self.plotter = plotter
        self.pipeline = MuxPipeline(config)
        for sink in sinks or []:
            self.pipeline.register_callback(sink)
        if self.plotter:
            self.pipeline.register_callback(self.plotter.on_result)
        self.processed = 0

    def run(self, max_blocks: Optional[int] = None) -> Dict[str, int]:
        self.pipeline.start()
        block_queue: "queue.Queue[RawBlock]" = queue.Queue(maxsize=self.config.host.queue_maxsize)
        reader = BlockReaderThread(self.source, block_queue)
        reader.start()
        interval_sec = max(float(self.config.host.stats_log_interval), 1.0)
        next_log = time.monotonic() + interval_sec
        stats: Dict[str, int] = {}

        def emit_stats() -> None:
            snapshot = {**self.pipeline.stats(), **reader.stats()}
            logger.info(
                "processed=%d published=%d no_gap=%d short_frame=%d zero_reference=%d non_finite=%d dropped=%d",
                self.processed,
                snapshot.get("published", 0),
                snapshot.get("no_gap", 0),
                snapshot.get("short_frame", 0),
                snapshot.get("zero_reference", 0),
                snapshot.get("non_finite", 0),
                snapshot.get("dropped", 0),
            )

        try:
            while max_blocks is None or self.processed < max_blocks:
                try:
                    block = block_queue.get(timeout=self.config.host.block_timeout_sec)
                except queue.Empty:
                    if reader.last_exception is not None:
                        self.pipeline.fault(reader.last_exception)
                    if reader.finished.is_set():
                        logger.info("Acquisition source exhausted")
                        break
                    continue
                self.pipeline.on_block(block)
                if self.notifier is not None:
                    self.notifier.notify()
                self.processed += 1
                if time.monotonic() >= next_log:
                    emit_stats()
                    next_log = time.monotonic() + interval_sec
        except KeyboardInterrupt:
            logger.info("Stopping host (Ctrl+C)")
        finally:
            stats = {"processed": self.processed, **self.pipeline.stats(), **reader.stats()}
            reader.stop()
            reader.join(timeout=5)
            self.pipeline.close()
            logger.info("Final stats: %s", stats)
            if self.notifier is not None:
                self.notifier.close()
            if self.plotter:
                self.plotter.close()
        return stats


def build_source(target: str, config: MuxConfig, *, loop: bool = False, seed: Optional[int] = None) -> BlockSource:
    """`synthetic` builds a simulated multiplexer; anything else is a recording path."""
    if target.lower() == "synthetic":
        return SyntheticSource(config, realtime=True, phase=config.acquisition.block_length // 3, seed=seed)
    waveform = load_waveform(Path(target))
    return RecordedSource(
        waveform.primary,
        waveform.reference,
        config.acquisition.block_length,
        loop=loop,
        sample_rate_hz=config.acquisition.sample_rate_hz,
    )


def run(
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="Path to host config JSON."),
    override: Optional[list[str]] = typer.Option(
        None,
        "--set",
        help="Override config keys, e.g. --set segment.cutoff_left=120 --set gap.window=12",
    ),
    source_target: str = typer.Option(
        "synthetic", "--source", "-s", help="'synthetic' or a recorded waveform (.csv/.npy)."
    ),
    loop: bool = typer.Option(False, "--loop", help="Replay a recording continuously."),
    voltage: bool = typer.Option(False, "--voltage", help="Report raw primary RMS instead of impedance."),
    plot: bool = typer.Option(False, "--plot", help="Show realtime Matplotlib history chart."),
    serial_port: Optional[str] = typer.Option(None, "--serial-port", help="Notify active probe on this port."),
    baudrate: int = typer.Option(9600, "--baud", help="Serial baudrate for probe notifications."),
    values_out: Optional[Path] = typer.Option(None, "--values-out", help="Comma-joined readings file."),
    latest_out: Optional[Path] = typer.Option(None, "--latest-out", help="Latest reading byte sink."),
    max_blocks: Optional[int] = typer.Option(None, "--max-blocks", help="Stop after N blocks."),
):
    """Run the acquisition host: read blocks, extract per-probe readings, publish."""

    try:
        cfg = load_config(config_path, override or None)
        if voltage:
            cfg.use_rms = True
        cfg.validate()
    except (ConfigError, ValueError) as exc:
        raise typer.BadParameter(str(exc)) from exc

    values_path = values_out or cfg.values_path
    latest_path = latest_out or cfg.latest_path
    sinks: List[Callable[[BlockResult], None]] = []
    closers: List[Any] = []
    if values_path is not None:
        sinks.append(ValuesFileWriter(values_path).on_result)
    if latest_path is not None:
        latest = LatestValueSink(cfg.latest_probe, path=latest_path)
        sinks.append(latest.on_result)
        closers.append(latest)

    plotter = None
    if plot:
        try:
            from .plotting import LivePlotter
        except ImportError as exc:
            raise typer.BadParameter("Matplotlib is required for --plot (pip install .[plot])") from exc
        plotter = LivePlotter(probes=cfg.probe_count, mode_label=cfg.mode_label)
        logger.info("Live plot enabled (%d probes, mode=%s)", cfg.probe_count, cfg.mode_label)

    notifier = None
    if serial_port:
        try:
            notifier = SerialProbeNotifier(
                SerialSettings(port=serial_port, baudrate=baudrate), cycle_length=cfg.probe_count + 1
            )
        except ImportError as exc:
            raise typer.BadParameter(str(exc)) from exc

    source = build_source(source_target, cfg, loop=loop)
    host = MuxHost(cfg, source, notifier=notifier, plotter=plotter, sinks=sinks)
    try:
        stats = host.run(max_blocks=max_blocks)
    finally:
        for closer in closers:
            closer.close()
    typer.echo(
        f"Processed {stats.get('processed', 0)} blocks, published {stats.get('published', 0)}, "
        f"dropped {stats.get('dropped', 0)}"
    )
