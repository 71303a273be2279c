"""Sampling engine: counter sampling, speed derivation and daily totals."""

import logging
import time
from collections import defaultdict
from concurrent.futures import Future
from datetime import date
from enum import Enum
from threading import Event, RLock, Thread
from typing import Callable, Optional

from netmeter.config import NetmeterConfig, load_config
from netmeter.delta import counter_delta
from netmeter.errors import (
    ExternalIPFetchFailed,
    InterfaceAccessError,
    InvalidInterval,
    NetmeterError,
    NoActiveInterface,
    PersistenceError,
)
from netmeter.external_ip import ExternalIPResolver
from netmeter.interfaces import InterfaceReader, LinkObserver
from netmeter.models import (
    PATH_TO_CONNECTION,
    ConnectionStatus,
    ErrorInfo,
    InterfaceSample,
    PathStatus,
    PublishedMetrics,
)
from netmeter.publisher import MetricsPublisher, Subscriber
from netmeter.stats_store import DailyStatsStore

logger = logging.getLogger(__name__)


class EngineState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


class CounterState:
    """Last seen counters of the primary interface."""

    def __init__(self):
        self.previous_upload = 0
        self.previous_download = 0
        self.interface_name: Optional[str] = None
        self.awaiting_reseed = True

    def arm_reseed(self) -> None:
        """Make the next sample seed the counters instead of producing a delta."""
        self.awaiting_reseed = True

    def seed(self, sample: InterfaceSample) -> None:
        self.update(sample)
        self.awaiting_reseed = False

    def update(self, sample: InterfaceSample) -> None:
        self.previous_upload = sample.output_bytes
        self.previous_download = sample.input_bytes
        self.interface_name = sample.name


class AccumulatedWindow:
    """Bytes seen between two publish ticks, split by calendar day."""

    def __init__(self):
        self.upload = 0
        self.download = 0
        self.by_day: dict[date, list[int]] = defaultdict(lambda: [0, 0])

    def add(self, day: date, uploaded: int, downloaded: int) -> None:
        self.upload += uploaded
        self.download += downloaded
        self.by_day[day][0] += uploaded
        self.by_day[day][1] += downloaded

    def clear(self) -> None:
        self.upload = 0
        self.download = 0
        self.by_day.clear()


def validate_intervals(sample_interval_ms: float, publish_interval_ms: float) -> None:
    """Reject non-positive intervals.

    Raises:
        InvalidInterval: either interval is not greater than zero
    """
    if sample_interval_ms <= 0 or publish_interval_ms <= 0:
        raise InvalidInterval(
            f"Intervals must be greater than zero "
            f"(sample={sample_interval_ms} ms, publish={publish_interval_ms} ms)"
        )


class SamplingEngine:
    """Samples the primary interface and publishes throughput metrics.

    Two timers run while the engine is RUNNING: a fast sampler that
    turns counter readings into deltas and a slower publisher that
    converts the accumulated window into speeds, folds it into the
    daily totals and publishes a snapshot. Every tick runs under the
    engine lock, so the two never interleave.
    """

    def __init__(
        self,
        reader: InterfaceReader,
        store: DailyStatsStore,
        resolver: Optional[ExternalIPResolver] = None,
        config: Optional[NetmeterConfig] = None,
        clock: Callable[[], float] = time.monotonic,
        today: Callable[[], date] = date.today
    ):
        self.config = config or load_config()
        self.reader = reader
        self.store = store
        self.resolver = resolver
        self.sample_interval_ms = self.config.sample_interval_ms
        self.publish_interval_ms = self.config.publish_interval_ms
        self.state = EngineState.IDLE
        self.counters = CounterState()
        self.window = AccumulatedWindow()

        self._clock = clock
        self._today = today
        self._lock = RLock()
        self._stop_event: Optional[Event] = None
        self._sampler_thread: Optional[Thread] = None
        self._publisher_thread: Optional[Thread] = None
        self._observer: Optional[LinkObserver] = None

        self._path_status = PathStatus.SATISFIED
        self._status = ConnectionStatus.CONNECTING
        self._last_error: Optional[ErrorInfo] = None
        self._last_sample: Optional[InterfaceSample] = None
        self._external_ip = "Unknown"
        self._start_time = clock()
        self._uptime = 0.0
        self._upload_speed = 0.0
        self._download_speed = 0.0
        self._peak_upload = 0.0
        self._peak_download = 0.0

        self.publisher = MetricsPublisher()
        self._publish()

    # Consumer access

    @property
    def snapshot(self) -> PublishedMetrics:
        return self.publisher.snapshot

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        return self.publisher.subscribe(callback)

    @property
    def is_running(self) -> bool:
        return self.state == EngineState.RUNNING

    # Control surface

    def start(
        self,
        sample_interval_ms: Optional[int] = None,
        publish_interval_ms: Optional[int] = None
    ) -> bool:
        """Start sampling; restarts when already running.

        Args:
            sample_interval_ms: Sampler period, defaults to the current one
            publish_interval_ms: Publisher period, defaults to the current one

        Returns:
            False when the intervals are invalid (nothing changes)
        """
        if sample_interval_ms is None:
            sample_interval_ms = self.sample_interval_ms
        if publish_interval_ms is None:
            publish_interval_ms = self.publish_interval_ms

        try:
            validate_intervals(sample_interval_ms, publish_interval_ms)
        except InvalidInterval as e:
            logger.error(f"Not starting: {e}")
            return False

        with self._lock:
            if self.state == EngineState.RUNNING:
                self._stop_timers()

            self.sample_interval_ms = sample_interval_ms
            self.publish_interval_ms = publish_interval_ms
            self._start_time = self._clock()
            self._uptime = 0.0
            self.counters.arm_reseed()
            self.window.clear()
            self._last_error = None
            self.state = EngineState.RUNNING
            self._stop_event = Event()
            self._start_timers(self._stop_event)
            self._publish()

        logger.info(
            f"Sampling started (sample: {sample_interval_ms} ms, "
            f"publish: {publish_interval_ms} ms)"
        )
        return True

    def stop(self) -> None:
        """Stop both timers; no tick fires after this returns."""
        with self._lock:
            if self.state != EngineState.RUNNING:
                return
            self._stop_timers()
            self.state = EngineState.IDLE
        logger.info("Sampling stopped")

    def restart(self) -> bool:
        """Stop and start again with the current intervals."""
        self.stop()
        return self.start(self.sample_interval_ms, self.publish_interval_ms)

    def set_intervals(self, sample_interval_ms: int, publish_interval_ms: int) -> bool:
        """Change both periods with a full restart and reseed.

        Invalid intervals are rejected and the running schedule is kept.
        """
        try:
            validate_intervals(sample_interval_ms, publish_interval_ms)
        except InvalidInterval as e:
            logger.error(f"Interval change rejected: {e}")
            return False

        with self._lock:
            self.stop()
            return self.start(sample_interval_ms, publish_interval_ms)

    def reset_statistics(self) -> None:
        """Clear session peaks and speeds and reseed the counters.

        Traffic still in the window is written to today's totals first;
        persisted daily totals are kept.
        """
        with self._lock:
            self._peak_upload = 0.0
            self._peak_download = 0.0
            self._upload_speed = 0.0
            self._download_speed = 0.0
            self._flush_window()
            self.counters.arm_reseed()
            self._start_time = self._clock()
            self._uptime = 0.0
            self._track_store_error()
            self._publish()
        logger.info("Statistics reset")

    def resolve_external_ip(self) -> Optional[Future]:
        """Look up the public IP; the result is published when it arrives."""
        if self.resolver is None:
            return None
        return self.resolver.resolve(on_done=self._on_external_ip)

    def start_link_observer(self) -> LinkObserver:
        """Watch link state and feed it into on_path_update."""
        if self._observer is None:
            self._observer = LinkObserver(
                self.reader,
                self.on_path_update,
                poll_sec=self.config.path_poll_sec
            )
        if not self._observer.is_alive():
            self._observer.start()
        return self._observer

    def shutdown(self) -> None:
        """Stop timers, cancel the IP lookup and stop the link observer."""
        self.stop()
        if self._observer is not None:
            self._observer.stop()
        if self.resolver is not None:
            self.resolver.close()
        logger.info("Engine shut down")

    # Collaborator callbacks

    def on_path_update(self, path_status: PathStatus) -> None:
        """React to a connectivity change reported by a path observer."""
        with self._lock:
            previous = self._path_status
            self._path_status = path_status
            self._status = PATH_TO_CONNECTION[path_status]

            if path_status == PathStatus.SATISFIED:
                self._last_error = None
            else:
                self.counters.arm_reseed()
                self._upload_speed = 0.0
                self._download_speed = 0.0
                if path_status == PathStatus.UNKNOWN:
                    self._last_error = InterfaceAccessError(
                        "Network path status unknown"
                    ).to_info()

            self._publish()

        if previous != path_status:
            logger.info(f"Connection status: {self._status.value}")

    # Ticks

    def on_sample_tick(self) -> None:
        """Read the primary interface and accumulate its deltas."""
        with self._lock:
            if self.state != EngineState.RUNNING:
                return
            if self._path_status != PathStatus.SATISFIED:
                return

            try:
                sample = self.reader.primary_interface()
            except (InterfaceAccessError, NoActiveInterface) as e:
                self._fail(e)
                return

            self._last_sample = sample
            if self._status != ConnectionStatus.CONNECTED:
                self._status = ConnectionStatus.CONNECTED
                self._last_error = None
                self._publish()

            if self.counters.awaiting_reseed:
                self.counters.seed(sample)
                logger.debug(f"Counters seeded from {sample.name}")
                return

            if sample.name != self.counters.interface_name:
                logger.info(
                    f"Primary interface changed: {self.counters.interface_name} -> {sample.name}"
                )
                self.counters.seed(sample)
                return

            uploaded = counter_delta(sample.output_bytes, self.counters.previous_upload)
            downloaded = counter_delta(sample.input_bytes, self.counters.previous_download)
            self.window.add(self._today(), uploaded, downloaded)
            self.counters.update(sample)

    def on_publish_tick(self) -> None:
        """Turn the window into speeds, fold it into daily totals, publish."""
        with self._lock:
            if self.state != EngineState.RUNNING:
                return

            window_sec = self.publish_interval_ms / 1000
            self._upload_speed = self.window.upload / window_sec
            self._download_speed = self.window.download / window_sec

            self._flush_window()
            if self._upload_speed > 0 or self._download_speed > 0:
                self.store.record_peak(self._today(), self._upload_speed, self._download_speed)

            self._peak_upload = max(self._peak_upload, self._upload_speed)
            self._peak_download = max(self._peak_download, self._download_speed)
            self._uptime = self._clock() - self._start_time
            self._track_store_error()
            self._publish()

    # Internals

    def _start_timers(self, stop_event: Event) -> None:
        self._sampler_thread = Thread(
            target=self._timer_loop,
            args=(stop_event, self.sample_interval_ms, self.on_sample_tick, 'sampler'),
            daemon=True,
            name='netmeter-sampler'
        )
        self._publisher_thread = Thread(
            target=self._timer_loop,
            args=(stop_event, self.publish_interval_ms, self.on_publish_tick, 'publisher'),
            daemon=True,
            name='netmeter-publisher'
        )
        self._sampler_thread.start()
        self._publisher_thread.start()

    def _stop_timers(self) -> None:
        # Caller holds the lock, so no tick is running while the event is set
        if self._stop_event is not None:
            self._stop_event.set()
            self._stop_event = None

    def _timer_loop(
        self,
        stop_event: Event,
        interval_ms: int,
        tick: Callable[[], None],
        name: str
    ) -> None:
        logger.debug(f"{name} timer started ({interval_ms} ms)")

        while not stop_event.wait(timeout=interval_ms / 1000):
            with self._lock:
                if stop_event.is_set():
                    break
                try:
                    tick()
                except Exception as e:
                    logger.error(f"{name} tick error: {e}")

        logger.debug(f"{name} timer stopped")

    def _flush_window(self) -> None:
        # Caller holds the lock
        for day, (uploaded, downloaded) in sorted(self.window.by_day.items()):
            if uploaded or downloaded:
                self.store.add_delta(day, uploaded, downloaded)
        self.window.clear()

    def _fail(self, error: NetmeterError) -> None:
        logger.warning(f"Sample failed: {error.message}")
        self.counters.arm_reseed()
        self._status = ConnectionStatus.ERROR
        self._last_error = error.to_info()
        self._upload_speed = 0.0
        self._download_speed = 0.0
        self._publish()

    def _track_store_error(self) -> None:
        if self.store.last_error is not None:
            self._last_error = self.store.last_error.to_info()
        elif self._last_error is not None and self._last_error.code == PersistenceError.code:
            self._last_error = None

    def _on_external_ip(self, ip: str, error: Optional[ExternalIPFetchFailed]) -> None:
        with self._lock:
            self._external_ip = ip
            if error is not None:
                self._last_error = error.to_info()
            elif self._last_error is not None and self._last_error.code == ExternalIPFetchFailed.code:
                self._last_error = None
            self._publish()

    def _publish(self) -> PublishedMetrics:
        today = self.store.get(self._today())
        sample = self._last_sample
        return self.publisher.publish(
            upload_speed=self._upload_speed,
            download_speed=self._download_speed,
            peak_upload_speed=self._peak_upload,
            peak_download_speed=self._peak_download,
            total_uploaded_today=today.total_uploaded,
            total_downloaded_today=today.total_downloaded,
            interface_name=sample.name if sample else "Unknown",
            interface_description=sample.description if sample else "Unknown",
            ip_address=(sample.ip_address or "Unknown") if sample else "Unknown",
            external_ip_address=self._external_ip,
            network_uptime=self._uptime,
            status=self._status,
            last_error=self._last_error,
        )
