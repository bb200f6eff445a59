"""Scrape scheduling: on every metrics read (pull) or on a fixed interval (push).

Both strategies drive the same :class:`ScrapeCycle`, which is the only code
path that runs the engine and publishes its result.
"""

from __future__ import annotations

import threading
import uuid
from collections.abc import Callable
from typing import TYPE_CHECKING, Protocol

from logstack_common.logging import CorrelationContext, LoggerAdapter, get_logger
from logstack_exporter.models import TriggerMode

if TYPE_CHECKING:
    from prometheus_client.metrics_core import Metric
    from prometheus_client.registry import CollectorRegistry

    from logstack_exporter.engine import ScrapeEngine
    from logstack_exporter.models import MetricSnapshot, ScrapeConfig
    from logstack_exporter.publisher import MetricPublisher

__all__ = [
    "ConfigSource",
    "PullTrigger",
    "PushTrigger",
    "ScrapeCycle",
    "Trigger",
    "build_trigger",
]

LOGGER = get_logger(__name__)

ConfigSource = Callable[[], "ScrapeConfig"]


class ScrapeCycle:
    """One read-config, query, publish round trip.

    Parameters
    ----------
    engine : ScrapeEngine
        Runs the query.
    publisher : MetricPublisher
        Receives the result.
    config_source : ConfigSource
        Returns the current configuration snapshot, usually
        :meth:`ConfigHandle.current <logstack_exporter.config.ConfigHandle.current>`.
    logger : LoggerAdapter | None, optional
        Logger. Defaults to the module logger.
    """

    def __init__(
        self,
        engine: ScrapeEngine,
        publisher: MetricPublisher,
        config_source: ConfigSource,
        logger: LoggerAdapter | None = None,
    ) -> None:
        self._engine = engine
        self._publisher = publisher
        self._config_source = config_source
        self._logger = logger or LOGGER
        self._lock = threading.RLock()

    @property
    def lock(self) -> threading.RLock:
        """Lock serialising cycles; held for the whole backend round trip."""
        return self._lock

    def run_once(self) -> MetricSnapshot:
        """Run a full cycle and return the published snapshot."""
        with self._lock, CorrelationContext(uuid.uuid4().hex):
            config = self._config_source()
            self._logger.debug(
                "Scrape started",
                extra={
                    "operation": "scrape",
                    "status": "started",
                    "index": config.scrape_index,
                    "query_mode": config.query_mode.value,
                },
            )
            result = self._engine.run(config)
            return self._publisher.apply(result)


class Trigger(Protocol):
    """Lifecycle shared by the scheduling strategies."""

    def register(self, registry: CollectorRegistry) -> None:
        """Expose the exporter's metrics through ``registry``."""
        ...

    def start(self) -> None:
        """Begin scheduling cycles."""
        ...

    def stop(self, timeout: float | None = None) -> None:
        """Stop scheduling cycles, waiting up to ``timeout`` seconds."""
        ...


class PullTrigger:
    """Scrape synchronously whenever the registry is collected.

    Every ``/metrics`` request runs one cycle and returns its values in the
    same cycle lock hold, so a reader gets the values of its own cycle.
    Concurrent readers queue on the cycle lock.
    """

    def __init__(self, cycle: ScrapeCycle, publisher: MetricPublisher) -> None:
        self._cycle = cycle
        self._publisher = publisher

    def describe(self) -> list[Metric]:
        """Return metric descriptors; never queries the backend."""
        return self._publisher.describe()

    def collect(self) -> list[Metric]:
        """Run one cycle and return the metrics it produced."""
        with self._cycle.lock:
            self._cycle.run_once()
            return self._publisher.collect()

    def register(self, registry: CollectorRegistry) -> None:
        """Register this trigger as the collector for the exporter's metrics."""
        registry.register(self)

    def start(self) -> None:
        """Nothing to start; cycles run on collection."""

    def stop(self, timeout: float | None = None) -> None:
        """Nothing to stop; an in-flight collection completes on its own."""
        del timeout


class PushTrigger:
    """Scrape on a background thread every ``interval_seconds``.

    The first cycle runs immediately on :meth:`start`. Metric reads never
    wait for the backend: they return the values of the last completed cycle.

    Parameters
    ----------
    cycle : ScrapeCycle
        Cycle to run.
    publisher : MetricPublisher
        Collector registered with the metrics registry.
    interval_seconds : float
        Delay between the end of one cycle and the start of the next.
    logger : LoggerAdapter | None, optional
        Logger. Defaults to the module logger.
    """

    def __init__(
        self,
        cycle: ScrapeCycle,
        publisher: MetricPublisher,
        interval_seconds: float,
        logger: LoggerAdapter | None = None,
    ) -> None:
        if interval_seconds <= 0:
            msg = f"interval_seconds must be positive, got {interval_seconds}"
            raise ValueError(msg)
        self._cycle = cycle
        self._publisher = publisher
        self._interval = interval_seconds
        self._logger = logger or LOGGER
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        """Whether the scrape thread is alive."""
        return self._thread is not None and self._thread.is_alive()

    def register(self, registry: CollectorRegistry) -> None:
        """Register the publisher as the collector for the exporter's metrics."""
        registry.register(self._publisher)

    def start(self) -> None:
        """Start the scrape thread (no-op when already running)."""
        if self._thread is not None:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="logstack-push-trigger", daemon=True)
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        """Stop scheduling; an in-flight cycle is allowed to finish."""
        self._stop.set()
        thread, self._thread = self._thread, None
        if thread is not None:
            thread.join(timeout)
            if thread.is_alive():
                self._logger.warning(
                    "Scrape thread did not stop within %.1fs",
                    timeout or 0.0,
                    extra={"operation": "shutdown"},
                )

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                self._cycle.run_once()
            except Exception:
                # Expected failures arrive as ScrapeFailure results.
                self._logger.exception("Scrape cycle raised", extra={"operation": "scrape"})
            if self._stop.wait(self._interval):
                break


def build_trigger(
    mode: TriggerMode,
    cycle: ScrapeCycle,
    publisher: MetricPublisher,
    interval_seconds: float,
    logger: LoggerAdapter | None = None,
) -> PullTrigger | PushTrigger:
    """Return the trigger implementing ``mode``.

    Raises
    ------
    ValueError
        If ``mode`` is not a :class:`TriggerMode`.
    """
    if mode is TriggerMode.PULL:
        return PullTrigger(cycle, publisher)
    if mode is TriggerMode.PUSH:
        return PushTrigger(cycle, publisher, interval_seconds, logger=logger)
    msg = f"Unknown trigger mode: {mode!r}"
    raise ValueError(msg)
