"""Metric state owner for the exporter.

:class:`MetricPublisher` is the only writer of the exported gauges. It turns a
:class:`~logstack_exporter.models.ScrapeResult` into metric updates under a
short lock and doubles as a ``prometheus_client`` custom collector, so
readers always observe the values of one complete cycle. The lock is held
only while values are applied or read, never across a backend call.

Failures never touch the gauges: last-known-good values stay flat while
``exporter_scrape_failures_total`` rises, which keeps "backend is down"
distinguishable from "the message stopped arriving".
"""

from __future__ import annotations

import threading
from dataclasses import replace
from typing import TYPE_CHECKING

from logstack_common.errors import is_recoverable
from logstack_common.logging import LoggerAdapter, get_logger
from logstack_exporter.models import MetricSnapshot, QueryMode, ScrapeFailure, ScrapeSuccess

if TYPE_CHECKING:
    from prometheus_client.metrics_core import Metric

    from logstack_exporter.models import ScrapeResult
    from observability.metrics import ExporterMetrics

__all__ = ["MetricPublisher"]

LOGGER = get_logger(__name__)


class MetricPublisher:
    """Apply scrape results to the exported metrics.

    Parameters
    ----------
    metrics : ExporterMetrics
        Metric handles to update; normally detached from any registry and
        exposed through this object's :meth:`collect`.
    logger : LoggerAdapter | None, optional
        Logger for failure reports. Defaults to the module logger.
    """

    def __init__(self, metrics: ExporterMetrics, logger: LoggerAdapter | None = None) -> None:
        self._metrics = metrics
        self._logger = logger or LOGGER
        self._lock = threading.RLock()
        self._snapshot = MetricSnapshot()

    def apply(self, result: ScrapeResult) -> MetricSnapshot:
        """Publish ``result``.

        Parameters
        ----------
        result : ScrapeResult
            Outcome of one scrape cycle.

        Returns
        -------
        MetricSnapshot
            Snapshot after the update.
        """
        with self._lock:
            if isinstance(result, ScrapeFailure):
                self._record_failure(result)
            else:
                self._record_success(result)
            return self._snapshot

    def _record_failure(self, failure: ScrapeFailure) -> None:
        self._metrics.scrape_failures.inc()
        self._snapshot = replace(
            self._snapshot, scrape_failures_total=self._snapshot.scrape_failures_total + 1
        )
        extra: dict[str, object] = {
            "operation": "publish",
            "failure_kind": failure.kind.value,
            "recoverable": is_recoverable(failure.kind),
        }
        extra.update(failure.cause.log_extra())
        self._logger.error("Error scraping Elasticsearch index: %s", failure.cause, extra=extra)

    def _record_success(self, success: ScrapeSuccess) -> None:
        snapshot = self._snapshot
        if not success.hit_found:
            snapshot = replace(snapshot, log_presence=0.0)
        elif success.mode is QueryMode.RANGE:
            snapshot = replace(snapshot, log_presence=float(success.total_hits))
        else:
            snapshot = replace(snapshot, log_presence=1.0)
            if success.freshness_seconds is not None:
                snapshot = replace(
                    snapshot, last_message_received_timestamp=success.freshness_seconds
                )
            if success.lag_seconds is not None:
                snapshot = replace(snapshot, processed_time=success.lag_seconds)

        self._metrics.last_message_timestamp.set(snapshot.last_message_received_timestamp)
        self._metrics.processed_time.set(snapshot.processed_time)
        self._metrics.log_presence.set(snapshot.log_presence)
        self._snapshot = snapshot
        self._logger.debug(
            "Published scrape result",
            extra={
                "operation": "publish",
                "hit_found": success.hit_found,
                "total_hits": success.total_hits,
            },
        )

    def snapshot(self) -> MetricSnapshot:
        """Return the values of the last completed cycle."""
        with self._lock:
            return self._snapshot

    def describe(self) -> list[Metric]:
        """Return descriptors for every exported metric, before any value is set."""
        return [metric for handle in self._metrics.all() for metric in handle.describe()]

    def collect(self) -> list[Metric]:
        """Return every exported metric with its current value."""
        with self._lock:
            return [metric for handle in self._metrics.all() for metric in handle.collect()]
