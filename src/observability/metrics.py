"""Prometheus metrics published by the exporter.

Metric names and help texts are kept identical to the ones dashboards and
alerts already use, including the historical ``lostack_processed_time``
spelling. Handles are built per exporter instance and injected into the
publisher, so tests can build as many independent sets as they need.

Examples
--------
>>> from observability.metrics import build_exporter_metrics
>>> metrics = build_exporter_metrics(version="1.0.0")
>>> metrics.scrape_failures.inc()
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Final

from logstack_common.prometheus import build_counter, build_gauge

if TYPE_CHECKING:
    from logstack_common.prometheus import CollectorRegistry, CounterLike, GaugeLike

__all__ = [
    "BUILD_INFO",
    "LAST_MESSAGE_TIMESTAMP",
    "LOG_PRESENCE",
    "METRIC_HELP",
    "PROCESSED_TIME",
    "SCRAPE_FAILURES",
    "ExporterMetrics",
    "build_exporter_metrics",
]

SCRAPE_FAILURES: Final = "exporter_scrape_failures_total"
LAST_MESSAGE_TIMESTAMP: Final = "last_message_received_timestamp"
PROCESSED_TIME: Final = "lostack_processed_time"
LOG_PRESENCE: Final = "log_presence"
BUILD_INFO: Final = "logstack_exporter_build_info"

METRIC_HELP: Final[dict[str, str]] = {
    SCRAPE_FAILURES: "Number of errors while scraping elasticsearch index",
    LAST_MESSAGE_TIMESTAMP: "timestamp of the last log entry found in Unix seconds",
    PROCESSED_TIME: "Difference in seconds between log generated and arrival time in Logstash",
    LOG_PRESENCE: "1 when the message was found (hit count in range mode), 0 otherwise",
    BUILD_INFO: "A metric with a constant '1' value labeled by the exporter version",
}


@dataclass(frozen=True, slots=True)
class ExporterMetrics:
    """Metric handles owned by one :class:`~logstack_exporter.publisher.MetricPublisher`."""

    scrape_failures: CounterLike
    last_message_timestamp: GaugeLike
    processed_time: GaugeLike
    log_presence: GaugeLike
    build_info: GaugeLike

    def all(self) -> tuple[CounterLike | GaugeLike, ...]:
        """Return every handle in exposition order."""
        return (
            self.scrape_failures,
            self.last_message_timestamp,
            self.processed_time,
            self.log_presence,
            self.build_info,
        )


def build_exporter_metrics(
    version: str,
    *,
    registry: CollectorRegistry | None = None,
) -> ExporterMetrics:
    """Build the exporter's metric handles.

    Parameters
    ----------
    version : str
        Value of the ``version`` label on the build-info gauge.
    registry : CollectorRegistry | None, optional
        Registry to register each metric with. Defaults to None: the metrics
        are detached and exposed through the publisher's collector.

    Returns
    -------
    ExporterMetrics
        Fresh metric handles.
    """
    build_info = build_gauge(BUILD_INFO, METRIC_HELP[BUILD_INFO], ("version",), registry=registry)
    build_info.labels(version=version).set(1)
    return ExporterMetrics(
        scrape_failures=build_counter(
            SCRAPE_FAILURES, METRIC_HELP[SCRAPE_FAILURES], registry=registry
        ),
        last_message_timestamp=build_gauge(
            LAST_MESSAGE_TIMESTAMP, METRIC_HELP[LAST_MESSAGE_TIMESTAMP], registry=registry
        ),
        processed_time=build_gauge(
            PROCESSED_TIME, METRIC_HELP[PROCESSED_TIME], registry=registry
        ),
        log_presence=build_gauge(LOG_PRESENCE, METRIC_HELP[LOG_PRESENCE], registry=registry),
        build_info=build_info,
    )
