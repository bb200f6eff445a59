"""Tests for scrape cycles and the pull/push triggers.

Threads in these tests are coordinated with events; the only sleeps are
short waits that prove something did *not* happen.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from typing import TYPE_CHECKING

import pytest

from logstack_common.logging import get_correlation_id
from logstack_common.prometheus import sample_value
from logstack_exporter.models import QueryMode, TriggerMode
from logstack_exporter.trigger import PullTrigger, PushTrigger, build_trigger
from observability.metrics import LAST_MESSAGE_TIMESTAMP, LOG_PRESENCE, SCRAPE_FAILURES
from search_client.client import SearchResponse
from tests.helpers.fakes import FakeSearchClient, make_config

if TYPE_CHECKING:
    from _pytest.logging import LogCaptureFixture
    from prometheus_client.registry import CollectorRegistry

    from logstack_exporter.config import ConfigHandle
    from logstack_exporter.publisher import MetricPublisher
    from logstack_exporter.trigger import ScrapeCycle

WAIT = 5.0


def _hit(timestamp: str) -> SearchResponse:
    source = {"@timestamp": timestamp, "logstash_processed_at": timestamp}
    return SearchResponse(hits=({"_source": source},), total_hits=1)


def _blocking(
    response: SearchResponse, started: threading.Event, release: threading.Event
) -> Callable[[], SearchResponse]:
    def _answer() -> SearchResponse:
        started.set()
        assert release.wait(WAIT)
        return response

    return _answer


def _wait_for(predicate: Callable[[], bool], timeout: float = WAIT) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


class TestScrapeCycle:
    """The single scrape path."""

    def test_run_once_publishes(
        self, cycle: ScrapeCycle, fake_client: FakeSearchClient
    ) -> None:
        """A cycle queries the backend and returns the published snapshot."""
        fake_client.outcomes = [_hit("2024-01-01T00:00:00Z")]

        snapshot = cycle.run_once()

        assert snapshot.last_message_received_timestamp == 1704067200.0
        assert snapshot.log_presence == 1.0

    def test_each_cycle_has_a_correlation_id(
        self,
        cycle: ScrapeCycle,
        fake_client: FakeSearchClient,
        exporter_caplog: LogCaptureFixture,
    ) -> None:
        """Records of one cycle share an id that differs between cycles."""
        seen: list[str | None] = []

        def _answer() -> SearchResponse:
            seen.append(get_correlation_id())
            return _hit("2024-01-01T00:00:00Z")

        fake_client.outcomes = [_answer]
        cycle.run_once()
        cycle.run_once()

        assert len(seen) == 2
        assert None not in seen
        assert seen[0] != seen[1]
        assert get_correlation_id() is None
        started = [r for r in exporter_caplog.records if r.getMessage() == "Scrape started"]
        assert [r.correlation_id for r in started] == seen  # type: ignore[attr-defined]

    def test_concurrent_cycles_are_serialised(
        self,
        cycle: ScrapeCycle,
        publisher: MetricPublisher,
        fake_client: FakeSearchClient,
    ) -> None:
        """A second cycle waits; readers get the last completed values at once."""
        started, release = threading.Event(), threading.Event()
        fake_client.outcomes = [
            _blocking(_hit("2024-01-01T00:00:00Z"), started, release),
            _hit("2024-01-01T00:01:00Z"),
        ]
        first = threading.Thread(target=cycle.run_once)
        second = threading.Thread(target=cycle.run_once)
        observed: list[float] = []
        reader = threading.Thread(
            target=lambda: observed.append(publisher.snapshot().last_message_received_timestamp)
        )

        first.start()
        assert started.wait(WAIT)
        second.start()
        reader.start()
        reader.join(WAIT)
        time.sleep(0.1)
        assert len(fake_client.calls) == 1
        assert observed == [0.0]

        release.set()
        for thread in (first, second):
            thread.join(WAIT)

        assert len(fake_client.calls) == 2
        assert publisher.snapshot().last_message_received_timestamp == 1704067260.0

    def test_reload_mid_flight_applies_to_next_cycle(
        self,
        cycle: ScrapeCycle,
        config_handle: ConfigHandle,
        fake_client: FakeSearchClient,
    ) -> None:
        """An in-flight cycle finishes on the old index; the next uses the new one."""
        started, release = threading.Event(), threading.Event()
        fake_client.outcomes = [
            _blocking(_hit("2024-01-01T00:00:00Z"), started, release),
            _hit("2024-01-01T00:01:00Z"),
        ]
        in_flight = threading.Thread(target=cycle.run_once)
        in_flight.start()
        assert started.wait(WAIT)

        config_handle.replace(make_config(scrape_index="logs-new-*"))
        release.set()
        in_flight.join(WAIT)
        cycle.run_once()

        assert [call.index for call in fake_client.calls] == ["logs-*", "logs-new-*"]


class TestPullTrigger:
    """Scrape on collection."""

    def test_describe_never_scrapes(
        self,
        cycle: ScrapeCycle,
        publisher: MetricPublisher,
        fake_client: FakeSearchClient,
        prometheus_registry: CollectorRegistry,
    ) -> None:
        """Registration describes the metrics without touching the backend."""
        trigger = PullTrigger(cycle, publisher)
        trigger.register(prometheus_registry)

        assert fake_client.calls == []
        assert {m.name for m in trigger.describe()} >= {LOG_PRESENCE, LAST_MESSAGE_TIMESTAMP}
        assert fake_client.calls == []

    def test_each_collection_runs_one_cycle(
        self,
        cycle: ScrapeCycle,
        publisher: MetricPublisher,
        fake_client: FakeSearchClient,
        prometheus_registry: CollectorRegistry,
    ) -> None:
        """Every registry read scrapes once and returns that cycle's values."""
        fake_client.outcomes = [_hit("2024-01-01T00:00:00Z"), _hit("2024-01-01T00:01:00Z")]
        trigger = PullTrigger(cycle, publisher)
        trigger.register(prometheus_registry)

        first = prometheus_registry.get_sample_value(LAST_MESSAGE_TIMESTAMP)
        second = prometheus_registry.get_sample_value(LAST_MESSAGE_TIMESTAMP)

        assert (first, second) == (1704067200.0, 1704067260.0)
        assert len(fake_client.calls) == 2

    def test_failed_scrape_still_serves_metrics(
        self,
        cycle: ScrapeCycle,
        publisher: MetricPublisher,
        fake_client: FakeSearchClient,
    ) -> None:
        """A failed cycle is reported through the counter, not an exception."""
        fake_client.outcomes = [
            SearchResponse(hits=({"_source": {"@timestamp": "bad"}},), total_hits=1)
        ]

        metrics = PullTrigger(cycle, publisher).collect()

        assert sample_value(metrics, SCRAPE_FAILURES) == 1.0
        assert sample_value(metrics, LOG_PRESENCE) == 0.0


class TestPushTrigger:
    """Scrape on an interval."""

    def test_first_cycle_runs_immediately_and_stop_joins(
        self,
        cycle: ScrapeCycle,
        publisher: MetricPublisher,
        fake_client: FakeSearchClient,
    ) -> None:
        """The loop scrapes at once, then stops promptly despite a long interval."""
        fake_client.outcomes = [_hit("2024-01-01T00:00:00Z")]
        trigger = PushTrigger(cycle, publisher, interval_seconds=3600)

        trigger.start()
        assert _wait_for(lambda: len(fake_client.calls) == 1)
        started = time.monotonic()
        trigger.stop(timeout=WAIT)

        assert time.monotonic() - started < 1.0
        assert not trigger.running
        assert publisher.snapshot().last_message_received_timestamp == 1704067200.0

    def test_loop_survives_unexpected_errors(
        self,
        cycle: ScrapeCycle,
        publisher: MetricPublisher,
        fake_client: FakeSearchClient,
        exporter_caplog: LogCaptureFixture,
    ) -> None:
        """A cycle that raises is logged and the next tick still runs."""
        fake_client.outcomes = [RuntimeError("bug"), _hit("2024-01-01T00:00:00Z")]
        trigger = PushTrigger(cycle, publisher, interval_seconds=0.01)

        trigger.start()
        try:
            assert _wait_for(lambda: publisher.snapshot().log_presence == 1.0)
        finally:
            trigger.stop(timeout=WAIT)

        assert any(r.getMessage() == "Scrape cycle raised" for r in exporter_caplog.records)

    def test_reads_do_not_scrape(
        self,
        cycle: ScrapeCycle,
        publisher: MetricPublisher,
        fake_client: FakeSearchClient,
        prometheus_registry: CollectorRegistry,
    ) -> None:
        """Registry reads return the last published values only."""
        PushTrigger(cycle, publisher, interval_seconds=60).register(prometheus_registry)

        assert prometheus_registry.get_sample_value(LOG_PRESENCE) == 0.0
        assert fake_client.calls == []

    def test_reads_do_not_wait_for_an_in_flight_cycle(
        self,
        cycle: ScrapeCycle,
        publisher: MetricPublisher,
        fake_client: FakeSearchClient,
        prometheus_registry: CollectorRegistry,
    ) -> None:
        """A slow backend does not delay registry reads."""
        started, release = threading.Event(), threading.Event()
        fake_client.outcomes = [_blocking(_hit("2024-01-01T00:00:00Z"), started, release)]
        trigger = PushTrigger(cycle, publisher, interval_seconds=3600)
        trigger.register(prometheus_registry)

        trigger.start()
        try:
            assert started.wait(WAIT)
            began = time.monotonic()
            presence = prometheus_registry.get_sample_value(LOG_PRESENCE)
            elapsed = time.monotonic() - began
        finally:
            release.set()
            trigger.stop(timeout=WAIT)

        assert elapsed < 0.5
        assert presence == 0.0

    def test_rejects_non_positive_interval(
        self, cycle: ScrapeCycle, publisher: MetricPublisher
    ) -> None:
        """The interval must be positive."""
        with pytest.raises(ValueError, match="interval_seconds"):
            PushTrigger(cycle, publisher, interval_seconds=0)


@pytest.mark.parametrize(
    ("mode", "expected"),
    [(TriggerMode.PULL, PullTrigger), (TriggerMode.PUSH, PushTrigger)],
    ids=["pull", "push"],
)
def test_build_trigger(
    cycle: ScrapeCycle,
    publisher: MetricPublisher,
    mode: TriggerMode,
    expected: type,
) -> None:
    trigger = build_trigger(mode, cycle, publisher, interval_seconds=30)
    assert isinstance(trigger, expected)


def test_range_mode_zero_hits_over_pull(
    publisher: MetricPublisher,
    fake_client: FakeSearchClient,
    config_handle: ConfigHandle,
    cycle: ScrapeCycle,
) -> None:
    """Zero hits in the trailing window: presence 0, failures unchanged."""
    config_handle.replace(make_config(query_mode=QueryMode.RANGE, window_minutes=5))
    fake_client.outcomes = [SearchResponse(hits=(), total_hits=0)]

    metrics = PullTrigger(cycle, publisher).collect()

    assert sample_value(metrics, LOG_PRESENCE) == 0.0
    assert sample_value(metrics, SCRAPE_FAILURES) == 0.0
    assert fake_client.calls[0].kwargs["size"] == 0
