"""Shared pytest fixtures.

This module provides reusable fixtures for:
- Isolated Prometheus registries and detached exporter metrics
- A scripted search client and an engine wired to it
- A publisher/cycle pair over a live configuration handle
"""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING

import pytest
from prometheus_client.registry import CollectorRegistry

from logstack_exporter.config import ConfigHandle
from logstack_exporter.engine import ScrapeEngine
from logstack_exporter.publisher import MetricPublisher
from logstack_exporter.trigger import ScrapeCycle
from observability.metrics import build_exporter_metrics
from tests.helpers.fakes import FakeSearchClient, make_config

if TYPE_CHECKING:
    from collections.abc import Iterator

    from _pytest.logging import LogCaptureFixture


@pytest.fixture
def prometheus_registry() -> CollectorRegistry:
    """Return a registry isolated from the process-wide default."""
    return CollectorRegistry()


@pytest.fixture
def fake_client() -> FakeSearchClient:
    """Return a search client with no scripted outcomes yet."""
    return FakeSearchClient()


@pytest.fixture
def engine(fake_client: FakeSearchClient) -> ScrapeEngine:
    """Return an engine whose factory always hands out ``fake_client``."""
    return ScrapeEngine(lambda _config: fake_client)


@pytest.fixture
def publisher() -> MetricPublisher:
    """Return a publisher over freshly built, detached metrics."""
    return MetricPublisher(build_exporter_metrics("1.0.0-test"))


@pytest.fixture
def config_handle() -> ConfigHandle:
    """Return a handle holding the default test configuration."""
    return ConfigHandle(make_config())


@pytest.fixture
def cycle(
    engine: ScrapeEngine, publisher: MetricPublisher, config_handle: ConfigHandle
) -> ScrapeCycle:
    """Return a scrape cycle reading ``config_handle``."""
    return ScrapeCycle(engine, publisher, config_handle.current)


@pytest.fixture
def exporter_caplog(caplog: LogCaptureFixture) -> Iterator[LogCaptureFixture]:
    """Capture DEBUG and above from the exporter packages.

    Library loggers carry a ``NullHandler`` but still propagate, so caplog's
    root handler receives their records.
    """
    with caplog.at_level(logging.DEBUG):
        yield caplog


@pytest.fixture
def isolated_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Remove exporter and Elasticsearch credential variables from the environment."""
    for name in list(os.environ):
        if name.upper().startswith(("LOGSTACK_EXPORTER_", "ELASTIC_")):
            monkeypatch.delenv(name)
