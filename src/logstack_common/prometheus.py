"""Typed Prometheus helpers.

The helpers in this module wrap :mod:`prometheus_client` metric constructors
behind small protocols so call sites depend on the handful of methods they
use, and so metric handles can be injected (and replaced in tests) instead of
living in the process-wide default registry.

Passing ``registry=None`` builds a *detached* metric: it is not registered
anywhere and is exposed only through a custom collector that yields its
``collect()`` output.

Examples
--------
>>> from prometheus_client import CollectorRegistry
>>> from logstack_common.prometheus import build_counter
>>> registry = CollectorRegistry()
>>> counter = build_counter("example_total", "Example operations", registry=registry)
>>> counter.inc()
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, TypedDict, cast

from prometheus_client import Counter, Gauge
from prometheus_client.registry import CollectorRegistry

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from prometheus_client.metrics_core import Metric

__all__ = [
    "CollectorRegistry",
    "CounterLike",
    "GaugeLike",
    "build_counter",
    "build_gauge",
    "sample_value",
]


class _MetricCallKwargs(TypedDict, total=False):
    registry: CollectorRegistry | None
    unit: str


class CounterLike(Protocol):
    """Protocol describing Prometheus counter behaviour relied upon."""

    def labels(self, **labels: object) -> CounterLike:
        """Return a counter labelled with the provided fields."""
        ...

    def inc(self, amount: float = 1.0) -> None:
        """Increment the counter by ``amount``."""
        ...

    def describe(self) -> Iterable[Metric]:
        """Return metric descriptors without samples."""
        ...

    def collect(self) -> Iterable[Metric]:
        """Return metric families with current samples."""
        ...


class GaugeLike(Protocol):
    """Protocol describing Prometheus gauge behaviour relied upon."""

    def labels(self, **labels: object) -> GaugeLike:
        """Return a gauge labelled with the provided fields."""
        ...

    def set(self, value: float) -> None:
        """Set the gauge to ``value``."""
        ...

    def describe(self) -> Iterable[Metric]:
        """Return metric descriptors without samples."""
        ...

    def collect(self) -> Iterable[Metric]:
        """Return metric families with current samples."""
        ...


def _call_kwargs(registry: CollectorRegistry | None, unit: str | None) -> _MetricCallKwargs:
    kwargs: _MetricCallKwargs = {"registry": registry}
    if unit is not None:
        kwargs["unit"] = unit
    return kwargs


def _existing_collector(name: str, registry: CollectorRegistry | None) -> object | None:
    """Return an already registered collector for ``name``, if any.

    Parameters
    ----------
    name : str
        Metric name to look up.
    registry : CollectorRegistry | None
        Registry to search in.

    Returns
    -------
    object | None
        Existing collector if found, None otherwise.
    """
    if registry is None:
        return None
    names_to_collectors = cast(
        "dict[str, object] | None",
        getattr(registry, "_names_to_collectors", None),
    )
    if isinstance(names_to_collectors, dict):
        return names_to_collectors.get(name)
    return None


def build_counter(
    name: str,
    documentation: str,
    labelnames: Sequence[str] | None = None,
    *,
    registry: CollectorRegistry | None = None,
    unit: str | None = None,
) -> CounterLike:
    """Return a counter metric.

    Parameters
    ----------
    name : str
        Metric name. A trailing ``_total`` is kept in the exposed sample name.
    documentation : str
        Human readable description of the metric.
    labelnames : Sequence[str] | None, optional
        Label names applied to the metric (defaults to empty tuple).
    registry : CollectorRegistry | None, optional
        Registry to register against; ``None`` builds a detached metric.
    unit : str | None, optional
        Unit description recorded alongside the metric.

    Returns
    -------
    CounterLike
        Counter metric instance.

    Raises
    ------
    ValueError
        If registration fails and no existing collector is found.
    """
    try:
        return cast(
            "CounterLike",
            Counter(name, documentation, tuple(labelnames or ()), **_call_kwargs(registry, unit)),
        )
    except ValueError:
        existing = _existing_collector(name, registry)
        if existing is None:
            raise
        return cast("CounterLike", existing)


def build_gauge(
    name: str,
    documentation: str,
    labelnames: Sequence[str] | None = None,
    *,
    registry: CollectorRegistry | None = None,
    unit: str | None = None,
) -> GaugeLike:
    """Return a gauge metric.

    Parameters
    ----------
    name : str
        Metric name registered with Prometheus.
    documentation : str
        Human readable description of the metric.
    labelnames : Sequence[str] | None, optional
        Label names applied to the metric (defaults to empty tuple).
    registry : CollectorRegistry | None, optional
        Registry to register against; ``None`` builds a detached metric.
    unit : str | None, optional
        Unit description recorded alongside the metric.

    Returns
    -------
    GaugeLike
        Gauge metric instance.

    Raises
    ------
    ValueError
        If registration fails and no existing collector is found.
    """
    try:
        return cast(
            "GaugeLike",
            Gauge(name, documentation, tuple(labelnames or ()), **_call_kwargs(registry, unit)),
        )
    except ValueError:
        existing = _existing_collector(name, registry)
        if existing is None:
            raise
        return cast("GaugeLike", existing)


def sample_value(
    metrics: Iterable[Metric],
    sample_name: str,
    labels: dict[str, str] | None = None,
) -> float | None:
    """Return the value of the first sample named ``sample_name``.

    Parameters
    ----------
    metrics : Iterable[Metric]
        Metric families, e.g. the output of a collector's ``collect()``.
    sample_name : str
        Exposed sample name (``exporter_scrape_failures_total``, ...).
    labels : dict[str, str] | None, optional
        Labels the sample must carry. Defaults to None (any labels).

    Returns
    -------
    float | None
        Sample value, or None when no sample matches.
    """
    for metric in metrics:
        for sample in metric.samples:
            if sample.name != sample_name:
                continue
            if labels is not None and any(sample.labels.get(k) != v for k, v in labels.items()):
                continue
            return float(sample.value)
    return None
