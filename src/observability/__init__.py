"""Metric declarations for the logstack exporter."""

from __future__ import annotations

from observability.metrics import ExporterMetrics, build_exporter_metrics

__all__ = [
    "ExporterMetrics",
    "build_exporter_metrics",
]
