"""Shared error, logging and metrics helpers for the logstack exporter packages."""

from __future__ import annotations

__all__: list[str] = []
