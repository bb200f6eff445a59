"""Shared test helpers for the logstack exporter.

Helpers defined here have no runtime side-effects: no network, no global
registry, no signal handlers.
"""

from __future__ import annotations

from tests.helpers.fakes import (
    FakeSearchClient,
    StubHttp,
    StubResponse,
    make_config,
    search_payload,
)

__all__ = [
    "FakeSearchClient",
    "StubHttp",
    "StubResponse",
    "make_config",
    "search_payload",
]
