"""Expose the search backend client used by the exporter."""

from __future__ import annotations

from search_client.client import (
    ElasticsearchClient,
    RequestsHttp,
    SearchResponse,
    SupportsSearch,
    build_search_client,
)

__all__ = [
    "ElasticsearchClient",
    "RequestsHttp",
    "SearchResponse",
    "SupportsSearch",
    "build_search_client",
]
