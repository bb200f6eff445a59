"""Query the search backend and derive freshness, lag and presence values.

The engine never raises for expected failures: backend and data-quality
problems come back as :class:`~logstack_exporter.models.ScrapeFailure` so the
publisher can count them. There are no retries here; the trigger's schedule
is the retry policy.
"""

from __future__ import annotations

import math
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from logstack_common.errors import BackendUnavailableError, MalformedTimestampError
from logstack_common.logging import LoggerAdapter, get_logger
from logstack_exporter.models import (
    QueryMode,
    ScrapeConfig,
    ScrapeFailure,
    ScrapeResult,
    ScrapeSuccess,
    SearchHit,
)
from logstack_exporter.timestamps import parse_rfc3339, seconds_between
from search_client.client import SupportsSearch, build_search_client

__all__ = [
    "ClientFactory",
    "ScrapeEngine",
    "SearchRequest",
    "parse_hit",
]

LOGGER = get_logger(__name__)

ClientFactory = Callable[[ScrapeConfig], SupportsSearch]

_MISSING = object()


@dataclass(frozen=True, slots=True)
class SearchRequest:
    """Arguments for one :meth:`SupportsSearch.run_query` call."""

    index: str
    query: Mapping[str, Any]
    size: int
    sort_field: str | None = None
    sort_descending: bool = True
    source_fields: tuple[str, ...] | None = None
    track_total_hits: bool = False


def _lookup(source: Mapping[str, Any], path: str) -> object:
    if path in source:
        return source[path]
    # Fall back to nested objects for dotted names such as "event.ingested".
    node: object = source
    for part in path.split("."):
        if not isinstance(node, Mapping) or part not in node:
            return _MISSING
        node = node[part]
    return node


def _parse_field(source: Mapping[str, Any], name: str, *, required: bool) -> Any:
    raw = _lookup(source, name)
    if raw is _MISSING or raw is None:
        if not required:
            return None
        msg = f"error parsing {name}: field missing"
        raise MalformedTimestampError(msg, field=name, value=None)
    if not isinstance(raw, str):
        msg = f"error parsing {name}: expected a string"
        raise MalformedTimestampError(msg, field=name, value=raw)
    try:
        return parse_rfc3339(raw)
    except ValueError as exc:
        msg = f"error parsing {name}: {exc}"
        raise MalformedTimestampError(msg, field=name, value=raw, cause=exc) from exc


def parse_hit(hit: Mapping[str, Any], config: ScrapeConfig, total_hits: int) -> SearchHit:
    """Extract the timestamps of a search hit.

    Parameters
    ----------
    hit : Mapping[str, Any]
        One element of ``hits.hits`` from a search response.
    config : ScrapeConfig
        Supplies the field names and whether the ingestion field is required.
    total_hits : int
        Total number of matches reported alongside the hit.

    Returns
    -------
    SearchHit
        Parsed hit.

    Raises
    ------
    MalformedTimestampError
        If the hit is not an object, a required timestamp field is missing,
        or a present one is not a valid RFC 3339 timestamp.
    """
    if not isinstance(hit, Mapping):
        msg = f"error parsing hit: expected an object, got {type(hit).__name__}"
        raise MalformedTimestampError(msg, field="_source", value=hit)
    source = hit.get("_source")
    if not isinstance(source, Mapping):
        source = {}
    event_timestamp = _parse_field(source, config.timestamp_field, required=True)
    ingested_at = _parse_field(source, config.ingested_field, required=config.require_ingested_at)
    return SearchHit(
        event_timestamp=event_timestamp,
        ingested_at=ingested_at,
        total_hits=total_hits,
    )


class ScrapeEngine:
    """Run one query per call and turn the response into a :data:`ScrapeResult`.

    Parameters
    ----------
    client_factory : ClientFactory, optional
        Builds a search client for a configuration. One client is cached per
        :meth:`ScrapeConfig.connection_key`, so a reloaded config with new
        credentials gets a new client. Defaults to
        :func:`search_client.client.build_search_client`.
    logger : LoggerAdapter | None, optional
        Logger. Defaults to the module logger.
    """

    def __init__(
        self,
        client_factory: ClientFactory = build_search_client,
        logger: LoggerAdapter | None = None,
    ) -> None:
        self._client_factory = client_factory
        self._logger = logger or LOGGER
        self._client_key: tuple[object, ...] | None = None
        self._client: SupportsSearch | None = None

    def client_for(self, config: ScrapeConfig) -> SupportsSearch:
        """Return the cached client for ``config``, building one if needed.

        A client replaced because the connection settings changed is closed.

        Raises
        ------
        BackendUnavailableError
            If the client factory fails.
        """
        key = config.connection_key()
        if self._client is None or key != self._client_key:
            try:
                client = self._client_factory(config)
            except BackendUnavailableError:
                raise
            except Exception as exc:
                msg = f"error building connection to Elasticsearch: {exc}"
                raise BackendUnavailableError(msg, cause=exc) from exc
            previous, self._client, self._client_key = self._client, client, key
            if previous is not None and previous is not client:
                previous.close()
        return self._client

    def close(self) -> None:
        """Close the cached client, if any."""
        client, self._client, self._client_key = self._client, None, None
        if client is not None:
            client.close()

    @staticmethod
    def build_request(config: ScrapeConfig) -> SearchRequest:
        """Return the search request for ``config``'s query mode.

        Latest mode asks for the single newest match; range mode asks only
        for the number of matches within the trailing window.
        """
        match = {"match": {config.message_field: config.query_msg}}
        if config.query_mode is QueryMode.RANGE:
            window = {"range": {config.timestamp_field: {"gte": f"now-{config.window_minutes}m"}}}
            return SearchRequest(
                index=config.scrape_index,
                query={"bool": {"must": [match], "filter": [window]}},
                size=0,
                track_total_hits=True,
            )
        return SearchRequest(
            index=config.scrape_index,
            query={"bool": {"must": [match]}},
            size=1,
            sort_field=config.timestamp_field,
            sort_descending=True,
            source_fields=(config.timestamp_field, config.ingested_field),
        )

    def run(self, config: ScrapeConfig) -> ScrapeResult:
        """Execute one scrape against ``config``.

        Parameters
        ----------
        config : ScrapeConfig
            Configuration snapshot for this cycle.

        Returns
        -------
        ScrapeResult
            ``ScrapeSuccess`` (possibly with ``hit_found=False``) or
            ``ScrapeFailure`` for backend and timestamp errors.
        """
        request = self.build_request(config)
        try:
            client = self.client_for(config)
            response = client.run_query(
                request.index,
                request.query,
                size=request.size,
                sort_field=request.sort_field,
                sort_descending=request.sort_descending,
                source_fields=request.source_fields,
                track_total_hits=request.track_total_hits,
            )
        except BackendUnavailableError as exc:
            return ScrapeFailure(kind=exc.code, cause=exc)

        if config.query_mode is QueryMode.RANGE:
            total = response.total_hits
            return ScrapeSuccess(mode=QueryMode.RANGE, hit_found=total > 0, total_hits=total)

        if not response.hits:
            self._logger.debug(
                "No document matched the query",
                extra={"operation": "scrape", "index": config.scrape_index},
            )
            return ScrapeSuccess(mode=QueryMode.LATEST, hit_found=False, total_hits=0)

        try:
            hit = parse_hit(response.hits[0], config, total_hits=1)
        except MalformedTimestampError as exc:
            return ScrapeFailure(kind=exc.code, cause=exc)

        lag = None
        if hit.ingested_at is not None:
            lag = seconds_between(hit.event_timestamp, hit.ingested_at)
        return ScrapeSuccess(
            mode=QueryMode.LATEST,
            hit_found=True,
            total_hits=hit.total_hits,
            # Whole Unix seconds.
            freshness_seconds=float(math.floor(hit.event_timestamp.timestamp())),
            lag_seconds=lag,
        )
