"""Thin HTTP client for the Elasticsearch ``_search`` API."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol, cast

import requests

from logstack_common.errors import BackendUnavailableError
from logstack_common.logging import get_logger

if TYPE_CHECKING:
    from collections.abc import Sequence

    from logstack_exporter.models import ScrapeConfig

__all__ = [
    "ElasticsearchClient",
    "RequestsHttp",
    "SearchResponse",
    "SupportsHttp",
    "SupportsResponse",
    "SupportsSearch",
    "build_search_client",
]

LOGGER = get_logger(__name__)

JsonValue = Any
Timeout = float | tuple[float | None, float | None] | None


class SupportsResponse(Protocol):
    """Protocol describing the minimal HTTP response surface used by the client.

    Implementations are expected to mirror :class:`requests.Response` for the
    provided methods so callers can work with a small shared interface.
    """

    def raise_for_status(self) -> None:
        """Raise an HTTP error if the response indicates failure."""

    def json(self) -> JsonValue:
        """Return the response payload decoded as JSON.

        Returns
        -------
        JsonValue
            Decoded JSON body returned by the HTTP service.
        """
        ...


class SupportsHttp(Protocol):
    """Protocol describing the HTTP verbs required by :class:`ElasticsearchClient`.

    Implementations provide ``get`` and ``post`` methods that mirror the
    behaviour of :mod:`requests`, plus ``close``.
    """

    def get(
        self,
        url: str,
        *,
        timeout: Timeout = None,
        headers: Mapping[str, str] | None = None,
    ) -> SupportsResponse:
        """Issue an HTTP ``GET`` request.

        Parameters
        ----------
        url : str
            Target URL for the GET request.
        timeout : float | tuple[float | None, float | None] | None, optional
            Request timeout in seconds or (connect, read) tuple.
        headers : Mapping[str, str] | None, optional
            HTTP headers to include with the request.

        Returns
        -------
        SupportsResponse
            Response wrapper produced by the HTTP implementation.
        """
        ...

    def post(
        self,
        url: str,
        *,
        json: JsonValue | None = None,
        headers: Mapping[str, str] | None = None,
        timeout: Timeout = None,
    ) -> SupportsResponse:
        """Issue an HTTP ``POST`` request.

        Parameters
        ----------
        url : str
            Target URL for the POST request.
        json : JsonValue | None, optional
            JSON payload to include in the request body.
        headers : Mapping[str, str] | None, optional
            HTTP headers to include with the request.
        timeout : float | tuple[float | None, float | None] | None, optional
            Request timeout in seconds or (connect, read) tuple.

        Returns
        -------
        SupportsResponse
            Response wrapper produced by the HTTP implementation.
        """
        ...

    def close(self) -> None:
        """Release pooled connections."""
        ...


class RequestsHttp(SupportsHttp):
    """HTTP adapter that delegates HTTP verbs to a :class:`requests.Session`.

    Authentication and TLS verification are session-level settings, so every
    request issued through the adapter carries them.

    Parameters
    ----------
    session : requests.Session | None, optional
        Session to use. A new one is created when omitted.
    auth : tuple[str, str] | None, optional
        Basic-auth credentials. Defaults to None (no auth).
    verify : bool | str, optional
        ``True`` to verify TLS certificates against the default CA bundle, a
        path to a CA bundle, or ``False`` to skip verification. Defaults to True.
    """

    def __init__(
        self,
        session: requests.Session | None = None,
        *,
        auth: tuple[str, str] | None = None,
        verify: bool | str = True,
    ) -> None:
        self._session = session or requests.Session()
        if auth is not None:
            self._session.auth = auth
        self._session.verify = verify

    def get(
        self,
        url: str,
        *,
        timeout: Timeout = None,
        headers: Mapping[str, str] | None = None,
    ) -> SupportsResponse:
        """Send a ``GET`` request through the session."""
        response = self._session.get(url, timeout=timeout, headers=headers)
        return cast("SupportsResponse", response)

    def post(
        self,
        url: str,
        *,
        json: JsonValue | None = None,
        headers: Mapping[str, str] | None = None,
        timeout: Timeout = None,
    ) -> SupportsResponse:
        """Send a ``POST`` request through the session."""
        response = self._session.post(url, json=json, headers=headers, timeout=timeout)
        return cast("SupportsResponse", response)

    def close(self) -> None:
        """Release pooled connections."""
        self._session.close()


@dataclass(frozen=True, slots=True)
class SearchResponse:
    """Ordered hits and the total number of matches reported by the backend."""

    hits: tuple[Mapping[str, Any], ...]
    total_hits: int


class SupportsSearch(Protocol):
    """The capability the scrape engine needs from a search backend."""

    def run_query(
        self,
        index: str,
        query: Mapping[str, Any],
        *,
        size: int,
        sort_field: str | None = None,
        sort_descending: bool = True,
        source_fields: Sequence[str] | None = None,
        track_total_hits: bool = False,
    ) -> SearchResponse:
        """Run ``query`` against ``index`` and return ordered hits."""
        ...

    def ping(self) -> JsonValue:
        """Return the backend's root info document."""
        ...

    def close(self) -> None:
        """Release the client's connections."""
        ...


def _total_hits(payload: Mapping[str, Any]) -> int:
    total = payload.get("total", 0)
    # Elasticsearch 7+ reports {"value": n, "relation": "eq"}; older versions a bare int.
    if isinstance(total, dict):
        total = total.get("value", 0)
    if isinstance(total, bool) or not isinstance(total, int):
        msg = f"unexpected hits.total value: {total!r}"
        raise TypeError(msg)
    return total


def _hit_list(payload: Mapping[str, Any]) -> tuple[Mapping[str, Any], ...]:
    hits = tuple(payload.get("hits", ()))
    for hit in hits:
        if not isinstance(hit, Mapping):
            msg = f"unexpected hits.hits element: {hit!r}"
            raise TypeError(msg)
    return hits


class ElasticsearchClient(SupportsSearch):
    """High-level client for the Elasticsearch search API.

    Parameters
    ----------
    base_url : str
        Base URL of the cluster, e.g. ``https://127.0.0.1:9200``.
    timeout : float, optional
        Connect and read timeout in seconds for every request. Defaults to 10.0.
    http : SupportsHttp | None, optional
        HTTP adapter implementation. Defaults to a :class:`RequestsHttp`
        without credentials.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        http: SupportsHttp | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._http: SupportsHttp = http or RequestsHttp()

    def _headers(self) -> dict[str, str]:
        return {"Content-Type": "application/json", "Accept": "application/json"}

    def _request(self, method: str, url: str, body: JsonValue | None = None) -> JsonValue:
        timeout = (self.timeout, self.timeout)
        try:
            if method == "GET":
                response = self._http.get(url, timeout=timeout, headers=self._headers())
            else:
                response = self._http.post(
                    url, json=body, headers=self._headers(), timeout=timeout
                )
            response.raise_for_status()
            return response.json()
        except (requests.RequestException, ValueError) as exc:
            # requests' JSONDecodeError subclasses ValueError.
            msg = f"{method} {url} failed: {exc}"
            raise BackendUnavailableError(msg, cause=exc, context={"url": url}) from exc

    def ping(self) -> JsonValue:
        """Fetch the cluster info document.

        Returns
        -------
        JsonValue
            Cluster name, version and tagline as reported by the backend.

        Raises
        ------
        BackendUnavailableError
            If the backend cannot be reached or answers with an error status.
        """
        return self._request("GET", f"{self.base_url}/")

    def close(self) -> None:
        """Close the underlying HTTP transport."""
        self._http.close()

    def run_query(
        self,
        index: str,
        query: Mapping[str, Any],
        *,
        size: int,
        sort_field: str | None = None,
        sort_descending: bool = True,
        source_fields: Sequence[str] | None = None,
        track_total_hits: bool = False,
    ) -> SearchResponse:
        """Execute a search request against ``index``.

        Parameters
        ----------
        index : str
            Index name or pattern (``logs-*``).
        query : Mapping[str, Any]
            Query DSL object placed under the ``query`` key.
        size : int
            Maximum number of hits to return; ``0`` for a count-only request.
        sort_field : str | None, optional
            Field to sort hits by. Defaults to None (relevance order).
        sort_descending : bool, optional
            Sort direction for ``sort_field``. Defaults to True.
        source_fields : Sequence[str] | None, optional
            Restrict ``_source`` to these fields. Defaults to None (full source).
        track_total_hits : bool, optional
            Ask for an exact total instead of the default 10 000 cap.

        Returns
        -------
        SearchResponse
            Ordered hits and the total number of matches.

        Raises
        ------
        BackendUnavailableError
            If the request fails or the response is not a search result.
        """
        body: dict[str, Any] = {"query": dict(query), "size": size}
        if sort_field is not None:
            body["sort"] = [{sort_field: {"order": "desc" if sort_descending else "asc"}}]
        if source_fields is not None:
            body["_source"] = list(source_fields)
        if track_total_hits:
            body["track_total_hits"] = True

        url = f"{self.base_url}/{index}/_search"
        payload = self._request("POST", url, body)
        try:
            hits_section = payload["hits"]
            hits = _hit_list(hits_section)
            total = _total_hits(hits_section)
        except (KeyError, TypeError, AttributeError) as exc:
            msg = f"unexpected search response from {url}: {exc}"
            raise BackendUnavailableError(msg, cause=exc, context={"url": url}) from exc
        return SearchResponse(hits=hits, total_hits=total)


def build_search_client(config: ScrapeConfig) -> ElasticsearchClient:
    """Build a client for the backend described by ``config``.

    Parameters
    ----------
    config : ScrapeConfig
        Scrape configuration carrying URL, credentials and TLS options.

    Returns
    -------
    ElasticsearchClient
        Client with basic auth (when a username is set) and the configured
        TLS verification.
    """
    verify: bool | str = True
    if config.insecure_skip_verify:
        LOGGER.warning(
            "TLS certificate verification is disabled for the search backend",
            extra={"operation": "build_client", "scrape_uri": config.scrape_uri},
        )
        verify = False
    elif config.ca_cert:
        verify = config.ca_cert
    auth = (config.username, config.password) if config.username else None
    http = RequestsHttp(auth=auth, verify=verify)
    return ElasticsearchClient(
        config.scrape_uri,
        timeout=config.request_timeout_seconds,
        http=http,
    )
