"""Value types shared by the scrape engine, publisher and triggers."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, TypeAlias

if TYPE_CHECKING:
    from datetime import datetime

    from logstack_common.errors import ErrorCode, LogstackError

__all__ = [
    "MetricSnapshot",
    "QueryMode",
    "ScrapeConfig",
    "ScrapeFailure",
    "ScrapeResult",
    "ScrapeSuccess",
    "SearchHit",
    "TriggerMode",
]


class QueryMode(StrEnum):
    """How the backend is queried for the target message."""

    LATEST = "latest"
    RANGE = "range"


class TriggerMode(StrEnum):
    """When scrape cycles run."""

    PULL = "pull"
    PUSH = "push"


@dataclass(frozen=True, slots=True)
class ScrapeConfig:
    """Everything one scrape cycle needs, replaced wholesale on reload."""

    scrape_uri: str
    scrape_index: str
    query_msg: str
    username: str = ""
    password: str = field(default="", repr=False)
    query_mode: QueryMode = QueryMode.LATEST
    window_minutes: int = 5
    message_field: str = "message"
    timestamp_field: str = "@timestamp"
    ingested_field: str = "logstash_processed_at"
    require_ingested_at: bool = True
    insecure_skip_verify: bool = False
    ca_cert: str | None = None
    request_timeout_seconds: float = 10.0

    def connection_key(self) -> tuple[object, ...]:
        """Return the fields that determine how the backend client is built."""
        return (
            self.scrape_uri,
            self.username,
            self.password,
            self.insecure_skip_verify,
            self.ca_cert,
            self.request_timeout_seconds,
        )


@dataclass(frozen=True, slots=True)
class SearchHit:
    """The most relevant matching document, with parsed timestamps."""

    event_timestamp: datetime
    ingested_at: datetime | None
    total_hits: int


@dataclass(frozen=True, slots=True)
class ScrapeSuccess:
    """A completed query; ``hit_found=False`` means zero matches, not an error.

    ``freshness_seconds`` and ``lag_seconds`` are only set in latest mode;
    ``lag_seconds`` may be negative when clocks are skewed.
    """

    mode: QueryMode
    hit_found: bool
    total_hits: int
    freshness_seconds: float | None = None
    lag_seconds: float | None = None


@dataclass(frozen=True, slots=True)
class ScrapeFailure:
    """A failed cycle; ``kind`` mirrors the error code of ``cause``."""

    kind: ErrorCode
    cause: LogstackError


ScrapeResult: TypeAlias = ScrapeSuccess | ScrapeFailure


@dataclass(frozen=True, slots=True)
class MetricSnapshot:
    """Read-only view of the last published metric values."""

    last_message_received_timestamp: float = 0.0
    processed_time: float = 0.0
    log_presence: float = 0.0
    scrape_failures_total: int = 0
