"""Strict RFC 3339 timestamp parsing for search hit fields.

Elasticsearch and Logstash emit timestamps with anywhere between zero and
nine fractional digits. :func:`datetime.fromisoformat` accepts many inputs
RFC 3339 does not (missing offsets, week dates, a space separator), so the
accepted grammar is pinned down with a regular expression and fractions are
truncated to the microsecond resolution of :class:`~datetime.datetime`.

Examples
--------
>>> parse_rfc3339("2024-01-01T00:00:03.500Z").timestamp()
1704067203.5
"""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Final

__all__ = ["parse_rfc3339", "seconds_between"]

_RFC3339_RE: Final[re.Pattern[str]] = re.compile(
    r"^(?P<year>\d{4})-(?P<month>\d{2})-(?P<day>\d{2})"
    r"[Tt](?P<hour>\d{2}):(?P<minute>\d{2}):(?P<second>\d{2})"
    r"(?:\.(?P<fraction>\d{1,9}))?"
    r"(?P<offset>[Zz]|[+-]\d{2}:\d{2})$",
    re.ASCII,
)
_MAX_OFFSET_HOURS = 23
_MAX_OFFSET_MINUTES = 59


def _parse_offset(raw: str) -> timezone:
    if raw in {"Z", "z"}:
        return timezone.utc
    sign = -1 if raw[0] == "-" else 1
    hours = int(raw[1:3])
    minutes = int(raw[4:6])
    if hours > _MAX_OFFSET_HOURS or minutes > _MAX_OFFSET_MINUTES:
        msg = f"offset out of range: {raw!r}"
        raise ValueError(msg)
    return timezone(sign * timedelta(hours=hours, minutes=minutes))


def parse_rfc3339(value: str) -> datetime:
    """Parse an RFC 3339 timestamp with optional fractional seconds.

    Parameters
    ----------
    value : str
        Timestamp such as ``2024-01-01T00:00:00Z`` or
        ``2024-01-01T01:00:00.123456789+01:00``.

    Returns
    -------
    datetime
        Timezone-aware datetime, fractional seconds truncated to microseconds.

    Raises
    ------
    ValueError
        If ``value`` is not an RFC 3339 date-time or a component is out of range.
    """
    match = _RFC3339_RE.fullmatch(value)
    if match is None:
        msg = f"not an RFC 3339 timestamp: {value!r}"
        raise ValueError(msg)
    fraction = match.group("fraction") or ""
    microsecond = int(fraction[:6].ljust(6, "0")) if fraction else 0
    return datetime(
        int(match.group("year")),
        int(match.group("month")),
        int(match.group("day")),
        int(match.group("hour")),
        int(match.group("minute")),
        int(match.group("second")),
        microsecond,
        tzinfo=_parse_offset(match.group("offset")),
    )


def seconds_between(start: datetime, end: datetime) -> float:
    """Return ``end - start`` in seconds; negative when ``end`` precedes ``start``."""
    return (end - start).total_seconds()
