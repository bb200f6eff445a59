"""Error code registry for logstack exceptions.

Codes are kebab-case strings that stay stable across releases: they appear in
log lines and are used as the ``kind`` of a failed scrape cycle.

Examples
--------
>>> from logstack_common.errors.codes import ErrorCode, is_recoverable
>>> ErrorCode.BACKEND_UNAVAILABLE.value
'backend-unavailable'
>>> is_recoverable(ErrorCode.MALFORMED_TIMESTAMP)
True
"""

from __future__ import annotations

from enum import StrEnum
from typing import Final

__all__ = [
    "RECOVERABLE_CODES",
    "ErrorCode",
    "is_recoverable",
]


class ErrorCode(StrEnum):
    """Stable error codes for logstack exceptions.

    Attributes
    ----------
    BACKEND_UNAVAILABLE
        Connection or query execution against the search backend failed.
    MALFORMED_TIMESTAMP
        A matching document carried a missing or unparsable timestamp field.
    CONFIGURATION_ERROR
        Settings could not be loaded or validated.
    CLIENT_ERROR
        The search backend client could not be constructed or reached at startup.
    RUNTIME_ERROR
        Any other failure.
    """

    BACKEND_UNAVAILABLE = "backend-unavailable"
    MALFORMED_TIMESTAMP = "malformed-timestamp"
    CONFIGURATION_ERROR = "configuration-error"
    CLIENT_ERROR = "client-error"
    RUNTIME_ERROR = "runtime-error"


RECOVERABLE_CODES: Final[frozenset[ErrorCode]] = frozenset(
    {ErrorCode.BACKEND_UNAVAILABLE, ErrorCode.MALFORMED_TIMESTAMP}
)


def is_recoverable(code: ErrorCode) -> bool:
    """Return ``True`` when a failure with ``code`` is retried on the next cycle."""
    return code in RECOVERABLE_CODES
