"""Exception hierarchy and stable error codes.

Examples
--------
>>> from logstack_common.errors import LogstackError, ErrorCode
>>> try:
...     raise LogstackError("Operation failed", code=ErrorCode.RUNTIME_ERROR)
... except LogstackError as e:
...     assert e.log_extra()["error_code"] == "runtime-error"
"""

from __future__ import annotations

from logstack_common.errors.codes import RECOVERABLE_CODES, ErrorCode, is_recoverable
from logstack_common.errors.exceptions import (
    BackendUnavailableError,
    LogstackError,
    MalformedTimestampError,
    StartupClientError,
    StartupConfigError,
)

__all__ = [
    "RECOVERABLE_CODES",
    "BackendUnavailableError",
    "ErrorCode",
    "LogstackError",
    "MalformedTimestampError",
    "StartupClientError",
    "StartupConfigError",
    "is_recoverable",
]
