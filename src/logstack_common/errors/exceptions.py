"""Typed exception hierarchy for the exporter.

All exceptions inherit from :class:`LogstackError`, which carries a stable
:class:`~logstack_common.errors.codes.ErrorCode`, the logging level the error
should be reported at and a free-form context mapping.

Examples
--------
>>> from logstack_common.errors import BackendUnavailableError, ErrorCode
>>> try:
...     raise BackendUnavailableError("search failed", cause=OSError("Connection refused"))
... except BackendUnavailableError as e:
...     assert e.code == ErrorCode.BACKEND_UNAVAILABLE
...     assert str(e).endswith("(caused by: OSError)")
"""

from __future__ import annotations

import logging
from collections.abc import Mapping

from logstack_common.errors.codes import ErrorCode

__all__ = [
    "BackendUnavailableError",
    "LogstackError",
    "MalformedTimestampError",
    "StartupClientError",
    "StartupConfigError",
]


class LogstackError(Exception):
    """Base exception for all logstack errors.

    Parameters
    ----------
    message : str
        Human-readable error message.
    code : ErrorCode, optional
        Stable error code. Defaults to ``ErrorCode.RUNTIME_ERROR``.
    log_level : int, optional
        Level the error is reported at. Defaults to ``logging.ERROR``.
    cause : Exception | None, optional
        Underlying exception, exposed as ``__cause__``. Defaults to None.
    context : Mapping[str, object] | None, optional
        Additional structured details. Defaults to None.

    Attributes
    ----------
    message : str
        Human-readable error message.
    code : ErrorCode
        Error code enum value.
    log_level : int
        Logging level for error logging.
    context : dict[str, object]
        Additional context dictionary for error details.
    """

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode = ErrorCode.RUNTIME_ERROR,
        log_level: int = logging.ERROR,
        cause: Exception | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        super().__init__(message)
        if not isinstance(code, ErrorCode):
            msg = "code must be an instance of ErrorCode"
            raise TypeError(msg)
        self.message = message
        self.code = code
        self.log_level = log_level
        self.context: dict[str, object] = dict(context) if context else {}
        if cause is not None:
            self.__cause__ = cause

    def log_extra(self) -> dict[str, object]:
        """Return structured logging fields describing this error.

        Returns
        -------
        dict[str, object]
            ``error_code``, ``error_type`` and, when present, ``cause`` plus
            the context entries.
        """
        extra: dict[str, object] = {
            "error_code": self.code.value,
            "error_type": type(self).__name__,
        }
        if self.__cause__ is not None:
            extra["cause"] = f"{type(self.__cause__).__name__}: {self.__cause__}"
        for key, value in self.context.items():
            extra.setdefault(key, value)
        return extra

    def __str__(self) -> str:
        """Return ``ClassName[code]: message`` with the cause type appended when set.

        Returns
        -------
        str
            Formatted error string (e.g.,
            ``"BackendUnavailableError[backend-unavailable]: search failed"``).
        """
        base = f"{self.__class__.__name__}[{self.code.value}]: {self.message}"
        if self.__cause__:
            base += f" (caused by: {type(self.__cause__).__name__})"
        return base


class BackendUnavailableError(LogstackError):
    """Connection, HTTP status or response-decoding failure against the search backend.

    Recovered at the publishing boundary: counted, logged and retried on the
    next scheduled cycle.
    """

    def __init__(
        self,
        message: str,
        cause: Exception | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        super().__init__(
            message,
            code=ErrorCode.BACKEND_UNAVAILABLE,
            cause=cause,
            context=context,
        )


class MalformedTimestampError(LogstackError):
    """A document matched the query but a timestamp field could not be parsed.

    Parameters
    ----------
    message : str
        Human-readable error message.
    field : str
        Name of the offending document field.
    value : object
        Raw value found in the document (``None`` when missing).
    cause : Exception | None, optional
        Underlying parse exception. Defaults to None.
    """

    def __init__(
        self,
        message: str,
        *,
        field: str,
        value: object,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(
            message,
            code=ErrorCode.MALFORMED_TIMESTAMP,
            cause=cause,
            context={"field": field, "value": repr(value)},
        )
        self.field = field
        self.value = value


class StartupConfigError(LogstackError):
    """Settings could not be loaded or validated; the process must not start.

    Parameters
    ----------
    message : str
        Human-readable error message.
    errors : list[dict[str, object]] | None, optional
        Validation error dictionaries with field/issue details. Defaults to None.
    cause : Exception | None, optional
        Underlying exception. Defaults to None.
    context : Mapping[str, object] | None, optional
        Additional context dictionary. Defaults to None.
    """

    def __init__(
        self,
        message: str,
        *,
        errors: list[dict[str, object]] | None = None,
        cause: Exception | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        combined_context: dict[str, object] = dict(context or {})
        if errors:
            combined_context.setdefault(
                "validation_errors",
                [dict(error) for error in errors],
            )
        super().__init__(
            message,
            code=ErrorCode.CONFIGURATION_ERROR,
            log_level=logging.CRITICAL,
            cause=cause,
            context=combined_context,
        )


class StartupClientError(LogstackError):
    """The search backend client could not be built or did not answer at startup."""

    def __init__(
        self,
        message: str,
        cause: Exception | None = None,
        context: Mapping[str, object] | None = None,
    ) -> None:
        super().__init__(
            message,
            code=ErrorCode.CLIENT_ERROR,
            log_level=logging.CRITICAL,
            cause=cause,
            context=context,
        )
