"""Structured logging helpers with correlation IDs.

This module provides :class:`LoggerAdapter` for structured logging with the
``operation``/``status`` fields every exporter log line carries, a JSON
formatter for production output, and module-level loggers with
``NullHandler`` so importing the libraries never configures logging.

Examples
--------
>>> from logstack_common.logging import get_logger
>>> logger = get_logger(__name__)
>>> logger.info("Scrape started", extra={"operation": "scrape", "status": "started"})
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
import time
from contextlib import AbstractContextManager
from typing import TYPE_CHECKING, Any, Self

if TYPE_CHECKING:
    from collections.abc import Mapping
    from types import TracebackType

__all__ = [
    "CorrelationContext",
    "JsonFormatter",
    "LoggerAdapter",
    "get_correlation_id",
    "get_logger",
    "setup_logging",
    "with_fields",
]

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "correlation_id", default=None
)

_STANDARD_ATTRIBUTES = frozenset(
    {
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "message",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "thread",
        "threadName",
        "taskName",
        "exc_info",
        "exc_text",
        "stack_info",
    }
)


class JsonFormatter(logging.Formatter):
    """JSON formatter for structured logging.

    Formats log records as one JSON object per line with timestamp, level,
    logger name and message, followed by every JSON-compatible ``extra``
    field. The correlation id is taken from context when the record does not
    carry one.

    Examples
    --------
    >>> import logging
    >>> handler = logging.StreamHandler()
    >>> handler.setFormatter(JsonFormatter())
    """

    converter = time.gmtime

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON.

        Parameters
        ----------
        record : logging.LogRecord
            Log record to format. May include extra fields in ``record.__dict__``.

        Returns
        -------
        str
            JSON-encoded log entry.
        """
        data: dict[str, Any] = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S") + f".{int(record.msecs):03d}Z",
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }
        if "correlation_id" not in record.__dict__:
            ctx_correlation_id = _correlation_id.get()
            if ctx_correlation_id is not None:
                data["correlation_id"] = ctx_correlation_id

        for key, value in record.__dict__.items():
            if (
                key not in _STANDARD_ATTRIBUTES
                and key not in data
                and not key.startswith("_")
                and value is not None
                and isinstance(value, (str, int, float, bool, list, dict))
            ):
                data[key] = value

        if record.exc_info:
            data["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(data, default=str)


class LoggerAdapter(logging.LoggerAdapter):  # type: ignore[type-arg]
    """Logger adapter that injects structured context fields.

    Bound fields (from :func:`with_fields`) and the context correlation id
    are merged into each call's ``extra``; ``operation`` and ``status`` are
    always present, ``status`` defaulting from the log level.

    Parameters
    ----------
    logger : logging.Logger
        Base logger instance to wrap.
    extra : Mapping[str, object] | None, optional
        Structured fields to inject into log entries. Defaults to None.
    """

    logger: logging.Logger

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        """Merge bound fields and the correlation id into ``kwargs["extra"]``.

        Parameters
        ----------
        msg : Any
            Log message.
        kwargs : Any
            Keyword arguments from the logging call.

        Returns
        -------
        tuple[Any, Any]
            Message and kwargs with injected fields.
        """
        extra = kwargs.setdefault("extra", {})
        if isinstance(self.extra, dict):
            for key, value in self.extra.items():
                extra.setdefault(key, value)

        if "correlation_id" not in extra:
            ctx_correlation_id = _correlation_id.get()
            if ctx_correlation_id is not None:
                extra["correlation_id"] = ctx_correlation_id

        extra.setdefault("operation", "unknown")
        return msg, kwargs

    def log(self, level: int, msg: object, *args: object, **kwargs: Any) -> None:
        """Log ``msg`` at ``level`` with a level-derived ``status`` default."""
        if self.isEnabledFor(level):
            extra = kwargs.setdefault("extra", {})
            extra.setdefault("status", _status_for_level(level))
            msg, kwargs = self.process(msg, kwargs)
            self.logger.log(level, msg, *args, **kwargs)

    def debug(self, msg: object, *args: object, **kwargs: Any) -> None:
        """Log a debug message with structured fields."""
        self.log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: object, *args: object, **kwargs: Any) -> None:
        """Log an info message with structured fields."""
        self.log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: object, *args: object, **kwargs: Any) -> None:
        """Log a warning message with structured fields."""
        self.log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: object, *args: object, **kwargs: Any) -> None:
        """Log an error message with structured fields."""
        self.log(logging.ERROR, msg, *args, **kwargs)

    def exception(self, msg: object, *args: object, exc_info: Any = True, **kwargs: Any) -> None:
        """Log an error message with exception info."""
        self.log(logging.ERROR, msg, *args, exc_info=exc_info, **kwargs)

    def critical(self, msg: object, *args: object, **kwargs: Any) -> None:
        """Log a critical message with structured fields."""
        self.log(logging.CRITICAL, msg, *args, **kwargs)


def _status_for_level(level: int) -> str:
    if level >= logging.ERROR:
        return "error"
    if level >= logging.WARNING:
        return "warning"
    return "success"


def get_logger(name: str) -> LoggerAdapter:
    """Get a logger adapter with structured logging support.

    Module-level loggers get a ``NullHandler`` so libraries stay silent
    until the application calls :func:`setup_logging`.

    Parameters
    ----------
    name : str
        Logger name (typically ``__name__`` from the calling module).

    Returns
    -------
    LoggerAdapter
        Logger adapter with structured context injection.
    """
    logger = logging.getLogger(name)
    if not logger.handlers:
        logger.addHandler(logging.NullHandler())
    return LoggerAdapter(logger, {})


def setup_logging(level: int | str = logging.INFO, fmt: str = "json") -> None:
    """Configure the root logger for the exporter process.

    Parameters
    ----------
    level : int | str, optional
        Logging level threshold, numeric or by name. Defaults to ``logging.INFO``.
    fmt : str, optional
        ``"json"`` for :class:`JsonFormatter`, ``"text"`` for a plain line
        format. Defaults to ``"json"``.

    Raises
    ------
    ValueError
        If ``fmt`` is not a known format or ``level`` is an unknown name.
    """
    if isinstance(level, str):
        resolved = logging.getLevelName(level.upper())
        if not isinstance(resolved, int):
            msg = f"Unknown log level: {level!r}"
            raise ValueError(msg)
        level = resolved

    handler = logging.StreamHandler(sys.stdout)
    if fmt == "json":
        handler.setFormatter(JsonFormatter())
    elif fmt == "text":
        handler.setFormatter(logging.Formatter(TEXT_FORMAT))
    else:
        msg = f"Unknown log format: {fmt!r}"
        raise ValueError(msg)
    logging.basicConfig(level=level, handlers=[handler], force=True)


def get_correlation_id() -> str | None:
    """Return the correlation ID currently set in context, if any."""
    return _correlation_id.get()


class CorrelationContext:
    """Context manager for correlation ID propagation using contextvars.

    Restores the previous correlation ID when the context exits.

    Parameters
    ----------
    correlation_id : str | None
        Correlation ID to set in context.

    Examples
    --------
    >>> from logstack_common.logging import CorrelationContext, get_correlation_id
    >>> with CorrelationContext("cycle-1"):
    ...     assert get_correlation_id() == "cycle-1"
    """

    def __init__(self, correlation_id: str | None) -> None:
        self.correlation_id = correlation_id
        self._token: contextvars.Token[str | None] | None = None

    def __enter__(self) -> Self:
        self._token = _correlation_id.set(self.correlation_id)
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._token is not None:
            _correlation_id.reset(self._token)
            self._token = None
        del exc_type, exc_val, exc_tb


class _WithFieldsContext(AbstractContextManager[LoggerAdapter]):
    def __init__(
        self, logger: logging.Logger | LoggerAdapter, fields: Mapping[str, object]
    ) -> None:
        self._logger = logger
        self._fields = dict(fields)
        self._token: contextvars.Token[str | None] | None = None

    def __enter__(self) -> LoggerAdapter:
        if isinstance(self._logger, LoggerAdapter):
            base_logger = self._logger.logger
            bound = dict(self._logger.extra or {})
        else:
            base_logger = self._logger
            bound = {}
        bound.update(self._fields)
        correlation_id = self._fields.get("correlation_id")
        if isinstance(correlation_id, str):
            self._token = _correlation_id.set(correlation_id)
        return LoggerAdapter(base_logger, bound)

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._token is not None:
            _correlation_id.reset(self._token)
            self._token = None
        del exc_type, exc_value, exc_tb


def with_fields(
    logger: logging.Logger | LoggerAdapter,
    **fields: object,
) -> AbstractContextManager[LoggerAdapter]:
    """Context manager binding structured fields to every log entry.

    A ``correlation_id`` field is also set in context for the duration of
    the block.

    Parameters
    ----------
    logger : logging.Logger | LoggerAdapter
        Base logger to wrap (may already be an adapter; its bound fields are kept).
    **fields : object
        Structured fields to inject into all log entries.

    Returns
    -------
    AbstractContextManager[LoggerAdapter]
        Context manager yielding an adapter with the bound fields.

    Examples
    --------
    >>> from logstack_common.logging import get_logger, with_fields
    >>> logger = get_logger(__name__)
    >>> with with_fields(logger, operation="reload", path="/etc/exporter.yml") as log:
    ...     log.info("Reloading configuration")
    """
    return _WithFieldsContext(logger, fields)
