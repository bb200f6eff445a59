"""Tests for logstack_common.logging module."""

from __future__ import annotations

import io
import json
import logging
from collections.abc import Iterator

import pytest

from logstack_common.logging import (
    CorrelationContext,
    JsonFormatter,
    LoggerAdapter,
    get_correlation_id,
    get_logger,
    setup_logging,
    with_fields,
)


def _json_logger(name: str) -> tuple[logging.Logger, io.StringIO]:
    stream = io.StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(JsonFormatter())
    logger = logging.getLogger(name)
    logger.handlers = [handler]
    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    return logger, stream


def _lines(stream: io.StringIO) -> list[dict[str, object]]:
    return [json.loads(line) for line in stream.getvalue().splitlines() if line.strip()]


class TestGetLogger:
    """Tests for get_logger function."""

    def test_returns_logger_adapter(self) -> None:
        """get_logger returns a LoggerAdapter instance."""
        logger = get_logger(__name__)
        assert isinstance(logger, LoggerAdapter)

    def test_logger_has_null_handler(self) -> None:
        """Logger has NullHandler when no handlers configured."""
        logger = get_logger(f"{__name__}.test_null_handler")
        handlers = logger.logger.handlers
        assert len(handlers) == 1
        assert isinstance(handlers[0], logging.NullHandler)


class TestJsonFormatter:
    """Tests for JsonFormatter class."""

    def test_formats_as_json(self) -> None:
        """Records become one JSON object per line with the core keys."""
        logger, stream = _json_logger(f"{__name__}.json")
        logger.info("Scrape finished", extra={"operation": "scrape", "total_hits": 3})

        (entry,) = _lines(stream)
        assert entry["level"] == "INFO"
        assert entry["name"] == f"{__name__}.json"
        assert entry["message"] == "Scrape finished"
        assert entry["operation"] == "scrape"
        assert entry["total_hits"] == 3
        assert isinstance(entry["ts"], str)
        assert entry["ts"].endswith("Z")

    def test_includes_context_correlation_id(self) -> None:
        """The context correlation id is added when the record has none."""
        logger, stream = _json_logger(f"{__name__}.correlation")
        with CorrelationContext("cycle-42"):
            logger.info("inside")
        logger.info("outside")

        inside, outside = _lines(stream)
        assert inside["correlation_id"] == "cycle-42"
        assert "correlation_id" not in outside

    def test_includes_exception(self) -> None:
        """Exception information is rendered under exc_info."""
        logger, stream = _json_logger(f"{__name__}.exc")
        try:
            msg = "bad value"
            raise ValueError(msg)
        except ValueError:
            logger.exception("failed")

        (entry,) = _lines(stream)
        assert "ValueError: bad value" in str(entry["exc_info"])


class TestLoggerAdapter:
    """Tests for LoggerAdapter structured fields."""

    def test_defaults_operation_and_status(self, caplog: pytest.LogCaptureFixture) -> None:
        """operation defaults to unknown and status follows the level."""
        logger = get_logger(f"{__name__}.defaults")
        with caplog.at_level(logging.INFO):
            logger.info("ok")
            logger.warning("careful")
            logger.error("broken")

        statuses = [(r.operation, r.status) for r in caplog.records]  # type: ignore[attr-defined]
        assert statuses == [
            ("unknown", "success"),
            ("unknown", "warning"),
            ("unknown", "error"),
        ]

    def test_explicit_fields_win(self, caplog: pytest.LogCaptureFixture) -> None:
        """Caller-provided operation and status are kept."""
        logger = get_logger(f"{__name__}.explicit")
        with caplog.at_level(logging.DEBUG):
            logger.debug("started", extra={"operation": "scrape", "status": "started"})

        record = caplog.records[-1]
        assert record.operation == "scrape"  # type: ignore[attr-defined]
        assert record.status == "started"  # type: ignore[attr-defined]


class TestWithFields:
    """Tests for the with_fields context manager."""

    def test_binds_fields(self, caplog: pytest.LogCaptureFixture) -> None:
        """Bound fields appear on every record of the block."""
        base = get_logger(f"{__name__}.bound")
        with caplog.at_level(logging.INFO), with_fields(base, operation="reload") as log:
            log.info("first")
            log.info("second", extra={"generation": 2})

        operations = [r.operation for r in caplog.records]  # type: ignore[attr-defined]
        assert operations == ["reload", "reload"]
        assert caplog.records[-1].generation == 2  # type: ignore[attr-defined]

    def test_sets_and_restores_correlation_id(self) -> None:
        """A correlation_id field is placed in context for the block only."""
        assert get_correlation_id() is None
        with with_fields(get_logger(__name__), correlation_id="abc"):
            assert get_correlation_id() == "abc"
        assert get_correlation_id() is None


class TestSetupLogging:
    """Tests for setup_logging."""

    @pytest.fixture(autouse=True)
    def _restore_root(self) -> Iterator[None]:
        root = logging.getLogger()
        handlers, level = list(root.handlers), root.level
        yield None
        root.handlers = handlers
        root.setLevel(level)

    @pytest.mark.parametrize(
        ("fmt", "formatter_type"),
        [("json", JsonFormatter), ("text", logging.Formatter)],
        ids=["json", "text"],
    )
    def test_installs_formatter(self, fmt: str, formatter_type: type[logging.Formatter]) -> None:
        """The root handler uses the requested formatter."""
        setup_logging("debug", fmt)
        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert isinstance(root.handlers[0].formatter, formatter_type)

    @pytest.mark.parametrize(
        ("level", "fmt"),
        [("LOUD", "json"), ("INFO", "xml")],
        ids=["unknown_level", "unknown_format"],
    )
    def test_rejects_unknown_values(self, level: str, fmt: str) -> None:
        """Unknown levels and formats raise ValueError."""
        with pytest.raises(ValueError, match="Unknown log"):
            setup_logging(level, fmt)
