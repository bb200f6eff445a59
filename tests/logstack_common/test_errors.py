"""Tests for logstack_common.errors."""

from __future__ import annotations

import logging

import pytest

from logstack_common.errors import (
    BackendUnavailableError,
    ErrorCode,
    LogstackError,
    MalformedTimestampError,
    StartupClientError,
    StartupConfigError,
    is_recoverable,
)


class TestErrorCode:
    """Tests for the ErrorCode registry."""

    def test_values_are_kebab_case(self) -> None:
        """Every code value is stable kebab-case text."""
        for code in ErrorCode:
            assert code.value == code.value.lower()
            assert "_" not in code.value

    @pytest.mark.parametrize(
        ("code", "expected"),
        [
            (ErrorCode.BACKEND_UNAVAILABLE, True),
            (ErrorCode.MALFORMED_TIMESTAMP, True),
            (ErrorCode.CONFIGURATION_ERROR, False),
            (ErrorCode.CLIENT_ERROR, False),
            (ErrorCode.RUNTIME_ERROR, False),
        ],
        ids=["backend", "timestamp", "config", "client", "runtime"],
    )
    def test_recoverable_codes(self, code: ErrorCode, expected: bool) -> None:
        """Only per-cycle failures are recoverable."""
        assert is_recoverable(code) is expected


class TestLogstackError:
    """Tests for the base exception."""

    def test_defaults(self) -> None:
        """A bare error is a runtime error logged at ERROR."""
        error = LogstackError("boom")
        assert error.code is ErrorCode.RUNTIME_ERROR
        assert error.log_level == logging.ERROR
        assert error.context == {}
        assert str(error) == "LogstackError[runtime-error]: boom"

    def test_cause_is_chained_and_named(self) -> None:
        """The cause becomes __cause__ and is named in str()."""
        cause = OSError("Connection refused")
        error = LogstackError("search failed", cause=cause)
        assert error.__cause__ is cause
        assert str(error).endswith("(caused by: OSError)")

    def test_rejects_non_enum_code(self) -> None:
        """Plain strings are not accepted as codes."""
        with pytest.raises(TypeError, match="ErrorCode"):
            LogstackError("boom", code="runtime-error")  # type: ignore[arg-type]

    def test_log_extra_includes_context(self) -> None:
        """log_extra carries the code, type, cause and context entries."""
        error = BackendUnavailableError(
            "search failed",
            cause=TimeoutError("read timed out"),
            context={"url": "http://es.test:9200/logs/_search"},
        )
        extra = error.log_extra()
        assert extra == {
            "error_code": "backend-unavailable",
            "error_type": "BackendUnavailableError",
            "cause": "TimeoutError: read timed out",
            "url": "http://es.test:9200/logs/_search",
        }


class TestSubclasses:
    """Tests for the concrete error kinds."""

    @pytest.mark.parametrize(
        ("error", "code", "level"),
        [
            (BackendUnavailableError("x"), ErrorCode.BACKEND_UNAVAILABLE, logging.ERROR),
            (
                MalformedTimestampError("x", field="@timestamp", value="nope"),
                ErrorCode.MALFORMED_TIMESTAMP,
                logging.ERROR,
            ),
            (StartupConfigError("x"), ErrorCode.CONFIGURATION_ERROR, logging.CRITICAL),
            (StartupClientError("x"), ErrorCode.CLIENT_ERROR, logging.CRITICAL),
        ],
        ids=["backend", "timestamp", "config", "client"],
    )
    def test_codes_and_levels(self, error: LogstackError, code: ErrorCode, level: int) -> None:
        """Each subclass pins its code and reporting level."""
        assert error.code is code
        assert error.log_level == level

    def test_malformed_timestamp_context(self) -> None:
        """The offending field and value are recorded."""
        error = MalformedTimestampError("bad", field="@timestamp", value=12)
        assert error.field == "@timestamp"
        assert error.value == 12
        assert error.context == {"field": "@timestamp", "value": "12"}

    def test_startup_config_error_keeps_validation_errors(self) -> None:
        """Validation details are stored in the context."""
        errors: list[dict[str, object]] = [{"field": "scrape_index", "issue": "Field required"}]
        error = StartupConfigError("invalid", errors=errors)
        assert error.context["validation_errors"] == errors
