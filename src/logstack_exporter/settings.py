"""Exporter settings with typed configuration and fail-fast validation.

Values come from, in decreasing precedence: explicit overrides (command-line
flags), the YAML config file, environment variables
(``LOGSTACK_EXPORTER_*``; credentials also from ``ELASTIC_USERNAME`` /
``ELASTIC_PASSWORD``) and field defaults.

Examples
--------
>>> from logstack_exporter.settings import load_settings
>>> settings = load_settings(scrape_index="logs-*", query_msg="heartbeat")
>>> settings.scrape_config().query_mode.value
'latest'
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Final

import yaml
from pydantic import (
    Field,
    PositiveFloat,
    PositiveInt,
    SecretStr,
    ValidationError,
    field_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from logstack_common.errors import StartupConfigError
from logstack_common.logging import get_logger
from logstack_exporter.models import QueryMode, ScrapeConfig, TriggerMode

__all__ = [
    "CREDENTIAL_ENV_FALLBACKS",
    "ENV_PREFIX",
    "ExporterSettings",
    "load_settings",
    "read_config_file",
]

logger = get_logger(__name__)

ENV_PREFIX: Final = "LOGSTACK_EXPORTER_"
LOG_LEVELS: Final = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})
LOG_FORMATS: Final = frozenset({"json", "text"})

# Unprefixed credential variables; consulted last, before the field defaults.
CREDENTIAL_ENV_FALLBACKS: Final[dict[str, str]] = {
    "username": "ELASTIC_USERNAME",
    "password": "ELASTIC_PASSWORD",
}


class ExporterSettings(BaseSettings):
    """Process-wide configuration (``LOGSTACK_EXPORTER_*`` namespace)."""

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        extra="forbid",
        frozen=True,
        case_sensitive=False,
    )

    scrape_uri: str = Field(
        default="https://127.0.0.1:9092", description="Elasticsearch endpoint"
    )
    scrape_index: str = Field(min_length=1, description="Elasticsearch index or pattern")
    query_msg: str = Field(
        min_length=1, description="The message to match in the Elasticsearch index"
    )
    username: str = Field(
        default="",
        description="User for basic auth against Elasticsearch",
    )
    password: SecretStr = Field(
        default=SecretStr(""),
        description="Password of the Elasticsearch user",
    )
    query_mode: QueryMode = Field(
        default=QueryMode.LATEST, description="'latest' (newest match) or 'range' (count in window)"
    )
    window_minutes: PositiveInt = Field(default=5, description="Trailing window for range mode")
    message_field: str = Field(default="message", description="Field the message is matched on")
    timestamp_field: str = Field(default="@timestamp", description="Event generation time field")
    ingested_field: str = Field(
        default="logstash_processed_at", description="Ingestion/processing time field"
    )
    require_ingested_at: bool = Field(
        default=True, description="Treat a missing ingestion field as a malformed document"
    )
    insecure_skip_verify: bool = Field(
        default=False, description="Skip TLS certificate verification (insecure)"
    )
    ca_cert: str | None = Field(default=None, description="CA bundle used to verify the backend")
    request_timeout_seconds: PositiveFloat = Field(
        default=10.0, description="Connect and read timeout for backend calls"
    )
    trigger: TriggerMode = Field(
        default=TriggerMode.PULL,
        description="'pull' scrapes on every /metrics read, 'push' on a fixed interval",
    )
    scrape_interval_seconds: PositiveFloat = Field(
        default=300.0, description="Push-mode scrape period"
    )
    listen_address: str = Field(default=":9090", description="Address of the /metrics endpoint")
    config_file: Path | None = Field(default=None, description="YAML file watched for reloads")
    reload_interval_seconds: PositiveFloat = Field(
        default=5.0, description="How often the config file is checked for changes"
    )
    shutdown_grace_seconds: float = Field(
        default=2.0, ge=0.0, description="Drain delay between a stop signal and exit"
    )
    log_level: str = Field(default="INFO", description="Logging level (DEBUG, INFO, WARNING, ERROR)")
    log_format: str = Field(default="json", description="Log line format (json or text)")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """Return ``value`` upper-cased if it names a standard logging level.

        Raises
        ------
        ValueError
            If the level is unknown.
        """
        level_upper = value.upper()
        if level_upper not in LOG_LEVELS:
            msg = f"Invalid log level: {value}. Must be one of {sorted(LOG_LEVELS)}"
            raise ValueError(msg)
        return level_upper

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, value: str) -> str:
        """Return ``value`` lower-cased if it is ``json`` or ``text``.

        Raises
        ------
        ValueError
            If the format is unsupported.
        """
        format_lower = value.lower()
        if format_lower not in LOG_FORMATS:
            msg = f"Invalid log format: {value}. Must be one of {sorted(LOG_FORMATS)}"
            raise ValueError(msg)
        return format_lower

    def scrape_config(self) -> ScrapeConfig:
        """Return the immutable per-scrape view of these settings."""
        return ScrapeConfig(
            scrape_uri=self.scrape_uri,
            scrape_index=self.scrape_index,
            query_msg=self.query_msg,
            username=self.username,
            password=self.password.get_secret_value(),
            query_mode=self.query_mode,
            window_minutes=self.window_minutes,
            message_field=self.message_field,
            timestamp_field=self.timestamp_field,
            ingested_field=self.ingested_field,
            require_ingested_at=self.require_ingested_at,
            insecure_skip_verify=self.insecure_skip_verify,
            ca_cert=self.ca_cert,
            request_timeout_seconds=self.request_timeout_seconds,
        )


def read_config_file(path: Path) -> dict[str, Any]:
    """Read a YAML mapping of settings.

    Parameters
    ----------
    path : Path
        File to read. Keys are :class:`ExporterSettings` field names; an empty
        file is an empty mapping.

    Returns
    -------
    dict[str, Any]
        Parsed settings values.

    Raises
    ------
    StartupConfigError
        If the file cannot be read, is not valid YAML, or is not a mapping.
    """
    try:
        with path.open(encoding="utf-8") as handle:
            loaded = yaml.safe_load(handle)
    except (OSError, yaml.YAMLError) as exc:
        msg = f"Failed to read config file {path}: {exc}"
        raise StartupConfigError(msg, cause=exc, context={"config_file": str(path)}) from exc
    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        msg = f"Config file {path} must contain a mapping, got {type(loaded).__name__}"
        raise StartupConfigError(msg, context={"config_file": str(path)})
    return {str(key): value for key, value in loaded.items()}


def _credential_fallbacks(
    values: Mapping[str, object], environ: Mapping[str, str]
) -> dict[str, str]:
    upper_environ = {key.upper(): value for key, value in environ.items()}
    fallbacks: dict[str, str] = {}
    for field_name, variable in CREDENTIAL_ENV_FALLBACKS.items():
        if field_name in values or f"{ENV_PREFIX}{field_name.upper()}" in upper_environ:
            continue
        if variable in upper_environ:
            fallbacks[field_name] = upper_environ[variable]
    return fallbacks


def _config_file_from(environ: Mapping[str, str]) -> str | None:
    upper_environ = {key.upper(): value for key, value in environ.items()}
    return upper_environ.get(f"{ENV_PREFIX}CONFIG_FILE") or None


def load_settings(config_file: Path | str | None = None, **overrides: object) -> ExporterSettings:
    """Load :class:`ExporterSettings` from a config file plus overrides.

    Parameters
    ----------
    config_file : Path | str | None, optional
        YAML file with settings values. Defaults to the file named by
        ``LOGSTACK_EXPORTER_CONFIG_FILE``, if set.
    **overrides : object
        Explicit values; ``None`` values are ignored so unset CLI flags fall
        through to the file, the environment and the defaults.

    Returns
    -------
    ExporterSettings
        Validated settings.

    Raises
    ------
    StartupConfigError
        If the file cannot be read or validation fails.
    """
    values: dict[str, object] = {}
    if config_file is None:
        config_file = _config_file_from(os.environ)
    if config_file is not None:
        path = Path(config_file)
        values.update(read_config_file(path))
        values["config_file"] = path
    values.update({key: value for key, value in overrides.items() if value is not None})
    values.update(_credential_fallbacks(values, os.environ))
    try:
        return ExporterSettings(**values)  # type: ignore[arg-type]  # BaseSettings.__init__ accepts Any kwargs
    except ValidationError as exc:
        errors: list[dict[str, object]] = [
            {"field": ".".join(str(part) for part in error["loc"]), "issue": error["msg"]}
            for error in exc.errors()
        ]
        msg = f"Configuration validation failed: {exc.error_count()} error(s)"
        logger.exception(
            "Settings validation failed",
            extra={"operation": "load_settings", "error_type": type(exc).__name__},
        )
        raise StartupConfigError(msg, errors=errors, cause=exc) from exc
