"""Command-line entry point for the exporter.

Every option defaults to unset, so values fall through to the config file,
the ``LOGSTACK_EXPORTER_*`` environment and the built-in defaults.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from logstack_common.errors import LogstackError
from logstack_common.logging import get_logger, setup_logging, with_fields
from logstack_exporter import __version__
from logstack_exporter.models import QueryMode, TriggerMode
from logstack_exporter.server import run
from logstack_exporter.settings import load_settings

__all__ = ["app", "main", "serve"]

LOGGER = get_logger(__name__)

app = typer.Typer(
    help="Export the freshness of a log message in Elasticsearch as Prometheus metrics.",
    add_completion=False,
)


def _print_version(value: bool) -> None:
    if value:
        typer.echo(f"logstack_exporter {__version__}")
        raise typer.Exit


@app.command()
def serve(  # noqa: PLR0913 - one option per setting
    scrape_uri: Annotated[
        str | None,
        typer.Option("--scrape-uri", help="Elasticsearch endpoint.", metavar="URL"),
    ] = None,
    scrape_index: Annotated[
        str | None,
        typer.Option("--scrape-index", help="Elasticsearch index or pattern to query."),
    ] = None,
    query_msg: Annotated[
        str | None,
        typer.Option("--query-msg", help="The message to match in the Elasticsearch index."),
    ] = None,
    username: Annotated[
        str | None,
        typer.Option("--username", help="User for basic auth against Elasticsearch."),
    ] = None,
    password: Annotated[
        str | None,
        typer.Option("--password", help="Password of the Elasticsearch user."),
    ] = None,
    query_mode: Annotated[
        QueryMode | None,
        typer.Option("--query-mode", help="Report the newest match or the count in a window."),
    ] = None,
    window_minutes: Annotated[
        int | None,
        typer.Option("--window-minutes", help="Trailing window for range mode.", min=1),
    ] = None,
    message_field: Annotated[
        str | None,
        typer.Option("--message-field", help="Field the message is matched on."),
    ] = None,
    timestamp_field: Annotated[
        str | None,
        typer.Option("--timestamp-field", help="Event generation time field."),
    ] = None,
    ingested_field: Annotated[
        str | None,
        typer.Option("--ingested-field", help="Ingestion time field."),
    ] = None,
    require_ingested_at: Annotated[
        bool | None,
        typer.Option(
            "--require-ingested-at/--optional-ingested-at",
            help="Fail the scrape when the ingestion field is missing.",
        ),
    ] = None,
    insecure_skip_verify: Annotated[
        bool | None,
        typer.Option(
            "--insecure-skip-verify/--verify-tls",
            help="Skip TLS certificate verification (insecure).",
        ),
    ] = None,
    ca_cert: Annotated[
        str | None,
        typer.Option("--ca-cert", help="CA bundle used to verify the backend.", metavar="PATH"),
    ] = None,
    request_timeout_seconds: Annotated[
        float | None,
        typer.Option("--request-timeout", help="Backend connect and read timeout in seconds."),
    ] = None,
    trigger: Annotated[
        TriggerMode | None,
        typer.Option("--trigger", help="Scrape on every metrics read or on an interval."),
    ] = None,
    scrape_interval_seconds: Annotated[
        float | None,
        typer.Option("--scrape-interval", help="Push-mode scrape period in seconds."),
    ] = None,
    listen_address: Annotated[
        str | None,
        typer.Option("--listen-address", help="Address to serve on."),
    ] = None,
    config_file: Annotated[
        Path | None,
        typer.Option("--config-file", "-c", help="YAML settings file, reloaded on change."),
    ] = None,
    reload_interval_seconds: Annotated[
        float | None,
        typer.Option("--reload-interval", help="Config file check period in seconds."),
    ] = None,
    shutdown_grace_seconds: Annotated[
        float | None,
        typer.Option("--shutdown-grace", help="Delay between a stop signal and exit."),
    ] = None,
    log_level: Annotated[
        str | None,
        typer.Option("--log-level", help="DEBUG, INFO, WARNING or ERROR."),
    ] = None,
    log_format: Annotated[
        str | None,
        typer.Option("--log-format", help="json or text."),
    ] = None,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            help="Show the version and exit.",
            callback=_print_version,
            is_eager=True,
        ),
    ] = False,
) -> None:
    """Serve Elasticsearch log freshness metrics until stopped.

    Raises
    ------
    typer.Exit
        With code 1 when startup fails.
    """
    _ = version
    overrides: dict[str, object] = {
        "scrape_uri": scrape_uri,
        "scrape_index": scrape_index,
        "query_msg": query_msg,
        "username": username,
        "password": password,
        "query_mode": query_mode,
        "window_minutes": window_minutes,
        "message_field": message_field,
        "timestamp_field": timestamp_field,
        "ingested_field": ingested_field,
        "require_ingested_at": require_ingested_at,
        "insecure_skip_verify": insecure_skip_verify,
        "ca_cert": ca_cert,
        "request_timeout_seconds": request_timeout_seconds,
        "trigger": trigger,
        "scrape_interval_seconds": scrape_interval_seconds,
        "listen_address": listen_address,
        "reload_interval_seconds": reload_interval_seconds,
        "shutdown_grace_seconds": shutdown_grace_seconds,
        "log_level": log_level,
        "log_format": log_format,
    }
    overrides = {key: value for key, value in overrides.items() if value is not None}

    try:
        settings = load_settings(config_file, **overrides)
    except LogstackError as exc:
        setup_logging()
        LOGGER.critical(
            "Invalid configuration: %s",
            exc.message,
            extra={"operation": "startup", **exc.log_extra()},
        )
        raise typer.Exit(code=1) from exc

    setup_logging(settings.log_level, settings.log_format)
    with with_fields(LOGGER, operation="serve") as logger:
        try:
            run(settings, overrides)
        except LogstackError as exc:
            logger.log(
                exc.log_level,
                "Exporter failed to start: %s",
                exc.message,
                extra=exc.log_extra(),
            )
            raise typer.Exit(code=1) from exc


def main() -> None:
    """Run the command-line application."""
    app()


if __name__ == "__main__":  # pragma: no cover - manual execution entrypoint
    main()
