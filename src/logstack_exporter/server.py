"""Process wiring: settings to handle, engine, publisher, trigger and HTTP server."""

from __future__ import annotations

import signal
import threading
import time
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any

from prometheus_client import start_http_server
from prometheus_client.registry import CollectorRegistry

from logstack_common.errors import (
    BackendUnavailableError,
    StartupClientError,
    StartupConfigError,
)
from logstack_common.logging import LoggerAdapter, get_logger
from logstack_exporter import __version__
from logstack_exporter.config import ConfigHandle, ConfigReloader
from logstack_exporter.engine import ClientFactory, ScrapeEngine
from logstack_exporter.publisher import MetricPublisher
from logstack_exporter.trigger import ScrapeCycle, build_trigger
from observability.metrics import build_exporter_metrics
from search_client.client import build_search_client

if TYPE_CHECKING:
    from types import FrameType

    from logstack_exporter.settings import ExporterSettings

__all__ = ["ExporterApp", "ServeFunction", "parse_listen_address", "run"]

LOGGER = get_logger(__name__)

ServeFunction = Callable[..., Any]

STOP_SIGNALS: tuple[signal.Signals, ...] = (signal.SIGTERM, signal.SIGINT, signal.SIGQUIT)


def parse_listen_address(address: str) -> tuple[str, int]:
    """Split ``[host]:port`` into a bind address and port.

    An empty host binds every interface; IPv6 hosts are written in brackets.

    Parameters
    ----------
    address : str
        Listen address such as ``:9090``, ``127.0.0.1:9090`` or ``[::1]:9090``.

    Returns
    -------
    tuple[str, int]
        Host and port.

    Raises
    ------
    ValueError
        If the address has no port or the port is out of range.

    Examples
    --------
    >>> parse_listen_address(":9090")
    ('0.0.0.0', 9090)
    >>> parse_listen_address("[::1]:9100")
    ('::1', 9100)
    """
    host, sep, port_text = address.rpartition(":")
    if not sep or not port_text.isdigit():
        msg = f"Invalid listen address {address!r}: expected [host]:port"
        raise ValueError(msg)
    port = int(port_text)
    if not 0 < port < 65536:
        msg = f"Invalid listen address {address!r}: port out of range"
        raise ValueError(msg)
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    return host or "0.0.0.0", port  # noqa: S104 - the exporter is scraped remotely


class ExporterApp:
    """A running exporter.

    Parameters
    ----------
    settings : ExporterSettings
        Validated startup settings.
    overrides : Mapping[str, object] | None, optional
        Command-line values re-applied on every config file reload.
    client_factory : ClientFactory, optional
        Builds search clients. Defaults to :func:`build_search_client`.
    serve : ServeFunction, optional
        Starts the HTTP endpoint; called as ``serve(port, addr=..., registry=...)``
        and must return ``(server, thread)``. Defaults to
        :func:`prometheus_client.start_http_server`.
    registry : CollectorRegistry | None, optional
        Registry exposed over HTTP. Defaults to a fresh one, so the process
        metrics of the default registry are not mixed in.
    logger : LoggerAdapter | None, optional
        Logger. Defaults to the module logger.
    """

    def __init__(
        self,
        settings: ExporterSettings,
        *,
        overrides: Mapping[str, object] | None = None,
        client_factory: ClientFactory = build_search_client,
        serve: ServeFunction = start_http_server,
        registry: CollectorRegistry | None = None,
        logger: LoggerAdapter | None = None,
    ) -> None:
        self.settings = settings
        self.registry = registry if registry is not None else CollectorRegistry()
        self._serve = serve
        self._logger = logger or LOGGER
        self.handle = ConfigHandle(settings.scrape_config())
        self.engine = ScrapeEngine(client_factory, logger=self._logger)
        self.publisher = MetricPublisher(build_exporter_metrics(__version__), logger=self._logger)
        self.cycle = ScrapeCycle(self.engine, self.publisher, self.handle.current, self._logger)
        self.trigger = build_trigger(
            settings.trigger,
            self.cycle,
            self.publisher,
            settings.scrape_interval_seconds,
            logger=self._logger,
        )
        self.reloader: ConfigReloader | None = None
        if settings.config_file is not None:
            self.reloader = ConfigReloader(
                self.handle,
                settings.config_file,
                overrides,
                settings.reload_interval_seconds,
                logger=self._logger,
            )
        self._stop_requested = threading.Event()
        self._httpd: Any = None
        self._previous_handlers: dict[int, Any] = {}

    def start(self) -> None:
        """Verify the backend, then start serving and scheduling.

        Raises
        ------
        StartupConfigError
            If the listen address is invalid.
        StartupClientError
            If the backend cannot be reached.
        """
        try:
            host, port = parse_listen_address(self.settings.listen_address)
        except ValueError as exc:
            raise StartupConfigError(str(exc), cause=exc) from exc

        config = self.handle.current()
        self._logger.info(
            "Starting logstack_exporter",
            extra={"operation": "startup", "version": __version__},
        )
        self._logger.info(
            "Collect from: %s",
            config.scrape_uri,
            extra={"operation": "startup", "scrape_uri": config.scrape_uri},
        )
        try:
            self.engine.client_for(config).ping()
        except BackendUnavailableError as exc:
            msg = f"error creating the Elasticsearch client: {exc.message}"
            raise StartupClientError(
                msg, cause=exc, context={"scrape_uri": config.scrape_uri}
            ) from exc

        self.trigger.register(self.registry)
        try:
            self._httpd, _ = self._serve(port, addr=host, registry=self.registry)
        except OSError as exc:
            msg = f"cannot listen on {self.settings.listen_address}: {exc}"
            raise StartupConfigError(msg, cause=exc) from exc
        self._logger.info(
            "Listening on %s:%d",
            host,
            port,
            extra={
                "operation": "startup",
                "trigger": self.settings.trigger.value,
                "query_mode": config.query_mode.value,
            },
        )
        self.trigger.start()
        if self.reloader is not None:
            self.reloader.start()

    def request_shutdown(self, reason: str = "requested") -> None:
        """Ask :meth:`wait` to return."""
        self._logger.info("Shutdown requested: %s", reason, extra={"operation": "shutdown"})
        self._stop_requested.set()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until shutdown is requested; return False on timeout."""
        return self._stop_requested.wait(timeout)

    def shutdown(self) -> None:
        """Stop scheduling, wait the grace period, then close the HTTP server."""
        grace = self.settings.shutdown_grace_seconds
        self.trigger.stop(grace)
        if self.reloader is not None:
            self.reloader.stop(grace)
        self._logger.info(
            "Waiting %.1f seconds before exit", grace, extra={"operation": "shutdown"}
        )
        time.sleep(grace)
        if self._httpd is not None:
            self._httpd.shutdown()
            self._httpd.server_close()
            self._httpd = None
        self.engine.close()
        self.restore_signal_handlers()
        self._logger.info("Exporter stopped", extra={"operation": "shutdown"})

    def install_signal_handlers(self) -> None:
        """Route stop signals to :meth:`request_shutdown` and SIGHUP to a reload.

        Without a config file SIGHUP stops the process like the other
        signals. Must be called from the main thread.
        """
        for sig in STOP_SIGNALS:
            self._previous_handlers[sig] = signal.signal(sig, self._handle_stop)
        hup = self._handle_hup if self.reloader is not None else self._handle_stop
        self._previous_handlers[signal.SIGHUP] = signal.signal(signal.SIGHUP, hup)

    def restore_signal_handlers(self) -> None:
        """Reinstate the handlers replaced by :meth:`install_signal_handlers`."""
        if threading.current_thread() is not threading.main_thread():
            return
        for sig, previous in self._previous_handlers.items():
            signal.signal(sig, previous)
        self._previous_handlers.clear()

    def _handle_stop(self, signum: int, frame: FrameType | None) -> None:
        _ = frame
        self.request_shutdown(signal.Signals(signum).name)

    def _handle_hup(self, signum: int, frame: FrameType | None) -> None:
        _ = (signum, frame)
        if self.reloader is not None:
            self._logger.info(
                "SIGHUP received, reloading configuration", extra={"operation": "reload"}
            )
            self.reloader.check_once(force=True)


def run(settings: ExporterSettings, overrides: Mapping[str, object] | None = None) -> None:
    """Run the exporter until a stop signal arrives.

    Raises
    ------
    StartupConfigError
        If the listen address is invalid.
    StartupClientError
        If the backend cannot be reached at startup.
    """
    app = ExporterApp(settings, overrides=overrides)
    app.start()
    app.install_signal_handlers()
    try:
        app.wait()
    finally:
        app.shutdown()
