"""Live configuration handle and file-watching reloader.

The handle is the only place the running exporter reads its configuration
from. A reload builds a complete new :class:`ScrapeConfig` and swaps it in with
one reference assignment; a cycle that already read the old snapshot finishes
with it.
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import TYPE_CHECKING

from logstack_common.errors import StartupConfigError
from logstack_common.logging import LoggerAdapter, get_logger, with_fields
from logstack_exporter.settings import load_settings

if TYPE_CHECKING:
    from collections.abc import Mapping

    from logstack_exporter.models import ScrapeConfig

__all__ = ["ConfigHandle", "ConfigReloader", "FileSignature"]

LOGGER = get_logger(__name__)

FileSignature = tuple[int, int]


class ConfigHandle:
    """Holds the current :class:`ScrapeConfig`.

    Parameters
    ----------
    initial : ScrapeConfig
        Configuration in effect until the first reload.
    """

    def __init__(self, initial: ScrapeConfig) -> None:
        self._config = initial
        self._generation = 0
        self._write_lock = threading.Lock()

    def current(self) -> ScrapeConfig:
        """Return the configuration snapshot in effect right now."""
        return self._config

    def replace(self, new: ScrapeConfig) -> ScrapeConfig:
        """Swap in ``new`` and return the configuration it replaced."""
        with self._write_lock:
            previous = self._config
            self._config = new
            self._generation += 1
            return previous

    @property
    def generation(self) -> int:
        """Number of replacements since construction."""
        return self._generation


def _signature(path: Path) -> FileSignature | None:
    try:
        stat = path.stat()
    except OSError:
        return None
    return (stat.st_mtime_ns, stat.st_size)


class ConfigReloader:
    """Reload ``path`` into ``handle`` whenever the file changes.

    Parameters
    ----------
    handle : ConfigHandle
        Handle to update.
    path : Path | str
        YAML config file to watch.
    overrides : Mapping[str, object] | None, optional
        Command-line values that keep taking precedence over the file.
    interval_seconds : float, optional
        Poll period of the background thread. Defaults to 5.0.
    logger : LoggerAdapter | None, optional
        Logger. Defaults to the module logger.
    """

    def __init__(
        self,
        handle: ConfigHandle,
        path: Path | str,
        overrides: Mapping[str, object] | None = None,
        interval_seconds: float = 5.0,
        logger: LoggerAdapter | None = None,
    ) -> None:
        self._handle = handle
        self._path = Path(path)
        self._overrides = dict(overrides or {})
        self._interval = interval_seconds
        self._logger = logger or LOGGER
        self._signature = _signature(self._path)
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def path(self) -> Path:
        """Watched config file."""
        return self._path

    def check_once(self, *, force: bool = False) -> bool:
        """Reload the file if it changed since the last check.

        Parameters
        ----------
        force : bool, optional
            Reload even if the file signature is unchanged. Defaults to False.

        Returns
        -------
        bool
            True when a new configuration was swapped in.
        """
        with self._lock:
            signature = _signature(self._path)
            if not force and signature == self._signature:
                return False
            self._signature = signature
            with with_fields(
                self._logger, operation="reload", config_file=str(self._path)
            ) as log:
                try:
                    settings = load_settings(self._path, **self._overrides)
                except StartupConfigError as exc:
                    log.error(
                        "Invalid configuration, keeping the previous one: %s",
                        exc.message,
                        extra=exc.log_extra(),
                    )
                    return False
                new = settings.scrape_config()
                previous = self._handle.replace(new)
                log.info(
                    "Configuration reloaded",
                    extra={
                        "generation": self._handle.generation,
                        "changed": new != previous,
                    },
                )
            return True

    def start(self) -> None:
        """Start polling on a daemon thread (no-op when already running)."""
        if self._thread is not None:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run, name="logstack-config-reloader", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: float | None = None) -> None:
        """Stop polling and wait up to ``timeout`` seconds for the thread."""
        self._stop.set()
        thread, self._thread = self._thread, None
        if thread is not None:
            thread.join(timeout)

    def _run(self) -> None:
        while not self._stop.wait(self._interval):
            self.check_once()
