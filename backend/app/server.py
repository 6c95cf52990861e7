"""
Clipture Backend — Server Entry Point & Shutdown Coordination
===============================================================

What:  Runs the FastAPI app under a programmatic uvicorn server and owns
       the process lifecycle.
Why:   A deploy sends SIGTERM and waits; in-flight requests should finish
       and the database pool should close, but a stuck shutdown must not
       hang the container forever.
How:   ShutdownCoordinator listens for SIGHUP/SIGINT/SIGTERM/SIGQUIT. The
       first signal asks uvicorn to stop and arms a watchdog; if the server
       has not finished within SHUTDOWN_TIMEOUT the watchdog force-exits
       the process. A second signal skips the graceful drain.

Shutdown sequence:
    signal ──► should_exit = True ──► uvicorn stops accepting connections
                                     ──► in-flight requests drain
                                     ──► lifespan shutdown closes the database
                                     ──► serve() returns, watchdog cancelled
    watchdog fires first ──► CRITICAL log ──► os._exit(1)

Usage:
    clipture-backend            (console script)
    python -m app.server
"""

import asyncio
import contextlib
import logging
import os
import signal
from typing import Any, Callable, Optional

import uvicorn
from fastapi import FastAPI

from app.config import Settings, settings as default_settings
from app.logging_config import setup_logging
from app.main import create_app

logger = logging.getLogger(__name__)

SHUTDOWN_SIGNALS = tuple(
    getattr(signal, name)
    for name in ("SIGHUP", "SIGINT", "SIGTERM", "SIGQUIT")
    if hasattr(signal, name)
)


class ShutdownCoordinator:
    """
    Turns termination signals into a bounded graceful shutdown.

    Args:
        timeout:    Seconds the graceful shutdown may take.
        force_exit: Called with exit status 1 when the timeout elapses.
    """

    def __init__(
        self,
        timeout: float,
        force_exit: Callable[[int], Any] = os._exit,
    ):
        self.timeout = timeout
        self.force_exit = force_exit
        self._on_shutdown: Optional[Callable[[bool], None]] = None
        self._watchdog: Optional[asyncio.Task] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._installed: list = []

    @property
    def shutting_down(self) -> bool:
        return self._watchdog is not None

    def install(
        self,
        loop: asyncio.AbstractEventLoop,
        on_shutdown: Callable[[bool], None],
    ) -> None:
        """
        Register the signal handlers on `loop`.

        on_shutdown(force) is called once per received signal: force is False
        for the first signal and True for any later one.
        """
        self._loop = loop
        self.bind(on_shutdown)
        for sig in SHUTDOWN_SIGNALS:
            try:
                loop.add_signal_handler(sig, self.handle_signal, sig)
            except NotImplementedError:
                # Windows event loops: fall back to signal.signal
                signal.signal(
                    sig,
                    lambda signum, frame: loop.call_soon_threadsafe(self.handle_signal, signum),
                )
            self._installed.append(sig)

    def bind(self, on_shutdown: Callable[[bool], None]) -> None:
        """Set the shutdown callback without touching process signal handlers."""
        self._on_shutdown = on_shutdown

    def uninstall(self) -> None:
        for sig in self._installed:
            try:
                self._loop.remove_signal_handler(sig)
            except NotImplementedError:
                signal.signal(sig, signal.SIG_DFL)
        self._installed = []

    def handle_signal(self, sig: int) -> None:
        name = signal.Signals(sig).name
        if self.shutting_down:
            logger.warning("Received %s during shutdown, stopping immediately", name)
            if self._on_shutdown is not None:
                self._on_shutdown(True)
            return

        logger.info(
            "Received %s, shutting down gracefully",
            name,
            extra={"timeout_seconds": self.timeout},
        )
        self._watchdog = asyncio.get_running_loop().create_task(self._watch())
        if self._on_shutdown is not None:
            self._on_shutdown(False)

    async def _watch(self) -> None:
        await asyncio.sleep(self.timeout)
        logger.critical("graceful shutdown timed out.. forcing exit.")
        self.force_exit(1)

    def complete(self) -> None:
        """Shutdown finished in time: disarm the watchdog."""
        if self._watchdog is not None and not self._watchdog.done():
            self._watchdog.cancel()


class _UvicornServer(uvicorn.Server):
    """uvicorn.Server whose signal handling is left to ShutdownCoordinator."""

    def install_signal_handlers(self) -> None:
        pass

    @contextlib.contextmanager
    def capture_signals(self):
        yield


class Server:
    """
    The HTTP server: app + uvicorn + shutdown coordination.

    Example:
        server = Server(settings)
        asyncio.run(server.serve())
    """

    def __init__(
        self,
        settings: Settings,
        app: Optional[FastAPI] = None,
        force_exit: Callable[[int], Any] = os._exit,
    ):
        self.settings = settings
        self.app = app or create_app(settings)
        config = uvicorn.Config(
            self.app,
            host="0.0.0.0",
            port=settings.port,
            log_config=None,    # logging is configured by setup_logging
            access_log=False,   # RequestLoggingMiddleware logs requests
            lifespan="on",
        )
        self.http = _UvicornServer(config)
        self.coordinator = ShutdownCoordinator(
            timeout=settings.shutdown_timeout.total_seconds(),
            force_exit=force_exit,
        )

    def request_stop(self, force: bool = False) -> None:
        """Stop accepting requests; `force` skips draining in-flight ones."""
        self.http.should_exit = True
        if force:
            self.http.force_exit = True

    async def serve(self, install_signals: bool = True) -> None:
        if install_signals:
            self.coordinator.install(asyncio.get_running_loop(), self.request_stop)
        else:
            self.coordinator.bind(self.request_stop)

        logger.info("Starting server", extra={"port": self.settings.port})
        try:
            await self.http.serve()
        finally:
            self.coordinator.complete()
            if install_signals:
                self.coordinator.uninstall()
        logger.info("Server stopped")


def main() -> None:
    """Console entry point."""
    setup_logging(default_settings)
    server = Server(default_settings)
    asyncio.run(server.serve())


if __name__ == "__main__":
    main()
