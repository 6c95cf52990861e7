"""
Clipture Backend — Lifespan & Shutdown Tests
==============================================

What:  Tests for the application lifespan and the server's shutdown coordination.
How:   The lifespan is entered directly with Database.connect patched.
       ShutdownCoordinator gets a MagicMock force_exit so nothing exits.

What we test:
    ✅ Database bootstrap failure degrades to "no database" instead of crashing
    ✅ Connected handles run migrations and are closed on shutdown
    ✅ Shutdown completing in time disarms the watchdog
    ✅ Shutdown exceeding the timeout force-exits with status 1
    ✅ A second signal requests an immediate stop
    ✅ A real uvicorn server drains and closes the database on signal
"""

import asyncio
import signal
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from app.config import Settings
from app.exceptions import DatabaseConnectionError
from app.main import create_app, lifespan
from app.server import SHUTDOWN_SIGNALS, Server, ShutdownCoordinator


class TestLifespan:

    @pytest.mark.asyncio
    async def test_continues_without_database_when_bootstrap_fails(self, test_settings):
        app = create_app(test_settings)
        with patch(
            "app.main.Database.connect",
            AsyncMock(side_effect=DatabaseConnectionError(attempts=5)),
        ):
            async with lifespan(app):
                assert app.state.database is None

    @pytest.mark.asyncio
    async def test_connected_database_is_migrated_and_closed(self, test_settings, fake_database):
        app = create_app(test_settings)
        with patch("app.main.Database.connect", AsyncMock(return_value=fake_database)):
            async with lifespan(app):
                assert app.state.database is fake_database
                fake_database.run_migrations.assert_awaited_once()
                fake_database.close.assert_not_awaited()

        fake_database.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_injected_database_skips_bootstrap(self, test_settings, fake_database):
        app = create_app(test_settings, database=fake_database)
        with patch("app.main.Database.connect", AsyncMock()) as connect:
            async with lifespan(app):
                pass

        connect.assert_not_awaited()
        fake_database.close.assert_awaited_once()


class TestShutdownCoordinator:

    def test_install_registers_every_shutdown_signal(self):
        loop = MagicMock()
        coordinator = ShutdownCoordinator(timeout=30)
        coordinator.install(loop, MagicMock())

        registered = [c.args[0] for c in loop.add_signal_handler.call_args_list]
        assert registered == list(SHUTDOWN_SIGNALS)
        assert signal.SIGTERM in registered

        coordinator.uninstall()
        assert loop.remove_signal_handler.call_count == len(SHUTDOWN_SIGNALS)

    @pytest.mark.asyncio
    async def test_completes_within_timeout(self):
        force_exit = MagicMock()
        on_shutdown = MagicMock()
        coordinator = ShutdownCoordinator(timeout=0.2, force_exit=force_exit)
        coordinator.bind(on_shutdown)

        coordinator.handle_signal(signal.SIGTERM)
        on_shutdown.assert_called_once_with(False)
        assert coordinator.shutting_down

        coordinator.complete()
        await asyncio.sleep(0.3)
        force_exit.assert_not_called()

    @pytest.mark.asyncio
    async def test_forces_exit_when_shutdown_hangs(self):
        force_exit = MagicMock()
        coordinator = ShutdownCoordinator(timeout=0.05, force_exit=force_exit)
        coordinator.bind(MagicMock())

        coordinator.handle_signal(signal.SIGTERM)
        await asyncio.sleep(0.2)

        force_exit.assert_called_once_with(1)

    @pytest.mark.asyncio
    async def test_second_signal_requests_immediate_stop(self):
        on_shutdown = MagicMock()
        coordinator = ShutdownCoordinator(timeout=30, force_exit=MagicMock())
        coordinator.bind(on_shutdown)

        coordinator.handle_signal(signal.SIGTERM)
        coordinator.handle_signal(signal.SIGINT)

        assert [c.args for c in on_shutdown.call_args_list] == [(False,), (True,)]
        coordinator.complete()


class TestServer:

    def test_request_stop_flags_uvicorn(self, test_settings, fake_database):
        server = Server(test_settings, app=create_app(test_settings, database=fake_database))
        server.request_stop()
        assert server.http.should_exit is True
        assert not server.http.force_exit

        server.request_stop(force=True)
        assert server.http.force_exit is True

    @pytest.mark.asyncio
    async def test_graceful_shutdown_closes_database(self, fake_database):
        settings = Settings(env="test", port=0, shutdown_timeout="5s", api_rate_limit=1000)
        force_exit = MagicMock()
        server = Server(
            settings,
            app=create_app(settings, database=fake_database),
            force_exit=force_exit,
        )

        task = asyncio.create_task(server.serve(install_signals=False))
        for _ in range(100):
            if server.http.started:
                break
            await asyncio.sleep(0.05)
        assert server.http.started

        server.coordinator.handle_signal(signal.SIGTERM)
        await asyncio.wait_for(task, timeout=10)

        fake_database.close.assert_awaited_once()
        force_exit.assert_not_called()
