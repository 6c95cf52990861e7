"""
Clipture Backend — Test Configuration (conftest.py)
=====================================================

What:  Shared pytest fixtures for the entire test suite.
Why:   Reusable test infrastructure (settings, fake database handles, API client).
How:   pytest auto-discovers conftest.py and makes fixtures available to all tests.

Fixture Hierarchy:
    Function-scoped (created fresh for each test):
    ├── test_settings: Settings with test-friendly limits
    ├── fake_database: Mock Database handle whose ping succeeds
    ├── make_engine: Factory for mock AsyncEngines (healthy or failing)
    ├── client_factory: Builds an HTTPX AsyncClient around a fresh app
    └── test_client: Client for an app running without a database
"""

import os
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport

# Override settings for testing BEFORE any app imports
# Why: Prevents tests from reaching a real PostgreSQL or reading a developer .env
os.environ["ENV"] = "test"
os.environ["LOG_LEVEL"] = "warning"  # Reduce noise during tests
os.environ["API_RATE_LIMIT"] = "10000"

from app.config import Settings  # noqa: E402
from app.main import create_app  # noqa: E402


@pytest.fixture
def test_settings():
    """Settings isolated from the environment's DB_* values."""
    return Settings(
        env="test",
        log_level="warning",
        api_rate_limit=10000,
        db_host="db.test",
        db_name="clipture_test",
    )


@pytest.fixture
def fake_database():
    """
    A mock Database handle.

    Usage:
        fake_database.ping.side_effect = OSError("connection refused")
    """
    database = MagicMock()
    database.is_connected = True
    database.ping = AsyncMock(return_value=None)
    database.close = AsyncMock()
    database.run_migrations = AsyncMock()
    return database


@pytest.fixture
def make_engine():
    """
    Factory for mock AsyncEngines.

    make_engine()                       → SELECT 1 succeeds
    make_engine(error=OSError("down"))  → SELECT 1 raises
    """
    def _make(error=None):
        conn = MagicMock()
        conn.execute = AsyncMock(side_effect=error)

        ctx = MagicMock()
        ctx.__aenter__ = AsyncMock(return_value=conn)
        ctx.__aexit__ = AsyncMock(return_value=False)

        engine = MagicMock()
        engine.connect.return_value = ctx
        engine.dispose = AsyncMock()
        engine.conn = conn
        return engine

    return _make


@pytest.fixture
def client_factory(test_settings):
    """
    Builds an AsyncClient around a freshly created app.

    Usage:
        async with client_factory(database=fake_database) as client:
            response = await client.get("/db-health")
    """
    @asynccontextmanager
    async def _factory(settings=None, database=None, app=None, raise_app_exceptions=True):
        app = app or create_app(settings or test_settings, database=database)
        transport = ASGITransport(app=app, raise_app_exceptions=raise_app_exceptions)
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            yield client

    return _factory


@pytest_asyncio.fixture
async def test_client(client_factory):
    """
    HTTPX AsyncClient for an app with no database handle.

    ASGITransport does not run the lifespan, so no connection is attempted.
    """
    async with client_factory() as client:
        yield client
