"""
Clipture Backend — Database Connection Bootstrap
==================================================

What:  Opens the async SQLAlchemy engine with retry/backoff, exposes a
       liveness ping, session handling and thin record helpers.
Why:   PostgreSQL is often still starting when the API container boots;
       retrying with backoff rides out that window without crash loops.
How:   tenacity drives the attempts. Each attempt builds an engine with
       pool limits, opens a connection and runs SELECT 1. A failed attempt
       disposes its engine before the next wait.
Who:   Called once by the application lifespan; the resulting handle lives
       on `app.state.database` (or is None when the bootstrap gave up).

Retry schedule (defaults):
    attempt 1 fails → wait 2s
    attempt 2 fails → wait 4s
    attempt 3 fails → wait 8s
    attempt 4 fails → wait 16s
    attempt 5 fails → DatabaseConnectionError (no further wait)

    The wait is bounded only by the attempt ceiling, not by a maximum
    delay, so raising DB_MAX_RETRIES grows the last wait geometrically.

Connection Pooling:
    pool_size      = DB_MAX_IDLE_CONNS                        (default 10)
    max_overflow   = DB_MAX_OPEN_CONNS - DB_MAX_IDLE_CONNS    (default 90)
    pool_recycle   = DB_CONN_MAX_LIFETIME                     (default 1h)
    pool_pre_ping  = True
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator, Awaitable, Callable, Optional

from fastapi import Request
from sqlalchemy import text
from sqlalchemy.engine import URL, make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase
from tenacity import AsyncRetrying, RetryError, stop_after_attempt, wait_exponential

from app.config import Settings
from app.exceptions import DatabaseConnectionError, DatabaseUnavailableError, NotFoundError

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """
    Base class for ORM models.

    No product models exist yet; future models inherit from this so that
    Database.auto_migrate() can create their tables.
    """
    pass


def build_database_url(settings: Settings) -> URL:
    """
    Build the asyncpg URL from the DB_* settings, or parse DATABASE_URL when set.

    URL.create() escapes the password, so credentials with '@' or '/' are safe.
    """
    if settings.database_url:
        return make_url(settings.database_url)
    return URL.create(
        drivername="postgresql+asyncpg",
        username=settings.db_user,
        password=settings.db_password,
        host=settings.db_host,
        port=settings.db_port,
        database=settings.db_name,
        query={"ssl": settings.db_ssl_mode},
    )


def _engine_options(settings: Settings) -> dict:
    return {
        "pool_size": settings.db_max_idle_conns,
        "max_overflow": max(settings.db_max_open_conns - settings.db_max_idle_conns, 0),
        "pool_recycle": int(settings.db_conn_max_lifetime.total_seconds()),
        "pool_pre_ping": True,
    }


class Database:
    """
    A live database handle.

    The handle is either connected (engine held) or disconnected (engine None,
    after close()). Construct it through Database.connect().
    """

    def __init__(self, engine: AsyncEngine, ping_timeout: float = 5.0):
        self.engine: Optional[AsyncEngine] = engine
        self.ping_timeout = ping_timeout
        self._session_factory = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    # ── Bootstrap ─────────────────────────────────────────────────────────
    @classmethod
    async def connect(
        cls,
        settings: Settings,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> "Database":
        """
        Open the engine with retry and exponential backoff.

        Args:
            settings: Connection parameters, retry ceiling and pool limits.
            sleep:    Awaitable used between attempts (injectable for tests).

        Returns:
            A connected Database whose liveness was verified with SELECT 1.

        Raises:
            DatabaseConnectionError: every attempt failed. Chained to the last
            underlying error.
        """
        url = build_database_url(settings)
        max_retries = max(settings.db_max_retries, 1)
        base_delay = settings.db_retry_delay.total_seconds()

        def log_failure(retry_state) -> None:
            logger.warning(
                "Failed to connect to database, retrying...",
                extra={
                    "retry": retry_state.attempt_number,
                    "max_retries": max_retries,
                    "error": str(retry_state.outcome.exception()),
                },
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(max_retries),
            # base_delay * 2^(n-1): 2s, 4s, 8s, 16s
            wait=wait_exponential(multiplier=base_delay, exp_base=2),
            after=log_failure,
            sleep=sleep,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    engine = await cls._open_engine(url, settings)
        except RetryError as e:
            last_error = e.last_attempt.exception()
            raise DatabaseConnectionError(
                attempts=e.last_attempt.attempt_number,
                details={"error": str(last_error)},
            ) from last_error

        logger.info(
            "Successfully connected to database",
            extra={
                "host": url.host,
                "port": url.port,
                "database": url.database,
                "user": url.username,
            },
        )
        return cls(engine, ping_timeout=settings.db_ping_timeout.total_seconds())

    @staticmethod
    async def _open_engine(url: URL, settings: Settings) -> AsyncEngine:
        """One attempt: create the pooled engine and verify it answers SELECT 1."""
        engine = create_async_engine(url, **_engine_options(settings))
        try:
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
        except Exception:
            await engine.dispose()
            raise
        return engine

    # ── Liveness ──────────────────────────────────────────────────────────
    @property
    def is_connected(self) -> bool:
        return self.engine is not None

    async def ping(self, timeout: Optional[float] = None) -> None:
        """
        Check the connection is alive with SELECT 1.

        Raises:
            DatabaseUnavailableError: the handle was closed.
            asyncio.TimeoutError:     the ping did not answer within `timeout`.
            Any driver error raised by the query.
        """
        if self.engine is None:
            raise DatabaseUnavailableError("Database connection is closed")

        async def _select_one() -> None:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))

        await asyncio.wait_for(_select_one(), timeout=timeout or self.ping_timeout)

    async def close(self) -> None:
        """Dispose the engine; closing errors are logged, never raised."""
        if self.engine is None:
            return
        engine, self.engine = self.engine, None
        try:
            await engine.dispose()
        except Exception as e:
            logger.error("Error closing database connection: %s", e, exc_info=True)
        else:
            logger.info("Database connection closed")

    # ── Sessions ──────────────────────────────────────────────────────────
    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Provide a session that commits on success and rolls back on error.

        Example:
            async with database.session() as session:
                session.add(obj)
        """
        if self.engine is None:
            raise DatabaseUnavailableError("Database connection is closed")
        async with self._session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    # ── Migrations ────────────────────────────────────────────────────────
    async def run_migrations(self) -> None:
        """Hook for schema migrations; there are no product models yet."""
        logger.info("Database migrations completed successfully")

    async def auto_migrate(self, *models: type) -> None:
        """Create the tables of the given ORM models if they don't exist."""
        if self.engine is None:
            raise DatabaseUnavailableError("Database connection is closed")
        tables = [model.__table__ for model in models]
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all, tables=tables)

    # ── Record helpers ────────────────────────────────────────────────────
    async def create_record(self, record: Any) -> Any:
        async with self.session() as session:
            session.add(record)
        return record

    async def find_record(self, model: type, primary_key: Any) -> Any:
        """Fetch by primary key; raises NotFoundError when the row is missing."""
        async with self.session() as session:
            record = await session.get(model, primary_key)
        if record is None:
            raise NotFoundError(resource=model.__name__, resource_id=primary_key)
        return record

    async def update_record(self, record: Any) -> Any:
        async with self.session() as session:
            record = await session.merge(record)
        return record

    async def delete_record(self, record: Any) -> None:
        async with self.session() as session:
            await session.delete(await session.merge(record))


# ── FastAPI dependency ────────────────────────────────────────────────────
def get_database(request: Request) -> Optional[Database]:
    """The handle stored by the lifespan; None when running without a database."""
    return getattr(request.app.state, "database", None)
