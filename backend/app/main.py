"""
Clipture Backend — FastAPI Application Factory
================================================

What:  Creates and configures the FastAPI application instance.
Why:   Centralizes middleware registration, route mounting, exception
       handling and lifecycle management in one place.
How:   Factory pattern: create_app() returns a configured FastAPI instance.
Who:   Called by app.server (programmatic uvicorn) and by the tests.

Application Architecture:
    ┌─────────────────────────────────────────────────────────────┐
    │                        FastAPI App                          │
    │                                                             │
    │  Middleware Chain:                                          │
    │  CORS → Request ID → Logging → Rate Limit → Timeout         │
    │                                                             │
    │  Routes:                                                    │
    │  GET /   GET /health   GET /db-health   /api/v1/*           │
    │                                                             │
    │  Exception Handlers (all answer with the envelope):         │
    │  CliptureError → own status │ HTTP → status │ 422 │ 500     │
    └─────────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:
    1. Initialize logging
    2. Connect to the database with retry (unless a handle was injected)
       → on failure: warn and keep serving without persistence
    3. Run migrations when connected

    Shutdown:
    1. Close the database handle (dispose all pooled connections)
"""

import logging
from contextlib import asynccontextmanager
from http import HTTPStatus
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from app import __version__
from app.config import Settings, settings as default_settings
from app.database import Database
from app.exceptions import CliptureError, DatabaseConnectionError, RateLimitExceededError
from app.logging_config import setup_logging
from app.middleware.logging import RequestLoggingMiddleware
from app.middleware.rate_limit import RateLimitMiddleware
from app.middleware.request_id import REQUEST_ID_HEADER, RequestIDMiddleware
from app.middleware.timeout import TimeoutMiddleware
from app.routes import health, root, v1
from app.schemas.envelope import respond_error

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Startup: logging, database bootstrap. Shutdown: close the database.

    A failed bootstrap is not fatal: the service answers health checks and
    placeholder routes without persistence, and /db-health reports
    "disconnected".
    """
    settings: Settings = app.state.settings

    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging(settings)
    logger.info("Clipture Backend starting up (env=%s)", settings.env)

    if app.state.connect_database:
        try:
            app.state.database = await Database.connect(settings)
        except DatabaseConnectionError as e:
            logger.warning(
                "Failed to connect to database, continuing without database connection",
                extra={"error": str(e.__cause__ or e), "attempts": e.attempts},
            )
            app.state.database = None

    database: Optional[Database] = app.state.database
    if database is not None:
        try:
            await database.run_migrations()
        except Exception:
            logger.error("Failed to run database migrations", exc_info=True)

    yield  # Application runs here

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("Clipture Backend shutting down...")
    if app.state.database is not None:
        await app.state.database.close()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _status_code_name(status_code: int) -> str:
    try:
        return HTTPStatus(status_code).phrase.upper().replace(" ", "_").replace("-", "_")
    except ValueError:
        return "HTTP_ERROR"


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map every error onto the envelope.

    Handler hierarchy:
        CliptureError           → exc.status_code / exc.code
        HTTPException 404       → 404 NOT_FOUND (unknown route)
        HTTPException (other)   → its status, code from the status phrase
        RequestValidationError  → 422 VALIDATION_ERROR
        Exception (fallback)    → 500 INTERNAL_SERVER_ERROR

    Security: internal details (stack traces, driver errors) are logged
    server-side only; the generic 500 never echoes them.
    """

    @app.exception_handler(CliptureError)
    async def handle_clipture_error(request: Request, exc: CliptureError):
        level = logging.ERROR if exc.status_code >= 500 else logging.WARNING
        logger.log(
            level,
            "Request error: %s",
            exc.message,
            extra={"path": request.url.path, "method": request.method, "code": exc.code},
        )
        headers = None
        if isinstance(exc, RateLimitExceededError):
            headers = {"Retry-After": str(exc.retry_after)}
        return respond_error(exc.status_code, exc.code, exc.message, exc.details, headers=headers)

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return respond_error(
                404,
                "NOT_FOUND",
                "The requested resource could not be found",
                details={"documentation": "/api/docs"},
            )
        message = exc.detail if isinstance(exc.detail, str) else HTTPStatus(exc.status_code).phrase
        return respond_error(
            exc.status_code,
            _status_code_name(exc.status_code),
            message,
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        logger.warning(
            "Validation error on %s %s", request.method, request.url.path,
        )
        return respond_error(
            422,
            "VALIDATION_ERROR",
            "Request validation failed",
            details={"errors": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        """Catch-all: generic 500, full stack trace logged server-side."""
        # Runs outside RequestIDMiddleware, so the ID comes from request.state
        rid = getattr(request.state, "request_id", "")
        logger.error(
            "Request error: %s",
            exc,
            exc_info=exc,
            extra={
                "path": request.url.path,
                "method": request.method,
                "request_id": rid,
            },
        )
        return respond_error(
            500,
            "INTERNAL_SERVER_ERROR",
            "Internal server error",
            headers={REQUEST_ID_HEADER: rid} if rid else None,
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(
    settings: Optional[Settings] = None,
    database: Optional[Database] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        settings: Configuration; defaults to the process-wide singleton.
        database: A ready handle. When given, the lifespan skips the
                  bootstrap and uses it as-is (tests, embedding).
    """
    settings = settings or default_settings

    docs_url = None if settings.is_production else "/api/docs"
    app = FastAPI(
        title="Clipture API",
        description="A modern screen capture and annotation service",
        version=__version__,
        docs_url=docs_url,
        redoc_url=None,
        openapi_url=None if settings.is_production else "/api/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.database = database
    app.state.connect_database = database is None

    # ── Register Middleware ───────────────────────────────────────────────
    # Middleware executes in REVERSE order of addition (last added = outermost)
    app.add_middleware(TimeoutMiddleware, timeout=settings.api_timeout.total_seconds())
    app.add_middleware(RateLimitMiddleware, limit=settings.api_rate_limit, window=60.0)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Origin", "Content-Type", "Accept", "Authorization"],
        expose_headers=["Content-Length", "X-Request-ID", "Retry-After"],
    )

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(root.router)
    app.include_router(health.router)
    app.include_router(v1.router)

    return app


# ── Application Instance ─────────────────────────────────────────────────
# `uvicorn app.main:app` expects a module attribute; app.server builds its own
app = create_app()
