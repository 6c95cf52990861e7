"""
Clipture Backend — Health Check Routes
========================================

What:  Liveness (/health) and database readiness (/db-health) probes.
Why:   Docker health checks and load balancers decide where to route traffic.
How:   /health only proves the process answers. /db-health pings the
       database handle with SELECT 1, bounded by DB_PING_TIMEOUT.

Database status:
    disconnected → the service runs without a database handle (HTTP 200)
    unhealthy    → the ping failed or timed out (HTTP 503, DB_UNHEALTHY)
    healthy      → the ping answered (HTTP 200)

The same router is mounted at the root and under /api/v1.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends

from app import SERVICE_NAME, __version__
from app.database import Database, get_database
from app.schemas.envelope import respond_error, respond_ok, utcnow

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


@router.get("/health", summary="Service liveness check")
async def health_check():
    return respond_ok({
        "status": "healthy",
        "timestamp": utcnow(),
        "service": SERVICE_NAME,
        "version": __version__,
    })


@router.get("/db-health", summary="Database connectivity check")
async def db_health_check(database: Optional[Database] = Depends(get_database)):
    """
    Ping the database and report its status.

    Returns 503 with error code DB_UNHEALTHY when the ping fails; the
    error details carry status "unhealthy" and the driver error.
    """
    if database is None or not database.is_connected:
        return respond_ok({
            "status": "disconnected",
            "timestamp": utcnow(),
            "database": "postgresql",
        })

    try:
        await database.ping()
    except Exception as e:
        reason = str(e) or type(e).__name__
        logger.warning("Health check: database unreachable: %s", reason)
        return respond_error(
            503,
            "DB_UNHEALTHY",
            "Database is not healthy",
            details={"status": "unhealthy", "error": reason},
        )

    return respond_ok({
        "status": "healthy",
        "timestamp": utcnow(),
        "database": "postgresql",
    })
