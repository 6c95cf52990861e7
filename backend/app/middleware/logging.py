"""
Clipture Backend — Request Logging Middleware
===============================================

What:  One structured "HTTP Request" log record per request.
Why:   Monitoring, debugging and latency tracking without per-route code.
How:   Measures time around call_next and logs method, path, status,
       latency, client IP, user agent and the request ID as `extra` fields.

Level by status:
    5xx → ERROR, 4xx → WARNING, everything else → INFO.
    Health probes are logged at DEBUG (they arrive every few seconds).

What we DON'T log: request bodies and Authorization headers.
"""

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from app.middleware.request_id import request_id_var

logger = logging.getLogger("clipture.access")

PROBE_PATHS = {"/health", "/db-health", "/api/v1/health", "/api/v1/db-health"}


def _level_for(status: int, path: str) -> int:
    if status >= 500:
        return logging.ERROR
    if status >= 400:
        return logging.WARNING
    if path in PROBE_PATHS:
        return logging.DEBUG
    return logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Logs every HTTP request with its outcome and duration."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        # time.perf_counter: monotonic, sub-microsecond resolution
        start_time = time.perf_counter()
        status = 500
        try:
            response = await call_next(request)
            status = response.status_code
            return response
        finally:
            duration_ms = (time.perf_counter() - start_time) * 1000
            path = request.url.path
            logger.log(
                _level_for(status, path),
                "HTTP Request",
                extra={
                    "method": request.method,
                    "path": path,
                    "status": status,
                    "latency_ms": round(duration_ms, 2),
                    "ip": request.client.host if request.client else "unknown",
                    "user_agent": request.headers.get("user-agent", ""),
                    "request_id": request_id_var.get(""),
                },
            )
