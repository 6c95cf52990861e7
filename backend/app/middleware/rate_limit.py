"""
Clipture Backend — Rate Limiting Middleware
=============================================

What:  Per-IP sliding window rate limiter driven by API_RATE_LIMIT.
Why:   Protects the API from abuse before authentication exists.
How:   Keeps the request timestamps of each IP for the last `window` seconds.
       A request arriving when the IP already has `limit` timestamps in the
       window is rejected with a 429 envelope and a Retry-After header.

Algorithm: Sliding Window Log
    1. Drop timestamps older than now - window
    2. If remaining count >= limit → reject
    3. Otherwise record now and let the request through

Scope:
    In-memory state is per process. Multiple uvicorn workers each enforce
    their own limit.
"""

import logging
import time
from collections import defaultdict
from typing import Dict, List

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from app.exceptions import RateLimitExceededError
from app.schemas.envelope import respond_error

logger = logging.getLogger(__name__)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    In-memory sliding window rate limiter.

    Args:
        limit:  Max requests per window per client IP (0 disables the limiter)
        window: Window duration in seconds (default 60 → requests per minute)

    Excluded paths: health probes and the API docs.
    """

    EXCLUDED_PATHS = {
        "/health",
        "/db-health",
        "/api/v1/health",
        "/api/v1/db-health",
        "/api/docs",
        "/api/openapi.json",
    }

    # Sweep idle IPs every N recorded requests
    CLEANUP_EVERY = 1000

    def __init__(self, app, limit: int = 100, window: float = 60.0):
        super().__init__(app)
        self.limit = limit
        self.window = window
        self._requests: Dict[str, List[float]] = defaultdict(list)
        self._recorded = 0

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if self.limit <= 0 or request.url.path in self.EXCLUDED_PATHS:
            return await call_next(request)

        client_ip = request.client.host if request.client else "unknown"
        now = time.monotonic()
        window_start = now - self.window

        timestamps = [ts for ts in self._requests[client_ip] if ts > window_start]
        self._requests[client_ip] = timestamps

        if len(timestamps) >= self.limit:
            retry_after = int(timestamps[0] + self.window - now) + 1
            logger.warning(
                "Rate limit exceeded for IP %s: %d requests in %ds window",
                client_ip,
                len(timestamps),
                self.window,
            )
            exc = RateLimitExceededError(retry_after=retry_after)
            return respond_error(
                exc.status_code,
                exc.code,
                exc.message,
                details=exc.details,
                headers={"Retry-After": str(retry_after)},
            )

        timestamps.append(now)
        self._recorded += 1
        if self._recorded % self.CLEANUP_EVERY == 0:
            self._cleanup_inactive_ips(window_start)

        return await call_next(request)

    def _cleanup_inactive_ips(self, window_start: float) -> None:
        """Remove IPs with no requests inside the current window."""
        inactive_ips = [
            ip for ip, timestamps in self._requests.items()
            if not timestamps or timestamps[-1] <= window_start
        ]
        for ip in inactive_ips:
            del self._requests[ip]

        if inactive_ips:
            logger.debug("Cleaned up %d inactive IP entries", len(inactive_ips))
