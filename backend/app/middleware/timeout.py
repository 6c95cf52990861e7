"""
Clipture Backend — Request Timeout Middleware
===============================================

What:  Bounds every request by API_TIMEOUT.
Why:   A hung handler must not hold a worker or a DB session forever.
How:   Plain ASGI middleware. The downstream app runs under asyncio.wait_for,
       so on timeout the handler itself is cancelled. If no response has
       started yet the client gets a 504 envelope; otherwise the partial
       response is abandoned.
"""

import asyncio
import logging

from starlette.requests import Request
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from app.exceptions import RequestTimeoutError
from app.schemas.envelope import respond_error

logger = logging.getLogger(__name__)


class TimeoutMiddleware:
    """Cancels requests exceeding `timeout` seconds (0 disables the bound)."""

    def __init__(self, app: ASGIApp, timeout: float = 30.0):
        self.app = app
        self.timeout = timeout

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or self.timeout <= 0:
            await self.app(scope, receive, send)
            return

        response_started = False

        async def send_wrapper(message: Message) -> None:
            nonlocal response_started
            if message["type"] == "http.response.start":
                response_started = True
            await send(message)

        try:
            await asyncio.wait_for(
                self.app(scope, receive, send_wrapper), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            request = Request(scope)
            logger.warning(
                "Request timed out after %gs: %s %s",
                self.timeout,
                request.method,
                request.url.path,
                extra={"response_started": response_started},
            )
            if response_started:
                return
            exc = RequestTimeoutError(timeout=self.timeout)
            response = respond_error(
                exc.status_code, exc.code, exc.message, details=exc.details
            )
            await response(scope, receive, send)
