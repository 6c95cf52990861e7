"""
Clipture Backend — Custom Exception Hierarchy
===============================================

What:  Application-specific exceptions for different error scenarios.
Why:   Targeted error handling with the right HTTP status and envelope
       error code, without leaking internal details to the client.
How:   Each exception carries a message, a machine-readable code, an HTTP
       status and an optional details dict. Global exception handlers
       (registered in main.py) turn them into envelope responses.

Exception Hierarchy:
    CliptureError (base)               → 500 INTERNAL_SERVER_ERROR
    ├── NotFoundError                  → 404 NOT_FOUND
    ├── DatabaseUnavailableError       → 503 DB_UNAVAILABLE
    ├── DatabaseConnectionError        → raised at startup only
    ├── RateLimitExceededError         → 429 RATE_LIMITED
    └── RequestTimeoutError            → 504 REQUEST_TIMEOUT
"""

from typing import Any, Dict, Optional


class CliptureError(Exception):
    """
    Base exception for all Clipture application errors.

    Attributes:
        message:     User-facing error description (safe to return in API response)
        details:     Extra context returned in the envelope's error.details
        code:        Machine-readable envelope error code
        status_code: HTTP status used by the global handler
    """

    code = "INTERNAL_SERVER_ERROR"
    status_code = 500

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.details = dict(details or {})
        super().__init__(self.message)


class NotFoundError(CliptureError):
    """
    Raised when a requested record does not exist.

    The CRUD helpers convert a missing row into this error so callers
    never have to check for None.
    """

    code = "NOT_FOUND"
    status_code = 404

    def __init__(
        self,
        resource: str = "resource",
        resource_id: Optional[Any] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if resource_id is not None:
            message = f"{resource} with ID '{resource_id}' was not found"
        ctx = dict(details or {})
        ctx["resource"] = resource
        if resource_id is not None:
            ctx["resource_id"] = str(resource_id)
        super().__init__(message=message, details=ctx)


class DatabaseUnavailableError(CliptureError):
    """Raised when a request needs persistence but the service runs without a database."""

    code = "DB_UNAVAILABLE"
    status_code = 503

    def __init__(
        self,
        message: str = "Database is not available",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, details=details)


class DatabaseConnectionError(CliptureError):
    """
    Raised by the connection bootstrapper after every attempt failed.

    The caller decides what to do with it: the application lifespan logs a
    warning and keeps serving without persistence.
    """

    code = "DB_CONNECTION_FAILED"
    status_code = 503

    def __init__(self, attempts: int, details: Optional[Dict[str, Any]] = None):
        ctx = dict(details or {})
        ctx["attempts"] = attempts
        super().__init__(
            message=f"failed to connect to database after {attempts} attempts",
            details=ctx,
        )
        self.attempts = attempts


class RateLimitExceededError(CliptureError):
    """Raised when a client exceeds the per-IP request rate limit."""

    code = "RATE_LIMITED"
    status_code = 429

    def __init__(self, retry_after: int = 60, details: Optional[Dict[str, Any]] = None):
        ctx = dict(details or {})
        ctx["retry_after"] = retry_after
        super().__init__(
            message=f"Rate limit exceeded. Please wait {retry_after} seconds before making more requests.",
            details=ctx,
        )
        self.retry_after = retry_after


class RequestTimeoutError(CliptureError):
    """Raised when a request runs longer than API_TIMEOUT."""

    code = "REQUEST_TIMEOUT"
    status_code = 504

    def __init__(self, timeout: float, details: Optional[Dict[str, Any]] = None):
        ctx = dict(details or {})
        ctx["timeout_seconds"] = timeout
        super().__init__(
            message=f"The request did not complete within {timeout:g} seconds",
            details=ctx,
        )
        self.timeout = timeout
