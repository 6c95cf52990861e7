"""
Clipture Backend — Response Envelope Schemas
==============================================

What:  Pydantic models for the standard JSON wrapper returned by every endpoint.
Why:   Clients parse one shape for all responses, success or failure.
How:   Routes and exception handlers build responses through respond_ok()
       and respond_error(); absent optional fields are left out of the JSON.

Envelope:
    {
        "success": true,
        "data": {...},                      # success only
        "error": {                          # failure only
            "code": "DB_UNHEALTHY",
            "message": "Database is not healthy",
            "details": {...}                # optional
        },
        "timestamp": "2024-01-15T12:00:00.000000Z"
    }
"""

from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class APIError(BaseModel):
    """Error detail carried by a failed envelope."""
    code: str = Field(description="Machine-readable error code")
    message: str = Field(description="Human-readable error description")
    details: Optional[Any] = Field(default=None, description="Additional error context")


class APIResponse(BaseModel):
    """The standard response wrapper."""
    success: bool = Field(description="Whether the request succeeded")
    data: Optional[Any] = Field(default=None, description="Payload on success")
    error: Optional[APIError] = Field(default=None, description="Error detail on failure")
    timestamp: datetime = Field(default_factory=utcnow, description="Response time (UTC)")


def respond_ok(data: Any = None, status_code: int = 200) -> JSONResponse:
    """Build a success envelope response."""
    body = APIResponse(success=True, data=data)
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(mode="json", exclude_none=True),
    )


def respond_error(
    status_code: int,
    code: str,
    message: str,
    details: Any = None,
    headers: Optional[Mapping[str, str]] = None,
) -> JSONResponse:
    """Build a failure envelope response."""
    body = APIResponse(
        success=False,
        error=APIError(code=code, message=message, details=details or None),
    )
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(mode="json", exclude_none=True),
        headers=dict(headers) if headers else None,
    )
