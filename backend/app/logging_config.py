"""
Clipture Backend — Logging Configuration
==========================================

What:  Configures the root logger once at startup.
Why:   Every module logs through `logging.getLogger(__name__)`; the format
       and level are decided here, in one place.
How:   A single stdout StreamHandler. Development gets a readable
       "key=value" console format; production (or LOG_PRETTY=false) gets
       one JSON object per line for log aggregation.
When:  Called from the application lifespan and from the server entry point.

Structured fields:
    Callers attach fields through `extra={...}`. Both formatters render
    any non-standard LogRecord attribute, so
        logger.info("HTTP Request", extra={"status": 200})
    becomes `... HTTP Request status=200` or `{"message": "HTTP Request", "status": 200, ...}`.
"""

import json
import logging
import sys
from datetime import datetime, timezone

from app.config import Settings

logger = logging.getLogger(__name__)

# Attributes every LogRecord has; anything else came from `extra=`
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None)).keys()
) | {"message", "asctime"}


def _extra_fields(record: logging.LogRecord) -> dict:
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RESERVED_ATTRS and not key.startswith("_")
    }


class ConsoleFormatter(logging.Formatter):
    """Human-readable format with structured fields appended as key=value."""

    def __init__(self, datefmt: str):
        super().__init__(
            fmt="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt=datefmt,
        )

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = _extra_fields(record)
        if fields:
            line += " " + " ".join(f"{k}={v}" for k, v in fields.items())
        return line


class JSONFormatter(logging.Formatter):
    """One JSON object per record: timestamp, level, logger, message and extras."""

    def __init__(self, datefmt: str):
        super().__init__(datefmt=datefmt)

    def formatTime(self, record: logging.LogRecord, datefmt=None) -> str:
        dt = datetime.fromtimestamp(record.created, tz=timezone.utc)
        return dt.strftime(datefmt) if datefmt else dt.isoformat()

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname.lower(),
            "logger": record.name,
            "message": record.getMessage(),
        }
        # Extras never overwrite the base keys
        for key, value in _extra_fields(record).items():
            payload.setdefault(key, value)
        if record.exc_info:
            payload["error"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def setup_logging(settings: Settings) -> None:
    """
    Configure logging for the entire application.

    Pretty output is used only when LOG_PRETTY is true AND the service is
    not running in production.
    """
    pretty = settings.log_pretty and not settings.is_production
    formatter_cls = ConsoleFormatter if pretty else JSONFormatter

    handler = logging.StreamHandler(sys.stdout)  # Docker captures stdout
    handler.setFormatter(formatter_cls(datefmt=settings.log_time_format))

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        handlers=[handler],
        force=True,  # Override any existing logging config
    )

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    logger.info(
        "Logger initialized",
        extra={
            "log_level": settings.log_level,
            "pretty": pretty,
            "format": settings.log_time_format,
        },
    )
