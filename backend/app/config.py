"""
Clipture Backend — Application Configuration
==============================================

What:  Centralized configuration management using Pydantic Settings.
Why:   Type-safe environment variable loading, read once at startup.
How:   Pydantic Settings reads from environment variables (or .env file),
       coerces types, and provides a frozen singleton `settings` object.
Who:   Imported by every module that needs configuration values.
When:  Loaded once at module import time; immutable afterwards.

Lenient parsing:
    Empty variables fall back to their defaults. Malformed booleans,
    integers and durations also fall back to their defaults (with a
    warning) instead of aborting startup. Durations accept Go-style
    strings such as "300ms", "30s", "1h30m" or a plain number of seconds.
"""

import logging
import math
import re
from datetime import timedelta
from typing import Any, List, Optional

from pydantic import ValidationError, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


# ── Duration parsing ──────────────────────────────────────────────────────
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")
_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def parse_duration(value: Any) -> timedelta:
    """
    Parse a duration from a Go-style string, a number of seconds, or a timedelta.

    Examples: "30s" → 30s, "1h30m" → 5400s, "250ms" → 0.25s, "15" → 15s.
    Raises ValueError for anything else.
    """
    if isinstance(value, timedelta):
        return value
    if isinstance(value, bool):
        raise ValueError(f"invalid duration {value!r}")
    if isinstance(value, (int, float)):
        return _seconds_to_timedelta(value, value)

    text = str(value).strip()
    if not text:
        raise ValueError("empty duration")

    sign = 1.0
    if text[0] in "+-":
        sign = -1.0 if text[0] == "-" else 1.0
        text = text[1:]

    try:
        seconds = sign * float(text)
    except ValueError:
        pass
    else:
        return _seconds_to_timedelta(seconds, value)

    total = 0.0
    pos = 0
    for match in _DURATION_PART.finditer(text):
        if match.start() != pos:
            raise ValueError(f"invalid duration {value!r}")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    if pos != len(text) or pos == 0:
        raise ValueError(f"invalid duration {value!r}")
    return _seconds_to_timedelta(sign * total, value)


def _seconds_to_timedelta(seconds: float, value: Any) -> timedelta:
    try:
        if not math.isfinite(seconds):
            raise ValueError(f"invalid duration {value!r}")
        return timedelta(seconds=seconds)
    except OverflowError as e:
        raise ValueError(f"duration out of range {value!r}") from e


# Log level aliases accepted in LOG_LEVEL, mapped to stdlib level names
_LOG_LEVELS = {
    "debug": "DEBUG",
    "info": "INFO",
    "warn": "WARNING",
    "warning": "WARNING",
    "error": "ERROR",
    "fatal": "CRITICAL",
    "panic": "CRITICAL",
    "critical": "CRITICAL",
}


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings have development defaults. Production deployments MUST
    override the secrets (DB_PASSWORD, JWT_SECRET, AUTH_JWT_SECRET).
    Attributes are grouped by concern for readability.
    """

    # ── Server ────────────────────────────────────────────────────────────
    port: int = 8080
    env: str = "development"

    # What: Upper bound for the graceful shutdown window after a signal
    # Past this bound the process is force-exited
    shutdown_timeout: timedelta = timedelta(seconds=30)

    cors_origins: str = "http://localhost:3000,http://localhost:5173"

    # ── Logging ───────────────────────────────────────────────────────────
    log_level: str = "DEBUG"
    log_pretty: bool = True
    log_time_format: str = "%Y-%m-%dT%H:%M:%S%z"

    # ── Database ──────────────────────────────────────────────────────────
    db_host: str = "localhost"
    db_port: int = 5432
    db_name: str = "clipture"
    db_user: str = "postgres"
    db_password: str = "postgres"
    db_ssl_mode: str = "disable"

    # What: Full SQLAlchemy URL; when set it replaces the DB_* parts
    # Used by tests (sqlite+aiosqlite) and by platforms that inject one URL
    database_url: Optional[str] = None

    # What: Connection bootstrap retry policy
    # Wait doubles after every failed attempt: 2s, 4s, 8s, 16s
    db_max_retries: int = 5
    db_retry_delay: timedelta = timedelta(seconds=2)

    # What: Pool limits applied to the engine
    # idle → persistent pool size, open → pool size + overflow
    db_max_idle_conns: int = 10
    db_max_open_conns: int = 100
    db_conn_max_lifetime: timedelta = timedelta(hours=1)
    db_ping_timeout: timedelta = timedelta(seconds=5)

    # ── JWT / Auth (reserved for the auth module) ─────────────────────────
    jwt_secret: str = "development_secret"
    jwt_expiry: timedelta = timedelta(hours=24)

    auth_jwt_secret: str = "clipture_secret_key"
    auth_jwt_expiry_hours: int = 72
    auth_password_reset_expiry: timedelta = timedelta(hours=24)
    auth_token_issuer: str = "clipture-app"

    # ── API ───────────────────────────────────────────────────────────────
    api_timeout: timedelta = timedelta(seconds=30)
    # Requests per minute per client IP
    api_rate_limit: int = 100

    # ── Monitoring ────────────────────────────────────────────────────────
    metrics_enabled: bool = False
    tracing_enabled: bool = False

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        env_ignore_empty=True,
        str_strip_whitespace=True,
        extra="ignore",
        frozen=True,
    )

    @field_validator(
        "shutdown_timeout",
        "db_retry_delay",
        "db_conn_max_lifetime",
        "db_ping_timeout",
        "jwt_expiry",
        "auth_password_reset_expiry",
        "api_timeout",
        mode="before",
    )
    @classmethod
    def parse_duration_field(cls, v: Any, info: ValidationInfo) -> timedelta:
        """Accepts Go-style durations; falls back to the default when malformed."""
        try:
            return parse_duration(v)
        except ValueError:
            default = cls.model_fields[info.field_name].default
            logger.warning(
                "Invalid duration %r for %s, using default %s",
                v, info.field_name.upper(), default,
            )
            return default

    @field_validator(
        "port",
        "log_pretty",
        "db_port",
        "db_max_retries",
        "db_max_idle_conns",
        "db_max_open_conns",
        "auth_jwt_expiry_hours",
        "api_rate_limit",
        "metrics_enabled",
        "tracing_enabled",
        mode="wrap",
    )
    @classmethod
    def fallback_on_invalid(cls, v: Any, handler, info: ValidationInfo) -> Any:
        """Malformed ints and bools fall back to the field default."""
        if isinstance(v, str):
            v = v.strip()
        try:
            return handler(v)
        except ValidationError:
            default = cls.model_fields[info.field_name].default
            logger.warning(
                "Invalid value %r for %s, using default %r",
                v, info.field_name.upper(), default,
            )
            return default

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: Any) -> str:
        """Maps zerolog-style names (warn, fatal, panic) onto stdlib levels; unknown → INFO."""
        return _LOG_LEVELS.get(str(v).strip().lower(), "INFO")

    @property
    def cors_origins_list(self) -> List[str]:
        """Splits comma-separated CORS origins into a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def is_production(self) -> bool:
        return self.env == "production"


# Singleton instance, imported throughout the application
settings = Settings()
