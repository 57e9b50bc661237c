from __future__ import annotations

import os

from dotenv import load_dotenv

# .env is loaded before any constant below reads the environment
load_dotenv()


def _env_bool(name: str, default: bool = False) -> bool:
    val = os.getenv(name)
    if val is None:
        return default
    return str(val).strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except Exception:
        return default


def _env_str(name: str, default: str = "") -> str:
    val = os.getenv(name)
    if val is None or val.strip() == "":
        return default
    return val.strip()


def _normalize_currency(code: str | None) -> str | None:
    if not code:
        return None
    cleaned = str(code).strip().upper()
    if len(cleaned) == 3 and cleaned.isalpha():
        return cleaned
    return None


# Storage
DATABASE_URL: str = _env_str("DATABASE_URL", "postgresql+asyncpg://punchin:change_me@db:5432/punchin")

# Session limits (minutes). Durations above the cap are rejected by the quote engine.
MAX_SESSION_MINUTES: int = _env_int("MAX_SESSION_MINUTES", 12 * 60)
# Floor used when a mirrored hold has neither confirmed times nor a stored duration.
MIN_HOLD_MINUTES: int = _env_int("MIN_HOLD_MINUTES", 30)
DEFAULT_SESSION_MINUTES: int = _env_int("DEFAULT_SESSION_MINUTES", 120)

# Pricing
DEFAULT_CURRENCY: str = _normalize_currency(os.getenv("DEFAULT_CURRENCY") or os.getenv("CURRENCY")) or "USD"

# Availability synchronizer worker
SYNC_POLL_SECONDS: int = _env_int("SYNC_POLL_SECONDS", 5)
SYNC_BATCH_SIZE: int = _env_int("SYNC_BATCH_SIZE", 50)
SYNC_MAX_ATTEMPTS: int = _env_int("SYNC_MAX_ATTEMPTS", 10)
SYNC_WORKER_ENABLED: bool = _env_bool("SYNC_WORKER_ENABLED", True)

# Booking alerts written next to the availability mirror
BOOKING_ALERTS_ENABLED: bool = _env_bool("BOOKING_ALERTS_ENABLED", True)
DEEPLINK_SCHEME: str = _env_str("DEEPLINK_SCHEME", "punchin")

# API / trigger security
API_JWT_SECRET: str = _env_str("API_JWT_SECRET", "")
API_JWT_ALGORITHM: str = _env_str("API_JWT_ALGORITHM", "HS256")
TRIGGER_TOKEN: str = _env_str("TRIGGER_TOKEN", "")

# Logging
LOG_LEVEL_NAME: str = os.getenv("LOG_LEVEL", "INFO").strip().upper()
LOG_FILE: str = _env_str("LOG_FILE", "punchin.log")

__all__ = [
    "DATABASE_URL",
    "MAX_SESSION_MINUTES",
    "MIN_HOLD_MINUTES",
    "DEFAULT_SESSION_MINUTES",
    "DEFAULT_CURRENCY",
    "SYNC_POLL_SECONDS",
    "SYNC_BATCH_SIZE",
    "SYNC_MAX_ATTEMPTS",
    "SYNC_WORKER_ENABLED",
    "BOOKING_ALERTS_ENABLED",
    "DEEPLINK_SCHEME",
    "API_JWT_SECRET",
    "API_JWT_ALGORITHM",
    "TRIGGER_TOKEN",
    "LOG_LEVEL_NAME",
    "LOG_FILE",
]
