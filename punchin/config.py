from __future__ import annotations

import logging
import os
from typing import Any, Dict

from punchin.app.core import constants

logger = logging.getLogger(__name__)

# Runtime settings; values may be overridden in-process (tests, admin tooling).
SETTINGS: Dict[str, Any] = {
    "database_url": constants.DATABASE_URL,
    "max_session_minutes": constants.MAX_SESSION_MINUTES,
    "min_hold_minutes": constants.MIN_HOLD_MINUTES,
    "default_currency": constants.DEFAULT_CURRENCY,
    "sync_poll_seconds": constants.SYNC_POLL_SECONDS,
    "sync_batch_size": constants.SYNC_BATCH_SIZE,
    "sync_max_attempts": constants.SYNC_MAX_ATTEMPTS,
    "booking_alerts_enabled": constants.BOOKING_ALERTS_ENABLED,
    "log_level": constants.LOG_LEVEL_NAME,
    "api_host": os.getenv("API_HOST", "0.0.0.0"),
    "api_port": int(os.getenv("API_PORT", "8000") or 8000),
}


def get_setting(key: str, default: Any = None) -> Any:
    """Return a runtime setting by key, or ``default`` when unset."""
    value = SETTINGS.get(key, default)
    logger.debug("Setting read: key=%s, value=%s", key, value)
    return value


def get_max_session_minutes() -> int:
    try:
        val = SETTINGS.get("max_session_minutes", 720)
        return max(1, int(val))
    except Exception:
        return 720


def get_min_hold_minutes() -> int:
    try:
        val = SETTINGS.get("min_hold_minutes", 30)
        return max(1, int(val))
    except Exception:
        return 30


def get_default_currency() -> str:
    return str(SETTINGS.get("default_currency") or "USD")


__all__ = [
    "SETTINGS",
    "get_setting",
    "get_max_session_minutes",
    "get_min_hold_minutes",
    "get_default_currency",
]
