from __future__ import annotations

import logging
import os
from typing import Any, Dict

from dotenv import load_dotenv

# Load environment variables from .env before any env-derived constant is read
load_dotenv()

from booking.app.core.constants import (  # noqa: E402
    DEFAULT_SERVICE_DURATION_MINUTES,
    DEFAULT_WORKING_HOURS,
    PERSISTENCE_TIMEOUT_SECONDS,
    SUGGESTED_SLOTS_LIMIT,
    SUGGESTION_SEARCH_DAYS,
)

logger = logging.getLogger(__name__)

# Runtime settings; scheduling rules stored in the DB take precedence over these
SETTINGS: Dict[str, Any] = {
    "database_url": os.getenv(
        "DATABASE_URL",
        "postgresql+asyncpg://booking_user:booking_pass@db:5432/booking_db",
    ),
    "persistence_timeout_seconds": PERSISTENCE_TIMEOUT_SECONDS,
    "suggested_slots_limit": SUGGESTED_SLOTS_LIMIT,
    "suggestion_search_days": SUGGESTION_SEARCH_DAYS,
    # Fallbacks used when the settings table has no "scheduling" document yet
    "number_of_staff": int(os.getenv("NUMBER_OF_STAFF", "1")),
    "default_service_duration_minutes": DEFAULT_SERVICE_DURATION_MINUTES,
    "working_hours": DEFAULT_WORKING_HOURS,
    "weekly_off_days": [
        int(x) for x in os.getenv("WEEKLY_OFF_DAYS", "").split(",") if x.strip().isdigit()
    ],
    "log_level": os.getenv("LOG_LEVEL", "INFO"),
}


def get_setting(key: str, default: Any = None) -> Any:
    """Return a runtime setting by key, or ``default`` when unset."""
    value = SETTINGS.get(key, default)
    logger.debug("Setting read: key=%s, value=%s", key, value)
    return value


def get_persistence_timeout() -> float:
    """Timeout applied to every persistence call, never below 0.1s."""
    try:
        return max(0.1, float(SETTINGS.get("persistence_timeout_seconds", PERSISTENCE_TIMEOUT_SECONDS)))
    except (TypeError, ValueError):
        return PERSISTENCE_TIMEOUT_SECONDS


__all__ = ["SETTINGS", "get_setting", "get_persistence_timeout"]
