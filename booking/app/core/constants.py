from __future__ import annotations

import os

from dotenv import load_dotenv

# Module-level defaults below read the environment at import time
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


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except Exception:
        return default


def _env_hhmm_list(name: str) -> list[str]:
    raw = os.getenv(name, "")
    vals: list[str] = []
    for token in raw.replace(";", ",").split(","):
        tok = token.strip()
        if len(tok) == 5 and tok[2] == ":" and tok[:2].isdigit() and tok[3:].isdigit():
            vals.append(tok)
    return vals


# Minimums applied when no rule layer provides a value
MIN_NUMBER_OF_STAFF: int = 1
MIN_SERVICE_DURATION_MINUTES: int = 5

# Scheduling defaults (ENV overridable)
DEFAULT_SERVICE_DURATION_MINUTES: int = max(
    MIN_SERVICE_DURATION_MINUTES, _env_int("DEFAULT_SERVICE_DURATION_MINUTES", 60)
)
DEFAULT_WORKING_HOURS: list[str] = _env_hhmm_list("DEFAULT_WORKING_HOURS")

# Alternative slot search
SUGGESTED_SLOTS_LIMIT: int = _env_int("SUGGESTED_SLOTS_LIMIT", 3)
SUGGESTION_SEARCH_DAYS: int = _env_int("SUGGESTION_SEARCH_DAYS", 7)

# Persistence calls never block longer than this (seconds)
PERSISTENCE_TIMEOUT_SECONDS: float = _env_float("PERSISTENCE_TIMEOUT_SECONDS", 5.0)

# Logging
LOG_LEVEL_NAME: str = os.getenv("LOG_LEVEL", "INFO").strip().upper()
LOG_FILE: str = os.getenv("LOG_FILE", "")

# Row/advisory locking on PostgreSQL; disable for backends without advisory locks
ADVISORY_LOCKS_ENABLED: bool = _env_bool("ADVISORY_LOCKS", True)

__all__ = [
    "MIN_NUMBER_OF_STAFF",
    "MIN_SERVICE_DURATION_MINUTES",
    "DEFAULT_SERVICE_DURATION_MINUTES",
    "DEFAULT_WORKING_HOURS",
    "SUGGESTED_SLOTS_LIMIT",
    "SUGGESTION_SEARCH_DAYS",
    "PERSISTENCE_TIMEOUT_SECONDS",
    "LOG_LEVEL_NAME",
    "LOG_FILE",
    "ADVISORY_LOCKS_ENABLED",
]
