"""Shared helpers for date/time literals.

Appointments store business-local ``YYYY-MM-DD`` and ``HH:MM`` literals. They
are parsed into naive ``datetime`` objects and never converted between
timezones: the business and its customers share one locale.
"""

from __future__ import annotations

import logging
import re
from datetime import date, datetime, timedelta

logger = logging.getLogger(__name__)

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TIME_RE = re.compile(r"^\d{2}:\d{2}$")


# ---------------- Literal parsing ---------------- #
def parse_date_literal(value: str | date) -> date:
    """Parse a ``YYYY-MM-DD`` literal. Raises ValueError on anything else."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value or "").strip()
    if not _DATE_RE.match(text):
        raise ValueError(f"invalid date literal: {value!r}")
    return date.fromisoformat(text)


def parse_time_literal(value: str) -> tuple[int, int]:
    """Parse a ``HH:MM`` literal into (hour, minute). Raises ValueError."""
    text = normalize_time_literal(value)
    if text is None:
        raise ValueError(f"invalid time literal: {value!r}")
    hh, mm = int(text[:2]), int(text[3:])
    if hh > 23 or mm > 59:
        raise ValueError(f"invalid time literal: {value!r}")
    return hh, mm


def normalize_time_literal(tok: str | None) -> str | None:
    """Normalize time tokens like '0900', '900', '9:00' into 'HH:MM' or return None."""
    if not tok:
        return None
    tok = str(tok).strip()
    if ":" in tok:
        hh, _, mm = tok.partition(":")
        if hh.isdigit() and mm.isdigit() and len(mm) == 2 and 1 <= len(hh) <= 2:
            tok = f"{int(hh):02d}:{mm}"
    elif tok.isdigit() and len(tok) in (3, 4):
        tok = f"{int(tok[:-2]):02d}:{tok[-2:]}"
    return tok if _TIME_RE.match(tok) else None


def slot_start(day: str | date, time_literal: str) -> datetime:
    """Naive local timestamp for a (date, time) literal pair."""
    d = parse_date_literal(day)
    hh, mm = parse_time_literal(time_literal)
    return datetime(d.year, d.month, d.day, hh, mm)


def slot_interval(day: str | date, time_literal: str, duration_minutes: int) -> tuple[datetime, datetime]:
    """Half-open ``[start, end)`` interval occupied by an appointment."""
    start = slot_start(day, time_literal)
    return start, start + timedelta(minutes=int(duration_minutes))


def intervals_overlap(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    """Strict half-open comparison; touching intervals do not overlap."""
    return a_start < b_end and b_start < a_end


def date_to_literal(d: date) -> str:
    return d.strftime("%Y-%m-%d")


def weekday_index(d: date) -> int:
    """Weekday as stored in settings: 0 = Sunday .. 6 = Saturday."""
    return d.isoweekday() % 7


def format_display_date(value: str) -> str:
    """Render a stored ``YYYY-MM-DD`` literal as ``dd/MM/yyyy``; raw value on failure."""
    try:
        return parse_date_literal(value).strftime("%d/%m/%Y")
    except (TypeError, ValueError):
        logger.debug("format_display_date: leaving unparsable literal %r as is", value)
        return str(value)


__all__ = [
    "parse_date_literal",
    "parse_time_literal",
    "normalize_time_literal",
    "slot_start",
    "slot_interval",
    "intervals_overlap",
    "date_to_literal",
    "weekday_index",
    "format_display_date",
]
