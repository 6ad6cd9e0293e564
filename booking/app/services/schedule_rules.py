"""Effective schedule resolution.

Merges the rule layers for one (date, service) pair, highest precedence first:

1. a specific-day rule for the date (service layer before global layer);
2. weekly off days / one-time off dates;
3. per-field fallback service rules -> global settings -> minimum defaults.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any

from booking.app.core.constants import (
    DEFAULT_SERVICE_DURATION_MINUTES,
    MIN_NUMBER_OF_STAFF,
    MIN_SERVICE_DURATION_MINUTES,
)
from booking.app.domain.rules import (
    EffectiveSchedule,
    GlobalSettings,
    ServiceRules,
    SpecificDayRule,
)
from booking.app.services.shared_services import (
    date_to_literal,
    normalize_time_literal,
    parse_date_literal,
    weekday_index,
)

logger = logging.getLogger(__name__)


def _first_present(*candidates: Any) -> Any:
    """Return the first candidate that is not None (empty collections count as absent)."""
    for value in candidates:
        if value is None:
            continue
        if isinstance(value, (tuple, list, set, frozenset, dict)) and not value:
            continue
        return value
    return None


def _normalize_hours(hours: tuple[str, ...] | None) -> tuple[str, ...]:
    out: set[str] = set()
    for raw in hours or ():
        norm = normalize_time_literal(raw)
        if norm is None:
            logger.warning("Ignoring malformed working hour %r", raw)
            continue
        out.add(norm)
    return tuple(sorted(out))


def _specific_rule_for(day_literal: str, settings: GlobalSettings, service: ServiceRules | None) -> SpecificDayRule | None:
    if service is not None and service.specific_day_rules:
        rule = service.specific_day_rules.get(day_literal)
        if rule is not None:
            return rule
    return settings.specific_day_rules.get(day_literal)


def resolve_duration(
    settings: GlobalSettings,
    service: ServiceRules | None = None,
    day_rule: SpecificDayRule | None = None,
) -> int:
    duration = _first_present(
        day_rule.service_duration_minutes if day_rule else None,
        service.service_duration_minutes if service else None,
        settings.default_service_duration_minutes,
    )
    if duration is None:
        duration = DEFAULT_SERVICE_DURATION_MINUTES
    return max(MIN_SERVICE_DURATION_MINUTES, int(duration))


def resolve_schedule(
    day: str | date,
    settings: GlobalSettings,
    service: ServiceRules | None = None,
) -> EffectiveSchedule:
    """Return the effective schedule of ``day`` for a service.

    Raises ValueError when ``day`` is not a ``YYYY-MM-DD`` literal.
    """
    d = parse_date_literal(day)
    day_literal = date_to_literal(d)
    day_rule = _specific_rule_for(day_literal, settings, service)
    duration = resolve_duration(settings, service, day_rule)

    if day_rule is not None:
        if day_rule.is_off:
            return EffectiveSchedule((), 0, duration, is_day_off=True)
    else:
        weekly_off = _first_present(service.weekly_off_days if service else None, settings.weekly_off_days)
        one_time_off = _first_present(service.one_time_off_dates if service else None, settings.one_time_off_dates)
        if weekday_index(d) in (weekly_off or ()) or day_literal in (one_time_off or ()):
            return EffectiveSchedule((), 0, duration, is_day_off=True)

    hours = _first_present(
        day_rule.working_hours if day_rule else None,
        service.working_hours if service else None,
        settings.working_hours,
    )
    # Explicit 0 staff is honoured; only None falls through
    staff = next(
        (
            v
            for v in (
                day_rule.number_of_staff if day_rule else None,
                service.number_of_staff if service else None,
                settings.number_of_staff,
            )
            if v is not None
        ),
        MIN_NUMBER_OF_STAFF,
    )
    return EffectiveSchedule(
        working_hours=_normalize_hours(hours),
        number_of_staff=max(0, int(staff)),
        service_duration_minutes=duration,
        is_day_off=False,
    )


class ScheduleRuleResolver:
    """Object facade over ``resolve_schedule`` for injection into the checker."""

    def resolve(
        self,
        day: str | date,
        settings: GlobalSettings,
        service: ServiceRules | None = None,
    ) -> EffectiveSchedule:
        return resolve_schedule(day, settings, service)


__all__ = ["resolve_schedule", "resolve_duration", "ScheduleRuleResolver"]
