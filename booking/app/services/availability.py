"""Slot capacity checks.

A slot is available when the date is open, the time is one of the configured
start times, and fewer than ``number_of_staff`` active appointments overlap
the requested ``[start, start + duration)`` interval. Every existing
appointment occupies an interval sized by the duration resolved for its own
service and date.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from typing import Any, Iterable, Mapping, Sequence

from booking.app.core.constants import SUGGESTED_SLOTS_LIMIT, SUGGESTION_SEARCH_DAYS
from booking.app.domain.models import ACTIVE_STATUSES, normalize_appointment_status
from booking.app.domain.rules import EffectiveSchedule, RuleSet
from booking.app.services.schedule_rules import ScheduleRuleResolver
from booking.app.services.shared_services import (
    date_to_literal,
    intervals_overlap,
    normalize_time_literal,
    parse_date_literal,
    slot_interval,
    slot_start,
)

logger = logging.getLogger(__name__)


class RejectionReason(str, Enum):
    DAY_OFF = "day off"
    OUTSIDE_WORKING_HOURS = "outside working hours"
    FULLY_BOOKED = "fully booked"
    INVALID_RECURRENCE_UNIT = "invalid recurrence unit"
    NOT_RESCHEDULABLE = "not reschedulable"


@dataclass(frozen=True)
class SuggestedSlot:
    date: str
    time: str
    branch: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"date": self.date, "time": self.time}
        if self.branch:
            data["branch"] = self.branch
        return data


@dataclass(frozen=True)
class AvailabilityResult:
    is_available: bool
    reason: RejectionReason | None = None
    suggested_slots: tuple[SuggestedSlot, ...] = field(default_factory=tuple)
    concurrent_count: int = 0
    capacity: int = 0

    def with_suggestions(self, slots: Sequence[SuggestedSlot]) -> "AvailabilityResult":
        return AvailabilityResult(
            is_available=self.is_available,
            reason=self.reason,
            suggested_slots=tuple(slots),
            concurrent_count=self.concurrent_count,
            capacity=self.capacity,
        )


def _is_active(appt: Any) -> bool:
    return normalize_appointment_status(getattr(appt, "status", None)) in ACTIVE_STATUSES


class AvailabilityChecker:
    """Capacity checks against a rule set.

    ``check`` itself is pure: callers pass the already-resolved schedule and
    the appointments they loaded for the date.
    """

    def __init__(self, rules: RuleSet, resolver: ScheduleRuleResolver | None = None) -> None:
        self.rules = rules
        self.resolver = resolver or ScheduleRuleResolver()

    def schedule_for(self, day: str | date, service_id: str | None) -> EffectiveSchedule:
        return self.resolver.resolve(day, self.rules.global_settings, self.rules.rules_for(service_id))

    def _duration_of(self, appt: Any) -> int:
        return self.schedule_for(appt.date, getattr(appt, "service_id", None)).service_duration_minutes

    def count_concurrent(
        self,
        target_date: str,
        target_time: str,
        duration_minutes: int,
        existing: Iterable[Any],
        exclude_id: Any = None,
    ) -> int:
        requested_start, requested_end = slot_interval(target_date, target_time, duration_minutes)
        count = 0
        for appt in existing:
            if exclude_id is not None and getattr(appt, "id", None) == exclude_id:
                continue
            if str(getattr(appt, "date", "")) != target_date or not _is_active(appt):
                continue
            try:
                ex_start, ex_end = slot_interval(appt.date, appt.time, self._duration_of(appt))
            except ValueError:
                logger.warning("Skipping appointment %s with malformed slot %r %r", getattr(appt, "id", None), appt.date, appt.time)
                continue
            if intervals_overlap(requested_start, requested_end, ex_start, ex_end):
                count += 1
        return count

    def check(
        self,
        target_date: str,
        target_time: str,
        schedule: EffectiveSchedule,
        existing: Iterable[Any],
        exclude_id: Any = None,
    ) -> AvailabilityResult:
        """Decide whether ``target_time`` on ``target_date`` still has capacity.

        Raises ValueError on malformed literals.
        """
        target_date = date_to_literal(parse_date_literal(target_date))
        slot_start(target_date, target_time)
        target_time = normalize_time_literal(target_time) or target_time
        if schedule.is_day_off:
            return AvailabilityResult(False, RejectionReason.DAY_OFF)
        if target_time not in schedule.working_hours:
            return AvailabilityResult(False, RejectionReason.OUTSIDE_WORKING_HOURS, capacity=schedule.number_of_staff)
        concurrent = self.count_concurrent(
            target_date, target_time, schedule.service_duration_minutes, existing, exclude_id=exclude_id
        )
        if concurrent >= schedule.number_of_staff:
            return AvailabilityResult(
                False, RejectionReason.FULLY_BOOKED, concurrent_count=concurrent, capacity=schedule.number_of_staff
            )
        return AvailabilityResult(True, concurrent_count=concurrent, capacity=schedule.number_of_staff)

    def suggest_slots(
        self,
        service_id: str | None,
        from_date: str,
        from_time: str,
        appointments_by_date: Mapping[str, Sequence[Any]],
        *,
        limit: int = SUGGESTED_SLOTS_LIMIT,
        search_days: int = SUGGESTION_SEARCH_DAYS,
        exclude_id: Any = None,
        branch: str | None = None,
    ) -> list[SuggestedSlot]:
        """Return up to ``limit`` bookable slots starting at (``from_date``, ``from_time``).

        Only the first day is filtered by ``from_time``; later days start at
        their first working hour. Days off are skipped.
        """
        suggestions: list[SuggestedSlot] = []
        if limit <= 0:
            return suggestions
        first = parse_date_literal(from_date)
        for offset in range(max(0, search_days)):
            day_literal = date_to_literal(first + timedelta(days=offset))
            schedule = self.schedule_for(day_literal, service_id)
            if schedule.is_day_off or not schedule.working_hours or schedule.number_of_staff <= 0:
                continue
            existing = appointments_by_date.get(day_literal, ())
            for slot_time in schedule.working_hours:
                if offset == 0 and slot_time < from_time:
                    continue
                result = self.check(day_literal, slot_time, schedule, existing, exclude_id=exclude_id)
                if result.is_available:
                    suggestions.append(SuggestedSlot(day_literal, slot_time, branch))
                    if len(suggestions) >= limit:
                        return suggestions
        return suggestions

    @staticmethod
    def suggestion_start(target_date: str, target_time: str, reason: RejectionReason | None) -> tuple[str, str]:
        """Where the alternative search begins for a given rejection."""
        if reason is RejectionReason.DAY_OFF:
            nxt = parse_date_literal(target_date) + timedelta(days=1)
            return date_to_literal(nxt), "00:00"
        return target_date, target_time


__all__ = [
    "RejectionReason",
    "SuggestedSlot",
    "AvailabilityResult",
    "AvailabilityChecker",
]
