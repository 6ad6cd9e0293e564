"""Booking orchestration: book, recurring series, reschedule, cancel.

Business outcomes (day off, outside working hours, fully booked, invalid
recurrence unit) come back as ``BookingResult``; they are never raised and
never logged as errors. Validation faults raise ``InvalidBookingRequest``
before any availability check. Storage faults raise ``PersistenceError``.

Every check-then-write runs under ``repo.lock_date`` so two concurrent
bookers can never both take the last unit of capacity on a date.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, AsyncContextManager, AsyncIterator, Iterable, Protocol, Sequence

from dateutil.relativedelta import relativedelta

from booking.app.core.constants import SUGGESTED_SLOTS_LIMIT, SUGGESTION_SEARCH_DAYS
from booking.app.core.errors import InvalidBookingRequest, PersistenceError
from booking.app.domain.models import (
    RESCHEDULABLE_STATUSES,
    AppointmentStatus,
    RecurrenceType,
    normalize_recurrence_type,
)
from booking.app.domain.records import AppointmentRecord
from booking.app.domain.rules import RuleSet
from booking.app.services.availability import (
    AvailabilityChecker,
    AvailabilityResult,
    RejectionReason,
    SuggestedSlot,
)
from booking.app.services.confirmation import (
    AppointmentDetails,
    ConfirmationRenderer,
    MessageTemplates,
)
from booking.app.services.shared_services import (
    date_to_literal,
    format_display_date,
    normalize_time_literal,
    parse_date_literal,
    parse_time_literal,
)

logger = logging.getLogger(__name__)


class AppointmentStore(Protocol):
    """Persistence port used by the orchestrator (see ``AppointmentRepo``)."""

    async def get(self, appointment_id: int) -> AppointmentRecord | None: ...

    async def customer_exists(self, customer_id: str) -> bool: ...

    async def list_active_on_date(self, day: str) -> list[AppointmentRecord]: ...

    async def list_active_on_dates(self, days: Iterable[str]) -> dict[str, list[AppointmentRecord]]: ...

    async def list_active_for_customer(self, customer_id: str) -> list[AppointmentRecord]: ...

    async def insert(self, record: AppointmentRecord) -> AppointmentRecord: ...

    async def update(self, appointment_id: int, **fields: Any) -> AppointmentRecord | None: ...

    def lock_date(self, day: str) -> AsyncContextManager[None]: ...


# ---------------- Requests / results ---------------- #
@dataclass(frozen=True)
class BookRequest:
    customer_id: str
    service_id: str
    date: str
    time: str
    branch_id: str | None = None
    branch: str | None = None
    staff_id: str | None = None
    recurrence_type: str | RecurrenceType | None = RecurrenceType.NONE
    recurrence_count: int = 1
    notes: str | None = None


@dataclass(frozen=True)
class RescheduleRequest:
    appointment_id: int
    new_date: str
    new_time: str
    # When set, the appointment must belong to this customer
    customer_id: str | None = None


@dataclass(frozen=True)
class CancelRequest:
    appointment_id: int
    customer_id: str | None = None


@dataclass
class BookingResult:
    success: bool
    message: str
    appointment: AppointmentRecord | None = None
    appointments: list[AppointmentRecord] = field(default_factory=list)
    reason: RejectionReason | None = None
    suggested_slots: list[SuggestedSlot] = field(default_factory=list)
    requested_count: int = 1
    failed_occurrence: int | None = None
    failed_date: str | None = None

    @property
    def booked_count(self) -> int:
        return len(self.appointments)

    @property
    def partial(self) -> bool:
        """True when a series stopped after booking some, not all, occurrences."""
        return 0 < self.booked_count < self.requested_count

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "success": self.success,
            "message": self.message,
            "bookedCount": self.booked_count,
            "requestedCount": self.requested_count,
        }
        if self.appointment is not None:
            data["appointment"] = self.appointment.to_dict()
        if len(self.appointments) > 1:
            data["appointments"] = [a.to_dict() for a in self.appointments]
        if self.reason is not None:
            data["reason"] = self.reason.value
        if self.suggested_slots:
            data["suggestedSlots"] = [s.to_dict() for s in self.suggested_slots]
        if self.failed_occurrence is not None:
            data["failedOccurrence"] = self.failed_occurrence
            data["failedDate"] = self.failed_date
        return data


# ---------------- Pure helpers ---------------- #
def expand_occurrences(first: date | str, recurrence: RecurrenceType, count: int) -> list[str]:
    """Dates of a series. Monthly steps count from the first date and clamp to month end."""
    start = parse_date_literal(first)
    if recurrence is RecurrenceType.NONE or count <= 1:
        return [date_to_literal(start)]
    out: list[str] = []
    for i in range(count):
        if recurrence is RecurrenceType.DAILY:
            d = start + timedelta(days=i)
        elif recurrence is RecurrenceType.WEEKLY:
            d = start + timedelta(days=7 * i)
        else:
            d = start + relativedelta(months=i)
        out.append(date_to_literal(d))
    return out


def _validate_slot(day: str, time_literal: str) -> tuple[str, str]:
    try:
        day_literal = date_to_literal(parse_date_literal(day))
    except ValueError:
        raise InvalidBookingRequest("invalid_date", f"Invalid date {day!r}, expected YYYY-MM-DD.")
    norm = normalize_time_literal(time_literal)
    try:
        if norm is None:
            raise ValueError(time_literal)
        parse_time_literal(norm)
    except ValueError:
        raise InvalidBookingRequest("invalid_time", f"Invalid time {time_literal!r}, expected HH:MM.")
    return day_literal, norm


def _reason_text(reason: RejectionReason | None) -> str:
    return {
        RejectionReason.DAY_OFF: "we are closed on that day",
        RejectionReason.OUTSIDE_WORKING_HOURS: "that time is not a bookable start time",
        RejectionReason.FULLY_BOOKED: "all staff are busy at that time",
        RejectionReason.INVALID_RECURRENCE_UNIT: "the repeat option is not supported",
        RejectionReason.NOT_RESCHEDULABLE: "the appointment can no longer be changed",
    }.get(reason, "the slot is not available") if reason else "the slot is not available"


def _unavailable_message(day: str, time_literal: str, reason: RejectionReason | None) -> str:
    return (
        f"Sorry, the selected slot ({time_literal} on {format_display_date(day)}) "
        f"is not available: {_reason_text(reason)}."
    )


# ---------------- Orchestrator ---------------- #
class BookingOrchestrator:
    def __init__(
        self,
        repo: AppointmentStore,
        renderer: ConfirmationRenderer | None = None,
        *,
        suggestion_limit: int = SUGGESTED_SLOTS_LIMIT,
        suggestion_days: int = SUGGESTION_SEARCH_DAYS,
    ) -> None:
        self.repo = repo
        self.renderer = renderer or ConfirmationRenderer()
        self.suggestion_limit = suggestion_limit
        self.suggestion_days = suggestion_days

    # ---------- shared steps ---------- #
    def _details(self, record: AppointmentRecord, rules: RuleSet) -> AppointmentDetails:
        return AppointmentDetails(
            service=rules.service_name(record.service_id),
            date=record.date,
            time=record.time,
            branch=record.branch,
        )

    async def _suggest(
        self,
        checker: AvailabilityChecker,
        service_id: str,
        day: str,
        time_literal: str,
        result: AvailabilityResult,
        *,
        exclude_id: Any = None,
        branch: str | None = None,
    ) -> list[SuggestedSlot]:
        if self.suggestion_limit <= 0 or result.reason is None:
            return []
        start_day, start_time = checker.suggestion_start(day, time_literal, result.reason)
        first = parse_date_literal(start_day)
        days = [date_to_literal(first + timedelta(days=i)) for i in range(max(0, self.suggestion_days))]
        by_day = await self.repo.list_active_on_dates(days)
        return checker.suggest_slots(
            service_id,
            start_day,
            start_time,
            by_day,
            limit=self.suggestion_limit,
            search_days=self.suggestion_days,
            exclude_id=exclude_id,
            branch=branch,
        )

    async def _check_locked(
        self,
        checker: AvailabilityChecker,
        service_id: str,
        day: str,
        time_literal: str,
        exclude_id: Any = None,
    ) -> AvailabilityResult:
        """Availability check; caller must hold ``repo.lock_date(day)``."""
        existing = await self.repo.list_active_on_date(day)
        schedule = checker.schedule_for(day, service_id)
        return checker.check(day, time_literal, schedule, existing, exclude_id=exclude_id)

    @asynccontextmanager
    async def _lock_dates(self, *days: str) -> AsyncIterator[None]:
        # Sorted so two callers locking the same pair cannot deadlock
        async with AsyncExitStack() as stack:
            for day in sorted(set(days)):
                await stack.enter_async_context(self.repo.lock_date(day))
            yield

    async def _load_owned(self, appointment_id: int, customer_id: str | None) -> AppointmentRecord:
        try:
            appt_id = int(appointment_id)
        except (TypeError, ValueError):
            raise InvalidBookingRequest("appointment_not_found", f"Unknown appointment {appointment_id!r}.")
        current = await self.repo.get(appt_id)
        if current is None or (customer_id is not None and current.customer_id != str(customer_id)):
            raise InvalidBookingRequest("appointment_not_found", f"Unknown appointment {appointment_id!r}.")
        return current

    # ---------- read-only ---------- #
    async def check_availability(self, day: str, time_literal: str, service_id: str, rules: RuleSet) -> AvailabilityResult:
        day, time_literal = _validate_slot(day, time_literal)
        if not rules.has_service(service_id):
            raise InvalidBookingRequest("unknown_service", f"Unknown service {service_id!r}.")
        checker = AvailabilityChecker(rules)
        existing = await self.repo.list_active_on_date(day)
        result = checker.check(day, time_literal, checker.schedule_for(day, service_id), existing)
        if result.is_available:
            return result
        return result.with_suggestions(await self._suggest(checker, service_id, day, time_literal, result))

    async def list_customer_appointments(self, customer_id: str) -> list[AppointmentRecord]:
        return await self.repo.list_active_for_customer(customer_id)

    # ---------- book ---------- #
    async def book(self, request: BookRequest, rules: RuleSet, templates: MessageTemplates | None = None) -> BookingResult:
        day, time_literal = _validate_slot(request.date, request.time)
        if not rules.has_service(request.service_id):
            raise InvalidBookingRequest("unknown_service", f"Unknown service {request.service_id!r}.")
        try:
            count = int(request.recurrence_count)
        except (TypeError, ValueError):
            raise InvalidBookingRequest("invalid_recurrence_count", "Recurrence count must be an integer.")
        if count < 1:
            raise InvalidBookingRequest("invalid_recurrence_count", "Recurrence count must be at least 1.")
        if not await self.repo.customer_exists(request.customer_id):
            raise InvalidBookingRequest("unknown_customer", f"Unknown customer {request.customer_id!r}.")

        recurrence = normalize_recurrence_type(request.recurrence_type)
        if recurrence is None or (count > 1 and recurrence is RecurrenceType.NONE):
            logger.info("Booking rejected: recurrence=%r count=%s", request.recurrence_type, count)
            return BookingResult(
                success=False,
                message=_unavailable_message(day, time_literal, RejectionReason.INVALID_RECURRENCE_UNIT),
                reason=RejectionReason.INVALID_RECURRENCE_UNIT,
                requested_count=count,
            )

        occurrences = expand_occurrences(day, recurrence, count)
        series_id = str(uuid.uuid4()) if count > 1 else None
        checker = AvailabilityChecker(rules)
        booked: list[AppointmentRecord] = []

        for index, occ_day in enumerate(occurrences, start=1):
            record = AppointmentRecord(
                id=None,
                customer_id=str(request.customer_id),
                service_id=request.service_id,
                date=occ_day,
                time=time_literal,
                status=AppointmentStatus.BOOKED,
                branch_id=request.branch_id,
                branch=request.branch,
                staff_id=request.staff_id,
                recurrence_type=recurrence,
                recurrence_count=count,
                series_id=series_id,
                notes=request.notes,
            )
            try:
                async with self.repo.lock_date(occ_day):
                    result = await self._check_locked(checker, request.service_id, occ_day, time_literal)
                    if result.is_available:
                        booked.append(await self.repo.insert(record))
                        continue
            except PersistenceError as e:
                if booked:
                    logger.error(
                        "Series %s interrupted at occurrence %s/%s (%s); %s already booked",
                        series_id, index, count, occ_day, len(booked),
                    )
                    raise e.with_committed(booked) from e.cause
                raise

            logger.info(
                "Occurrence %s/%s rejected: customer=%s service=%s slot=%s %s reason=%s",
                index, count, request.customer_id, request.service_id, occ_day, time_literal, result.reason,
            )
            suggestions = await self._suggest(
                checker, request.service_id, occ_day, time_literal, result, branch=request.branch
            )
            return self._stopped_result(booked, index, count, occ_day, time_literal, result, suggestions, rules, templates)

        first = booked[0]
        message = self.renderer.booked(self._details(first, rules), templates)
        if count > 1:
            message = f"{message} ({count} occurrences booked)"
        return BookingResult(
            success=True,
            message=message,
            appointment=first,
            appointments=booked,
            requested_count=count,
        )

    def _stopped_result(
        self,
        booked: list[AppointmentRecord],
        index: int,
        count: int,
        occ_day: str,
        time_literal: str,
        result: AvailabilityResult,
        suggestions: Sequence[SuggestedSlot],
        rules: RuleSet,
        templates: MessageTemplates | None,
    ) -> BookingResult:
        if not booked:
            return BookingResult(
                success=False,
                message=_unavailable_message(occ_day, time_literal, result.reason),
                reason=result.reason,
                suggested_slots=list(suggestions),
                requested_count=count,
                failed_occurrence=index if count > 1 else None,
                failed_date=occ_day if count > 1 else None,
            )
        # Earlier occurrences stay booked: the series stops at the first failure
        confirmation = self.renderer.booked(self._details(booked[0], rules), templates)
        message = (
            f"{confirmation} Booked {len(booked)} of {count} occurrences; "
            f"occurrence {index} ({time_literal} on {format_display_date(occ_day)}) "
            f"is not available: {_reason_text(result.reason)}."
        )
        return BookingResult(
            success=True,
            message=message,
            appointment=booked[0],
            appointments=list(booked),
            reason=result.reason,
            suggested_slots=list(suggestions),
            requested_count=count,
            failed_occurrence=index,
            failed_date=occ_day,
        )

    # ---------- reschedule ---------- #
    def _not_reschedulable(self, current: AppointmentRecord, day: str, time_literal: str) -> BookingResult:
        logger.info("Reschedule rejected: appointment %s is %s", current.id, current.status.value)
        return BookingResult(
            success=False,
            message=_unavailable_message(day, time_literal, RejectionReason.NOT_RESCHEDULABLE),
            appointment=current,
            reason=RejectionReason.NOT_RESCHEDULABLE,
        )

    async def reschedule(
        self, request: RescheduleRequest, rules: RuleSet, templates: MessageTemplates | None = None
    ) -> BookingResult:
        day, time_literal = _validate_slot(request.new_date, request.new_time)
        current = await self._load_owned(request.appointment_id, request.customer_id)
        if current.status not in RESCHEDULABLE_STATUSES:
            return self._not_reschedulable(current, day, time_literal)

        checker = AvailabilityChecker(rules)
        result: AvailabilityResult | None = None
        updated: AppointmentRecord | None = None
        # The old date is locked too so a concurrent cancel cannot slip in
        async with self._lock_dates(current.date, day):
            current = await self._load_owned(current.id, request.customer_id)
            if current.status in RESCHEDULABLE_STATUSES:
                # The appointment's own slot is excluded: it moves, it does not compete
                result = await self._check_locked(checker, current.service_id, day, time_literal, exclude_id=current.id)
                if result.is_available:
                    updated = await self.repo.update(
                        current.id,
                        date=day,
                        time=time_literal,
                        status=AppointmentStatus.BOOKED,
                        rescheduled_from=f"{current.date} {current.time}",
                    )

        if result is None:
            return self._not_reschedulable(current, day, time_literal)
        if not result.is_available:
            logger.info(
                "Reschedule of %s to %s %s rejected: %s", current.id, day, time_literal, result.reason
            )
            suggestions = await self._suggest(
                checker, current.service_id, day, time_literal, result, exclude_id=current.id, branch=current.branch
            )
            return BookingResult(
                success=False,
                message=_unavailable_message(day, time_literal, result.reason),
                appointment=current,
                reason=result.reason,
                suggested_slots=suggestions,
            )
        if updated is None:
            raise InvalidBookingRequest("appointment_not_found", f"Unknown appointment {request.appointment_id!r}.")

        logger.info("Appointment %s moved from %s %s to %s %s", current.id, current.date, current.time, day, time_literal)
        return BookingResult(
            success=True,
            message=self.renderer.rescheduled(self._details(updated, rules), templates),
            appointment=updated,
            appointments=[updated],
        )

    # ---------- cancel ---------- #
    async def cancel(
        self, request: CancelRequest, templates: MessageTemplates | None = None, *, rules: RuleSet | None = None
    ) -> BookingResult:
        current = await self._load_owned(request.appointment_id, request.customer_id)
        rules = rules or RuleSet.empty()

        async with self.repo.lock_date(current.date):
            # Re-read: a reschedule holding this date may have just moved the row
            current = await self._load_owned(current.id, request.customer_id)
            if current.status is AppointmentStatus.CANCELLED:
                return BookingResult(
                    success=True,
                    message=self.renderer.cancelled(self._details(current, rules), templates),
                    appointment=current,
                )
            updated = await self.repo.update(current.id, status=AppointmentStatus.CANCELLED)

        if updated is None:
            raise InvalidBookingRequest("appointment_not_found", f"Unknown appointment {request.appointment_id!r}.")
        logger.info("Appointment %s cancelled (was %s)", current.id, current.status.value)
        return BookingResult(
            success=True,
            message=self.renderer.cancelled(self._details(updated, rules), templates),
            appointment=updated,
        )


__all__ = [
    "AppointmentStore",
    "BookRequest",
    "RescheduleRequest",
    "CancelRequest",
    "BookingResult",
    "BookingOrchestrator",
    "expand_occurrences",
]
