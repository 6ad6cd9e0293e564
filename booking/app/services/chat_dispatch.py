"""Turn a structured scheduling intent from the chat assistant into a booking call.

Intent extraction itself happens elsewhere; this module only receives the
already-parsed ``ScheduleIntent`` and answers with the text to send back.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

from booking.app.core.errors import InvalidBookingRequest, PersistenceError
from booking.app.domain.records import AppointmentRecord
from booking.app.domain.rules import RuleSet
from booking.app.services.availability import SuggestedSlot
from booking.app.services.booking_services import (
    BookingOrchestrator,
    BookingResult,
    BookRequest,
    CancelRequest,
    RescheduleRequest,
)
from booking.app.services.confirmation import MessageTemplates

logger = logging.getLogger(__name__)

INTENT_BOOKED = "booked"
INTENT_RESCHEDULED = "rescheduled"
INTENT_CANCELLED = "cancelled"
INTENT_PENDING_ALTERNATIVES = "pending_alternatives"
INTENT_CLARIFICATION = "clarification_needed"
INTENT_NO_ACTION = "no_action_needed"
INTENT_PARTIAL = "partially_booked"

MSG_MISSING_DETAILS = (
    "Sorry, I could not read the appointment details. "
    "Please tell me the service, the date (YYYY-MM-DD) and the time (HH:MM)."
)
MSG_MISSING_TARGET = "Which appointment would you like to change? Please give me more details."
MSG_NOT_FOUND = "I could not find that appointment under your name."
MSG_TEMPORARY_FAILURE = "Something went wrong while saving your appointment. Please try again later."
MSG_PARTIAL_SERIES = (
    "I booked {booked}, but something went wrong while saving the rest of the series. "
    "Please try again later for the remaining dates."
)
MSG_ALTERNATIVES = "Here are the nearest free slots:"


@dataclass(frozen=True)
class ScheduleIntent:
    intent: str
    service: str | None = None
    date: str | None = None
    time: str | None = None
    branch: str | None = None
    notes: str | None = None
    appointment_id: int | None = None
    recurrence_type: str | None = None
    recurrence_count: int = 1
    # Text the assistant proposed for intents that need no booking action
    message: str | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ScheduleIntent":
        details = data.get("appointmentDetails") or data.get("appointment_details") or {}
        raw_id = data.get("originalAppointmentIdToModify", data.get("appointment_id"))
        return cls(
            intent=str(data.get("intent") or INTENT_NO_ACTION),
            service=details.get("service"),
            date=details.get("date"),
            time=details.get("time"),
            branch=details.get("branch"),
            notes=details.get("notes"),
            appointment_id=int(raw_id) if raw_id not in (None, "") and str(raw_id).isdigit() else None,
            recurrence_type=details.get("recurrenceType") or details.get("recurrence_type"),
            recurrence_count=int(details.get("recurrenceCount") or details.get("recurrence_count") or 1),
            message=data.get("confirmationMessage") or data.get("message"),
        )


@dataclass
class ChatReply:
    text: str
    intent: str
    appointment: AppointmentRecord | None = None
    suggested_slots: list[SuggestedSlot] = field(default_factory=list)


def resolve_service_id(service: str | None, rules: RuleSet) -> str | None:
    """Match an id or a display name (case-insensitive) against the rule set."""
    if not service:
        return None
    if rules.has_service(service):
        return service
    wanted = service.strip().lower()
    for service_id, name in rules.service_names.items():
        if str(name).strip().lower() == wanted:
            return service_id
    return service


def _with_alternatives(result: BookingResult) -> str:
    if not result.suggested_slots:
        return result.message
    slots = ", ".join(f"{s.time} {s.date}" for s in result.suggested_slots)
    return f"{result.message} {MSG_ALTERNATIVES} {slots}."


def _reply_for(result: BookingResult, intent: str) -> ChatReply:
    if result.success:
        return ChatReply(result.message, intent, result.appointment, list(result.suggested_slots))
    # A declined booking turns into an offer of alternatives
    next_intent = INTENT_PENDING_ALTERNATIVES if intent == INTENT_BOOKED else intent
    return ChatReply(_with_alternatives(result), next_intent, result.appointment, list(result.suggested_slots))


async def dispatch_intent(
    intent: ScheduleIntent,
    customer_id: str,
    orchestrator: BookingOrchestrator,
    rules: RuleSet,
    templates: MessageTemplates | None = None,
) -> ChatReply:
    kind = intent.intent
    try:
        if kind == INTENT_BOOKED:
            if not (intent.service and intent.date and intent.time):
                return ChatReply(MSG_MISSING_DETAILS, INTENT_CLARIFICATION)
            result = await orchestrator.book(
                BookRequest(
                    customer_id=customer_id,
                    service_id=resolve_service_id(intent.service, rules) or intent.service,
                    date=intent.date,
                    time=intent.time,
                    branch=intent.branch,
                    notes=intent.notes,
                    recurrence_type=intent.recurrence_type,
                    recurrence_count=intent.recurrence_count,
                ),
                rules,
                templates,
            )
            return _reply_for(result, kind)

        if kind == INTENT_RESCHEDULED:
            if intent.appointment_id is None:
                return ChatReply(MSG_MISSING_TARGET, INTENT_CLARIFICATION)
            if not (intent.date and intent.time):
                return ChatReply(MSG_MISSING_DETAILS, INTENT_CLARIFICATION)
            result = await orchestrator.reschedule(
                RescheduleRequest(intent.appointment_id, intent.date, intent.time, customer_id=customer_id),
                rules,
                templates,
            )
            return _reply_for(result, kind)

        if kind == INTENT_CANCELLED:
            if intent.appointment_id is None:
                return ChatReply(MSG_MISSING_TARGET, INTENT_CLARIFICATION)
            result = await orchestrator.cancel(
                CancelRequest(intent.appointment_id, customer_id=customer_id), templates, rules=rules
            )
            return _reply_for(result, kind)
    except InvalidBookingRequest as e:
        logger.info("Chat intent %s from %s rejected: %s", kind, customer_id, e.code)
        if e.code == "appointment_not_found":
            return ChatReply(MSG_NOT_FOUND, INTENT_CLARIFICATION)
        return ChatReply(MSG_MISSING_DETAILS, INTENT_CLARIFICATION)
    except PersistenceError as e:
        logger.exception("Chat intent %s from %s failed", kind, customer_id)
        if e.committed:
            booked = ", ".join(f"{r.time} {r.date}" for r in e.committed)
            return ChatReply(MSG_PARTIAL_SERIES.format(booked=booked), INTENT_PARTIAL, e.committed[0])
        return ChatReply(MSG_TEMPORARY_FAILURE, "error")

    return ChatReply(intent.message or "", kind)


__all__ = ["ScheduleIntent", "ChatReply", "dispatch_intent", "resolve_service_id"]
