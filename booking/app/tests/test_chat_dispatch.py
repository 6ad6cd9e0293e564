import asyncio

from booking.app.core.errors import PersistenceError
from booking.app.domain.models import AppointmentStatus
from booking.app.services.booking_services import BookingOrchestrator
from booking.app.services.chat_dispatch import (
    INTENT_PARTIAL,
    MSG_MISSING_DETAILS,
    MSG_MISSING_TARGET,
    MSG_NOT_FOUND,
    MSG_TEMPORARY_FAILURE,
    ScheduleIntent,
    dispatch_intent,
    resolve_service_id,
)

TUESDAY = "2026-10-20"


def _dispatch(store, rules, intent, customer_id="c1"):
    return asyncio.run(dispatch_intent(intent, customer_id, BookingOrchestrator(store), rules))


def test_booked_intent_resolves_service_name(store, make_rules):
    reply = _dispatch(store, make_rules(), ScheduleIntent("booked", service="haircut", date=TUESDAY, time="09:00"))
    assert reply.intent == "booked"
    assert reply.appointment.service_id == "cut"
    assert reply.text.startswith("Your appointment for Haircut")


def test_booked_intent_with_missing_details_asks_again(store, make_rules):
    reply = _dispatch(store, make_rules(), ScheduleIntent("booked", service="cut", date=TUESDAY))
    assert reply.intent == "clarification_needed"
    assert reply.text == MSG_MISSING_DETAILS
    assert store.writes == 0


def test_unavailable_booking_offers_alternatives(store, make_rules):
    store.add(date=TUESDAY, time="09:00")
    reply = _dispatch(store, make_rules(), ScheduleIntent("booked", service="cut", date=TUESDAY, time="09:00"))
    assert reply.intent == "pending_alternatives"
    assert len(reply.suggested_slots) == 3
    assert "10:00 2026-10-20" in reply.text


def test_invalid_date_asks_for_details(store, make_rules):
    reply = _dispatch(store, make_rules(), ScheduleIntent("booked", service="cut", date="tomorrow", time="09:00"))
    assert reply.intent == "clarification_needed"
    assert reply.text == MSG_MISSING_DETAILS


def test_reschedule_and_cancel_intents(store, make_rules):
    row = store.add(customer_id="c1", date=TUESDAY, time="09:00")
    rules = make_rules()

    moved = _dispatch(store, rules, ScheduleIntent("rescheduled", date=TUESDAY, time="10:00", appointment_id=row.id))
    assert moved.intent == "rescheduled"
    assert store.rows[row.id].time == "10:00"

    cancelled = _dispatch(store, rules, ScheduleIntent("cancelled", appointment_id=row.id))
    assert cancelled.intent == "cancelled"
    assert store.rows[row.id].status is AppointmentStatus.CANCELLED


def test_change_intents_need_a_target(store, make_rules):
    for kind in ("rescheduled", "cancelled"):
        reply = _dispatch(store, make_rules(), ScheduleIntent(kind, date=TUESDAY, time="10:00"))
        assert reply.text == MSG_MISSING_TARGET


def test_foreign_appointment_is_not_found(store, make_rules):
    row = store.add(customer_id="c2", date=TUESDAY, time="09:00")
    reply = _dispatch(store, make_rules(), ScheduleIntent("cancelled", appointment_id=row.id))
    assert reply.text == MSG_NOT_FOUND
    assert store.rows[row.id].status is AppointmentStatus.BOOKED


def test_storage_fault_becomes_apology(store, make_rules):
    store.fail_insert_on = {TUESDAY}
    reply = _dispatch(store, make_rules(), ScheduleIntent("booked", service="cut", date=TUESDAY, time="09:00"))
    assert reply.intent == "error"
    assert reply.text == MSG_TEMPORARY_FAILURE


def test_series_fault_names_the_booked_occurrences(store, make_rules):
    store.fail_insert_on = {"2026-10-27"}
    intent = ScheduleIntent(
        "booked", service="cut", date=TUESDAY, time="09:00", recurrence_type="weekly", recurrence_count=3
    )
    reply = _dispatch(store, make_rules(), intent)

    assert reply.intent == INTENT_PARTIAL
    assert reply.appointment.date == TUESDAY
    assert "09:00 2026-10-20" in reply.text
    assert reply.text != MSG_TEMPORARY_FAILURE
    assert store.writes == 1


def test_other_intents_pass_the_assistant_text_through(store, make_rules):
    reply = _dispatch(store, make_rules(), ScheduleIntent("no_action_needed", message="We open at 9."))
    assert reply.text == "We open at 9."
    assert store.writes == 0


def test_intent_from_mapping():
    intent = ScheduleIntent.from_mapping(
        {
            "intent": "rescheduled",
            "appointmentDetails": {"service": "Haircut", "date": TUESDAY, "time": "10:00", "branch": "Main"},
            "originalAppointmentIdToModify": "7",
            "confirmationMessage": "Moved!",
        }
    )
    assert intent.appointment_id == 7
    assert intent.branch == "Main"
    assert intent.message == "Moved!"
    assert ScheduleIntent.from_mapping({}).intent == "no_action_needed"


def test_resolve_service_id(make_rules):
    rules = make_rules()
    assert resolve_service_id("cut", rules) == "cut"
    assert resolve_service_id(" COLORING ", rules) == "color"
    assert resolve_service_id("massage", rules) == "massage"
    assert resolve_service_id(None, rules) is None


def test_persistence_error_type_is_runtime_error():
    assert issubclass(PersistenceError, RuntimeError)
