from booking.app.domain import models


def test_normalize_appointment_status_variants():
    assert models.normalize_appointment_status("BOOKED") is models.AppointmentStatus.BOOKED
    assert models.normalize_appointment_status("pending-confirmation") is models.AppointmentStatus.PENDING_CONFIRMATION
    assert models.normalize_appointment_status(models.AppointmentStatus.CANCELLED) is models.AppointmentStatus.CANCELLED
    assert models.normalize_appointment_status("unknown") is None
    assert models.normalize_appointment_status(None) is None


def test_normalize_recurrence_type():
    assert models.normalize_recurrence_type(None) is models.RecurrenceType.NONE
    assert models.normalize_recurrence_type("") is models.RecurrenceType.NONE
    assert models.normalize_recurrence_type("Weekly") is models.RecurrenceType.WEEKLY
    assert models.normalize_recurrence_type("yearly") is None


def test_status_collections():
    assert models.AppointmentStatus.CANCELLED in models.TERMINAL_STATUSES
    assert models.AppointmentStatus.BOOKED in models.ACTIVE_STATUSES
    assert models.AppointmentStatus.PENDING_CONFIRMATION in models.ACTIVE_STATUSES
    assert models.AppointmentStatus.RESCHEDULED in models.ACTIVE_STATUSES
    assert models.AppointmentStatus.COMPLETED not in models.ACTIVE_STATUSES
    assert models.AppointmentStatus.CANCELLED not in models.RESCHEDULABLE_STATUSES
