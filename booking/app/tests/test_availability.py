import pytest

from booking.app.domain.models import AppointmentStatus
from booking.app.domain.records import AppointmentRecord
from booking.app.domain.rules import EffectiveSchedule
from booking.app.services.availability import AvailabilityChecker, RejectionReason, SuggestedSlot

DAY = "2026-10-20"


def _appt(appt_id, time, service_id="cut", day=DAY, status=AppointmentStatus.BOOKED):
    return AppointmentRecord(appt_id, "c", service_id, day, time, status=status)


def _schedule(staff=1, hours=("09:00", "10:00", "11:00"), duration=60):
    return EffectiveSchedule(hours, staff, duration)


def test_available_slot(make_rules):
    checker = AvailabilityChecker(make_rules())
    result = checker.check(DAY, "09:00", _schedule(), [])
    assert result.is_available is True
    assert result.capacity == 1
    assert result.reason is None


def test_adjacent_appointments_do_not_overlap(make_rules):
    checker = AvailabilityChecker(make_rules())
    result = checker.check(DAY, "10:00", _schedule(), [_appt(1, "09:00")])
    assert result.is_available is True


def test_longer_service_blocks_following_slot(make_rules):
    checker = AvailabilityChecker(make_rules())
    # Coloring lasts 120 minutes: 09:00-11:00
    existing = [_appt(1, "09:00", service_id="color")]
    assert checker.check(DAY, "10:00", _schedule(), existing).reason is RejectionReason.FULLY_BOOKED
    assert checker.check(DAY, "11:00", _schedule(), existing).is_available is True


def test_capacity_counts_every_service(make_rules):
    checker = AvailabilityChecker(make_rules())
    existing = [_appt(1, "09:00", service_id="color"), _appt(2, "09:00")]
    result = checker.check(DAY, "09:00", _schedule(staff=2), existing)
    assert result.is_available is False
    assert result.concurrent_count == 2
    assert checker.check(DAY, "09:00", _schedule(staff=3), existing).is_available is True


def test_inactive_other_day_and_excluded_rows_are_ignored(make_rules):
    checker = AvailabilityChecker(make_rules())
    existing = [
        _appt(1, "09:00", status=AppointmentStatus.CANCELLED),
        _appt(2, "09:00", status=AppointmentStatus.COMPLETED),
        _appt(3, "09:00", day="2026-10-21"),
        _appt(4, "09:00"),
    ]
    assert checker.count_concurrent(DAY, "09:00", 60, existing) == 1
    assert checker.count_concurrent(DAY, "09:00", 60, existing, exclude_id=4) == 0


def test_pending_and_rescheduled_rows_take_capacity(make_rules):
    checker = AvailabilityChecker(make_rules())
    existing = [
        _appt(1, "09:00", status=AppointmentStatus.PENDING_CONFIRMATION),
        _appt(2, "09:00", status=AppointmentStatus.RESCHEDULED),
    ]
    assert checker.count_concurrent(DAY, "09:00", 60, existing) == 2


def test_day_off_and_outside_hours(make_rules):
    checker = AvailabilityChecker(make_rules())
    day_off = EffectiveSchedule((), 0, 60, is_day_off=True)
    assert checker.check(DAY, "09:00", day_off, []).reason is RejectionReason.DAY_OFF
    assert checker.check(DAY, "09:30", _schedule(), []).reason is RejectionReason.OUTSIDE_WORKING_HOURS
    # Unpadded input is normalized before the working-hours lookup
    assert checker.check(DAY, "9:00", _schedule(), []).is_available is True


def test_zero_staff_is_always_full(make_rules):
    checker = AvailabilityChecker(make_rules())
    assert checker.check(DAY, "09:00", _schedule(staff=0), []).reason is RejectionReason.FULLY_BOOKED


def test_malformed_literals_raise(make_rules):
    checker = AvailabilityChecker(make_rules())
    with pytest.raises(ValueError):
        checker.check("2026/10/20", "09:00", _schedule(), [])
    with pytest.raises(ValueError):
        checker.check(DAY, "24:00", _schedule(), [])


def test_malformed_existing_row_is_skipped(make_rules):
    checker = AvailabilityChecker(make_rules())
    existing = [_appt(1, "bogus"), _appt(2, "10:00")]
    assert checker.count_concurrent(DAY, "10:00", 60, existing) == 1


def test_suggestions_start_at_requested_time(make_rules):
    checker = AvailabilityChecker(make_rules())
    slots = checker.suggest_slots("cut", DAY, "10:00", {DAY: [_appt(1, "10:00")]})
    assert slots == [
        SuggestedSlot(DAY, "11:00"),
        SuggestedSlot("2026-10-21", "09:00"),
        SuggestedSlot("2026-10-21", "10:00"),
    ]


def test_suggestions_skip_days_off(make_rules):
    checker = AvailabilityChecker(make_rules())
    # Saturday 11:00 is the last slot before the Sunday closure
    slots = checker.suggest_slots("cut", "2026-10-24", "11:00", {}, limit=2, branch="Main")
    assert slots == [SuggestedSlot("2026-10-24", "11:00", "Main"), SuggestedSlot("2026-10-26", "09:00", "Main")]


def test_suggestions_respect_search_window(make_rules):
    checker = AvailabilityChecker(make_rules(number_of_staff=0))
    assert checker.suggest_slots("cut", DAY, "09:00", {}, search_days=7) == []
    assert checker.suggest_slots("cut", DAY, "09:00", {}, limit=0) == []


def test_suggestion_start_depends_on_reason():
    assert AvailabilityChecker.suggestion_start(DAY, "10:00", RejectionReason.DAY_OFF) == ("2026-10-21", "00:00")
    assert AvailabilityChecker.suggestion_start(DAY, "10:00", RejectionReason.FULLY_BOOKED) == (DAY, "10:00")
