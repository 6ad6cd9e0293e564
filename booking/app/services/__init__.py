"""Service package exports.

Scheduling rules, capacity checks, the booking orchestrator and the
repositories it talks to.
"""

from .availability import AvailabilityChecker, AvailabilityResult, RejectionReason, SuggestedSlot
from .booking_services import (
    BookingOrchestrator,
    BookingResult,
    BookRequest,
    CancelRequest,
    RescheduleRequest,
)
from .confirmation import ConfirmationRenderer, MessageTemplates
from .repositories import AppointmentRepo
from .schedule_rules import ScheduleRuleResolver
from .settings_repo import SettingsRepo

__all__ = [
    "AvailabilityChecker",
    "AvailabilityResult",
    "RejectionReason",
    "SuggestedSlot",
    "BookingOrchestrator",
    "BookingResult",
    "BookRequest",
    "CancelRequest",
    "RescheduleRequest",
    "ConfirmationRenderer",
    "MessageTemplates",
    "AppointmentRepo",
    "ScheduleRuleResolver",
    "SettingsRepo",
]
