from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any

from booking.app.domain.models import (
    ACTIVE_STATUSES,
    AppointmentStatus,
    RecurrenceType,
    normalize_appointment_status,
    normalize_recurrence_type,
)


@dataclass(frozen=True)
class AppointmentRecord:
    """Detached snapshot of one appointments row."""

    id: int | None
    customer_id: str
    service_id: str
    date: str
    time: str
    status: AppointmentStatus = AppointmentStatus.BOOKED
    branch_id: str | None = None
    branch: str | None = None
    staff_id: str | None = None
    recurrence_type: RecurrenceType = RecurrenceType.NONE
    recurrence_count: int = 1
    series_id: str | None = None
    notes: str | None = None
    rescheduled_from: str | None = None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def with_changes(self, **changes: Any) -> "AppointmentRecord":
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "appointmentId": self.id,
            "customerId": self.customer_id,
            "serviceId": self.service_id,
            "date": self.date,
            "time": self.time,
            "status": self.status.value,
            "branchId": self.branch_id,
            "branch": self.branch,
            "staffId": self.staff_id,
            "recurrenceType": self.recurrence_type.value,
            "recurrenceCount": self.recurrence_count,
            "seriesId": self.series_id,
            "notes": self.notes,
            "rescheduledFrom": self.rescheduled_from,
        }


def record_from_row(row: Any) -> AppointmentRecord:
    """Build a record from an ORM row or any attribute-bearing object."""
    return AppointmentRecord(
        id=getattr(row, "id", None),
        customer_id=str(getattr(row, "customer_id")),
        service_id=str(getattr(row, "service_id")),
        date=str(getattr(row, "date")),
        time=str(getattr(row, "time")),
        status=normalize_appointment_status(getattr(row, "status", None)) or AppointmentStatus.BOOKED,
        branch_id=getattr(row, "branch_id", None),
        branch=getattr(row, "branch", None),
        staff_id=getattr(row, "staff_id", None),
        recurrence_type=normalize_recurrence_type(getattr(row, "recurrence_type", None)) or RecurrenceType.NONE,
        recurrence_count=int(getattr(row, "recurrence_count", 1) or 1),
        series_id=getattr(row, "series_id", None),
        notes=getattr(row, "notes", None),
        rescheduled_from=getattr(row, "rescheduled_from", None),
    )



__all__ = ["AppointmentRecord", "record_from_row"]
