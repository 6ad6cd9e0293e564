from datetime import UTC, datetime
from enum import Enum as _Enum

from sqlalchemy import DateTime, Enum, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """SQLAlchemy declarative base class (explicit for mypy)."""

    pass


class AppointmentStatus(str, _Enum):  # Values match stored labels
    BOOKED = "booked"
    PENDING_CONFIRMATION = "pending_confirmation"
    RESCHEDULED = "rescheduled"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class RecurrenceType(str, _Enum):
    NONE = "none"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


def normalize_appointment_status(value: str | AppointmentStatus | None) -> AppointmentStatus | None:
    """Return an AppointmentStatus enum when possible (accepts strings/enum values)."""
    if isinstance(value, AppointmentStatus):
        return value
    if isinstance(value, str):
        try:
            return AppointmentStatus(value.strip().lower().replace("-", "_"))
        except ValueError:
            return None
    return None


def normalize_recurrence_type(value: str | RecurrenceType | None) -> RecurrenceType | None:
    """Return a RecurrenceType; ``None``/empty means no recurrence, unknown values give None."""
    if isinstance(value, RecurrenceType):
        return value
    if value is None or (isinstance(value, str) and not value.strip()):
        return RecurrenceType.NONE
    if isinstance(value, str):
        try:
            return RecurrenceType(value.strip().lower())
        except ValueError:
            return None
    return None


# Statuses that occupy capacity
ACTIVE_STATUSES = frozenset(
    {
        AppointmentStatus.BOOKED,
        AppointmentStatus.PENDING_CONFIRMATION,
        AppointmentStatus.RESCHEDULED,
    }
)

TERMINAL_STATUSES = frozenset({AppointmentStatus.CANCELLED})

# Statuses a reschedule may start from
RESCHEDULABLE_STATUSES = ACTIVE_STATUSES


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Customer(Base):
    __tablename__ = "customers"
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str | None] = mapped_column(String(120), nullable=True)
    phone_number: Mapped[str | None] = mapped_column(String(32), nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class Service(Base):
    __tablename__ = "services"
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(200))
    # JSON document with ServiceRules overrides (camelCase or snake_case keys)
    scheduling_rules: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, default=_utcnow)


class Appointment(Base):
    __tablename__ = "appointments"
    __table_args__ = (
        Index("ix_appointments_date_status", "date", "status"),
        Index("ix_appointments_customer_status", "customer_id", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    customer_id: Mapped[str] = mapped_column(String(64))
    service_id: Mapped[str] = mapped_column(String(64))
    # Business-local literals, never converted between timezones
    date: Mapped[str] = mapped_column(String(10))
    time: Mapped[str] = mapped_column(String(5))
    branch_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    branch: Mapped[str | None] = mapped_column(String(200), nullable=True)
    staff_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    status: Mapped[AppointmentStatus] = mapped_column(
        Enum(
            AppointmentStatus,
            name="appointment_status",
            values_callable=lambda e: [m.value for m in e],
            native_enum=False,
            length=32,
        ),
        default=AppointmentStatus.BOOKED,
    )
    recurrence_type: Mapped[RecurrenceType] = mapped_column(
        Enum(
            RecurrenceType,
            name="recurrence_type",
            values_callable=lambda e: [m.value for m in e],
            native_enum=False,
            length=16,
        ),
        default=RecurrenceType.NONE,
    )
    recurrence_count: Mapped[int] = mapped_column(Integer, default=1)
    # Shared by every occurrence created from one recurring request
    series_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    # "YYYY-MM-DD HH:MM" of the slot held before the last reschedule
    rescheduled_from: Mapped[str | None] = mapped_column(String(16), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class Setting(Base):
    __tablename__ = "settings"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    key: Mapped[str] = mapped_column(String(120), unique=True)
    # JSON-encoded value
    value: Mapped[str] = mapped_column(Text)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, nullable=False)


__all__ = [
    "Base",
    "Customer",
    "Service",
    "Appointment",
    "AppointmentStatus",
    "RecurrenceType",
    "Setting",
    "normalize_appointment_status",
    "normalize_recurrence_type",
    "ACTIVE_STATUSES",
    "TERMINAL_STATUSES",
    "RESCHEDULABLE_STATUSES",
]
