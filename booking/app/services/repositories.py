"""Appointment store backed by async SQLAlchemy.

Every call opens a short-lived session, is bounded by the persistence timeout
and converts timeouts / SQLAlchemy errors into ``PersistenceError``.
``lock_date`` serialises check-then-write sequences for one date: an
``asyncio.Lock`` per date inside the process and, on PostgreSQL, a
session-level advisory lock across processes.
"""

from __future__ import annotations

import asyncio
import logging
import weakref
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, Iterable, TypeVar

from sqlalchemy import select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from booking.app.core.constants import ADVISORY_LOCKS_ENABLED
from booking.app.core.db import get_engine, get_session_factory
from booking.app.core.errors import handle_db_error
from booking.app.domain.models import (
    ACTIVE_STATUSES,
    Appointment,
    Customer,
)
from booking.app.domain.records import AppointmentRecord, record_from_row
from booking.config import get_persistence_timeout

logger = logging.getLogger(__name__)

T = TypeVar("T")

# First key of the two-int advisory lock variant, scoping locks to this module
_ADVISORY_NAMESPACE = 7301

_UPDATABLE_FIELDS = frozenset(
    {"date", "time", "status", "branch_id", "branch", "staff_id", "notes", "rescheduled_from"}
)

# Shared by every repo instance in the process; entries vanish once no task holds them
_DATE_LOCKS: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()


def _advisory_key(day: str) -> int:
    digits = "".join(ch for ch in day if ch.isdigit())
    return int(digits) % 2147483647 if digits else 0


class AppointmentRepo:
    """Repository for appointment rows; returns detached ``AppointmentRecord``s."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        *,
        engine: AsyncEngine | None = None,
        timeout: float | None = None,
        advisory_locks: bool = ADVISORY_LOCKS_ENABLED,
    ) -> None:
        self._session_factory = session_factory
        self._engine = engine
        self.timeout = timeout if timeout is not None else get_persistence_timeout()
        self.advisory_locks = advisory_locks

    # ---------------- plumbing ---------------- #
    def _factory(self) -> async_sessionmaker[AsyncSession]:
        return self._session_factory or get_session_factory()

    def _bind(self) -> AsyncEngine:
        if self._engine is not None:
            return self._engine
        bind = self._factory().kw.get("bind")
        return bind if bind is not None else get_engine()

    async def _bounded(self, context: str, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise handle_db_error(e, f"{context} (timeout after {self.timeout}s)") from e
        except SQLAlchemyError as e:
            raise handle_db_error(e, context) from e

    async def _run(self, context: str, fn: Callable[[AsyncSession], Awaitable[T]]) -> T:
        async def _op() -> T:
            async with self._factory()() as session:
                return await fn(session)

        return await self._bounded(context, _op())

    # ---------------- reads ---------------- #
    async def get(self, appointment_id: int) -> AppointmentRecord | None:
        async def _get(session: AsyncSession) -> AppointmentRecord | None:
            row = await session.get(Appointment, int(appointment_id))
            return record_from_row(row) if row is not None else None

        return await self._run(f"get appointment {appointment_id}", _get)

    async def customer_exists(self, customer_id: str) -> bool:
        async def _exists(session: AsyncSession) -> bool:
            found = await session.scalar(select(Customer.id).where(Customer.id == str(customer_id)))
            return found is not None

        return await self._run(f"lookup customer {customer_id}", _exists)

    async def list_active_on_date(self, day: str) -> list[AppointmentRecord]:
        return (await self.list_active_on_dates([day])).get(day, [])

    async def list_active_on_dates(self, days: Iterable[str]) -> dict[str, list[AppointmentRecord]]:
        wanted = sorted({str(d) for d in days})
        if not wanted:
            return {}

        async def _list(session: AsyncSession) -> dict[str, list[AppointmentRecord]]:
            stmt = (
                select(Appointment)
                .where(Appointment.date.in_(wanted), Appointment.status.in_(tuple(ACTIVE_STATUSES)))
                .order_by(Appointment.date, Appointment.time, Appointment.id)
            )
            rows = (await session.execute(stmt)).scalars().all()
            grouped: dict[str, list[AppointmentRecord]] = {d: [] for d in wanted}
            for row in rows:
                grouped.setdefault(row.date, []).append(record_from_row(row))
            return grouped

        return await self._run(f"list active appointments on {wanted[0]}..{wanted[-1]}", _list)

    async def list_active_for_customer(self, customer_id: str) -> list[AppointmentRecord]:
        async def _list(session: AsyncSession) -> list[AppointmentRecord]:
            stmt = (
                select(Appointment)
                .where(
                    Appointment.customer_id == str(customer_id),
                    Appointment.status.in_(tuple(ACTIVE_STATUSES)),
                )
                .order_by(Appointment.date, Appointment.time)
            )
            return [record_from_row(r) for r in (await session.execute(stmt)).scalars().all()]

        return await self._run(f"list appointments of customer {customer_id}", _list)

    # ---------------- writes ---------------- #
    async def insert(self, record: AppointmentRecord) -> AppointmentRecord:
        async def _insert(session: AsyncSession) -> AppointmentRecord:
            row = Appointment(
                customer_id=record.customer_id,
                service_id=record.service_id,
                date=record.date,
                time=record.time,
                status=record.status,
                branch_id=record.branch_id,
                branch=record.branch,
                staff_id=record.staff_id,
                recurrence_type=record.recurrence_type,
                recurrence_count=record.recurrence_count,
                series_id=record.series_id,
                notes=record.notes,
            )
            session.add(row)
            await session.commit()
            await session.refresh(row)
            return record_from_row(row)

        saved = await self._run(f"insert appointment {record.date} {record.time}", _insert)
        logger.info(
            "Appointment #%s created: customer=%s service=%s slot=%s %s",
            saved.id, saved.customer_id, saved.service_id, saved.date, saved.time,
        )
        return saved

    async def update(self, appointment_id: int, **fields: Any) -> AppointmentRecord | None:
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"cannot update fields: {sorted(unknown)}")

        async def _update(session: AsyncSession) -> AppointmentRecord | None:
            row = await session.get(Appointment, int(appointment_id))
            if row is None:
                return None
            for key, value in fields.items():
                setattr(row, key, value)
            await session.commit()
            await session.refresh(row)
            return record_from_row(row)

        return await self._run(f"update appointment {appointment_id}", _update)

    async def ensure_customer(self, customer_id: str, name: str | None = None, phone_number: str | None = None) -> str:
        """Create the customer row when missing; returns the id."""

        async def _ensure(session: AsyncSession) -> str:
            row = await session.get(Customer, str(customer_id))
            if row is None:
                session.add(Customer(id=str(customer_id), name=name, phone_number=phone_number))
                await session.commit()
            return str(customer_id)

        return await self._run(f"ensure customer {customer_id}", _ensure)

    # ---------------- locking ---------------- #
    def _uses_advisory_locks(self) -> bool:
        if not self.advisory_locks:
            return False
        try:
            return self._bind().dialect.name == "postgresql"
        except Exception:
            return False

    @asynccontextmanager
    async def lock_date(self, day: str) -> AsyncIterator[None]:
        """Hold exclusive access to capacity accounting for ``day``."""
        lock = _DATE_LOCKS.get(day)
        if lock is None:
            lock = asyncio.Lock()
            _DATE_LOCKS[day] = lock
        await self._bounded(f"acquire slot lock for {day}", lock.acquire())
        try:
            if not self._uses_advisory_locks():
                yield
                return
            key = _advisory_key(day)
            conn = await self._bounded(f"open lock connection for {day}", self._bind().connect())
            try:
                await self._bounded(
                    f"advisory lock for {day}",
                    conn.execute(text("SELECT pg_advisory_lock(:ns, :k)"), {"ns": _ADVISORY_NAMESPACE, "k": key}),
                )
                try:
                    yield
                finally:
                    await self._bounded(
                        f"advisory unlock for {day}",
                        conn.execute(text("SELECT pg_advisory_unlock(:ns, :k)"), {"ns": _ADVISORY_NAMESPACE, "k": key}),
                    )
            finally:
                await conn.close()
        finally:
            lock.release()


__all__ = ["AppointmentRepo"]
