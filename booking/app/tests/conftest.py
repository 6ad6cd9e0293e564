"""Test configuration to ensure project package import resolution.

Adds the repository root to sys.path so `import booking` works in CI where the
checkout directory may not be on PYTHONPATH by default.
"""

from __future__ import annotations

import asyncio
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Awaitable, Callable, Iterable

import pytest

ROOT = Path(__file__).resolve().parents[3]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from booking.app.core import db  # noqa: E402
from booking.app.core.errors import PersistenceError  # noqa: E402
from booking.app.domain.records import AppointmentRecord  # noqa: E402
from booking.app.domain.rules import GlobalSettings, RuleSet, ServiceRules  # noqa: E402

# 2026-10-20 is a Tuesday, 2026-10-25 a Sunday
TUESDAY = "2026-10-20"
SUNDAY = "2026-10-25"


class InMemoryStore:
    """Appointment store double with the same surface as AppointmentRepo."""

    def __init__(self, customers: Iterable[str] = ()) -> None:
        self.rows: dict[int, AppointmentRecord] = {}
        self.customers = set(customers)
        self.fail_insert_on: set[str] = set()
        self.writes = 0
        self._next_id = 1
        self._locks: dict[str, asyncio.Lock] = {}

    async def get(self, appointment_id: int) -> AppointmentRecord | None:
        return self.rows.get(int(appointment_id))

    async def customer_exists(self, customer_id: str) -> bool:
        return str(customer_id) in self.customers

    async def list_active_on_date(self, day: str) -> list[AppointmentRecord]:
        # Yield so concurrent bookers interleave between read and write
        await asyncio.sleep(0)
        return [r for r in self.rows.values() if r.date == day and r.is_active]

    async def list_active_on_dates(self, days: Iterable[str]) -> dict[str, list[AppointmentRecord]]:
        return {d: await self.list_active_on_date(d) for d in days}

    async def list_active_for_customer(self, customer_id: str) -> list[AppointmentRecord]:
        return [r for r in self.rows.values() if r.customer_id == customer_id and r.is_active]

    async def insert(self, record: AppointmentRecord) -> AppointmentRecord:
        await asyncio.sleep(0)
        if record.date in self.fail_insert_on:
            raise PersistenceError(f"insert appointment {record.date} {record.time}")
        saved = record.with_changes(id=self._next_id)
        self._next_id += 1
        self.rows[saved.id] = saved
        self.writes += 1
        return saved

    async def update(self, appointment_id: int, **fields: Any) -> AppointmentRecord | None:
        current = self.rows.get(int(appointment_id))
        if current is None:
            return None
        updated = current.with_changes(**fields)
        self.rows[updated.id] = updated
        self.writes += 1
        return updated

    def add(self, **fields: Any) -> AppointmentRecord:
        """Seed a row synchronously."""
        fields.setdefault("customer_id", "other")
        fields.setdefault("service_id", "cut")
        record = AppointmentRecord(id=self._next_id, **fields)
        self._next_id += 1
        self.rows[record.id] = record
        return record

    @asynccontextmanager
    async def lock_date(self, day: str) -> AsyncIterator[None]:
        lock = self._locks.setdefault(day, asyncio.Lock())
        async with lock:
            yield


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore(customers={"c1", "c2", "c3", "c4", "c5", "other"})


@pytest.fixture
def make_rules() -> Callable[..., RuleSet]:
    """Rule set factory: staff 1, 09:00-11:00 hourly, 60 minutes, closed on Sundays."""

    def _make(
        *,
        number_of_staff: int | None = 1,
        working_hours: Iterable[str] = ("09:00", "10:00", "11:00"),
        weekly_off_days: Iterable[int] = (0,),
        services: dict[str, ServiceRules] | None = None,
        **extra: Any,
    ) -> RuleSet:
        duration = extra.pop("default_service_duration_minutes", 60)
        settings = GlobalSettings(
            number_of_staff=number_of_staff,
            working_hours=tuple(working_hours),
            default_service_duration_minutes=duration,
            weekly_off_days=frozenset(weekly_off_days),
            **extra,
        )
        if services is None:
            services = {"cut": ServiceRules(), "color": ServiceRules(service_duration_minutes=120)}
        names = {"cut": "Haircut", "color": "Coloring"}
        return RuleSet(settings, services, {k: v for k, v in names.items() if k in services})

    return _make


def _db_runner(url: str) -> Callable[[Callable[[], Awaitable[Any]]], Any]:
    def _run(scenario: Callable[[], Awaitable[Any]]) -> Any:
        async def _main() -> Any:
            db.configure_engine(url)
            await db.init_db()
            try:
                return await scenario()
            finally:
                await db.dispose_engine()

        return asyncio.run(_main())

    return _run


@pytest.fixture
def run_with_db() -> Callable[[Callable[[], Awaitable[Any]]], Any]:
    """Run ``scenario`` on a fresh in-memory SQLite schema inside one event loop."""
    return _db_runner("sqlite+aiosqlite:///:memory:")


@pytest.fixture
def run_with_file_db(tmp_path) -> Callable[[Callable[[], Awaitable[Any]]], Any]:
    """Like ``run_with_db`` but on a file database with a real connection pool."""
    return _db_runner(f"sqlite+aiosqlite:///{tmp_path / 'booking.db'}")
