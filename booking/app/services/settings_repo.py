"""Scheduling settings and message templates stored in the ``settings`` table.

The ``scheduling`` key holds the global rules document; each ``services`` row
carries its own optional ``scheduling_rules`` overrides. When the table has no
scheduling document yet, values from ``booking.config.SETTINGS`` are used.
"""

from __future__ import annotations

import asyncio
import json
import logging
from datetime import UTC, datetime, timedelta
from typing import Any, Awaitable, Mapping, TypeVar

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from booking.app.core.db import get_session_factory
from booking.app.core.errors import handle_db_error
from booking.app.domain.models import Service, Setting
from booking.app.domain.rules import GlobalSettings, RuleSet, ServiceRules
from booking.app.services.confirmation import MessageTemplates
from booking.config import SETTINGS, get_persistence_timeout

logger = logging.getLogger(__name__)

T = TypeVar("T")

SCHEDULING_KEY = "scheduling"
BOOKING_TEMPLATE_KEY = "booking_message_template"
RESCHEDULE_TEMPLATE_KEY = "reschedule_message_template"
CANCELLATION_TEMPLATE_KEY = "cancellation_message_template"

_CACHE_TTL = timedelta(seconds=5)


def _parse_setting_value(raw: Any) -> Any:
    """Decode a Setting.value: JSON when it parses, the raw string otherwise."""
    if raw is None:
        return None
    try:
        return json.loads(str(raw))
    except (TypeError, ValueError):
        return str(raw)


def _fallback_global() -> dict[str, Any]:
    return {
        "number_of_staff": SETTINGS.get("number_of_staff"),
        "working_hours": list(SETTINGS.get("working_hours") or ()),
        "default_service_duration_minutes": SETTINGS.get("default_service_duration_minutes"),
        "weekly_off_days": list(SETTINGS.get("weekly_off_days") or ()),
    }


class SettingsRepo:
    """Reads and writes runtime settings; results are cached for a few seconds."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        *,
        timeout: float | None = None,
    ) -> None:
        self._session_factory = session_factory
        self.timeout = timeout if timeout is not None else get_persistence_timeout()
        self._cache: dict[str, Any] = {}
        self._last_checked: datetime | None = None

    def _factory(self) -> async_sessionmaker[AsyncSession]:
        return self._session_factory or get_session_factory()

    async def _bounded(self, context: str, awaitable: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(awaitable, timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise handle_db_error(e, f"{context} (timeout after {self.timeout}s)") from e
        except SQLAlchemyError as e:
            raise handle_db_error(e, context) from e

    def _cache_fresh(self) -> bool:
        return self._last_checked is not None and (datetime.now(UTC) - self._last_checked) < _CACHE_TTL

    def invalidate(self) -> None:
        self._cache.clear()
        self._last_checked = None

    # ---------------- key/value ---------------- #
    async def load_all(self) -> dict[str, Any]:
        if self._cache_fresh():
            return dict(self._cache)

        async def _load() -> dict[str, Any]:
            async with self._factory()() as session:
                rows = (await session.execute(select(Setting))).scalars().all()
            return {str(r.key): _parse_setting_value(r.value) for r in rows if r.key}

        values = await self._bounded("load settings", _load())
        self._cache = values
        self._last_checked = datetime.now(UTC)
        return dict(values)

    async def get_setting(self, key: str, default: Any = None) -> Any:
        values = await self.load_all()
        value = values.get(str(key))
        return default if value is None else value

    async def update_setting(self, key: str, value: Any) -> None:
        """Persist ``value`` (JSON-encoded) under ``key``."""
        encoded = json.dumps(value, ensure_ascii=False)

        async def _update() -> None:
            async with self._factory()() as session:
                row = await session.scalar(select(Setting).where(Setting.key == str(key)))
                now_ts = datetime.now(UTC)
                if row is not None:
                    row.value = encoded
                    row.updated_at = now_ts
                else:
                    session.add(Setting(key=str(key), value=encoded, updated_at=now_ts))
                await session.commit()

        await self._bounded(f"update setting {key}", _update())
        self.invalidate()
        logger.info("Setting updated: %s", key)

    # ---------------- services ---------------- #
    async def upsert_service(self, service_id: str, name: str, rules: Mapping[str, Any] | None = None) -> None:
        encoded = json.dumps(dict(rules), ensure_ascii=False) if rules is not None else None

        async def _upsert() -> None:
            async with self._factory()() as session:
                row = await session.get(Service, str(service_id))
                if row is None:
                    session.add(Service(id=str(service_id), name=name, scheduling_rules=encoded))
                else:
                    row.name = name
                    row.scheduling_rules = encoded
                await session.commit()

        await self._bounded(f"upsert service {service_id}", _upsert())

    async def _load_services(self) -> list[tuple[str, str, Any]]:
        async def _load() -> list[tuple[str, str, Any]]:
            async with self._factory()() as session:
                rows = (await session.execute(select(Service).order_by(Service.id))).scalars().all()
            return [(r.id, r.name, _parse_setting_value(r.scheduling_rules)) for r in rows]

        return await self._bounded("load services", _load())

    # ---------------- typed views ---------------- #
    async def load_rule_set(self) -> RuleSet:
        stored = await self.get_setting(SCHEDULING_KEY)
        if not isinstance(stored, Mapping):
            if stored is not None:
                logger.warning("Ignoring malformed %r setting: %r", SCHEDULING_KEY, stored)
            stored = _fallback_global()
        global_settings = GlobalSettings.from_mapping(stored)

        services: dict[str, ServiceRules] = {}
        names: dict[str, str] = {}
        for service_id, name, raw_rules in await self._load_services():
            if raw_rules is not None and not isinstance(raw_rules, Mapping):
                logger.warning("Service %s has malformed scheduling rules; using global rules", service_id)
                raw_rules = None
            services[service_id] = ServiceRules.from_mapping(raw_rules)
            names[service_id] = name
        return RuleSet(global_settings, services, names)

    async def load_templates(self) -> MessageTemplates:
        values = await self.load_all()
        return MessageTemplates.from_mapping(
            {
                "booking": values.get(BOOKING_TEMPLATE_KEY),
                "reschedule": values.get(RESCHEDULE_TEMPLATE_KEY),
                "cancellation": values.get(CANCELLATION_TEMPLATE_KEY),
            }
        )


__all__ = [
    "SettingsRepo",
    "SCHEDULING_KEY",
    "BOOKING_TEMPLATE_KEY",
    "RESCHEDULE_TEMPLATE_KEY",
    "CANCELLATION_TEMPLATE_KEY",
]
