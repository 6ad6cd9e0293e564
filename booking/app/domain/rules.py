"""Scheduling rule layers.

Settings are stored as JSON documents (the admin UI writes camelCase keys,
older rows use snake_case), so every layer accepts both spellings through
``from_mapping``. ``None`` on an optional field means "inherit from the next
layer".
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping


def _pick(data: Mapping[str, Any], snake: str, camel: str) -> Any:
    if snake in data:
        return data[snake]
    return data.get(camel)


def _opt_int(value: Any) -> int | None:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _hours(value: Any) -> tuple[str, ...] | None:
    if value is None:
        return None
    if isinstance(value, str):
        value = [v for v in value.replace(";", ",").split(",")]
    return tuple(str(v).strip() for v in value if str(v).strip())


def _weekdays(value: Any) -> frozenset[int] | None:
    if value is None:
        return None
    days = set()
    for v in value:
        day = _opt_int(v)
        if day is not None and 0 <= day <= 6:
            days.add(day)
    return frozenset(days)


def _dates(value: Any) -> frozenset[str] | None:
    if value is None:
        return None
    return frozenset(str(v).strip() for v in value if str(v).strip())


def _day_rules(value: Any) -> dict[str, "SpecificDayRule"] | None:
    if value is None:
        return None
    if isinstance(value, Mapping):
        items: Iterable[Any] = (
            dict(v, date=k) if isinstance(v, Mapping) else v for k, v in value.items()
        )
    else:
        items = value
    rules: dict[str, SpecificDayRule] = {}
    for item in items:
        rule = item if isinstance(item, SpecificDayRule) else SpecificDayRule.from_mapping(item)
        rules[rule.date] = rule
    return rules


@dataclass(frozen=True)
class SpecificDayRule:
    date: str
    is_off: bool = False
    working_hours: tuple[str, ...] | None = None
    number_of_staff: int | None = None
    service_duration_minutes: int | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "SpecificDayRule":
        return cls(
            date=str(data["date"]).strip(),
            is_off=bool(_pick(data, "is_off", "isOff") or False),
            working_hours=_hours(_pick(data, "working_hours", "workingHours")),
            number_of_staff=_opt_int(_pick(data, "number_of_staff", "numberOfStaff")),
            service_duration_minutes=_opt_int(_pick(data, "service_duration_minutes", "serviceDurationMinutes")),
        )


@dataclass(frozen=True)
class ServiceRules:
    """Per-service overrides; every field is optional."""

    number_of_staff: int | None = None
    working_hours: tuple[str, ...] | None = None
    service_duration_minutes: int | None = None
    weekly_off_days: frozenset[int] | None = None
    one_time_off_dates: frozenset[str] | None = None
    specific_day_rules: dict[str, SpecificDayRule] | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "ServiceRules":
        if not data:
            return cls()
        return cls(
            number_of_staff=_opt_int(_pick(data, "number_of_staff", "numberOfStaff")),
            working_hours=_hours(_pick(data, "working_hours", "workingHours")),
            service_duration_minutes=_opt_int(_pick(data, "service_duration_minutes", "serviceDurationMinutes")),
            weekly_off_days=_weekdays(_pick(data, "weekly_off_days", "weeklyOffDays")),
            one_time_off_dates=_dates(_pick(data, "one_time_off_dates", "oneTimeOffDates")),
            specific_day_rules=_day_rules(_pick(data, "specific_day_rules", "specificDayRules")),
        )


@dataclass(frozen=True)
class GlobalSettings:
    """Business-wide scheduling settings.

    Weekdays use ``0 = Sunday .. 6 = Saturday``.
    """

    number_of_staff: int | None = None
    working_hours: tuple[str, ...] = ()
    default_service_duration_minutes: int | None = None
    weekly_off_days: frozenset[int] = frozenset()
    one_time_off_dates: frozenset[str] = frozenset()
    specific_day_rules: dict[str, SpecificDayRule] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "GlobalSettings":
        if not data:
            return cls()
        duration = _pick(data, "default_service_duration_minutes", "defaultServiceDurationMinutes")
        if duration is None:
            duration = _pick(data, "service_duration_minutes", "serviceDurationMinutes")
        return cls(
            number_of_staff=_opt_int(_pick(data, "number_of_staff", "numberOfStaff")),
            working_hours=_hours(_pick(data, "working_hours", "workingHours")) or (),
            default_service_duration_minutes=_opt_int(duration),
            weekly_off_days=_weekdays(_pick(data, "weekly_off_days", "weeklyOffDays")) or frozenset(),
            one_time_off_dates=_dates(_pick(data, "one_time_off_dates", "oneTimeOffDates")) or frozenset(),
            specific_day_rules=_day_rules(_pick(data, "specific_day_rules", "specificDayRules")) or {},
        )


@dataclass(frozen=True)
class EffectiveSchedule:
    working_hours: tuple[str, ...]
    number_of_staff: int
    service_duration_minutes: int
    is_day_off: bool = False


@dataclass(frozen=True)
class RuleSet:
    """Everything the scheduling core reads from the settings collaborator."""

    global_settings: GlobalSettings
    services: Mapping[str, ServiceRules] = field(default_factory=dict)
    service_names: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def empty(cls) -> "RuleSet":
        return cls(GlobalSettings())

    def rules_for(self, service_id: str | None) -> ServiceRules | None:
        if service_id is None:
            return None
        return self.services.get(service_id)

    def has_service(self, service_id: str) -> bool:
        return service_id in self.services

    def service_name(self, service_id: str) -> str:
        return self.service_names.get(service_id) or service_id


__all__ = [
    "SpecificDayRule",
    "ServiceRules",
    "GlobalSettings",
    "EffectiveSchedule",
    "RuleSet",
]
