"""Confirmation / cancellation message templating.

Supported syntax: ``{{service}}``, ``{{date}}`` (rendered dd/MM/yyyy),
``{{time}}``, ``{{branch}}`` and one conditional block
``{{#if branch}}...{{/if}}``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Mapping

from booking.app.services.shared_services import format_display_date

DEFAULT_BOOKING_TEMPLATE = (
    "Your appointment for {{service}} at {{time}} on {{date}}"
    "{{#if branch}} at {{branch}}{{/if}} has been booked!"
)
DEFAULT_RESCHEDULE_TEMPLATE = (
    "Your appointment for {{service}} has been moved to {{time}} on {{date}}"
    "{{#if branch}} at {{branch}}{{/if}}."
)
DEFAULT_CANCELLATION_TEMPLATE = "Your appointment for {{service}} at {{time}} on {{date}} has been cancelled."

_IF_BRANCH_RE = re.compile(r"\{\{\s*#if\s+branch\s*\}\}(.*?)\{\{\s*/if\s*\}\}", re.DOTALL)
_PLACEHOLDER_RE = re.compile(r"\{\{\s*(service|date|time|branch)\s*\}\}")


@dataclass(frozen=True)
class AppointmentDetails:
    service: str
    date: str
    time: str
    branch: str | None = None


@dataclass(frozen=True)
class MessageTemplates:
    booking: str = DEFAULT_BOOKING_TEMPLATE
    reschedule: str = DEFAULT_RESCHEDULE_TEMPLATE
    cancellation: str = DEFAULT_CANCELLATION_TEMPLATE

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> "MessageTemplates":
        data = data or {}
        return cls(
            booking=data.get("booking") or data.get("successfulBookingMessageTemplate") or DEFAULT_BOOKING_TEMPLATE,
            reschedule=data.get("reschedule") or DEFAULT_RESCHEDULE_TEMPLATE,
            cancellation=data.get("cancellation") or DEFAULT_CANCELLATION_TEMPLATE,
        )


def _details_dict(details: AppointmentDetails | Mapping[str, Any]) -> dict[str, str]:
    if isinstance(details, AppointmentDetails):
        raw: Mapping[str, Any] = {
            "service": details.service,
            "date": details.date,
            "time": details.time,
            "branch": details.branch,
        }
    else:
        raw = details
    return {k: ("" if raw.get(k) is None else str(raw.get(k))) for k in ("service", "date", "time", "branch")}


def render(template: str, details: AppointmentDetails | Mapping[str, Any]) -> str:
    """Substitute placeholders in ``template``. Pure; never raises on bad dates."""
    values = _details_dict(details)
    has_branch = bool(values["branch"].strip())

    text = _IF_BRANCH_RE.sub(lambda m: m.group(1) if has_branch else "", template or "")
    values["date"] = format_display_date(values["date"]) if values["date"] else ""
    return _PLACEHOLDER_RE.sub(lambda m: values[m.group(1)], text)


class ConfirmationRenderer:
    def __init__(self, templates: MessageTemplates | None = None) -> None:
        self.templates = templates or MessageTemplates()

    def render(self, template: str, details: AppointmentDetails | Mapping[str, Any]) -> str:
        return render(template, details)

    def booked(self, details: AppointmentDetails, templates: MessageTemplates | None = None) -> str:
        return render((templates or self.templates).booking, details)

    def rescheduled(self, details: AppointmentDetails, templates: MessageTemplates | None = None) -> str:
        return render((templates or self.templates).reschedule, details)

    def cancelled(self, details: AppointmentDetails, templates: MessageTemplates | None = None) -> str:
        return render((templates or self.templates).cancellation, details)


__all__ = [
    "AppointmentDetails",
    "MessageTemplates",
    "ConfirmationRenderer",
    "render",
    "DEFAULT_BOOKING_TEMPLATE",
    "DEFAULT_RESCHEDULE_TEMPLATE",
    "DEFAULT_CANCELLATION_TEMPLATE",
]
