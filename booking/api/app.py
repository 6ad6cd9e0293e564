"""FastAPI facade for the booking form and the chat engine.

Thin HTTP layer over ``BookingOrchestrator``: request models in, result
dicts out. Business rejections are returned with 409, validation faults
with 422 and storage faults with 503.
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from fastapi import Depends, FastAPI, Query, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from booking.app.core.constants import SUGGESTED_SLOTS_LIMIT, SUGGESTION_SEARCH_DAYS
from booking.app.core.db import dispose_engine, init_db
from booking.app.core.errors import InvalidBookingRequest, PersistenceError
from booking.app.core.logger import setup_logging
from booking.app.services.booking_services import (
    BookingOrchestrator,
    BookRequest,
    CancelRequest,
    RescheduleRequest,
)
from booking.app.services.chat_dispatch import ScheduleIntent, dispatch_intent
from booking.app.services.repositories import AppointmentRepo
from booking.app.services.settings_repo import SettingsRepo
from booking.config import get_setting

logger = logging.getLogger(__name__)

ALLOW_ALL_ORIGINS = os.getenv("API_ALLOW_ALL_ORIGINS", "false").lower() in {"1", "true", "yes"}
ALLOWED_ORIGINS = [o.strip() for o in os.getenv("API_ORIGINS", "").split(",") if o.strip()]
INIT_DB_ON_STARTUP = os.getenv("API_INIT_DB", "true").lower() in {"1", "true", "yes"}


# ---------------------------------------------------------------------------
# Request / response models
# ---------------------------------------------------------------------------

class BookingIn(BaseModel):
    customer_id: str = Field(..., min_length=1)
    service_id: str = Field(..., min_length=1)
    date: str
    time: str
    branch_id: Optional[str] = None
    branch: Optional[str] = None
    staff_id: Optional[str] = None
    recurrence_type: Optional[str] = None
    recurrence_count: int = 1
    notes: Optional[str] = None


class RescheduleIn(BaseModel):
    new_date: str
    new_time: str
    customer_id: Optional[str] = None


class CancelIn(BaseModel):
    customer_id: Optional[str] = None


class CustomerIn(BaseModel):
    id: str = Field(..., min_length=1)
    name: Optional[str] = None
    phone_number: Optional[str] = None


class AppointmentDetailsIn(BaseModel):
    service: Optional[str] = None
    date: Optional[str] = None
    time: Optional[str] = None
    branch: Optional[str] = None
    notes: Optional[str] = None


class ChatIntentIn(BaseModel):
    customer_id: str = Field(..., min_length=1)
    intent: str
    appointment_details: Optional[AppointmentDetailsIn] = Field(default=None, alias="appointmentDetails")
    appointment_id: Optional[int] = Field(default=None, alias="originalAppointmentIdToModify")
    message: Optional[str] = Field(default=None, alias="confirmationMessage")

    model_config = {"populate_by_name": True}


class AvailabilityOut(BaseModel):
    available: bool
    reason: Optional[str] = None
    concurrent: int = 0
    capacity: int = 0
    suggested_slots: list[dict[str, Any]] = Field(default_factory=list, serialization_alias="suggestedSlots")


class ChatReplyOut(BaseModel):
    text: str
    intent: str
    appointment: Optional[dict[str, Any]] = None
    suggested_slots: list[dict[str, Any]] = Field(default_factory=list, serialization_alias="suggestedSlots")


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

def get_repo() -> AppointmentRepo:
    return AppointmentRepo()


def get_settings_repo() -> SettingsRepo:
    return SettingsRepo()


def get_orchestrator(repo: AppointmentRepo = Depends(get_repo)) -> BookingOrchestrator:
    return BookingOrchestrator(
        repo,
        suggestion_limit=int(get_setting("suggested_slots_limit", SUGGESTED_SLOTS_LIMIT)),
        suggestion_days=int(get_setting("suggestion_search_days", SUGGESTION_SEARCH_DAYS)),
    )


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    setup_logging()
    if INIT_DB_ON_STARTUP:
        await init_db()
    logger.info("Booking API started")
    try:
        yield
    finally:
        await dispose_engine()


app = FastAPI(title="Booking API", version="0.1.0", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if ALLOW_ALL_ORIGINS else ALLOWED_ORIGINS,
    allow_credentials=not ALLOW_ALL_ORIGINS,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(InvalidBookingRequest)
async def _invalid_request_handler(_: Request, exc: InvalidBookingRequest) -> JSONResponse:
    return JSONResponse(status_code=422, content={"detail": exc.code})


@app.exception_handler(PersistenceError)
async def _persistence_error_handler(request: Request, exc: PersistenceError) -> JSONResponse:
    logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    content: dict[str, Any] = {"detail": "storage_unavailable"}
    if exc.committed:
        content["committed"] = [r.to_dict() for r in exc.committed]
    return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=content)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}


@app.get("/availability", response_model=AvailabilityOut, response_model_by_alias=True)
async def availability(
    date: str = Query(...),
    time: str = Query(...),
    service_id: str = Query(...),
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
    settings: SettingsRepo = Depends(get_settings_repo),
) -> AvailabilityOut:
    rules = await settings.load_rule_set()
    result = await orchestrator.check_availability(date, time, service_id, rules)
    return AvailabilityOut(
        available=result.is_available,
        reason=result.reason.value if result.reason else None,
        concurrent=result.concurrent_count,
        capacity=result.capacity,
        suggested_slots=[s.to_dict() for s in result.suggested_slots],
    )


@app.post("/customers", status_code=status.HTTP_201_CREATED)
async def create_customer(payload: CustomerIn, repo: AppointmentRepo = Depends(get_repo)) -> dict[str, str]:
    customer_id = await repo.ensure_customer(payload.id, payload.name, payload.phone_number)
    return {"id": customer_id}


@app.post("/appointments")
async def create_appointment(
    payload: BookingIn,
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
    settings: SettingsRepo = Depends(get_settings_repo),
) -> JSONResponse:
    rules = await settings.load_rule_set()
    templates = await settings.load_templates()
    result = await orchestrator.book(
        BookRequest(
            customer_id=payload.customer_id,
            service_id=payload.service_id,
            date=payload.date,
            time=payload.time,
            branch_id=payload.branch_id,
            branch=payload.branch,
            staff_id=payload.staff_id,
            recurrence_type=payload.recurrence_type,
            recurrence_count=payload.recurrence_count,
            notes=payload.notes,
        ),
        rules,
        templates,
    )
    code = status.HTTP_201_CREATED if result.success else status.HTTP_409_CONFLICT
    return JSONResponse(status_code=code, content=result.to_dict())


@app.post("/appointments/{appointment_id}/reschedule")
async def reschedule_appointment(
    appointment_id: int,
    payload: RescheduleIn,
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
    settings: SettingsRepo = Depends(get_settings_repo),
) -> JSONResponse:
    rules = await settings.load_rule_set()
    templates = await settings.load_templates()
    result = await orchestrator.reschedule(
        RescheduleRequest(appointment_id, payload.new_date, payload.new_time, customer_id=payload.customer_id),
        rules,
        templates,
    )
    code = status.HTTP_200_OK if result.success else status.HTTP_409_CONFLICT
    return JSONResponse(status_code=code, content=result.to_dict())


@app.post("/appointments/{appointment_id}/cancel")
async def cancel_appointment(
    appointment_id: int,
    payload: CancelIn | None = None,
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
    settings: SettingsRepo = Depends(get_settings_repo),
) -> dict[str, Any]:
    rules = await settings.load_rule_set()
    templates = await settings.load_templates()
    customer_id = payload.customer_id if payload else None
    result = await orchestrator.cancel(CancelRequest(appointment_id, customer_id=customer_id), templates, rules=rules)
    return result.to_dict()


@app.get("/customers/{customer_id}/appointments")
async def customer_appointments(
    customer_id: str,
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
) -> list[dict[str, Any]]:
    return [a.to_dict() for a in await orchestrator.list_customer_appointments(customer_id)]


@app.post("/chat/intents", response_model=ChatReplyOut, response_model_by_alias=True)
async def chat_intent(
    payload: ChatIntentIn,
    orchestrator: BookingOrchestrator = Depends(get_orchestrator),
    settings: SettingsRepo = Depends(get_settings_repo),
) -> ChatReplyOut:
    details = payload.appointment_details or AppointmentDetailsIn()
    intent = ScheduleIntent(
        intent=payload.intent,
        service=details.service,
        date=details.date,
        time=details.time,
        branch=details.branch,
        notes=details.notes,
        appointment_id=payload.appointment_id,
        message=payload.message,
    )
    rules = await settings.load_rule_set()
    templates = await settings.load_templates()
    reply = await dispatch_intent(intent, payload.customer_id, orchestrator, rules, templates)
    return ChatReplyOut(
        text=reply.text,
        intent=reply.intent,
        appointment=reply.appointment.to_dict() if reply.appointment else None,
        suggested_slots=[s.to_dict() for s in reply.suggested_slots],
    )


def get_app() -> FastAPI:
    """Exported factory for uvicorn or tests."""
    return app
