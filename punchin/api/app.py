"""FastAPI facade for the booking pipeline.

Participants quote, submit and manage bookings through ``/api/*`` with a
bearer JWT whose ``sub`` is their user id. An external event runtime can
push booking document writes to ``/triggers/bookings/{booking_id}``,
authenticated with a shared secret header.
"""

from __future__ import annotations

import hmac
import logging
from datetime import UTC, datetime, timedelta
from functools import wraps
from typing import Any, Dict, Optional

import jwt
from fastapi import Depends, FastAPI, Header, HTTPException, Query, status
from pydantic import BaseModel

from punchin.app.core import constants
from punchin.app.core.store import BookingStore, SqlBookingStore
from punchin.app.domain.entities import Booking, BookingRequestInput, ParticipantRole
from punchin.app.domain.errors import BookingError, NoRoomAvailable, StudioNotFound
from punchin.app.services.alert_services import BookingAlertService
from punchin.app.services.booking_services import BookingService
from punchin.app.services.quote_services import Quote
from punchin.app.services.shared_services import booking_from_document
from punchin.app.services.sync_services import AvailabilitySynchronizer

logger = logging.getLogger(__name__)

# JWT settings
JWT_SECRET = constants.API_JWT_SECRET
JWT_ALGO = constants.API_JWT_ALGORITHM
JWT_TTL_SECONDS = 3600
TRIGGER_TOKEN = constants.TRIGGER_TOKEN


class Principal(BaseModel):
    user_id: str


class PricingOut(BaseModel):
    hourly_rate: str
    total: str
    currency: str


class QuoteRequest(BaseModel):
    studio_id: str
    engineer_id: str
    room_id: Optional[str] = None
    start: datetime
    duration_minutes: int
    notes: str = ""


class QuoteResponse(BaseModel):
    ok: bool
    error: Optional[str] = None
    message: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    duration_minutes: Optional[int] = None
    room_id: Optional[str] = None
    pricing: Optional[PricingOut] = None
    is_instant: Optional[bool] = None
    instant_decision: Optional[str] = None
    requires_studio_approval: Optional[bool] = None
    requires_engineer_approval: Optional[bool] = None


class BookingOut(BaseModel):
    id: str
    status: str
    artist_id: str
    engineer_id: str
    studio_id: str
    room_id: str
    requested_start: datetime
    requested_end: datetime
    confirmed_start: Optional[datetime] = None
    confirmed_end: Optional[datetime] = None
    duration_minutes: int
    pricing: Optional[PricingOut] = None
    instant_book: bool = False
    requires_studio_approval: bool = False
    requires_engineer_approval: bool = False
    notes: str = ""
    created_at: datetime
    updated_at: datetime


class BookingResponse(BaseModel):
    ok: bool
    error: Optional[str] = None
    message: Optional[str] = None
    booking: Optional[BookingOut] = None


class StatusRequest(BaseModel):
    status: str


class RescheduleRequest(BaseModel):
    start: datetime
    duration_minutes: int


class AlertOut(BaseModel):
    id: str
    title: str
    message: str
    category: str
    deeplink: Optional[str] = None
    is_read: bool = False
    created_at: datetime


class TriggerPayload(BaseModel):
    before: Optional[Dict[str, Any]] = None
    after: Optional[Dict[str, Any]] = None


class TriggerResponse(BaseModel):
    ok: bool
    action: str


# ---------------------------------------------------------------------------
# Error handling helpers
# ---------------------------------------------------------------------------

def booking_error_handler(response_cls: type[BaseModel], default_error: str):
    """Decorator to de-duplicate try/except in booking endpoints.

    - Passes through FastAPI `HTTPException` untouched.
    - Converts `BookingError` to ``response_cls(ok=False, error=<code>, message=<text>)``.
    - Converts other `ValueError` to the default code without leaking its text.
    - Logs unexpected exceptions and re-raises them.
    """

    def decorator(func):
        @wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except HTTPException:
                raise
            except BookingError as exc:
                logger.info("%s rejected: %s", func.__name__, exc.code)
                return response_cls(ok=False, error=exc.code, message=exc.user_message)
            except ValueError as exc:
                logger.info("%s invalid input: %s", func.__name__, exc)
                return response_cls(ok=False, error=default_error, message="The request is invalid.")
            except Exception as exc:
                logger.exception("%s failed: %s", func.__name__, exc)
                raise

        return wrapper

    return decorator


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------

def issue_jwt(user_id: str, ttl_seconds: int | None = None) -> str:
    if not JWT_SECRET:
        raise RuntimeError("API_JWT_SECRET is not set")
    payload = {
        "sub": str(user_id),
        "exp": datetime.now(UTC) + timedelta(seconds=ttl_seconds or JWT_TTL_SECONDS),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGO)


def _decode_token(token: str) -> Principal:
    if not JWT_SECRET:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="auth_not_configured")
    try:
        data = jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGO])
    except jwt.ExpiredSignatureError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="token_expired") from exc
    except jwt.InvalidTokenError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_token") from exc
    sub = data.get("sub")
    if not sub:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="missing_subject")
    return Principal(user_id=str(sub))


async def get_current_principal(authorization: str | None = Header(default=None)) -> Principal:
    if not authorization:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="missing_authorization")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_authorization_header")
    return _decode_token(token)


def _check_trigger_token(token: str | None) -> None:
    if not TRIGGER_TOKEN:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="trigger_not_configured")
    if not token or not hmac.compare_digest(token.encode("utf-8"), TRIGGER_TOKEN.encode("utf-8")):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="invalid_trigger_token")


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------

_store: BookingStore | None = None


def get_store() -> BookingStore:
    """Process-wide SQL store; tests override this dependency."""
    global _store
    if _store is None:
        from punchin.app.core.db import get_session_factory

        _store = SqlBookingStore(get_session_factory())
    return _store


def get_booking_service(store: BookingStore = Depends(get_store)) -> BookingService:
    return BookingService(store)


def get_synchronizer(store: BookingStore = Depends(get_store)) -> AvailabilitySynchronizer:
    return AvailabilitySynchronizer(store, BookingAlertService(store))


# ---------------------------------------------------------------------------
# Serialization
# ---------------------------------------------------------------------------

def _pricing_out(pricing) -> PricingOut | None:
    if pricing is None:
        return None
    return PricingOut(hourly_rate=str(pricing.hourly_rate), total=str(pricing.total), currency=pricing.currency)


def _quote_out(quote: Quote) -> QuoteResponse:
    return QuoteResponse(
        ok=True,
        start=quote.start_date,
        end=quote.end_date,
        duration_minutes=quote.duration_minutes,
        room_id=quote.room.id,
        pricing=_pricing_out(quote.pricing),
        is_instant=quote.is_instant,
        instant_decision=quote.instant_decision.value,
        requires_studio_approval=quote.approval.requires_studio_approval,
        requires_engineer_approval=quote.approval.requires_engineer_approval,
    )


def _booking_out(booking: Booking) -> BookingOut:
    return BookingOut(
        id=booking.id,
        status=booking.status.value,
        artist_id=booking.artist_id,
        engineer_id=booking.engineer_id,
        studio_id=booking.studio_id,
        room_id=booking.room_id,
        requested_start=booking.requested_start,
        requested_end=booking.requested_end,
        confirmed_start=booking.confirmed_start,
        confirmed_end=booking.confirmed_end,
        duration_minutes=booking.duration_minutes,
        pricing=_pricing_out(booking.pricing),
        instant_book=booking.instant_book,
        requires_studio_approval=booking.approval.requires_studio_approval,
        requires_engineer_approval=booking.approval.requires_engineer_approval,
        notes=booking.notes,
        created_at=booking.created_at,
        updated_at=booking.updated_at,
    )


async def _build_request(store: BookingStore, payload: QuoteRequest, artist_id: str) -> BookingRequestInput:
    studio = await store.fetch_studio(payload.studio_id)
    if studio is None:
        raise StudioNotFound(payload.studio_id)
    room = None
    if payload.room_id:
        rooms = await store.fetch_rooms(studio.id)
        room = next((r for r in rooms if r.id == payload.room_id), None)
        if room is None:
            raise NoRoomAvailable("That room does not exist in this studio.")
    return BookingRequestInput(
        artist_id=artist_id,
        studio=studio,
        engineer_id=payload.engineer_id,
        room=room,
        start_date=payload.start,
        duration_minutes=payload.duration_minutes,
        notes=payload.notes,
    )


# ---------------------------------------------------------------------------
# FastAPI app
# ---------------------------------------------------------------------------

app = FastAPI(title="Punch-In Booking API", version="0.1.0")


@app.get("/health")
async def health() -> dict:
    return {"ok": True}


@app.post("/api/quote", response_model=QuoteResponse)
@booking_error_handler(QuoteResponse, "quote_failed")
async def quote_booking(
    payload: QuoteRequest,
    principal: Principal = Depends(get_current_principal),
    store: BookingStore = Depends(get_store),
    service: BookingService = Depends(get_booking_service),
) -> QuoteResponse:
    request = await _build_request(store, payload, principal.user_id)
    return _quote_out(await service.quote(request))


@app.post("/api/bookings", response_model=BookingResponse)
@booking_error_handler(BookingResponse, "booking_failed")
async def submit_booking(
    payload: QuoteRequest,
    principal: Principal = Depends(get_current_principal),
    store: BookingStore = Depends(get_store),
    service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    request = await _build_request(store, payload, principal.user_id)
    booking = await service.submit(request)
    return BookingResponse(ok=True, booking=_booking_out(booking))


@app.get("/api/bookings", response_model=list[BookingOut])
async def list_bookings(
    principal: Principal = Depends(get_current_principal),
    role: str = Query("artist"),
    service: BookingService = Depends(get_booking_service),
) -> list[BookingOut]:
    try:
        participant_role = ParticipantRole(role.strip().lower())
    except ValueError as exc:
        raise HTTPException(status_code=422, detail="invalid_role") from exc
    bookings = await service.fetch_bookings(principal.user_id, participant_role)
    return [_booking_out(b) for b in bookings]


@app.get("/api/bookings/{booking_id}", response_model=BookingResponse)
@booking_error_handler(BookingResponse, "booking_failed")
async def get_booking(
    booking_id: str,
    principal: Principal = Depends(get_current_principal),
    service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    booking = await service.load_booking(booking_id)
    if await service.role_of(booking, principal.user_id) is None:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="forbidden")
    return BookingResponse(ok=True, booking=_booking_out(booking))


@app.post("/api/bookings/{booking_id}/status", response_model=BookingResponse)
@booking_error_handler(BookingResponse, "status_change_failed")
async def change_booking_status(
    booking_id: str,
    payload: StatusRequest,
    principal: Principal = Depends(get_current_principal),
    service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    booking = await service.transition(booking_id, payload.status, principal.user_id)
    return BookingResponse(ok=True, booking=_booking_out(booking))


@app.post("/api/bookings/{booking_id}/reschedule", response_model=BookingResponse)
@booking_error_handler(BookingResponse, "reschedule_failed")
async def reschedule_booking(
    booking_id: str,
    payload: RescheduleRequest,
    principal: Principal = Depends(get_current_principal),
    service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    booking = await service.reschedule(booking_id, principal.user_id, payload.start, payload.duration_minutes)
    return BookingResponse(ok=True, booking=_booking_out(booking))


@app.get("/api/alerts", response_model=list[AlertOut])
async def list_alerts(
    principal: Principal = Depends(get_current_principal),
    store: BookingStore = Depends(get_store),
) -> list[AlertOut]:
    alerts = await store.fetch_alerts(principal.user_id)
    return [
        AlertOut(
            id=a.id,
            title=a.title,
            message=a.message,
            category=a.category,
            deeplink=a.deeplink,
            is_read=a.is_read,
            created_at=a.created_at,
        )
        for a in alerts
    ]


@app.post("/triggers/bookings/{booking_id}", response_model=TriggerResponse)
async def booking_written(
    booking_id: str,
    payload: TriggerPayload,
    x_trigger_token: str | None = Header(default=None, alias="X-Trigger-Token"),
    synchronizer: AvailabilitySynchronizer = Depends(get_synchronizer),
) -> TriggerResponse:
    """Apply one booking document write; failures surface as 5xx so the caller retries."""
    _check_trigger_token(x_trigger_token)
    try:
        before = booking_from_document(payload.before, booking_id)
        after = booking_from_document(payload.after, booking_id)
    except (TypeError, ValueError) as exc:
        raise HTTPException(status_code=422, detail="invalid_booking_document") from exc
    action = await synchronizer.on_booking_document_write(before, after, booking_id)
    return TriggerResponse(ok=True, action=action.value)


def get_app() -> FastAPI:
    """Exported factory for uvicorn or tests."""
    return app
