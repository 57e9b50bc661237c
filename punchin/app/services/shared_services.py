"""Helpers shared by the quote, booking and sync services.

Time helpers normalise everything to aware UTC, money helpers keep amounts
as ``Decimal`` quantized to cents, and the document helpers convert bookings
to and from the JSON snapshots stored in the change outbox and accepted by
the trigger endpoint.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Mapping

from punchin.app.domain.entities import (
    ApprovalState,
    Booking,
    BookingPricing,
    BookingStatus,
    normalize_booking_status,
)
from punchin.config import get_default_currency

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


def utc_now() -> datetime:
    """Return current time as an aware UTC datetime."""
    return datetime.now(UTC)


def ensure_utc(dt: datetime | None) -> datetime | None:
    """Convert given datetime to an aware UTC datetime.

    If `dt` is naive, interpret it as UTC (do not guess local timezone).
    Returns None when `dt` is None.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def parse_datetime(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    return ensure_utc(datetime.fromisoformat(str(value).replace("Z", "+00:00")))


def minutes_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 60


# ---------------------------------------------------------------------------
# Money
# ---------------------------------------------------------------------------

def quantize_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_decimal(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        logger.warning("Ignoring malformed amount: %r", value)
        return None


def money_to_cents(value: Decimal | None) -> int | None:
    if value is None:
        return None
    return int(quantize_money(value) * 100)


def cents_to_money(cents: int | None) -> Decimal | None:
    if cents is None:
        return None
    return quantize_money(Decimal(int(cents)) / 100)


def format_money(amount: Decimal | None, currency: str | None = None) -> str:
    """Format an amount like '120.00 USD'."""
    currency = currency or get_default_currency()
    if amount is None:
        return f"0.00 {currency}"
    return f"{quantize_money(amount):.2f} {currency}"


# ---------------------------------------------------------------------------
# Booking documents
# ---------------------------------------------------------------------------

def _iso(dt: datetime | None) -> str | None:
    return ensure_utc(dt).isoformat() if dt is not None else None


def pricing_to_document(pricing: BookingPricing | None) -> dict[str, Any] | None:
    if pricing is None:
        return None
    return {
        "hourly_rate": str(pricing.hourly_rate),
        "total": str(pricing.total),
        "currency": pricing.currency,
    }


def pricing_from_document(data: Mapping[str, Any] | None) -> BookingPricing | None:
    if not data:
        return None
    hourly = to_decimal(data.get("hourly_rate"))
    total = to_decimal(data.get("total"))
    if hourly is None or total is None:
        return None
    return BookingPricing(hourly_rate=hourly, total=total, currency=str(data.get("currency") or "USD"))


def approval_to_document(approval: ApprovalState) -> dict[str, Any]:
    return {
        "requires_studio_approval": approval.requires_studio_approval,
        "requires_engineer_approval": approval.requires_engineer_approval,
        "resolved_by": approval.resolved_by,
        "resolved_at": _iso(approval.resolved_at),
    }


def approval_from_document(data: Mapping[str, Any] | None) -> ApprovalState:
    data = data or {}
    return ApprovalState(
        requires_studio_approval=bool(data.get("requires_studio_approval", True)),
        requires_engineer_approval=bool(data.get("requires_engineer_approval", True)),
        resolved_by=data.get("resolved_by"),
        resolved_at=parse_datetime(data.get("resolved_at")),
    )


def booking_to_document(booking: Booking) -> dict[str, Any]:
    """JSON-safe snapshot of a booking."""
    return {
        "id": booking.id,
        "artist_id": booking.artist_id,
        "engineer_id": booking.engineer_id,
        "studio_id": booking.studio_id,
        "room_id": booking.room_id,
        "status": booking.status.value,
        "requested_start": _iso(booking.requested_start),
        "requested_end": _iso(booking.requested_end),
        "confirmed_start": _iso(booking.confirmed_start),
        "confirmed_end": _iso(booking.confirmed_end),
        "duration_minutes": booking.duration_minutes,
        "pricing": pricing_to_document(booking.pricing),
        "instant_book": booking.instant_book,
        "approval": approval_to_document(booking.approval),
        "notes": booking.notes,
        "created_at": _iso(booking.created_at),
        "updated_at": _iso(booking.updated_at),
    }


def booking_from_document(data: Mapping[str, Any] | None, booking_id: str | None = None) -> Booking | None:
    """Rebuild a booking from a snapshot; ``None`` stands for a missing document.

    Raises ValueError when required fields are absent or malformed.
    """
    if not data:
        return None
    status = normalize_booking_status(data.get("status"))
    if status is None:
        raise ValueError(f"unknown booking status: {data.get('status')!r}")
    requested_start = parse_datetime(data.get("requested_start"))
    requested_end = parse_datetime(data.get("requested_end"))
    if requested_start is None or requested_end is None:
        raise ValueError("booking snapshot is missing requested times")
    booking = Booking(
        id=str(data.get("id") or booking_id or ""),
        artist_id=str(data.get("artist_id") or ""),
        engineer_id=str(data.get("engineer_id") or ""),
        studio_id=str(data.get("studio_id") or ""),
        room_id=str(data.get("room_id") or ""),
        requested_start=requested_start,
        requested_end=requested_end,
        duration_minutes=int(data.get("duration_minutes") or 0),
        status=status,
        confirmed_start=parse_datetime(data.get("confirmed_start")),
        confirmed_end=parse_datetime(data.get("confirmed_end")),
        pricing=pricing_from_document(data.get("pricing")),
        instant_book=bool(data.get("instant_book", False)),
        approval=approval_from_document(data.get("approval")),
        notes=str(data.get("notes") or ""),
    )
    created_at = parse_datetime(data.get("created_at"))
    updated_at = parse_datetime(data.get("updated_at"))
    if created_at is not None:
        booking.created_at = created_at
    if updated_at is not None:
        booking.updated_at = updated_at
    return booking


def status_label(status: BookingStatus | str) -> str:
    normalized = normalize_booking_status(status)
    return normalized.value if normalized is not None else str(status)


__all__ = [
    "utc_now",
    "ensure_utc",
    "parse_datetime",
    "minutes_between",
    "quantize_money",
    "to_decimal",
    "money_to_cents",
    "cents_to_money",
    "format_money",
    "pricing_to_document",
    "pricing_from_document",
    "approval_to_document",
    "approval_from_document",
    "booking_to_document",
    "booking_from_document",
    "status_label",
]
