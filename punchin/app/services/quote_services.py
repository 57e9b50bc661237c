"""Quote engine.

Validates a prospective booking against duration limits, the studio's rooms
and operating schedule, and the availability calendars of the studio and the
engineer; then prices it and decides whether it can be confirmed instantly.
Quoting never writes anything.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum

from punchin.app.core.store import BookingStore
from punchin.app.domain.entities import (
    ApprovalState,
    AvailabilityEntry,
    BookingPricing,
    BookingRequestInput,
    EngineerSettings,
    Room,
    Studio,
)
from punchin.app.domain.errors import (
    InvalidDuration,
    NoRoomAvailable,
    OutsideOperatingHours,
    SlotUnavailable,
)
from punchin.app.services.shared_services import ensure_utc, quantize_money
from punchin.config import get_default_currency, get_max_session_minutes

logger = logging.getLogger(__name__)


class InstantBookDecision(str, Enum):
    INSTANT = "instant"
    STUDIO_REQUIRES_APPROVAL = "studio_requires_approval"
    NO_ENGINEER_SETTINGS = "no_engineer_settings"
    ENGINEER_NOT_ELIGIBLE = "engineer_not_eligible"
    ENGINEER_STUDIO_RESTRICTED = "engineer_studio_restricted"

    @property
    def is_instant(self) -> bool:
        return self is InstantBookDecision.INSTANT


def resolve_instant_decision(studio: Studio, settings: EngineerSettings | None) -> InstantBookDecision:
    """Instant only when the studio auto-approves and the engineer may instant-book there."""
    if not studio.auto_approve_requests:
        return InstantBookDecision.STUDIO_REQUIRES_APPROVAL
    if settings is None:
        return InstantBookDecision.NO_ENGINEER_SETTINGS
    if not settings.can_instant_book:
        return InstantBookDecision.ENGINEER_NOT_ELIGIBLE
    if not settings.allows_studio(studio.id):
        return InstantBookDecision.ENGINEER_STUDIO_RESTRICTED
    return InstantBookDecision.INSTANT


def approval_for(decision: InstantBookDecision) -> ApprovalState:
    if decision.is_instant:
        return ApprovalState(requires_studio_approval=False, requires_engineer_approval=False)
    return ApprovalState(requires_studio_approval=True, requires_engineer_approval=True)


@dataclass
class Quote:
    start_date: datetime
    end_date: datetime
    duration_minutes: int
    room: Room
    pricing: BookingPricing | None
    is_instant: bool
    approval: ApprovalState
    instant_decision: InstantBookDecision


def validate_duration(duration_minutes: int) -> None:
    max_minutes = get_max_session_minutes()
    if duration_minutes <= 0 or duration_minutes > max_minutes:
        raise InvalidDuration(
            f"Please choose a duration between 1 and {max_minutes} minutes."
        )


def price_for(room: Room, studio: Studio, duration_minutes: int) -> BookingPricing | None:
    rate = room.hourly_rate if room.hourly_rate is not None else studio.hourly_rate
    if rate is None:
        return None
    total = quantize_money(Decimal(rate) * Decimal(duration_minutes) / Decimal(60))
    return BookingPricing(hourly_rate=quantize_money(Decimal(rate)), total=total, currency=get_default_currency())


def _first_conflict(
    entries: list[AvailabilityEntry],
    start: datetime,
    end: datetime,
    room_id: str | None = None,
    ignore_booking_id: str | None = None,
) -> AvailabilityEntry | None:
    for entry in entries:
        if not entry.is_blocking:
            continue
        if ignore_booking_id is not None and entry.source_booking_id == ignore_booking_id:
            continue
        if room_id is not None and entry.room_id not in (None, room_id):
            continue
        if entry.overlaps(start, end):
            return entry
    return None


class QuoteEngine:
    def __init__(self, store: BookingStore) -> None:
        self._store = store

    async def resolve_room(self, studio: Studio, room: Room | None) -> Room:
        if room is not None:
            if room.studio_id != studio.id:
                raise NoRoomAvailable("That room belongs to a different studio.")
            return room
        rooms = await self._store.fetch_rooms(studio.id)
        for candidate in rooms:
            if candidate.is_default:
                return candidate
        raise NoRoomAvailable()

    async def check_slot(
        self,
        studio: Studio,
        engineer_id: str,
        room: Room,
        start: datetime,
        end: datetime,
        ignore_booking_id: str | None = None,
    ) -> None:
        """Raise OutsideOperatingHours or SlotUnavailable when ``[start, end)`` cannot be booked."""
        reason = studio.operating_schedule.closure_reason(start, end)
        if reason is not None:
            raise OutsideOperatingHours(reason)

        studio_entries = await self._store.fetch_availability(studio.id)
        conflict = _first_conflict(studio_entries, start, end, room_id=room.id, ignore_booking_id=ignore_booking_id)
        if conflict is not None:
            logger.debug("Room %s conflicts with entry %s", room.id, conflict.id)
            raise SlotUnavailable("studio", conflict.id)

        engineer_entries = await self._store.fetch_availability(engineer_id)
        conflict = _first_conflict(engineer_entries, start, end, ignore_booking_id=ignore_booking_id)
        if conflict is not None:
            logger.debug("Engineer %s conflicts with entry %s", engineer_id, conflict.id)
            raise SlotUnavailable("engineer", conflict.id)

    async def quote(self, request: BookingRequestInput) -> Quote:
        validate_duration(request.duration_minutes)
        studio = request.studio
        room = await self.resolve_room(studio, request.room)

        start = ensure_utc(request.start_date)
        end = start + timedelta(minutes=request.duration_minutes)
        await self.check_slot(studio, request.engineer_id, room, start, end)

        pricing = price_for(room, studio, request.duration_minutes)
        settings = await self._store.fetch_engineer_settings(request.engineer_id)
        decision = resolve_instant_decision(studio, settings)
        logger.debug(
            "Quote studio=%s room=%s engineer=%s start=%s decision=%s",
            studio.id, room.id, request.engineer_id, start.isoformat(), decision.value,
        )
        return Quote(
            start_date=start,
            end_date=end,
            duration_minutes=request.duration_minutes,
            room=room,
            pricing=pricing,
            is_instant=decision.is_instant,
            approval=approval_for(decision),
            instant_decision=decision,
        )


__all__ = [
    "InstantBookDecision",
    "Quote",
    "QuoteEngine",
    "resolve_instant_decision",
    "approval_for",
    "validate_duration",
    "price_for",
]
