"""Booking service.

Turns a booking request into a persisted booking and applies later status
changes made by participants (approval, decline, cancellation, completion,
rescheduling). The service only writes booking documents; availability holds
are mirrored from those writes by the synchronizer.
"""

from __future__ import annotations

import logging
from dataclasses import replace
from datetime import datetime, timedelta

from punchin.app.core.store import BookingStore
from punchin.app.domain.entities import (
    ALLOWED_TRANSITIONS,
    ApprovalState,
    Booking,
    BookingRequestInput,
    BookingStatus,
    ParticipantRole,
    Studio,
    normalize_booking_status,
)
from punchin.app.domain.errors import (
    BookingNotFound,
    InvalidTransition,
    NoRoomAvailable,
    PermissionDenied,
    StudioNotFound,
)
from punchin.app.services.quote_services import Quote, QuoteEngine, validate_duration
from punchin.app.services.shared_services import ensure_utc, utc_now

logger = logging.getLogger(__name__)


class BookingService:
    def __init__(self, store: BookingStore, quote_engine: QuoteEngine | None = None) -> None:
        self._store = store
        self._quotes = quote_engine or QuoteEngine(store)

    @property
    def quote_engine(self) -> QuoteEngine:
        return self._quotes

    async def quote(self, request: BookingRequestInput) -> Quote:
        return await self._quotes.quote(request)

    async def submit(self, request: BookingRequestInput) -> Booking:
        """Re-quote the request and persist it as a confirmed or pending booking."""
        quote = await self._quotes.quote(request)
        now = utc_now()
        booking = Booking(
            artist_id=request.artist_id,
            engineer_id=request.engineer_id,
            studio_id=request.studio.id,
            room_id=quote.room.id,
            requested_start=quote.start_date,
            requested_end=quote.end_date,
            duration_minutes=quote.duration_minutes,
            status=BookingStatus.CONFIRMED if quote.is_instant else BookingStatus.PENDING,
            confirmed_start=quote.start_date if quote.is_instant else None,
            confirmed_end=quote.end_date if quote.is_instant else None,
            pricing=quote.pricing,
            instant_book=quote.is_instant,
            approval=quote.approval,
            notes=request.notes,
            created_at=now,
            updated_at=now,
        )
        await self._store.create_booking(booking)
        logger.info(
            "Booking %s submitted: status=%s decision=%s",
            booking.id, booking.status.value, quote.instant_decision.value,
        )
        return booking

    async def load_booking(self, booking_id: str) -> Booking:
        booking = await self._store.load_booking(booking_id)
        if booking is None:
            raise BookingNotFound(booking_id)
        return booking

    async def fetch_bookings(self, participant_id: str, role: ParticipantRole | str) -> list[Booking]:
        return await self._store.fetch_bookings(participant_id, ParticipantRole(role))

    async def update_booking(self, booking: Booking) -> Booking:
        booking.updated_at = utc_now()
        await self._store.update_booking(booking)
        return booking

    async def _load_studio(self, studio_id: str) -> Studio:
        studio = await self._store.fetch_studio(studio_id)
        if studio is None:
            raise StudioNotFound(studio_id)
        return studio

    async def role_of(self, booking: Booking, actor_id: str) -> ParticipantRole | None:
        """Role ``actor_id`` plays in ``booking``; engineer wins over studio owner over artist."""
        if actor_id == booking.engineer_id:
            return ParticipantRole.ENGINEER
        studio = await self._store.fetch_studio(booking.studio_id)
        if studio is not None and actor_id == studio.owner_id:
            return ParticipantRole.STUDIO
        if actor_id == booking.artist_id:
            return ParticipantRole.ARTIST
        return None

    async def _require_role(self, booking: Booking, actor_id: str) -> ParticipantRole:
        role = await self.role_of(booking, actor_id)
        if role is None:
            raise PermissionDenied()
        return role

    @staticmethod
    def _check_transition(booking: Booking, target: BookingStatus) -> None:
        if target not in ALLOWED_TRANSITIONS.get(booking.status, frozenset()):
            raise InvalidTransition(booking.status.value, target.value)

    async def approve(self, booking_id: str, actor_id: str) -> Booking:
        """Clear the caller's approval flag; confirm once both flags are cleared."""
        booking = await self.load_booking(booking_id)
        role = await self._require_role(booking, actor_id)
        if role is ParticipantRole.ARTIST:
            raise PermissionDenied("Only the engineer or the studio can approve a booking.")
        self._check_transition(booking, BookingStatus.CONFIRMED)

        now = utc_now()
        approval = replace(booking.approval, resolved_by=actor_id, resolved_at=now)
        if role is ParticipantRole.ENGINEER:
            approval.requires_engineer_approval = False
        else:
            approval.requires_studio_approval = False
        booking.approval = approval
        if approval.is_fully_approved:
            booking.status = BookingStatus.CONFIRMED
            booking.confirmed_start = booking.requested_start
            booking.confirmed_end = booking.requested_end
        await self.update_booking(booking)
        logger.info("Booking %s approved by %s (%s): status=%s", booking.id, actor_id, role.value, booking.status.value)
        return booking

    async def cancel(self, booking_id: str, actor_id: str) -> Booking:
        booking = await self.load_booking(booking_id)
        role = await self._require_role(booking, actor_id)
        self._check_transition(booking, BookingStatus.CANCELLED)
        booking.status = BookingStatus.CANCELLED
        booking.confirmed_start = None
        booking.confirmed_end = None
        booking.approval = ApprovalState(
            requires_studio_approval=False,
            requires_engineer_approval=False,
            resolved_by=actor_id,
            resolved_at=utc_now(),
        )
        await self.update_booking(booking)
        logger.info("Booking %s cancelled by %s (%s)", booking.id, actor_id, role.value)
        return booking

    async def decline(self, booking_id: str, actor_id: str) -> Booking:
        booking = await self.load_booking(booking_id)
        if booking.status is not BookingStatus.PENDING:
            raise InvalidTransition(booking.status.value, BookingStatus.CANCELLED.value)
        role = await self._require_role(booking, actor_id)
        if role is ParticipantRole.ARTIST:
            raise PermissionDenied("Only the engineer or the studio can decline a booking.")
        return await self.cancel(booking_id, actor_id)

    async def complete(self, booking_id: str, actor_id: str) -> Booking:
        booking = await self.load_booking(booking_id)
        role = await self._require_role(booking, actor_id)
        if role is ParticipantRole.ARTIST:
            raise PermissionDenied("Only the engineer or the studio can complete a booking.")
        self._check_transition(booking, BookingStatus.COMPLETED)
        booking.status = BookingStatus.COMPLETED
        await self.update_booking(booking)
        logger.info("Booking %s completed by %s", booking.id, actor_id)
        return booking

    async def transition(self, booking_id: str, status: BookingStatus | str, actor_id: str) -> Booking:
        target = normalize_booking_status(status)
        if target is BookingStatus.CONFIRMED:
            return await self.approve(booking_id, actor_id)
        if target is BookingStatus.CANCELLED:
            return await self.cancel(booking_id, actor_id)
        if target is BookingStatus.COMPLETED:
            return await self.complete(booking_id, actor_id)
        booking = await self.load_booking(booking_id)
        raise InvalidTransition(booking.status.value, str(getattr(target, "value", status)))

    async def validate_reschedule(
        self, booking: Booking, new_start: datetime, duration_minutes: int
    ) -> tuple[datetime, datetime]:
        """Check a new slot for ``booking``, ignoring the holds mirrored from it."""
        validate_duration(duration_minutes)
        studio = await self._load_studio(booking.studio_id)
        rooms = await self._store.fetch_rooms(studio.id)
        room = next((r for r in rooms if r.id == booking.room_id), None)
        if room is None:
            raise NoRoomAvailable("The booked room no longer exists.")
        start = ensure_utc(new_start)
        end = start + timedelta(minutes=duration_minutes)
        await self._quotes.check_slot(studio, booking.engineer_id, room, start, end, ignore_booking_id=booking.id)
        return start, end

    async def reschedule(
        self, booking_id: str, actor_id: str, new_start: datetime, duration_minutes: int
    ) -> Booking:
        """Move a booking to a new slot; it goes back to pending for the other side to approve."""
        booking = await self.load_booking(booking_id)
        role = await self._require_role(booking, actor_id)
        if booking.status.is_terminal:
            raise InvalidTransition(booking.status.value, BookingStatus.PENDING.value)
        start, end = await self.validate_reschedule(booking, new_start, duration_minutes)

        booking.requested_start = start
        booking.requested_end = end
        booking.duration_minutes = duration_minutes
        booking.status = BookingStatus.PENDING
        booking.confirmed_start = None
        booking.confirmed_end = None
        booking.approval = ApprovalState(
            requires_studio_approval=role is not ParticipantRole.STUDIO,
            requires_engineer_approval=role is not ParticipantRole.ENGINEER,
        )
        await self.update_booking(booking)
        logger.info("Booking %s rescheduled by %s to %s", booking.id, actor_id, start.isoformat())
        return booking


__all__ = ["BookingService"]
