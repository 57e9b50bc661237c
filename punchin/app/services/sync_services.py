"""Availability synchronizer.

Mirrors booking writes into the availability calendars of the studio and the
engineer. Each observed write is a ``(before, after)`` pair of booking
snapshots; ``None`` on either side means the document did not exist.

Handling is idempotent: holds are keyed by booking id under each owner, so
replaying a write converges on the same calendars. A hold that is already
gone counts as removed. Store failures propagate so the write can be retried.
"""

from __future__ import annotations

import logging
from enum import Enum

from punchin.app.core.store import BookingStore
from punchin.app.domain.entities import (
    AvailabilityEntry,
    AvailabilityKind,
    Booking,
    BookingStatus,
    BookingWrite,
)
from punchin.app.services.alert_services import BookingAlertService
from punchin.app.services.shared_services import minutes_between, utc_now
from punchin.config import get_min_hold_minutes

logger = logging.getLogger(__name__)

HOLD_NOTES = "Synced from booking"


class SyncAction(str, Enum):
    UPSERT = "upsert"
    REMOVE = "remove"
    NOOP = "noop"


def placement(booking: Booking) -> tuple[str, str, str]:
    return booking.studio_id, booking.room_id, booking.engineer_id


def hold_owners(booking: Booking) -> tuple[str, str]:
    return booking.studio_id, booking.engineer_id


def plan_sync(before: Booking | None, after: Booking | None) -> SyncAction:
    """Decide what a write means for the mirrored holds."""
    if after is None:
        return SyncAction.REMOVE if before is not None else SyncAction.NOOP
    if before is None:
        return SyncAction.UPSERT if after.status is BookingStatus.CONFIRMED else SyncAction.NOOP
    if (
        before.status is after.status
        and before.times_key() == after.times_key()
        and placement(before) == placement(after)
    ):
        return SyncAction.NOOP
    if after.status is BookingStatus.CONFIRMED:
        return SyncAction.UPSERT
    # cancelled, completed, or back to pending after a reschedule
    return SyncAction.REMOVE


def hold_duration_minutes(booking: Booking) -> int:
    if booking.confirmed_start is not None and booking.confirmed_end is not None:
        return int(round(minutes_between(booking.confirmed_start, booking.confirmed_end)))
    if booking.duration_minutes:
        return int(booking.duration_minutes)
    return max(get_min_hold_minutes(), int(round(minutes_between(booking.effective_start, booking.effective_end))))


def build_holds(booking: Booking, booking_id: str) -> list[AvailabilityEntry]:
    """One hold for the studio calendar and one for the engineer calendar."""
    now = utc_now()
    duration = hold_duration_minutes(booking)
    return [
        AvailabilityEntry(
            id=booking_id,
            owner_id=owner_id,
            kind=AvailabilityKind.BOOKING_HOLD,
            start_date=booking.effective_start,
            end_date=booking.effective_end,
            duration_minutes=duration,
            studio_id=booking.studio_id,
            room_id=booking.room_id,
            engineer_id=booking.engineer_id,
            source_booking_id=booking_id,
            source_updated_at=booking.updated_at,
            created_by=booking.artist_id,
            notes=HOLD_NOTES,
            created_at=booking.created_at,
            updated_at=now,
        )
        for owner_id in hold_owners(booking)
    ]


class AvailabilitySynchronizer:
    def __init__(self, store: BookingStore, alerts: BookingAlertService | None = None) -> None:
        self._store = store
        self._alerts = alerts

    async def _is_stale(self, owner_id: str, booking_id: str, snapshot: Booking) -> bool:
        existing = await self._store.fetch_availability_entry(owner_id, booking_id)
        if existing is None or existing.source_updated_at is None:
            return False
        return snapshot.updated_at < existing.source_updated_at

    async def _upsert_holds(self, booking: Booking, booking_id: str) -> None:
        for hold in build_holds(booking, booking_id):
            if await self._is_stale(hold.owner_id, booking_id, booking):
                logger.info("Skipping stale hold upsert for booking %s (owner=%s)", booking_id, hold.owner_id)
                continue
            await self._store.upsert_availability(hold)

    async def _remove_holds(
        self, booking: Booking, booking_id: str, guard: bool, owners: tuple[str, ...] | None = None
    ) -> None:
        for owner_id in owners or hold_owners(booking):
            if guard and await self._is_stale(owner_id, booking_id, booking):
                logger.info("Skipping stale hold removal for booking %s (owner=%s)", booking_id, owner_id)
                continue
            removed = await self._store.delete_availability(owner_id, booking_id)
            if not removed:
                logger.debug("Hold %s already absent for owner %s", booking_id, owner_id)

    async def on_booking_document_write(
        self, before: Booking | None, after: Booking | None, booking_id: str
    ) -> SyncAction:
        action = plan_sync(before, after)
        if action is SyncAction.UPSERT:
            assert after is not None
            await self._upsert_holds(after, booking_id)
        elif action is SyncAction.REMOVE:
            if after is None:
                assert before is not None
                # the document is gone: remove unconditionally
                await self._remove_holds(before, booking_id, guard=False)
            else:
                await self._remove_holds(after, booking_id, guard=True)
        if action is not SyncAction.NOOP and before is not None and after is not None:
            vacated = tuple(o for o in hold_owners(before) if o not in hold_owners(after))
            if vacated:
                # moved to another studio or engineer
                await self._remove_holds(after, booking_id, guard=True, owners=vacated)
        logger.debug("Booking %s write handled: %s", booking_id, action.value)

        if self._alerts is not None:
            await self._send_alerts(before, after)
        return action

    async def _send_alerts(self, before: Booking | None, after: Booking | None) -> None:
        assert self._alerts is not None
        if after is None:
            if before is not None:
                await self._alerts.send(before, "cancelled")
            return
        if before is None:
            await self._alerts.send(after, "created")
            return
        if before.status is not after.status or before.times_key() != after.times_key():
            await self._alerts.send(after, "updated")

    async def handle(self, write: BookingWrite) -> SyncAction:
        return await self.on_booking_document_write(write.before, write.after, write.booking_id)


__all__ = [
    "HOLD_NOTES",
    "SyncAction",
    "placement",
    "hold_owners",
    "plan_sync",
    "hold_duration_minutes",
    "build_holds",
    "AvailabilitySynchronizer",
]
