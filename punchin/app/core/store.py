"""Booking store.

``BookingStore`` is the async key/document interface the services depend on;
``SqlBookingStore`` implements it over async SQLAlchemy. Every booking write
also appends a row to the ``booking_changes`` outbox inside the same
transaction, which is what the availability sync worker consumes.
"""

from __future__ import annotations

import logging
from typing import Protocol

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from punchin.app.core.constants import DEFAULT_SESSION_MINUTES
from punchin.app.domain.entities import (
    Alert,
    AvailabilityEntry,
    AvailabilityKind,
    Booking,
    BookingStatus,
    BookingWrite,
    EngineerSettings,
    ParticipantRole,
    Room,
    Studio,
)
from punchin.app.domain.errors import BookingNotFound
from punchin.app.domain.models import (
    AlertRow,
    AvailabilityEntryRow,
    BookingChangeRow,
    BookingRow,
    EngineerSettingsRow,
    RoomRow,
    StudioRow,
)
from punchin.app.domain.schedule import OperatingSchedule
from punchin.app.services.shared_services import (
    approval_from_document,
    approval_to_document,
    booking_from_document,
    booking_to_document,
    cents_to_money,
    ensure_utc,
    money_to_cents,
    pricing_from_document,
    pricing_to_document,
    utc_now,
)

logger = logging.getLogger(__name__)


class BookingStore(Protocol):
    async def fetch_studio(self, studio_id: str) -> Studio | None: ...

    async def upsert_studio(self, studio: Studio) -> None: ...

    async def fetch_rooms(self, studio_id: str) -> list[Room]: ...

    async def upsert_room(self, room: Room) -> None: ...

    async def fetch_engineer_settings(self, engineer_id: str) -> EngineerSettings | None: ...

    async def save_engineer_settings(self, settings: EngineerSettings) -> None: ...

    async def create_booking(self, booking: Booking) -> None: ...

    async def load_booking(self, booking_id: str) -> Booking | None: ...

    async def update_booking(self, booking: Booking) -> None: ...

    async def delete_booking(self, booking_id: str) -> bool: ...

    async def fetch_bookings(self, participant_id: str, role: ParticipantRole) -> list[Booking]: ...

    async def fetch_availability(self, owner_id: str) -> list[AvailabilityEntry]: ...

    async def fetch_availability_entry(self, owner_id: str, entry_id: str) -> AvailabilityEntry | None: ...

    async def upsert_availability(self, entry: AvailabilityEntry) -> None: ...

    async def delete_availability(self, owner_id: str, entry_id: str) -> bool: ...

    async def create_alert(self, alert: Alert) -> bool: ...

    async def fetch_alerts(self, user_id: str) -> list[Alert]: ...

    async def pending_changes(self, limit: int, max_attempts: int | None = None) -> list[BookingWrite]: ...

    async def mark_change_processed(self, change_id: int) -> None: ...

    async def mark_change_failed(self, change_id: int, error: str) -> None: ...


# ---------------------------------------------------------------------------
# Row <-> entity conversion
# ---------------------------------------------------------------------------

def _studio_from_row(row: StudioRow) -> Studio:
    return Studio(
        id=row.id,
        owner_id=row.owner_id,
        name=row.name or "",
        approved_engineer_ids=list(row.approved_engineer_ids or []),
        operating_schedule=OperatingSchedule.from_dict(row.operating_schedule),
        auto_approve_requests=bool(row.auto_approve_requests),
        hourly_rate=cents_to_money(row.hourly_rate_cents),
    )


def _room_from_row(row: RoomRow) -> Room:
    return Room(
        id=row.id,
        studio_id=row.studio_id,
        name=row.name or "",
        hourly_rate=cents_to_money(row.hourly_rate_cents),
        capacity=row.capacity,
        is_default=bool(row.is_default),
    )


def _settings_from_row(row: EngineerSettingsRow) -> EngineerSettings:
    return EngineerSettings(
        engineer_id=row.engineer_id,
        is_premium=bool(row.is_premium),
        instant_book_enabled=bool(row.instant_book_enabled),
        main_studio_id=row.main_studio_id,
        allow_other_studios=bool(row.allow_other_studios),
        default_session_duration_minutes=int(row.default_session_duration_minutes or DEFAULT_SESSION_MINUTES),
    )


def _booking_from_row(row: BookingRow) -> Booking:
    return Booking(
        id=row.id,
        artist_id=row.artist_id,
        engineer_id=row.engineer_id,
        studio_id=row.studio_id,
        room_id=row.room_id,
        requested_start=ensure_utc(row.requested_start),
        requested_end=ensure_utc(row.requested_end),
        confirmed_start=ensure_utc(row.confirmed_start),
        confirmed_end=ensure_utc(row.confirmed_end),
        duration_minutes=int(row.duration_minutes or 0),
        status=BookingStatus(row.status),
        pricing=pricing_from_document(row.pricing),
        instant_book=bool(row.instant_book),
        approval=approval_from_document(row.approval),
        notes=row.notes or "",
        created_at=ensure_utc(row.created_at) or utc_now(),
        updated_at=ensure_utc(row.updated_at) or utc_now(),
    )


def _apply_booking(row: BookingRow, booking: Booking) -> None:
    row.artist_id = booking.artist_id
    row.engineer_id = booking.engineer_id
    row.studio_id = booking.studio_id
    row.room_id = booking.room_id
    row.status = booking.status.value
    row.requested_start = booking.requested_start
    row.requested_end = booking.requested_end
    row.confirmed_start = booking.confirmed_start
    row.confirmed_end = booking.confirmed_end
    row.duration_minutes = booking.duration_minutes
    row.pricing = pricing_to_document(booking.pricing)
    row.instant_book = booking.instant_book
    row.approval = approval_to_document(booking.approval)
    row.notes = booking.notes
    row.created_at = booking.created_at
    row.updated_at = booking.updated_at


def _entry_from_row(row: AvailabilityEntryRow) -> AvailabilityEntry:
    return AvailabilityEntry(
        id=row.id,
        owner_id=row.owner_id,
        kind=AvailabilityKind(row.kind),
        start_date=ensure_utc(row.start_date),
        end_date=ensure_utc(row.end_date),
        duration_minutes=int(row.duration_minutes or 0),
        studio_id=row.studio_id,
        room_id=row.room_id,
        engineer_id=row.engineer_id,
        source_booking_id=row.source_booking_id,
        source_updated_at=ensure_utc(row.source_updated_at),
        created_by=row.created_by or "",
        notes=row.notes,
        created_at=ensure_utc(row.created_at) or utc_now(),
        updated_at=ensure_utc(row.updated_at) or utc_now(),
    )


def _alert_from_row(row: AlertRow) -> Alert:
    return Alert(
        id=row.id,
        user_id=row.user_id,
        title=row.title,
        message=row.message,
        category=row.category or "booking",
        deeplink=row.deeplink,
        is_read=bool(row.is_read),
        created_at=ensure_utc(row.created_at) or utc_now(),
    )


class SqlBookingStore:
    """BookingStore over an async SQLAlchemy session factory."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    # -- studios / rooms / engineers ---------------------------------------

    async def fetch_studio(self, studio_id: str) -> Studio | None:
        async with self._session_factory() as session:
            row = await session.get(StudioRow, studio_id)
            return _studio_from_row(row) if row is not None else None

    async def upsert_studio(self, studio: Studio) -> None:
        async with self._session_factory() as session:
            row = await session.get(StudioRow, studio.id)
            if row is None:
                row = StudioRow(id=studio.id)
                session.add(row)
            row.owner_id = studio.owner_id
            row.name = studio.name
            row.approved_engineer_ids = list(studio.approved_engineer_ids)
            row.operating_schedule = studio.operating_schedule.to_dict()
            row.auto_approve_requests = studio.auto_approve_requests
            row.hourly_rate_cents = money_to_cents(studio.hourly_rate)
            await session.commit()

    async def fetch_rooms(self, studio_id: str) -> list[Room]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(RoomRow).where(RoomRow.studio_id == studio_id).order_by(RoomRow.id)
            )
            return [_room_from_row(row) for row in result.scalars().all()]

    async def upsert_room(self, room: Room) -> None:
        async with self._session_factory() as session:
            row = await session.get(RoomRow, room.id)
            if row is None:
                row = RoomRow(id=room.id)
                session.add(row)
            row.studio_id = room.studio_id
            row.name = room.name
            row.hourly_rate_cents = money_to_cents(room.hourly_rate)
            row.capacity = room.capacity
            row.is_default = room.is_default
            await session.commit()

    async def fetch_engineer_settings(self, engineer_id: str) -> EngineerSettings | None:
        async with self._session_factory() as session:
            row = await session.get(EngineerSettingsRow, engineer_id)
            return _settings_from_row(row) if row is not None else None

    async def save_engineer_settings(self, settings: EngineerSettings) -> None:
        async with self._session_factory() as session:
            row = await session.get(EngineerSettingsRow, settings.engineer_id)
            if row is None:
                row = EngineerSettingsRow(engineer_id=settings.engineer_id)
                session.add(row)
            row.is_premium = settings.is_premium
            row.instant_book_enabled = settings.instant_book_enabled
            row.main_studio_id = settings.main_studio_id
            row.allow_other_studios = settings.allow_other_studios
            row.default_session_duration_minutes = settings.default_session_duration_minutes
            await session.commit()

    # -- bookings -----------------------------------------------------------

    async def create_booking(self, booking: Booking) -> None:
        async with self._session_factory() as session:
            row = BookingRow(id=booking.id)
            _apply_booking(row, booking)
            session.add(row)
            session.add(BookingChangeRow(booking_id=booking.id, before=None, after=booking_to_document(booking)))
            await session.commit()
        logger.debug("Booking %s created (status=%s)", booking.id, booking.status.value)

    async def load_booking(self, booking_id: str) -> Booking | None:
        async with self._session_factory() as session:
            row = await session.get(BookingRow, booking_id)
            return _booking_from_row(row) if row is not None else None

    async def update_booking(self, booking: Booking) -> None:
        async with self._session_factory() as session:
            row = await session.get(BookingRow, booking.id, with_for_update=True)
            if row is None:
                raise BookingNotFound(booking.id)
            before = booking_to_document(_booking_from_row(row))
            _apply_booking(row, booking)
            session.add(BookingChangeRow(booking_id=booking.id, before=before, after=booking_to_document(booking)))
            await session.commit()
        logger.debug("Booking %s updated (status=%s)", booking.id, booking.status.value)

    async def delete_booking(self, booking_id: str) -> bool:
        async with self._session_factory() as session:
            row = await session.get(BookingRow, booking_id, with_for_update=True)
            if row is None:
                return False
            before = booking_to_document(_booking_from_row(row))
            await session.delete(row)
            session.add(BookingChangeRow(booking_id=booking_id, before=before, after=None))
            await session.commit()
        logger.debug("Booking %s deleted", booking_id)
        return True

    async def fetch_bookings(self, participant_id: str, role: ParticipantRole) -> list[Booking]:
        role = ParticipantRole(role)
        async with self._session_factory() as session:
            stmt = select(BookingRow)
            if role is ParticipantRole.ARTIST:
                stmt = stmt.where(BookingRow.artist_id == participant_id)
            elif role is ParticipantRole.ENGINEER:
                stmt = stmt.where(BookingRow.engineer_id == participant_id)
            else:
                # studio bookings are listed for the studio owner (or by studio id)
                owned = select(StudioRow.id).where(StudioRow.owner_id == participant_id)
                stmt = stmt.where(or_(BookingRow.studio_id.in_(owned), BookingRow.studio_id == participant_id))
            result = await session.execute(stmt.order_by(BookingRow.requested_start))
            return [_booking_from_row(row) for row in result.scalars().all()]

    # -- availability -------------------------------------------------------

    async def fetch_availability(self, owner_id: str) -> list[AvailabilityEntry]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(AvailabilityEntryRow)
                .where(AvailabilityEntryRow.owner_id == owner_id)
                .order_by(AvailabilityEntryRow.start_date)
            )
            return [_entry_from_row(row) for row in result.scalars().all()]

    async def fetch_availability_entry(self, owner_id: str, entry_id: str) -> AvailabilityEntry | None:
        async with self._session_factory() as session:
            row = await session.get(AvailabilityEntryRow, (owner_id, entry_id))
            return _entry_from_row(row) if row is not None else None

    async def upsert_availability(self, entry: AvailabilityEntry) -> None:
        async with self._session_factory() as session:
            row = await session.get(AvailabilityEntryRow, (entry.owner_id, entry.id))
            if row is None:
                row = AvailabilityEntryRow(owner_id=entry.owner_id, id=entry.id, created_at=entry.created_at)
                session.add(row)
            row.kind = AvailabilityKind(entry.kind).value
            row.start_date = entry.start_date
            row.end_date = entry.end_date
            row.duration_minutes = entry.duration_minutes
            row.studio_id = entry.studio_id
            row.room_id = entry.room_id
            row.engineer_id = entry.engineer_id
            row.source_booking_id = entry.source_booking_id
            row.source_updated_at = entry.source_updated_at
            row.created_by = entry.created_by
            row.notes = entry.notes
            row.updated_at = entry.updated_at
            await session.commit()

    async def delete_availability(self, owner_id: str, entry_id: str) -> bool:
        async with self._session_factory() as session:
            row = await session.get(AvailabilityEntryRow, (owner_id, entry_id))
            if row is None:
                return False
            await session.delete(row)
            await session.commit()
            return True

    # -- alerts -------------------------------------------------------------

    async def create_alert(self, alert: Alert) -> bool:
        """Insert an alert unless one with the same id exists; True when written."""
        async with self._session_factory() as session:
            if await session.get(AlertRow, alert.id) is not None:
                return False
            session.add(
                AlertRow(
                    id=alert.id,
                    user_id=alert.user_id,
                    title=alert.title,
                    message=alert.message,
                    category=alert.category,
                    deeplink=alert.deeplink,
                    is_read=alert.is_read,
                    created_at=alert.created_at,
                )
            )
            await session.commit()
            return True

    async def fetch_alerts(self, user_id: str) -> list[Alert]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(AlertRow).where(AlertRow.user_id == user_id).order_by(AlertRow.created_at.desc())
            )
            return [_alert_from_row(row) for row in result.scalars().all()]

    # -- change outbox ------------------------------------------------------

    async def pending_changes(self, limit: int, max_attempts: int | None = None) -> list[BookingWrite]:
        async with self._session_factory() as session:
            stmt = select(BookingChangeRow).where(BookingChangeRow.processed_at.is_(None))
            if max_attempts is not None:
                stmt = stmt.where(BookingChangeRow.attempts < max_attempts)
            result = await session.execute(stmt.order_by(BookingChangeRow.id).limit(max(1, int(limit))))
            rows = result.scalars().all()
        return [
            BookingWrite(
                booking_id=row.booking_id,
                before=booking_from_document(row.before, row.booking_id),
                after=booking_from_document(row.after, row.booking_id),
                change_id=row.id,
            )
            for row in rows
        ]

    async def mark_change_processed(self, change_id: int) -> None:
        async with self._session_factory() as session:
            row = await session.get(BookingChangeRow, change_id)
            if row is None:
                return
            row.processed_at = utc_now()
            row.last_error = None
            await session.commit()

    async def mark_change_failed(self, change_id: int, error: str) -> None:
        async with self._session_factory() as session:
            row = await session.get(BookingChangeRow, change_id)
            if row is None:
                return
            row.attempts = int(row.attempts or 0) + 1
            row.last_error = (error or "")[:1000]
            await session.commit()


__all__ = ["BookingStore", "SqlBookingStore"]
