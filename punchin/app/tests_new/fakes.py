"""In-memory BookingStore and builders shared by the tests."""

from __future__ import annotations

import copy
from datetime import datetime, timedelta
from decimal import Decimal

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
from punchin.app.domain.schedule import OperatingSchedule
from punchin.app.services.shared_services import booking_from_document, booking_to_document, utc_now


class InMemoryStore:
    """Dict-backed store with the same change-outbox behaviour as the SQL store.

    ``fail_on`` holds method names that raise RuntimeError, for failure tests.
    ``calls`` counts invocations per method name.
    """

    def __init__(self) -> None:
        self.studios: dict[str, Studio] = {}
        self.rooms: dict[str, Room] = {}
        self.settings: dict[str, EngineerSettings] = {}
        self.bookings: dict[str, dict] = {}
        self.availability: dict[tuple[str, str], AvailabilityEntry] = {}
        self.alerts: dict[str, Alert] = {}
        self.changes: list[dict] = []
        self.fail_on: set[str] = set()
        self.calls: dict[str, int] = {}

    def _hit(self, name: str) -> None:
        self.calls[name] = self.calls.get(name, 0) + 1
        if name in self.fail_on:
            raise RuntimeError(f"{name} failed")

    def _record(self, booking_id: str, before: dict | None, after: dict | None) -> None:
        self.changes.append(
            {
                "id": len(self.changes) + 1,
                "booking_id": booking_id,
                "before": before,
                "after": after,
                "processed_at": None,
                "attempts": 0,
                "last_error": None,
            }
        )

    async def fetch_studio(self, studio_id):
        self._hit("fetch_studio")
        return copy.deepcopy(self.studios.get(studio_id))

    async def upsert_studio(self, studio):
        self._hit("upsert_studio")
        self.studios[studio.id] = copy.deepcopy(studio)

    async def fetch_rooms(self, studio_id):
        self._hit("fetch_rooms")
        return [copy.deepcopy(r) for r in self.rooms.values() if r.studio_id == studio_id]

    async def upsert_room(self, room):
        self._hit("upsert_room")
        self.rooms[room.id] = copy.deepcopy(room)

    async def fetch_engineer_settings(self, engineer_id):
        self._hit("fetch_engineer_settings")
        return copy.deepcopy(self.settings.get(engineer_id))

    async def save_engineer_settings(self, settings):
        self._hit("save_engineer_settings")
        self.settings[settings.engineer_id] = copy.deepcopy(settings)

    async def create_booking(self, booking):
        self._hit("create_booking")
        doc = booking_to_document(booking)
        self.bookings[booking.id] = doc
        self._record(booking.id, None, copy.deepcopy(doc))

    async def load_booking(self, booking_id):
        self._hit("load_booking")
        return booking_from_document(self.bookings.get(booking_id), booking_id)

    async def update_booking(self, booking):
        self._hit("update_booking")
        before = self.bookings.get(booking.id)
        if before is None:
            raise BookingNotFound(booking.id)
        doc = booking_to_document(booking)
        self.bookings[booking.id] = doc
        self._record(booking.id, copy.deepcopy(before), copy.deepcopy(doc))

    async def delete_booking(self, booking_id):
        self._hit("delete_booking")
        before = self.bookings.pop(booking_id, None)
        if before is None:
            return False
        self._record(booking_id, before, None)
        return True

    async def fetch_bookings(self, participant_id, role):
        self._hit("fetch_bookings")
        role = ParticipantRole(role)
        owned = {s.id for s in self.studios.values() if s.owner_id == participant_id}
        result = []
        for doc in self.bookings.values():
            booking = booking_from_document(doc)
            if role is ParticipantRole.ARTIST and booking.artist_id == participant_id:
                result.append(booking)
            elif role is ParticipantRole.ENGINEER and booking.engineer_id == participant_id:
                result.append(booking)
            elif role is ParticipantRole.STUDIO and (booking.studio_id in owned or booking.studio_id == participant_id):
                result.append(booking)
        return sorted(result, key=lambda b: b.requested_start)

    async def fetch_availability(self, owner_id):
        self._hit("fetch_availability")
        entries = [copy.deepcopy(e) for (owner, _), e in self.availability.items() if owner == owner_id]
        return sorted(entries, key=lambda e: e.start_date)

    async def fetch_availability_entry(self, owner_id, entry_id):
        self._hit("fetch_availability_entry")
        return copy.deepcopy(self.availability.get((owner_id, entry_id)))

    async def upsert_availability(self, entry):
        self._hit("upsert_availability")
        existing = self.availability.get((entry.owner_id, entry.id))
        stored = copy.deepcopy(entry)
        if existing is not None:
            stored.created_at = existing.created_at
        self.availability[(entry.owner_id, entry.id)] = stored

    async def delete_availability(self, owner_id, entry_id):
        self._hit("delete_availability")
        return self.availability.pop((owner_id, entry_id), None) is not None

    async def create_alert(self, alert):
        self._hit("create_alert")
        if alert.id in self.alerts:
            return False
        self.alerts[alert.id] = copy.deepcopy(alert)
        return True

    async def fetch_alerts(self, user_id):
        self._hit("fetch_alerts")
        return sorted(
            (copy.deepcopy(a) for a in self.alerts.values() if a.user_id == user_id),
            key=lambda a: a.created_at,
            reverse=True,
        )

    async def pending_changes(self, limit, max_attempts=None):
        self._hit("pending_changes")
        rows = [
            c for c in self.changes
            if c["processed_at"] is None and (max_attempts is None or c["attempts"] < max_attempts)
        ][:limit]
        return [
            BookingWrite(
                booking_id=c["booking_id"],
                before=booking_from_document(c["before"], c["booking_id"]),
                after=booking_from_document(c["after"], c["booking_id"]),
                change_id=c["id"],
            )
            for c in rows
        ]

    async def mark_change_processed(self, change_id):
        self._hit("mark_change_processed")
        self.changes[change_id - 1]["processed_at"] = utc_now()

    async def mark_change_failed(self, change_id, error):
        self._hit("mark_change_failed")
        change = self.changes[change_id - 1]
        change["attempts"] += 1
        change["last_error"] = error

    # helpers for assertions
    def holds_for(self, booking_id: str) -> dict[str, AvailabilityEntry]:
        return {owner: e for (owner, eid), e in self.availability.items() if eid == booking_id}


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------

def make_studio(
    studio_id: str = "studio-1",
    owner_id: str = "owner-1",
    auto_approve: bool = True,
    schedule: OperatingSchedule | None = None,
    hourly_rate: Decimal | None = None,
) -> Studio:
    return Studio(
        id=studio_id,
        owner_id=owner_id,
        name="Blue Room Studios",
        approved_engineer_ids=["eng-1"],
        operating_schedule=schedule or OperatingSchedule(),
        auto_approve_requests=auto_approve,
        hourly_rate=hourly_rate,
    )


def make_room(
    room_id: str = "room-a",
    studio_id: str = "studio-1",
    is_default: bool = True,
    hourly_rate: Decimal | None = Decimal("60"),
) -> Room:
    return Room(id=room_id, studio_id=studio_id, name=room_id, hourly_rate=hourly_rate, capacity=4, is_default=is_default)


def make_settings(
    engineer_id: str = "eng-1",
    premium: bool = True,
    instant: bool = True,
    main_studio_id: str | None = None,
    allow_other: bool = False,
) -> EngineerSettings:
    return EngineerSettings(
        engineer_id=engineer_id,
        is_premium=premium,
        instant_book_enabled=instant,
        main_studio_id=main_studio_id,
        allow_other_studios=allow_other,
    )


def make_block(
    owner_id: str,
    start: datetime,
    minutes: int,
    room_id: str | None = None,
    kind: AvailabilityKind = AvailabilityKind.MANUAL_BLOCK,
    entry_id: str | None = None,
) -> AvailabilityEntry:
    entry = AvailabilityEntry(
        owner_id=owner_id,
        kind=kind,
        start_date=start,
        end_date=start + timedelta(minutes=minutes),
        room_id=room_id,
        created_by=owner_id,
    )
    if entry_id:
        entry.id = entry_id
    return entry


def make_booking(
    booking_id: str = "bk-1",
    status: BookingStatus = BookingStatus.CONFIRMED,
    start: datetime | None = None,
    minutes: int = 120,
    confirmed: bool = True,
    updated_at: datetime | None = None,
) -> Booking:
    start = start or (utc_now().replace(microsecond=0) + timedelta(days=1))
    end = start + timedelta(minutes=minutes)
    booking = Booking(
        id=booking_id,
        artist_id="artist-1",
        engineer_id="eng-1",
        studio_id="studio-1",
        room_id="room-a",
        requested_start=start,
        requested_end=end,
        duration_minutes=minutes,
        status=status,
        confirmed_start=start if confirmed else None,
        confirmed_end=end if confirmed else None,
    )
    if updated_at is not None:
        booking.updated_at = updated_at
    return booking


async def seed(store: InMemoryStore, studio: Studio | None = None, settings: EngineerSettings | None = None) -> Studio:
    studio = studio or make_studio()
    await store.upsert_studio(studio)
    await store.upsert_room(make_room(studio_id=studio.id))
    await store.save_engineer_settings(settings or make_settings())
    return studio
