import asyncio
from datetime import date, timedelta
from decimal import Decimal

import pytest

pytest.importorskip("aiosqlite")

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import NullPool  # noqa: E402

from fakes import make_block, make_booking, make_room, make_settings, make_studio  # noqa: E402
from punchin.app.core.store import SqlBookingStore  # noqa: E402
from punchin.app.domain.entities import (  # noqa: E402
    Alert,
    BookingRequestInput,
    BookingStatus,
    ParticipantRole,
)
from punchin.app.domain.errors import BookingNotFound, SlotUnavailable  # noqa: E402
from punchin.app.domain.models import Base  # noqa: E402
from punchin.app.domain.schedule import OperatingSchedule, RecurringTimeRange, TimeWindow  # noqa: E402
from punchin.app.services.booking_services import BookingService  # noqa: E402
from punchin.app.services.shared_services import utc_now  # noqa: E402
from punchin.app.services.sync_services import AvailabilitySynchronizer  # noqa: E402
from punchin.app.workers.availability_sync import sync_once  # noqa: E402


@pytest.fixture
def sql_store(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'punchin.db'}", poolclass=NullPool)

    async def _create():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(_create())
    yield SqlBookingStore(async_sessionmaker(engine, expire_on_commit=False))
    asyncio.run(engine.dispose())


def test_studio_room_and_settings_round_trip(sql_store):
    schedule = OperatingSchedule(
        timezone="Europe/London",
        recurring_hours=[RecurringTimeRange(0, 600, 480)],
        exceptions={date(2026, 12, 24): [TimeWindow(600, 120)]},
        blackout_dates=[date(2026, 12, 25)],
    )
    studio = make_studio(schedule=schedule, hourly_rate=Decimal("45.50"))
    settings = make_settings(main_studio_id="studio-1")

    async def scenario():
        await sql_store.upsert_studio(studio)
        await sql_store.upsert_room(make_room())
        await sql_store.upsert_room(make_room(room_id="room-b", is_default=False, hourly_rate=None))
        await sql_store.save_engineer_settings(settings)
        return (
            await sql_store.fetch_studio("studio-1"),
            await sql_store.fetch_rooms("studio-1"),
            await sql_store.fetch_engineer_settings("eng-1"),
            await sql_store.fetch_studio("missing"),
        )

    fetched, rooms, fetched_settings, missing = asyncio.run(scenario())
    assert fetched == studio
    assert fetched.hourly_rate == Decimal("45.50")
    assert [r.id for r in rooms] == ["room-a", "room-b"]
    assert rooms[0].hourly_rate == Decimal("60.00")
    assert rooms[1].hourly_rate is None
    assert fetched_settings == settings
    assert missing is None


def test_booking_writes_append_to_outbox(sql_store):
    booking = make_booking()

    async def scenario():
        await sql_store.create_booking(booking)
        loaded = await sql_store.load_booking("bk-1")
        loaded.status = BookingStatus.CANCELLED
        loaded.confirmed_start = loaded.confirmed_end = None
        await sql_store.update_booking(loaded)
        deleted = await sql_store.delete_booking("bk-1")
        deleted_again = await sql_store.delete_booking("bk-1")
        return loaded, deleted, deleted_again, await sql_store.pending_changes(10)

    loaded, deleted, deleted_again, changes = asyncio.run(scenario())
    assert loaded.requested_start == booking.requested_start
    assert loaded.artist_id == "artist-1"
    assert deleted is True and deleted_again is False

    assert [c.change_id for c in changes] == sorted(c.change_id for c in changes)
    created, updated, removed = changes
    assert created.before is None and created.after.status is BookingStatus.CONFIRMED
    assert created.after.confirmed_start == booking.confirmed_start
    assert updated.before.status is BookingStatus.CONFIRMED
    assert updated.after.status is BookingStatus.CANCELLED
    assert removed.before.status is BookingStatus.CANCELLED and removed.after is None


def test_update_of_missing_booking_raises(sql_store):
    with pytest.raises(BookingNotFound):
        asyncio.run(sql_store.update_booking(make_booking(booking_id="ghost")))


def test_outbox_attempts_and_processing(sql_store):
    async def scenario():
        await sql_store.create_booking(make_booking())
        (change,) = await sql_store.pending_changes(10)
        await sql_store.mark_change_failed(change.change_id, "boom")
        await sql_store.mark_change_failed(change.change_id, "boom")
        parked = await sql_store.pending_changes(10, max_attempts=2)
        retried = await sql_store.pending_changes(10, max_attempts=3)
        await sql_store.mark_change_processed(change.change_id)
        return parked, retried, await sql_store.pending_changes(10)

    parked, retried, after = asyncio.run(scenario())
    assert parked == []
    assert len(retried) == 1
    assert after == []


def test_availability_is_keyed_per_owner(sql_store):
    start = utc_now().replace(microsecond=0) + timedelta(days=1)

    async def scenario():
        await sql_store.upsert_availability(make_block("studio-1", start + timedelta(hours=2), 60, entry_id="bk-1"))
        await sql_store.upsert_availability(make_block("eng-1", start, 60, entry_id="bk-1"))
        await sql_store.upsert_availability(make_block("studio-1", start, 30, entry_id="manual"))
        moved = make_block("studio-1", start + timedelta(hours=5), 60, entry_id="bk-1")
        await sql_store.upsert_availability(moved)
        studio_entries = await sql_store.fetch_availability("studio-1")
        removed = await sql_store.delete_availability("eng-1", "bk-1")
        removed_again = await sql_store.delete_availability("eng-1", "bk-1")
        return studio_entries, removed, removed_again, await sql_store.fetch_availability("eng-1")

    studio_entries, removed, removed_again, engineer_entries = asyncio.run(scenario())
    assert [e.id for e in studio_entries] == ["manual", "bk-1"]
    assert studio_entries[1].start_date == start + timedelta(hours=5)
    assert studio_entries[1].duration_minutes == 60
    assert removed is True and removed_again is False
    assert engineer_entries == []


def test_alerts_are_idempotent(sql_store):
    alert = Alert(id="alert-1", user_id="artist-1", title="Booking updated", message="Session confirmed")

    async def scenario():
        first = await sql_store.create_alert(alert)
        second = await sql_store.create_alert(alert)
        return first, second, await sql_store.fetch_alerts("artist-1")

    first, second, alerts = asyncio.run(scenario())
    assert (first, second) == (True, False)
    assert [a.id for a in alerts] == ["alert-1"]


def test_fetch_bookings_by_role(sql_store):
    async def scenario():
        await sql_store.upsert_studio(make_studio())
        await sql_store.create_booking(make_booking(booking_id="bk-1"))
        await sql_store.create_booking(make_booking(booking_id="bk-2", start=utc_now().replace(microsecond=0)))
        return {
            role: [b.id for b in await sql_store.fetch_bookings(user, role)]
            for role, user in (
                (ParticipantRole.ARTIST, "artist-1"),
                (ParticipantRole.ENGINEER, "eng-1"),
                (ParticipantRole.STUDIO, "owner-1"),
            )
        }

    listed = asyncio.run(scenario())
    assert listed[ParticipantRole.ARTIST] == ["bk-2", "bk-1"]
    assert listed[ParticipantRole.ENGINEER] == ["bk-2", "bk-1"]
    assert listed[ParticipantRole.STUDIO] == ["bk-2", "bk-1"]


def test_full_pipeline_blocks_second_booking(sql_store):
    start = utc_now().replace(microsecond=0) + timedelta(hours=3)
    studio = make_studio()

    async def scenario():
        await sql_store.upsert_studio(studio)
        await sql_store.upsert_room(make_room())
        await sql_store.save_engineer_settings(make_settings())
        service = BookingService(sql_store)
        first = await service.submit(
            BookingRequestInput(artist_id="artist-1", studio=studio, engineer_id="eng-1", start_date=start, duration_minutes=120)
        )
        handled = await sync_once(sql_store, AvailabilitySynchronizer(sql_store))
        holds = await sql_store.fetch_availability("studio-1")
        try:
            await service.submit(
                BookingRequestInput(
                    artist_id="artist-2",
                    studio=studio,
                    engineer_id="eng-1",
                    start_date=start + timedelta(minutes=60),
                    duration_minutes=60,
                )
            )
        except SlotUnavailable as exc:
            return first, handled, holds, exc
        return first, handled, holds, None

    first, handled, holds, error = asyncio.run(scenario())
    assert first.status is BookingStatus.CONFIRMED
    assert handled == 1
    assert [h.id for h in holds] == [first.id]
    assert holds[0].source_updated_at == first.updated_at
    assert isinstance(error, SlotUnavailable)
    assert error.entry_id == first.id
