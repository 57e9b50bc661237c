from datetime import UTC, datetime, timedelta

import pytest

from punchin.app.domain import entities, models


def test_normalize_booking_status_variants():
    assert entities.normalize_booking_status("CONFIRMED") is entities.BookingStatus.CONFIRMED
    assert entities.normalize_booking_status(" pending ") is entities.BookingStatus.PENDING
    assert entities.normalize_booking_status(entities.BookingStatus.COMPLETED) is entities.BookingStatus.COMPLETED
    assert entities.normalize_booking_status("unknown") is None
    assert entities.normalize_booking_status(None) is None


def test_status_collections():
    assert entities.BookingStatus.CANCELLED in entities.TERMINAL_STATUSES
    assert entities.BookingStatus.CONFIRMED not in entities.TERMINAL_STATUSES
    assert entities.BookingStatus.COMPLETED.is_terminal
    allowed = entities.ALLOWED_TRANSITIONS
    assert entities.BookingStatus.CONFIRMED in allowed[entities.BookingStatus.PENDING]
    assert entities.BookingStatus.COMPLETED not in allowed[entities.BookingStatus.PENDING]
    assert entities.BookingStatus.PENDING not in allowed[entities.BookingStatus.CONFIRMED]


def test_availability_entry_invariants():
    start = datetime(2026, 10, 19, 10, tzinfo=UTC)
    entry = entities.AvailabilityEntry(
        owner_id="studio-1",
        kind=entities.AvailabilityKind.MANUAL_BLOCK,
        start_date=start,
        end_date=start + timedelta(minutes=90),
    )
    assert entry.duration_minutes == 90
    assert entry.is_blocking
    assert entry.overlaps(start + timedelta(minutes=89), start + timedelta(hours=3))
    assert not entry.overlaps(start + timedelta(minutes=90), start + timedelta(hours=3))
    assert not entry.overlaps(start - timedelta(hours=1), start)

    with pytest.raises(ValueError):
        entities.AvailabilityEntry(
            owner_id="studio-1",
            kind=entities.AvailabilityKind.MANUAL_BLOCK,
            start_date=start,
            end_date=start,
        )


def test_engineer_instant_book_eligibility():
    settings = entities.EngineerSettings(engineer_id="eng-1", is_premium=True, instant_book_enabled=True)
    assert settings.can_instant_book
    assert settings.allows_studio("anywhere")
    settings.main_studio_id = "studio-1"
    assert settings.allows_studio("studio-1")
    assert not settings.allows_studio("studio-2")
    settings.allow_other_studios = True
    assert settings.allows_studio("studio-2")


def test_availability_rows_are_keyed_per_owner():
    table = models.AvailabilityEntryRow.__table__
    assert [c.name for c in table.primary_key.columns] == ["owner_id", "id"]
    assert {t for t in models.Base.metadata.tables} >= {
        "studios",
        "rooms",
        "engineer_settings",
        "bookings",
        "availability_entries",
        "alerts",
        "booking_changes",
    }


def test_engineer_settings_default_session_length():
    from punchin.app.core.constants import DEFAULT_SESSION_MINUTES

    settings = entities.EngineerSettings(engineer_id="eng-1")
    assert settings.default_session_duration_minutes == DEFAULT_SESSION_MINUTES
    column = models.EngineerSettingsRow.__table__.c.default_session_duration_minutes
    assert column.default.arg == DEFAULT_SESSION_MINUTES
