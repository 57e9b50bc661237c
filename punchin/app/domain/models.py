from datetime import UTC, datetime

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from punchin.app.core.constants import DEFAULT_SESSION_MINUTES


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base class (explicit for mypy)."""

    pass


class StudioRow(Base):
    __tablename__ = "studios"
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(128), index=True)
    name: Mapped[str] = mapped_column(String(200), default="")
    approved_engineer_ids: Mapped[list] = mapped_column(JSON, default=list)
    # OperatingSchedule.to_dict(); NULL means "no declared hours"
    operating_schedule: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    auto_approve_requests: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    # Studio-wide fallback rate when a room has none
    hourly_rate_cents: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class RoomRow(Base):
    __tablename__ = "rooms"
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    studio_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("studios.id", ondelete="CASCADE"), index=True
    )
    name: Mapped[str] = mapped_column(String(200), default="")
    hourly_rate_cents: Mapped[int | None] = mapped_column(Integer, nullable=True)
    capacity: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)


class EngineerSettingsRow(Base):
    __tablename__ = "engineer_settings"
    engineer_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    is_premium: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    instant_book_enabled: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    main_studio_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    allow_other_studios: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    default_session_duration_minutes: Mapped[int] = mapped_column(Integer, default=DEFAULT_SESSION_MINUTES, nullable=False)


class BookingRow(Base):
    __tablename__ = "bookings"
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    artist_id: Mapped[str] = mapped_column(String(128), index=True)
    engineer_id: Mapped[str] = mapped_column(String(128), index=True)
    studio_id: Mapped[str] = mapped_column(String(64), index=True)
    room_id: Mapped[str] = mapped_column(String(64))
    # Values of punchin.app.domain.entities.BookingStatus
    status: Mapped[str] = mapped_column(String(16), index=True)
    requested_start: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    requested_end: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    confirmed_start: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    confirmed_end: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    duration_minutes: Mapped[int] = mapped_column(Integer)
    pricing: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    instant_book: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    approval: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class AvailabilityEntryRow(Base):
    __tablename__ = "availability_entries"
    # Holds use the booking id as entry id, so the key is scoped per owner
    owner_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    kind: Mapped[str] = mapped_column(String(32))
    start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    duration_minutes: Mapped[int] = mapped_column(Integer)
    studio_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    room_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    engineer_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    source_booking_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    source_updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_by: Mapped[str] = mapped_column(String(128), default="")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (Index("ix_availability_owner_start", "owner_id", "start_date"),)


class AlertRow(Base):
    __tablename__ = "alerts"
    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), index=True)
    title: Mapped[str] = mapped_column(String(200))
    message: Mapped[str] = mapped_column(Text)
    category: Mapped[str] = mapped_column(String(32), default="booking")
    deeplink: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_read: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


class BookingChangeRow(Base):
    """Outbox of booking writes, appended in the same transaction as the booking row."""

    __tablename__ = "booking_changes"
    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    booking_id: Mapped[str] = mapped_column(String(64), index=True)
    before: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    after: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, index=True)
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)


__all__ = [
    "Base",
    "StudioRow",
    "RoomRow",
    "EngineerSettingsRow",
    "BookingRow",
    "AvailabilityEntryRow",
    "AlertRow",
    "BookingChangeRow",
]
