"""Domain entities for the booking pipeline.

Plain dataclasses shared by the quote engine, the booking service and the
availability synchronizer. Persistence rows live in ``models.py``; the store
converts between the two.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from enum import Enum

from punchin.app.core.constants import DEFAULT_SESSION_MINUTES

from .schedule import OperatingSchedule


def _new_id() -> str:
    return uuid.uuid4().hex


def _now() -> datetime:
    return datetime.now(UTC)


class BookingStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({BookingStatus.CANCELLED, BookingStatus.COMPLETED})

# Allowed status moves for external actors (approval, cancellation, completion).
ALLOWED_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.CANCELLED, BookingStatus.COMPLETED}),
    BookingStatus.CANCELLED: frozenset(),
    BookingStatus.COMPLETED: frozenset(),
}


def normalize_booking_status(value: str | BookingStatus | None) -> BookingStatus | None:
    """Return a BookingStatus when possible (accepts enum members and strings)."""
    if isinstance(value, BookingStatus):
        return value
    if isinstance(value, str):
        try:
            return BookingStatus(value.strip().lower())
        except ValueError:
            return None
    return None


class AvailabilityKind(str, Enum):
    MANUAL_BLOCK = "manual_block"
    BOOKING_HOLD = "booking_hold"


BLOCKING_KINDS = frozenset({AvailabilityKind.MANUAL_BLOCK, AvailabilityKind.BOOKING_HOLD})


class ParticipantRole(str, Enum):
    ARTIST = "artist"
    STUDIO = "studio"
    ENGINEER = "engineer"


@dataclass
class Studio:
    id: str
    owner_id: str
    name: str = ""
    approved_engineer_ids: list[str] = field(default_factory=list)
    operating_schedule: OperatingSchedule = field(default_factory=OperatingSchedule)
    auto_approve_requests: bool = False
    hourly_rate: Decimal | None = None


@dataclass
class Room:
    id: str
    studio_id: str
    name: str = ""
    hourly_rate: Decimal | None = None
    capacity: int | None = None
    is_default: bool = False


@dataclass
class EngineerSettings:
    engineer_id: str
    is_premium: bool = False
    instant_book_enabled: bool = False
    main_studio_id: str | None = None
    allow_other_studios: bool = False
    default_session_duration_minutes: int = DEFAULT_SESSION_MINUTES

    @property
    def can_instant_book(self) -> bool:
        return self.is_premium and self.instant_book_enabled

    def allows_studio(self, studio_id: str) -> bool:
        if self.main_studio_id is None:
            return True
        return self.main_studio_id == studio_id or self.allow_other_studios


@dataclass
class AvailabilityEntry:
    owner_id: str
    kind: AvailabilityKind
    start_date: datetime
    end_date: datetime
    id: str = field(default_factory=_new_id)
    duration_minutes: int = 0
    studio_id: str | None = None
    room_id: str | None = None
    engineer_id: str | None = None
    source_booking_id: str | None = None
    source_updated_at: datetime | None = None
    created_by: str = ""
    notes: str | None = None
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    def __post_init__(self) -> None:
        if self.end_date <= self.start_date:
            raise ValueError("availability entry must end after it starts")
        if not self.duration_minutes:
            self.duration_minutes = int((self.end_date - self.start_date).total_seconds() // 60)

    @property
    def is_blocking(self) -> bool:
        return self.kind in BLOCKING_KINDS

    def overlaps(self, start: datetime, end: datetime) -> bool:
        """Half-open overlap: touching intervals do not overlap."""
        return max(self.start_date, start) < min(self.end_date, end)


@dataclass
class BookingPricing:
    hourly_rate: Decimal
    total: Decimal
    currency: str = "USD"


@dataclass
class ApprovalState:
    requires_studio_approval: bool
    requires_engineer_approval: bool
    resolved_by: str | None = None
    resolved_at: datetime | None = None

    @property
    def is_fully_approved(self) -> bool:
        return not self.requires_studio_approval and not self.requires_engineer_approval


@dataclass
class Booking:
    artist_id: str
    engineer_id: str
    studio_id: str
    room_id: str
    requested_start: datetime
    requested_end: datetime
    duration_minutes: int
    id: str = field(default_factory=_new_id)
    status: BookingStatus = BookingStatus.PENDING
    confirmed_start: datetime | None = None
    confirmed_end: datetime | None = None
    pricing: BookingPricing | None = None
    instant_book: bool = False
    approval: ApprovalState = field(
        default_factory=lambda: ApprovalState(requires_studio_approval=True, requires_engineer_approval=True)
    )
    notes: str = ""
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    @property
    def effective_start(self) -> datetime:
        return self.confirmed_start or self.requested_start

    @property
    def effective_end(self) -> datetime:
        return self.confirmed_end or self.requested_end

    def times_key(self) -> tuple[datetime | None, ...]:
        return (self.requested_start, self.requested_end, self.confirmed_start, self.confirmed_end)


@dataclass
class BookingRequestInput:
    artist_id: str
    studio: Studio
    engineer_id: str
    start_date: datetime
    duration_minutes: int
    room: Room | None = None
    notes: str = ""

    @property
    def end_date(self) -> datetime:
        return self.start_date + timedelta(minutes=self.duration_minutes)


@dataclass
class BookingWrite:
    """One observed write of a booking document."""

    booking_id: str
    before: Booking | None = None
    after: Booking | None = None
    change_id: int | None = None

    @property
    def is_delete(self) -> bool:
        return self.after is None


@dataclass
class Alert:
    user_id: str
    title: str
    message: str
    category: str = "booking"
    deeplink: str | None = None
    id: str = field(default_factory=_new_id)
    is_read: bool = False
    created_at: datetime = field(default_factory=_now)


__all__ = [
    "BookingStatus",
    "TERMINAL_STATUSES",
    "ALLOWED_TRANSITIONS",
    "normalize_booking_status",
    "AvailabilityKind",
    "BLOCKING_KINDS",
    "ParticipantRole",
    "Studio",
    "Room",
    "EngineerSettings",
    "AvailabilityEntry",
    "BookingPricing",
    "ApprovalState",
    "Booking",
    "BookingRequestInput",
    "BookingWrite",
    "Alert",
]
