"""Booking alerts written for the participants of a booking.

Alerts are stored documents; delivering them (push, e-mail) is somebody
else's job. Alert ids are derived from the booking, the reason, the
recipient and the booking version, so a redelivered change writes nothing new.
"""

from __future__ import annotations

import hashlib
import logging
from datetime import datetime

from punchin.app.core.constants import DEEPLINK_SCHEME
from punchin.app.core.store import BookingStore
from punchin.app.domain.entities import Alert, Booking
from punchin.app.services.shared_services import ensure_utc, format_money, status_label
from punchin.config import get_setting

logger = logging.getLogger(__name__)

ALERT_TITLES = {
    "created": "New booking request",
    "updated": "Booking updated",
    "cancelled": "Booking cancelled",
}


def booking_deeplink(booking_id: str) -> str:
    return f"{DEEPLINK_SCHEME}://bookings/{booking_id}"


def format_session_date(dt: datetime | None) -> str:
    if dt is None:
        return "upcoming session"
    return ensure_utc(dt).strftime("%b %d, %Y %H:%M UTC")


def alert_id(booking_id: str, reason: str, user_id: str, version: datetime | None) -> str:
    stamp = ensure_utc(version).isoformat() if version is not None else ""
    raw = f"{booking_id}|{reason}|{user_id}|{stamp}"
    return hashlib.sha1(raw.encode("utf-8")).hexdigest()


def build_booking_alerts(booking: Booking, reason: str, studio_owner_id: str | None) -> list[Alert]:
    title = ALERT_TITLES.get(reason, "Booking update")
    message = f"Session {status_label(booking.status)} for {format_session_date(booking.effective_start)}"
    if booking.pricing is not None:
        message += f" ({format_money(booking.pricing.total, booking.pricing.currency)})"
    recipients: list[str] = []
    for user_id in (booking.artist_id, booking.engineer_id, studio_owner_id):
        if user_id and user_id not in recipients:
            recipients.append(user_id)
    return [
        Alert(
            id=alert_id(booking.id, reason, user_id, booking.updated_at),
            user_id=user_id,
            title=title,
            message=message,
            category="booking",
            deeplink=booking_deeplink(booking.id),
        )
        for user_id in recipients
    ]


class BookingAlertService:
    def __init__(self, store: BookingStore, enabled: bool | None = None) -> None:
        self._store = store
        self._enabled = enabled

    @property
    def enabled(self) -> bool:
        if self._enabled is not None:
            return self._enabled
        return bool(get_setting("booking_alerts_enabled", True))

    async def send(self, booking: Booking, reason: str) -> int:
        """Write alerts for every participant; returns how many were new."""
        if not self.enabled:
            return 0
        studio = await self._store.fetch_studio(booking.studio_id) if booking.studio_id else None
        owner_id = studio.owner_id if studio is not None else None
        written = 0
        for alert in build_booking_alerts(booking, reason, owner_id):
            if await self._store.create_alert(alert):
                written += 1
        if written:
            logger.debug("Booking %s: %d %s alert(s) written", booking.id, written, reason)
        return written


__all__ = [
    "ALERT_TITLES",
    "booking_deeplink",
    "format_session_date",
    "alert_id",
    "build_booking_alerts",
    "BookingAlertService",
]
