"""Booking pipeline errors.

Every error carries a stable ``code`` (returned by the API) and a
``user_message`` suitable for showing to the person who made the request.
"""

from __future__ import annotations


class BookingError(Exception):
    code = "booking_error"
    default_message = "The booking could not be processed."

    def __init__(self, message: str | None = None) -> None:
        self.user_message = message or self.default_message
        super().__init__(self.user_message)


class NoRoomAvailable(BookingError):
    code = "no_room_available"
    default_message = "No room is available for this studio. Pick a room and try again."


class OutsideOperatingHours(BookingError):
    code = "outside_operating_hours"
    default_message = "The studio is closed at that time. Pick a different slot."

    def __init__(self, reason: str = "closed", message: str | None = None) -> None:
        self.reason = reason
        if message is None and reason == "blackout":
            message = "The studio is unavailable on that date."
        super().__init__(message)


class SlotUnavailable(BookingError):
    code = "slot_unavailable"
    default_message = "That time slot is no longer available."

    def __init__(self, owner_kind: str, entry_id: str | None = None, message: str | None = None) -> None:
        self.owner_kind = owner_kind
        self.entry_id = entry_id
        if message is None:
            if owner_kind == "engineer":
                message = "The engineer has a conflict at that time."
            else:
                message = "That room is already booked or blocked."
        super().__init__(message)


class InvalidDuration(BookingError):
    code = "invalid_duration"
    default_message = "Please choose a valid session duration."


class InvalidTransition(BookingError):
    code = "invalid_transition"
    default_message = "The booking cannot move to that status."

    def __init__(self, current: str, target: str, message: str | None = None) -> None:
        self.current = current
        self.target = target
        super().__init__(message or f"A {current} booking cannot become {target}.")


class BookingNotFound(BookingError):
    code = "booking_not_found"
    default_message = "That booking no longer exists."

    def __init__(self, booking_id: str, message: str | None = None) -> None:
        self.booking_id = booking_id
        super().__init__(message)


class StudioNotFound(BookingError):
    code = "studio_not_found"
    default_message = "That studio no longer exists."

    def __init__(self, studio_id: str, message: str | None = None) -> None:
        self.studio_id = studio_id
        super().__init__(message)


class PermissionDenied(BookingError):
    code = "forbidden"
    default_message = "You are not a participant of this booking."


__all__ = [
    "BookingError",
    "NoRoomAvailable",
    "OutsideOperatingHours",
    "SlotUnavailable",
    "InvalidDuration",
    "InvalidTransition",
    "BookingNotFound",
    "StudioNotFound",
    "PermissionDenied",
]
