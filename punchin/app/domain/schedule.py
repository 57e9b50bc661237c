"""Studio operating schedule.

Recurring weekly open hours plus date-specific exceptions, evaluated in the
studio's own timezone. Weekdays follow ``date.weekday()``: Monday=0 .. Sunday=6.

Rules:
    * an exception for a date fully replaces that date's recurring hours;
      an empty exception list means the studio is closed that day;
    * a blackout date is a closed exception;
    * with no recurring hours at all, days without an exception are open
      around the clock;
    * a window may run past midnight (start + duration > 24h); it belongs to
      the day it starts on.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, date, datetime, time, timedelta
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

MINUTES_PER_DAY = 24 * 60

Interval = tuple[datetime, datetime]


class ScheduleError(ValueError):
    """Raised for schedules that break the one-window-per-weekday rule or are malformed."""


@dataclass(frozen=True)
class TimeWindow:
    start_minutes: int
    duration_minutes: int

    def __post_init__(self) -> None:
        if not 0 <= self.start_minutes < MINUTES_PER_DAY:
            raise ScheduleError(f"start_minutes out of range: {self.start_minutes}")
        if not 0 < self.duration_minutes <= MINUTES_PER_DAY:
            raise ScheduleError(f"duration_minutes out of range: {self.duration_minutes}")

    @property
    def end_minutes(self) -> int:
        return self.start_minutes + self.duration_minutes


@dataclass(frozen=True)
class RecurringTimeRange:
    weekday: int
    start_minutes: int
    duration_minutes: int

    def __post_init__(self) -> None:
        if not 0 <= self.weekday <= 6:
            raise ScheduleError(f"weekday out of range: {self.weekday}")
        # validates the minute fields
        self.window()

    def window(self) -> TimeWindow:
        return TimeWindow(self.start_minutes, self.duration_minutes)


def _merge(intervals: list[Interval]) -> list[Interval]:
    if not intervals:
        return []
    ordered = sorted(intervals)
    merged = [ordered[0]]
    for start, end in ordered[1:]:
        last_start, last_end = merged[-1]
        if start <= last_end:
            merged[-1] = (last_start, max(last_end, end))
        else:
            merged.append((start, end))
    return merged


@dataclass
class OperatingSchedule:
    timezone: str = "UTC"
    recurring_hours: list[RecurringTimeRange] = field(default_factory=list)
    exceptions: dict[date, list[TimeWindow]] = field(default_factory=dict)
    blackout_dates: list[date] = field(default_factory=list)

    def __post_init__(self) -> None:
        seen: set[int] = set()
        for rng in self.recurring_hours:
            if rng.weekday in seen:
                raise ScheduleError(f"duplicate recurring entry for weekday {rng.weekday}")
            seen.add(rng.weekday)
        # fail early on unknown zones
        self.tz

    @property
    def tz(self) -> ZoneInfo:
        try:
            return ZoneInfo(self.timezone or "UTC")
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ScheduleError(f"unknown timezone: {self.timezone}") from exc

    @property
    def has_declared_hours(self) -> bool:
        return bool(self.recurring_hours)

    def windows_for(self, day: date) -> list[TimeWindow] | None:
        """Open windows for ``day``; ``None`` means the day is unconstrained."""
        if day in self.blackout_dates:
            return []
        if day in self.exceptions:
            return list(self.exceptions[day])
        if not self.recurring_hours:
            return None
        return [rng.window() for rng in self.recurring_hours if rng.weekday == day.weekday()]

    def _midnight(self, day: date) -> datetime:
        return datetime.combine(day, time(0, 0), tzinfo=self.tz)

    def open_intervals(self, day: date) -> list[Interval]:
        """Concrete UTC intervals during which the studio is open on ``day``."""
        windows = self.windows_for(day)
        midnight = self._midnight(day)
        if windows is None:
            return [(midnight.astimezone(UTC), self._midnight(day + timedelta(days=1)).astimezone(UTC))]
        intervals = []
        for window in windows:
            start = midnight + timedelta(minutes=window.start_minutes)
            end = midnight + timedelta(minutes=window.end_minutes)
            intervals.append((start.astimezone(UTC), end.astimezone(UTC)))
        return _merge(intervals)

    def _touched_days(self, start: datetime, end: datetime) -> list[date]:
        first = start.astimezone(self.tz).date()
        # the end is exclusive: a session ending exactly at midnight does not touch the next day
        last = (end - timedelta(microseconds=1)).astimezone(self.tz).date()
        days = []
        day = first
        while day <= last:
            days.append(day)
            day += timedelta(days=1)
        return days

    def is_open(self, start: datetime, end: datetime) -> bool:
        """True when ``[start, end)`` lies inside one continuous open stretch.

        Every calendar day the interval touches is consulted, plus the day
        before it for windows that run past midnight.
        """
        if end <= start:
            return False
        days = self._touched_days(start, end)
        candidates = [days[0] - timedelta(days=1)] + days
        intervals: list[Interval] = []
        for day in candidates:
            intervals.extend(self.open_intervals(day))
        return any(s <= start and end <= e for s, e in _merge(intervals))

    def closure_reason(self, start: datetime, end: datetime) -> str | None:
        if self.is_open(start, end):
            return None
        if any(day in self.blackout_dates for day in self._touched_days(start, end)):
            return "blackout"
        return "closed"

    def to_dict(self) -> dict[str, Any]:
        return {
            "timezone": self.timezone,
            "recurring_hours": [
                {"weekday": r.weekday, "start_minutes": r.start_minutes, "duration_minutes": r.duration_minutes}
                for r in self.recurring_hours
            ],
            "exceptions": {
                day.isoformat(): [
                    {"start_minutes": w.start_minutes, "duration_minutes": w.duration_minutes} for w in windows
                ]
                for day, windows in self.exceptions.items()
            },
            "blackout_dates": [day.isoformat() for day in self.blackout_dates],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> OperatingSchedule:
        if not data:
            return cls()
        recurring = [
            RecurringTimeRange(int(r["weekday"]), int(r["start_minutes"]), int(r["duration_minutes"]))
            for r in data.get("recurring_hours") or []
        ]
        exceptions = {
            date.fromisoformat(day): [
                TimeWindow(int(w["start_minutes"]), int(w["duration_minutes"])) for w in windows or []
            ]
            for day, windows in (data.get("exceptions") or {}).items()
        }
        blackouts = [date.fromisoformat(day) for day in data.get("blackout_dates") or []]
        return cls(
            timezone=data.get("timezone") or "UTC",
            recurring_hours=recurring,
            exceptions=exceptions,
            blackout_dates=blackouts,
        )


__all__ = [
    "MINUTES_PER_DAY",
    "ScheduleError",
    "TimeWindow",
    "RecurringTimeRange",
    "OperatingSchedule",
]
