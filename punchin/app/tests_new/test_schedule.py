from datetime import UTC, date, datetime, timedelta

import pytest

from punchin.app.domain.schedule import (
    OperatingSchedule,
    RecurringTimeRange,
    ScheduleError,
    TimeWindow,
)

# 2026-10-19 is a Monday
MONDAY = date(2026, 10, 19)
FRIDAY = date(2026, 10, 23)
SATURDAY = date(2026, 10, 24)


def _at(day: date, hour: int, minute: int = 0) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=UTC)


def _weekdays_10_to_18() -> OperatingSchedule:
    return OperatingSchedule(
        recurring_hours=[RecurringTimeRange(weekday=d, start_minutes=10 * 60, duration_minutes=8 * 60) for d in range(5)]
    )


def test_empty_recurring_hours_is_unconstrained():
    schedule = OperatingSchedule()
    start = _at(MONDAY, 3)
    assert schedule.is_open(start, start + timedelta(hours=30))
    assert schedule.closure_reason(start, start + timedelta(hours=2)) is None


def test_recurring_window_containment():
    schedule = _weekdays_10_to_18()
    assert schedule.is_open(_at(MONDAY, 10), _at(MONDAY, 12))
    # ends exactly when the window closes
    assert schedule.is_open(_at(MONDAY, 16), _at(MONDAY, 18))
    assert not schedule.is_open(_at(MONDAY, 17), _at(MONDAY, 19))
    assert not schedule.is_open(_at(MONDAY, 9), _at(MONDAY, 11))
    # no entry for Saturday
    assert schedule.closure_reason(_at(SATURDAY, 12), _at(SATURDAY, 13)) == "closed"


def test_exception_replaces_recurring_entry_for_that_date_only():
    schedule = _weekdays_10_to_18()
    schedule.exceptions[MONDAY] = []
    schedule.exceptions[SATURDAY] = [TimeWindow(start_minutes=12 * 60, duration_minutes=120)]

    assert not schedule.is_open(_at(MONDAY, 11), _at(MONDAY, 12))
    assert schedule.is_open(_at(MONDAY + timedelta(days=1), 11), _at(MONDAY + timedelta(days=1), 12))
    assert schedule.is_open(_at(SATURDAY, 12), _at(SATURDAY, 14))
    assert not schedule.is_open(_at(SATURDAY, 13), _at(SATURDAY, 15))


def test_exceptions_apply_without_recurring_hours():
    schedule = OperatingSchedule(exceptions={MONDAY: []})
    assert not schedule.is_open(_at(MONDAY, 11), _at(MONDAY, 12))
    assert schedule.is_open(_at(FRIDAY, 11), _at(FRIDAY, 12))


def test_blackout_date_reports_blackout():
    schedule = OperatingSchedule(blackout_dates=[FRIDAY])
    assert schedule.closure_reason(_at(FRIDAY, 11), _at(FRIDAY, 12)) == "blackout"
    # a session running into the blackout day is refused too
    assert schedule.closure_reason(_at(FRIDAY - timedelta(days=1), 23), _at(FRIDAY, 1)) == "blackout"


def test_window_running_past_midnight_covers_next_morning():
    # Friday 20:00 for six hours, i.e. until Saturday 02:00
    schedule = OperatingSchedule(
        recurring_hours=[RecurringTimeRange(weekday=4, start_minutes=20 * 60, duration_minutes=6 * 60)]
    )
    assert schedule.is_open(_at(FRIDAY, 23), _at(SATURDAY, 1))
    assert schedule.is_open(_at(SATURDAY, 0, 30), _at(SATURDAY, 2))
    assert not schedule.is_open(_at(SATURDAY, 1), _at(SATURDAY, 3))


def test_adjacent_windows_merge_across_midnight():
    schedule = OperatingSchedule(
        recurring_hours=[
            RecurringTimeRange(weekday=4, start_minutes=18 * 60, duration_minutes=6 * 60),
            RecurringTimeRange(weekday=5, start_minutes=0, duration_minutes=4 * 60),
        ]
    )
    assert schedule.is_open(_at(FRIDAY, 22), _at(SATURDAY, 2))
    assert not schedule.is_open(_at(FRIDAY, 22), _at(SATURDAY, 5))


def test_windows_are_evaluated_in_studio_timezone():
    schedule = OperatingSchedule(
        timezone="America/New_York",
        recurring_hours=[RecurringTimeRange(weekday=0, start_minutes=10 * 60, duration_minutes=8 * 60)],
    )
    # 2026-01-12 is a Monday; New York is UTC-5 in January
    day = date(2026, 1, 12)
    assert schedule.is_open(_at(day, 15), _at(day, 17))
    assert not schedule.is_open(_at(day, 10), _at(day, 12))
    intervals = schedule.open_intervals(day)
    assert intervals == [(_at(day, 15), _at(day, 23))]


def test_empty_interval_is_not_open():
    schedule = OperatingSchedule()
    assert not schedule.is_open(_at(MONDAY, 10), _at(MONDAY, 10))


@pytest.mark.parametrize(
    "ranges",
    [
        [RecurringTimeRange(0, 600, 60), RecurringTimeRange(0, 900, 60)],
    ],
)
def test_duplicate_weekday_is_rejected(ranges):
    with pytest.raises(ScheduleError):
        OperatingSchedule(recurring_hours=ranges)


def test_malformed_ranges_are_rejected():
    with pytest.raises(ScheduleError):
        RecurringTimeRange(weekday=7, start_minutes=0, duration_minutes=60)
    with pytest.raises(ScheduleError):
        RecurringTimeRange(weekday=1, start_minutes=0, duration_minutes=0)
    with pytest.raises(ScheduleError):
        TimeWindow(start_minutes=-5, duration_minutes=60)
    with pytest.raises(ScheduleError):
        OperatingSchedule(timezone="Mars/Olympus_Mons")
    assert issubclass(ScheduleError, ValueError)


def test_schedule_document_round_trip():
    schedule = OperatingSchedule(
        timezone="Europe/Berlin",
        recurring_hours=[RecurringTimeRange(2, 540, 480)],
        exceptions={MONDAY: [TimeWindow(600, 120)], FRIDAY: []},
        blackout_dates=[SATURDAY],
    )
    restored = OperatingSchedule.from_dict(schedule.to_dict())
    assert restored == schedule
    assert OperatingSchedule.from_dict(None) == OperatingSchedule()
