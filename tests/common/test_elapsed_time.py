from datetime import datetime, time, timedelta, timezone

from src.attendance_verification.attendance_verification.common.datetime_utils import (
    Elapsed,
    elapsed,
    format_clock,
    format_short,
)


def test_same_instant_is_zero():
    assert elapsed(time(9, 0, 0), time(9, 0, 0)) == Elapsed(0, 0, 0)


def test_regular_workday():
    assert elapsed(time(9, 0, 0), time(17, 30, 15)) == Elapsed(8, 30, 15)


def test_session_crossing_midnight_wraps_once():
    assert elapsed(time(23, 30, 0), time(0, 10, 0)) == Elapsed(0, 40, 0)


def test_defaults_end_to_clock():
    start = datetime(2025, 1, 6, 9, 0, 0)
    now = datetime(2025, 1, 6, 10, 1, 2)
    assert elapsed(start, clock=lambda: now) == Elapsed(1, 1, 2)


def test_aware_values_are_compared_in_start_timezone():
    ist = timezone(timedelta(hours=5, minutes=30))
    start = datetime(2025, 1, 6, 9, 0, tzinfo=ist)
    end = datetime(2025, 1, 6, 4, 30, tzinfo=timezone.utc)  # 10:00 IST
    assert elapsed(start, end) == Elapsed(1, 0, 0)


def test_total_seconds():
    assert Elapsed(1, 2, 3).total_seconds == 3723


def test_formatting():
    assert format_clock(Elapsed(8, 5, 9)) == "08:05:09"
    assert format_short(Elapsed(8, 5, 9)) == "8h 5m"
