"""
Unit tests for the calendar resolver.

Covers weekday mapping in the user's timezone, week starts, week distance
and the weekend window.
"""

from datetime import date, datetime, timezone
from zoneinfo import ZoneInfo

import pytest

from questline.modules.shared.exceptions import ValidationError
from questline.modules.weekly_quest.week_calendar import (
    FixedClock,
    resolve,
    resolve_timezone,
    week_start_for,
    weeks_between,
)

MANILA = "Asia/Manila"


@pytest.mark.unit
class TestResolve:
    def test_monday_morning_in_manila(self):
        snapshot = resolve(datetime(2025, 1, 6, 1, 0, tzinfo=timezone.utc), MANILA)

        assert snapshot.current_day == "monday"
        assert snapshot.week_start == date(2025, 1, 6)
        assert snapshot.weeks_elapsed == 0
        assert not snapshot.is_weekend

    def test_timezone_moves_the_day(self):
        # Sunday 20:00 UTC is already Monday 04:00 in Manila
        instant = datetime(2025, 1, 5, 20, 0, tzinfo=timezone.utc)

        assert resolve(instant, "UTC").current_day == "weekend"
        assert resolve(instant, MANILA).current_day == "monday"

    def test_saturday_and_sunday_are_weekend(self):
        saturday = resolve(datetime(2025, 1, 11, 4, 0, tzinfo=timezone.utc), MANILA)
        sunday = resolve(datetime(2025, 1, 12, 4, 0, tzinfo=timezone.utc), MANILA)

        assert saturday.is_weekend and sunday.is_weekend
        assert saturday.week_start == sunday.week_start == date(2025, 1, 6)

    def test_naive_datetime_is_read_as_utc(self):
        snapshot = resolve(datetime(2025, 1, 6, 1, 0), MANILA)

        assert snapshot.local_now.tzinfo is not None
        assert snapshot.current_day == "monday"

    def test_accepts_tzinfo(self):
        snapshot = resolve(datetime(2025, 1, 8, 3, 0, tzinfo=timezone.utc), ZoneInfo(MANILA))

        assert snapshot.current_day == "wednesday"

    def test_weeks_elapsed_against_stored_week(self):
        now = datetime(2025, 1, 20, 2, 0, tzinfo=timezone.utc)

        assert resolve(now, MANILA, date(2025, 1, 13)).weeks_elapsed == 1
        assert resolve(now, MANILA, date(2025, 1, 6)).weeks_elapsed == 2

    def test_stored_week_in_the_future_is_not_negative(self):
        now = datetime(2025, 1, 6, 1, 0, tzinfo=timezone.utc)

        assert resolve(now, MANILA, date(2025, 1, 13)).weeks_elapsed == 0


@pytest.mark.unit
class TestDayOrdering:
    @pytest.fixture
    def wednesday(self):
        return resolve(datetime(2025, 1, 8, 3, 0, tzinfo=timezone.utc), MANILA)

    def test_past_today_future(self, wednesday):
        assert wednesday.is_past("monday") and wednesday.is_past("tuesday")
        assert wednesday.is_today("wednesday")
        assert wednesday.is_future("thursday") and wednesday.is_future("friday")

    def test_every_day_is_past_on_the_weekend(self):
        saturday = resolve(datetime(2025, 1, 11, 4, 0, tzinfo=timezone.utc), MANILA)

        assert all(
            saturday.is_past(d) for d in ("monday", "tuesday", "wednesday", "thursday", "friday")
        )

    def test_date_for(self, wednesday):
        assert wednesday.date_for("monday") == date(2025, 1, 6)
        assert wednesday.date_for("friday") == date(2025, 1, 10)


@pytest.mark.unit
class TestHelpers:
    def test_week_start_for_sunday(self):
        assert week_start_for(date(2025, 1, 12)) == date(2025, 1, 6)

    def test_weeks_between(self):
        assert weeks_between(date(2025, 1, 6), date(2025, 1, 6)) == 0
        assert weeks_between(date(2025, 1, 6), date(2025, 1, 27)) == 3
        assert weeks_between(date(2025, 1, 27), date(2025, 1, 6)) == 0

    @pytest.mark.parametrize("name", ["", "   ", "Mars/Olympus_Mons"])
    def test_resolve_timezone_rejects_bad_names(self, name):
        with pytest.raises(ValidationError):
            resolve_timezone(name)

    def test_fixed_clock_advance(self):
        clock = FixedClock(datetime(2025, 1, 6, 1, 0))

        clock.advance(days=2, hours=3)

        assert clock.now() == datetime(2025, 1, 8, 4, 0, tzinfo=timezone.utc)
