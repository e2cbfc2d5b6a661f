from datetime import date, datetime, timezone

import pytest

from booking_engine.core.exceptions import InvalidFormatError
from booking_engine.services.scheduling.time_utils import (
    business_timezone,
    from_minutes,
    hours_until,
    overlaps,
    parse_date,
    ranges_overlap,
    to_minutes,
)


@pytest.mark.time_utils
class TestWallClock:
    """Test suite for HH:MM parsing."""

    @pytest.mark.parametrize("value,expected", [
        ("00:00", 0),
        ("09:30", 570),
        ("23:59", 1439),
    ])
    def test_to_minutes(self, value, expected):
        assert to_minutes(value) == expected

    @pytest.mark.parametrize("value", ["9:00", "24:00", "12:60", "ab:cd", "12:00:00", "", None])
    def test_to_minutes_rejects_bad_times(self, value):
        with pytest.raises(InvalidFormatError):
            to_minutes(value)

    @pytest.mark.parametrize("value", ["10:00\n", "\uff11\uff10:\uff10\uff10", "\u0661\u0660:\u0660\u0660"])
    def test_to_minutes_rejects_trailing_newline_and_non_ascii_digits(self, value):
        with pytest.raises(InvalidFormatError):
            to_minutes(value)

    def test_from_minutes(self):
        assert from_minutes(0) == "00:00"
        assert from_minutes(765) == "12:45"

    def test_from_minutes_outside_day(self):
        with pytest.raises(InvalidFormatError):
            from_minutes(24 * 60)


@pytest.mark.time_utils
class TestOverlap:
    """Test suite for the half-open overlap predicate."""

    def test_touching_ranges_do_not_overlap(self):
        assert not ranges_overlap("10:00", "11:00", "11:00", "12:00")
        assert not ranges_overlap("11:00", "12:00", "10:00", "11:00")

    def test_partial_overlap(self):
        assert ranges_overlap("10:00", "11:00", "10:30", "11:30")
        assert ranges_overlap("10:30", "11:30", "10:00", "11:00")

    def test_one_minute_gap(self):
        assert not ranges_overlap("10:00", "10:59", "11:00", "12:00")

    def test_containment(self):
        assert overlaps(600, 720, 630, 660)
        assert overlaps(630, 660, 600, 720)

    def test_identical_ranges(self):
        assert overlaps(600, 660, 600, 660)


@pytest.mark.time_utils
class TestDates:
    """Test suite for calendar dates and lead times."""

    def test_parse_date(self):
        assert parse_date("2030-01-07") == date(2030, 1, 7)
        assert parse_date(date(2030, 1, 7)) == date(2030, 1, 7)

    @pytest.mark.parametrize("value", ["2030-1-7", "07/01/2030", "2030-02-30", "tomorrow", "2030-01-07\n"])
    def test_parse_date_rejects_bad_dates(self, value):
        with pytest.raises(InvalidFormatError):
            parse_date(value)

    def test_unknown_timezone(self):
        with pytest.raises(InvalidFormatError):
            business_timezone("Mars/Olympus_Mons")

    def test_hours_until_utc(self):
        now = datetime(2030, 1, 7, 12, 0, tzinfo=timezone.utc)
        assert hours_until(date(2030, 1, 8), "12:00", now, timezone.utc) == pytest.approx(24)

    def test_hours_until_business_timezone(self):
        # 09:00 in New York is 14:00 UTC in January
        now = datetime(2030, 1, 7, 12, 0, tzinfo=timezone.utc)
        tz = business_timezone("America/New_York")
        assert hours_until(date(2030, 1, 7), "09:00", now, tz) == pytest.approx(2)

    def test_hours_until_negative_once_started(self):
        now = datetime(2030, 1, 7, 12, 0, tzinfo=timezone.utc)
        assert hours_until(date(2030, 1, 7), "11:00", now, timezone.utc) == pytest.approx(-1)
