from datetime import timedelta

import pytest

from booking_engine.core.exceptions import InvalidDurationError, InvalidFormatError, NotFoundError
from booking_engine.models import Business
from booking_engine.services.availability.availability_service import AvailabilityService
from booking_engine.services.business.business_hours_service import BusinessHoursService

from conftest import BOOKING_DAY, NOW

LUNCH = {"start_time": "12:00", "end_time": "13:00", "name": "Lunch"}


@pytest.mark.business_hours
class TestBusinesses:
    """Test suite for creating businesses."""

    def test_create_business_uses_default_timezone(self, db_session):
        business = BusinessHoursService.create_business(db_session, "  Quick Lube  ")

        assert business.name == "Quick Lube"
        assert business.timezone == "UTC"
        assert business.is_active is True

    def test_create_business_rejects_unknown_timezone(self, db_session):
        with pytest.raises(InvalidFormatError):
            BusinessHoursService.create_business(db_session, "Quick Lube", timezone="Nowhere/Special")

    def test_create_business_with_booking_settings(self, db_session):
        business = BusinessHoursService.create_business(db_session, "Quick Lube", booking_settings={
            "cancellation_hours": 12,
            "reschedule_hours": None,
            "refund_tiers": [{"hours_before_appointment": 24, "refund_percentage": 80}],
        })

        assert business.booking_settings == {
            "cancellation_hours": 12.0,
            "refund_tiers": [{"hours_before_appointment": 24.0, "refund_percentage": 80}],
        }

    @pytest.mark.parametrize("booking_settings", [
        {"cancellation_hours": -1},
        {"cancellation_hours": "soon"},
        {"reschedule_hours": "soon"},
        {"reschedule_hours": float("inf")},
        {"refund_tiers": [{"hours_before_appointment": -5, "refund_percentage": 50}]},
        {"refund_tiers": [{"hours_before_appointment": 24, "refund_percentage": 150}]},
        {"refund_tiers": [{"refund_percentage": 50}]},
        {"refund_tiers": []},
        {"cancelation_hours": 12},
    ])
    def test_create_business_rejects_bad_booking_settings(self, db_session, booking_settings):
        with pytest.raises(InvalidFormatError) as exc_info:
            BusinessHoursService.create_business(db_session, "Quick Lube", booking_settings=booking_settings)

        assert exc_info.value.details["problems"]
        assert db_session.query(Business).count() == 0


@pytest.mark.business_hours
class TestWeeklyHours:
    """Test suite for weekly operating hours."""

    def test_get_business_hours(self, db_session, sample_business):
        hours = BusinessHoursService.get_business_hours(db_session, sample_business.id)

        assert [entry["day_of_week"] for entry in hours] == list(range(7))
        assert hours[0]["day_name"] == "Monday"
        assert hours[0]["breaks"][0]["name"] == "Lunch"

    def test_replace_day(self, db_session, sample_business):
        hours = BusinessHoursService.set_business_hours(
            db_session, sample_business.id, BOOKING_DAY.weekday(), "08:00", "12:00"
        )

        assert (hours.open_time, hours.close_time, hours.breaks) == ("08:00", "12:00", [])
        AvailabilityService.ensure_slot_available(
            db_session, sample_business.id, BOOKING_DAY, "08:00", "09:00", now=NOW
        )

    def test_close_day_clears_times(self, db_session, sample_business):
        hours = BusinessHoursService.set_business_hours(
            db_session, sample_business.id, 6, "09:00", "17:00", is_closed=True, breaks=[LUNCH]
        )

        assert hours.is_closed is True
        assert hours.open_time is None
        assert hours.breaks == []

    def test_open_day_requires_times(self, db_session, sample_business):
        with pytest.raises(InvalidFormatError):
            BusinessHoursService.set_business_hours(db_session, sample_business.id, 0, open_time="09:00")

    def test_close_before_open(self, db_session, sample_business):
        with pytest.raises(InvalidDurationError):
            BusinessHoursService.set_business_hours(db_session, sample_business.id, 0, "17:00", "09:00")

    def test_invalid_weekday(self, db_session, sample_business):
        with pytest.raises(InvalidFormatError):
            BusinessHoursService.set_business_hours(db_session, sample_business.id, 7, "09:00", "17:00")

    def test_break_outside_hours(self, db_session, sample_business):
        with pytest.raises(InvalidFormatError):
            BusinessHoursService.set_business_hours(
                db_session, sample_business.id, 0, "09:00", "17:00",
                breaks=[{"start_time": "08:30", "end_time": "09:30"}],
            )

    def test_overlapping_breaks(self, db_session, sample_business):
        with pytest.raises(InvalidFormatError):
            BusinessHoursService.set_business_hours(
                db_session, sample_business.id, 0, "09:00", "17:00",
                breaks=[LUNCH, {"start_time": "12:30", "end_time": "13:30"}],
            )

    def test_back_to_back_breaks(self, db_session, sample_business):
        hours = BusinessHoursService.set_business_hours(
            db_session, sample_business.id, 0, "09:00", "17:00",
            breaks=[LUNCH, {"start_time": "13:00", "end_time": "13:15", "name": "Coffee"}],
        )

        assert len(hours.breaks) == 2


@pytest.mark.business_hours
class TestOverrides:
    """Test suite for date overrides."""

    def test_set_and_replace_override(self, db_session, sample_business):
        BusinessHoursService.set_override(db_session, sample_business.id, BOOKING_DAY, False, reason="Holiday")
        override = BusinessHoursService.set_override(
            db_session, sample_business.id, BOOKING_DAY, True, "10:00", "14:00", reason="Short day"
        )

        assert (override.is_available, override.start_time, override.end_time) == (True, "10:00", "14:00")
        assert override.reason == "Short day"

    def test_closed_override_drops_times(self, db_session, sample_business):
        override = BusinessHoursService.set_override(
            db_session, sample_business.id, BOOKING_DAY, False, "10:00", "14:00"
        )

        assert override.start_time is None

    def test_override_needs_both_times(self, db_session, sample_business):
        with pytest.raises(InvalidFormatError):
            BusinessHoursService.set_override(db_session, sample_business.id, BOOKING_DAY, True, start_time="10:00")

    def test_delete_override(self, db_session, sample_business):
        BusinessHoursService.set_override(db_session, sample_business.id, BOOKING_DAY, False)
        BusinessHoursService.delete_override(db_session, sample_business.id, BOOKING_DAY.isoformat())

        AvailabilityService.ensure_slot_available(
            db_session, sample_business.id, BOOKING_DAY, "10:00", "11:00", now=NOW
        )
        with pytest.raises(NotFoundError):
            BusinessHoursService.delete_override(db_session, sample_business.id, BOOKING_DAY)


@pytest.mark.business_hours
class TestBlockedSlotManagement:
    """Test suite for creating and retiring blocked slots."""

    def test_create_and_list(self, db_session, sample_business):
        block = BusinessHoursService.create_blocked_slot(
            db_session, sample_business.id, BOOKING_DAY, "10:00", "11:00",
            reason="Inventory", created_by="staff:1",
        )

        listed = BusinessHoursService.list_blocked_slots(db_session, sample_business.id)
        assert [entry["id"] for entry in listed] == [str(block.id)]
        assert listed[0]["created_by"] == "staff:1"
        assert listed[0]["recurring_pattern"] is None

    def test_recurring_requires_pattern(self, db_session, sample_business):
        with pytest.raises(InvalidFormatError):
            BusinessHoursService.create_blocked_slot(
                db_session, sample_business.id, BOOKING_DAY, "10:00", "11:00", is_recurring=True
            )

    def test_list_keeps_earlier_recurring_blocks(self, db_session, sample_business):
        BusinessHoursService.create_blocked_slot(
            db_session, sample_business.id, BOOKING_DAY, "10:00", "11:00",
            is_recurring=True, recurring_pattern="weekly",
        )
        BusinessHoursService.create_blocked_slot(db_session, sample_business.id, BOOKING_DAY, "15:00", "16:00")

        listed = BusinessHoursService.list_blocked_slots(
            db_session, sample_business.id, start_date=BOOKING_DAY + timedelta(days=7)
        )
        assert [entry["start_time"] for entry in listed] == ["10:00"]

    def test_deactivate(self, db_session, sample_business):
        block = BusinessHoursService.create_blocked_slot(
            db_session, sample_business.id, BOOKING_DAY, "10:00", "11:00"
        )

        BusinessHoursService.deactivate_blocked_slot(db_session, sample_business.id, block.id)

        assert BusinessHoursService.list_blocked_slots(db_session, sample_business.id) == []
        assert len(BusinessHoursService.list_blocked_slots(
            db_session, sample_business.id, include_inactive=True
        )) == 1
        AvailabilityService.ensure_slot_available(
            db_session, sample_business.id, BOOKING_DAY, "10:00", "11:00", now=NOW
        )

    def test_deactivate_unknown(self, db_session, sample_business):
        with pytest.raises(NotFoundError):
            BusinessHoursService.deactivate_blocked_slot(
                db_session, sample_business.id, "00000000-0000-0000-0000-000000000003"
            )
