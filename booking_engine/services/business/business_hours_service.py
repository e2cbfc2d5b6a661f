# ============================================================================
# booking_engine/services/business/business_hours_service.py
# Businesses, weekly hours, date overrides and blocked time slots
# ============================================================================
from sqlalchemy.orm import Session
from datetime import date
from typing import Optional, Dict, Any, List, Union
from uuid import UUID

from pydantic import ValidationError

from booking_engine.config.settings import get_settings
from booking_engine.core.exceptions import InvalidDurationError, InvalidFormatError, NotFoundError
from booking_engine.models.availability import AvailabilityOverride, BlockedTimeSlot, RECURRING_PATTERNS
from booking_engine.models.business import Business, BusinessHours
from booking_engine.schemas.appointment import BookingSettings
from booking_engine.services.availability.availability_service import AvailabilityService
from booking_engine.services.scheduling.time_utils import business_timezone, overlaps, parse_date, to_minutes
from booking_engine.utils.identifiers import as_uuid
import logging

logger = logging.getLogger(__name__)

DAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]


def parse_booking_settings(raw: Optional[Dict[str, Any]]) -> BookingSettings:
    """Validate a business's policy overrides, stored or incoming."""
    try:
        return BookingSettings.model_validate(raw or {})
    except ValidationError as e:
        problems = [
            f"{'.'.join(str(part) for part in error['loc']) or 'booking_settings'}: {error['msg']}"
            for error in e.errors()
        ]
        raise InvalidFormatError("Invalid booking settings", details={"problems": problems}) from e


def _check_range(start_time: str, end_time: str, label: str) -> None:
    if to_minutes(start_time) >= to_minutes(end_time):
        raise InvalidDurationError(f"{label} start time must be before end time")


class BusinessHoursService:
    """Manages the calendar rules the availability checks read."""

    @staticmethod
    def create_business(
            db: Session,
            name: str,
            timezone: Optional[str] = None,
            booking_settings: Optional[Dict[str, Any]] = None
    ) -> Business:
        if not name or not name.strip():
            raise InvalidFormatError("Business name is required")
        timezone = timezone or get_settings().DEFAULT_TIMEZONE
        business_timezone(timezone)

        business = Business(
            name=name.strip(),
            timezone=timezone,
            booking_settings=parse_booking_settings(booking_settings).model_dump(exclude_none=True),
        )
        db.add(business)
        db.commit()
        db.refresh(business)

        logger.info(f"Created business {business.id} ({business.name})")
        return business

    @staticmethod
    def get_business_hours(db: Session, business_id: Union[str, UUID]) -> List[Dict[str, Any]]:
        """Weekly hours, one entry per configured weekday."""
        business = AvailabilityService.get_business(db, business_id)
        hours = db.query(BusinessHours).filter(
            BusinessHours.business_id == business.id
        ).order_by(BusinessHours.day_of_week).all()

        result = []
        for row in hours:
            entry = row.to_dict()
            entry["day_name"] = DAY_NAMES[row.day_of_week]
            result.append(entry)
        return result

    @staticmethod
    def set_business_hours(
            db: Session,
            business_id: Union[str, UUID],
            day_of_week: int,
            open_time: Optional[str] = None,
            close_time: Optional[str] = None,
            is_closed: bool = False,
            breaks: Optional[List[Dict[str, Any]]] = None
    ) -> BusinessHours:
        """Create or replace the hours of one weekday."""
        business = AvailabilityService.get_business(db, business_id)
        if day_of_week not in range(7):
            raise InvalidFormatError("day_of_week must be between 0 (Monday) and 6 (Sunday)")

        breaks = list(breaks or [])
        if is_closed:
            open_time = close_time = None
            breaks = []
        else:
            if not open_time or not close_time:
                raise InvalidFormatError("open_time and close_time are required when the business is open")
            _check_range(open_time, close_time, "Opening")
            BusinessHoursService._validate_breaks(open_time, close_time, breaks)

        hours = db.query(BusinessHours).filter(
            BusinessHours.business_id == business.id,
            BusinessHours.day_of_week == day_of_week
        ).first()
        if not hours:
            hours = BusinessHours(business_id=business.id, day_of_week=day_of_week)
            db.add(hours)

        hours.open_time = open_time
        hours.close_time = close_time
        hours.is_closed = is_closed
        hours.breaks = [
            {"start_time": b["start_time"], "end_time": b["end_time"], "name": b.get("name")}
            for b in breaks
        ]
        db.commit()
        db.refresh(hours)

        logger.info(f"Updated {DAY_NAMES[day_of_week]} hours for business {business.id}")
        return hours

    @staticmethod
    def _validate_breaks(open_time: str, close_time: str, breaks: List[Dict[str, Any]]) -> None:
        """Breaks must sit inside the opening hours and not overlap each other."""
        open_minute = to_minutes(open_time)
        close_minute = to_minutes(close_time)
        windows = []
        for entry in breaks:
            start = to_minutes(entry["start_time"])
            end = to_minutes(entry["end_time"])
            if start >= end:
                raise InvalidDurationError("Break start time must be before end time")
            if start < open_minute or end > close_minute:
                raise InvalidFormatError(
                    f"Break {entry['start_time']}-{entry['end_time']} is outside business hours"
                )
            for other_start, other_end in windows:
                if overlaps(start, end, other_start, other_end):
                    raise InvalidFormatError("Breaks cannot overlap each other")
            windows.append((start, end))

    @staticmethod
    def set_override(
            db: Session,
            business_id: Union[str, UUID],
            override_date: Union[str, date],
            is_available: bool,
            start_time: Optional[str] = None,
            end_time: Optional[str] = None,
            reason: Optional[str] = None
    ) -> AvailabilityOverride:
        """Create or replace the override of one date."""
        business = AvailabilityService.get_business(db, business_id)
        day = parse_date(override_date)

        if is_available:
            if bool(start_time) != bool(end_time):
                raise InvalidFormatError("Provide both start_time and end_time, or neither")
            if start_time and end_time:
                _check_range(start_time, end_time, "Override")
        else:
            start_time = end_time = None

        override = db.query(AvailabilityOverride).filter(
            AvailabilityOverride.business_id == business.id,
            AvailabilityOverride.date == day
        ).first()
        if not override:
            override = AvailabilityOverride(business_id=business.id, date=day)
            db.add(override)

        override.is_available = is_available
        override.start_time = start_time
        override.end_time = end_time
        override.reason = reason
        db.commit()
        db.refresh(override)

        logger.info(f"Set availability override for business {business.id} on {day}")
        return override

    @staticmethod
    def delete_override(db: Session, business_id: Union[str, UUID], override_date: Union[str, date]) -> None:
        business = AvailabilityService.get_business(db, business_id)
        day = parse_date(override_date)
        override = db.query(AvailabilityOverride).filter(
            AvailabilityOverride.business_id == business.id,
            AvailabilityOverride.date == day
        ).first()
        if not override:
            raise NotFoundError(f"No availability override on {day}")

        db.delete(override)
        db.commit()
        logger.info(f"Removed availability override for business {business.id} on {day}")

    @staticmethod
    def create_blocked_slot(
            db: Session,
            business_id: Union[str, UUID],
            block_date: Union[str, date],
            start_time: str,
            end_time: str,
            reason: Optional[str] = None,
            is_recurring: bool = False,
            recurring_pattern: Optional[str] = None,
            created_by: Optional[str] = None
    ) -> BlockedTimeSlot:
        business = AvailabilityService.get_business(db, business_id)
        day = parse_date(block_date)
        _check_range(start_time, end_time, "Blocked slot")

        if is_recurring:
            if recurring_pattern not in RECURRING_PATTERNS:
                raise InvalidFormatError(
                    f"recurring_pattern must be one of: {', '.join(RECURRING_PATTERNS)}"
                )
        else:
            recurring_pattern = None

        block = BlockedTimeSlot(
            business_id=business.id,
            date=day,
            start_time=start_time,
            end_time=end_time,
            reason=reason,
            is_recurring=is_recurring,
            recurring_pattern=recurring_pattern,
            is_active=True,
            created_by=created_by,
        )
        db.add(block)
        db.commit()
        db.refresh(block)

        logger.info(f"Blocked {day} {start_time}-{end_time} for business {business.id}")
        return block

    @staticmethod
    def list_blocked_slots(
            db: Session,
            business_id: Union[str, UUID],
            start_date: Optional[date] = None,
            end_date: Optional[date] = None,
            include_inactive: bool = False
    ) -> List[Dict[str, Any]]:
        business = AvailabilityService.get_business(db, business_id)
        query = db.query(BlockedTimeSlot).filter(BlockedTimeSlot.business_id == business.id)

        if not include_inactive:
            query = query.filter(BlockedTimeSlot.is_active == True)
        if end_date:
            query = query.filter(BlockedTimeSlot.date <= end_date)
        blocks = query.order_by(BlockedTimeSlot.date, BlockedTimeSlot.start_time).all()

        if start_date:
            # Recurring blocks anchored earlier still apply inside the range
            blocks = [b for b in blocks if b.date >= start_date or b.is_recurring]
        return [block.to_dict() for block in blocks]

    @staticmethod
    def deactivate_blocked_slot(
            db: Session,
            business_id: Union[str, UUID],
            slot_id: Union[str, UUID]
    ) -> BlockedTimeSlot:
        business = AvailabilityService.get_business(db, business_id)
        block = db.query(BlockedTimeSlot).filter(
            BlockedTimeSlot.id == as_uuid(slot_id, "slot_id"),
            BlockedTimeSlot.business_id == business.id
        ).first()
        if not block:
            raise NotFoundError(f"Blocked slot {slot_id} not found")

        block.is_active = False
        db.commit()
        db.refresh(block)

        logger.info(f"Deactivated blocked slot {block.id} for business {business.id}")
        return block
