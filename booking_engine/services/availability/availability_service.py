from dataclasses import dataclass, field
from datetime import date, datetime
from typing import List, Dict, Optional, Tuple, Union
from uuid import UUID

from sqlalchemy.orm import Session

from booking_engine.config.settings import get_settings
from booking_engine.core.exceptions import (
    SchedulingError,
    InvalidFormatError,
    InvalidDurationError,
    OutsideBusinessHoursError,
    BlockedSlotError,
    SlotConflictError,
    NotFoundError,
)
from booking_engine.models.business import Business, BusinessHours
from booking_engine.models.availability import AvailabilityOverride, BlockedTimeSlot
from booking_engine.models.appointment import Appointment
from booking_engine.schemas.availability import AvailabilityResult
from booking_engine.services.scheduling.time_utils import (
    to_minutes,
    from_minutes,
    overlaps,
    parse_date,
    business_timezone,
    ensure_utc,
)
from booking_engine.utils.identifiers import as_uuid
import logging

logger = logging.getLogger(__name__)


@dataclass
class DayWindow:
    """Opening window of one calendar day, in minutes since midnight"""
    open_minute: int
    close_minute: int
    breaks: List[Tuple[int, int]] = field(default_factory=list)
    source: str = "weekly"  # weekly, override


class AvailabilityService:
    """Decides whether a slot on a business calendar can be booked"""

    @staticmethod
    def get_business(db: Session, business_id: Union[str, UUID]) -> Business:
        business = db.query(Business).filter(
            Business.id == as_uuid(business_id, "business_id"),
            Business.is_active == True
        ).first()

        if not business:
            raise NotFoundError(f"Business {business_id} not found")
        return business

    @staticmethod
    def resolve_day_window(db: Session, business: Business, day: date) -> Optional[DayWindow]:
        """
        Opening window for a date, or None when the business is closed.

        A date override replaces the weekly hours for that day (and its breaks).
        """
        override = db.query(AvailabilityOverride).filter(
            AvailabilityOverride.business_id == business.id,
            AvailabilityOverride.date == day
        ).first()

        if override:
            if not override.is_available:
                return None

            weekly = AvailabilityService._weekly_hours(db, business.id, day)
            open_time = override.start_time or (weekly.open_time if weekly else None)
            close_time = override.end_time or (weekly.close_time if weekly else None)
            if not open_time or not close_time:
                return None
            return DayWindow(to_minutes(open_time), to_minutes(close_time), [], source="override")

        hours = AvailabilityService._weekly_hours(db, business.id, day)
        if not hours or hours.is_closed or not hours.open_time or not hours.close_time:
            return None

        breaks = [
            (to_minutes(b["start_time"]), to_minutes(b["end_time"]))
            for b in (hours.breaks or [])
        ]
        return DayWindow(to_minutes(hours.open_time), to_minutes(hours.close_time), breaks)

    @staticmethod
    def _weekly_hours(db: Session, business_id: UUID, day: date) -> Optional[BusinessHours]:
        return db.query(BusinessHours).filter(
            BusinessHours.business_id == business_id,
            BusinessHours.day_of_week == day.weekday()
        ).first()

    @staticmethod
    def active_blocks_for(db: Session, business_id: UUID, day: date) -> List[BlockedTimeSlot]:
        """Active blocks covering a date, recurring ones included"""
        candidates = db.query(BlockedTimeSlot).filter(
            BlockedTimeSlot.business_id == business_id,
            BlockedTimeSlot.is_active == True,
            BlockedTimeSlot.date <= day
        ).all()

        return [block for block in candidates if block.applies_on(day)]

    @staticmethod
    def booked_appointments_for(
            db: Session,
            business_id: UUID,
            day: date,
            exclude_appointment_id: Optional[UUID] = None
    ) -> List[Appointment]:
        """Non-cancelled appointments of a business calendar day"""
        query = db.query(Appointment).filter(
            Appointment.business_id == business_id,
            Appointment.date == day,
            Appointment.status != "cancelled"
        )
        if exclude_appointment_id is not None:
            query = query.filter(Appointment.id != exclude_appointment_id)

        return query.order_by(Appointment.start_time.asc()).all()

    @staticmethod
    def ensure_slot_available(
            db: Session,
            business_id: Union[str, UUID],
            slot_date: Union[str, date],
            start_time: str,
            end_time: str,
            exclude_appointment_id: Optional[Union[str, UUID]] = None,
            now: Optional[datetime] = None
    ) -> date:
        """
        Run every availability check in order and raise on the first failure.

        Returns the parsed date.
        """
        settings = get_settings()

        # 1. Business and date
        business = AvailabilityService.get_business(db, business_id)
        day = parse_date(slot_date)
        today = ensure_utc(now).astimezone(business_timezone(business.timezone)).date()
        if day < today:
            raise InvalidFormatError("Cannot book appointments in the past")

        # 2. Times and duration
        start = to_minutes(start_time)
        end = to_minutes(end_time)
        if start >= end:
            raise InvalidDurationError("Start time must be before end time")

        duration = end - start
        if duration < settings.MIN_APPOINTMENT_MINUTES:
            raise InvalidDurationError(
                f"Minimum appointment duration is {settings.MIN_APPOINTMENT_MINUTES} minutes"
            )
        if duration > settings.MAX_APPOINTMENT_MINUTES:
            raise InvalidDurationError(
                f"Maximum appointment duration is {settings.MAX_APPOINTMENT_MINUTES} minutes"
            )

        # 3. Business hours
        window = AvailabilityService.resolve_day_window(db, business, day)
        AvailabilityService._check_window(window, start, end)

        # 4. Blocked time slots
        AvailabilityService._check_blocks(
            AvailabilityService.active_blocks_for(db, business.id, day), start, end
        )

        # 5. Existing appointments
        exclude_id = as_uuid(exclude_appointment_id) if exclude_appointment_id else None
        AvailabilityService._check_appointments(
            AvailabilityService.booked_appointments_for(db, business.id, day, exclude_id), start, end
        )

        return day

    @staticmethod
    def check_availability(
            db: Session,
            business_id: Union[str, UUID],
            slot_date: Union[str, date],
            start_time: str,
            end_time: str,
            exclude_appointment_id: Optional[Union[str, UUID]] = None,
            now: Optional[datetime] = None
    ) -> AvailabilityResult:
        """Yes/no answer with the reason of the first failing check"""
        try:
            AvailabilityService.ensure_slot_available(
                db, business_id, slot_date, start_time, end_time, exclude_appointment_id, now
            )
        except SchedulingError as exc:
            if exc.retryable or exc.status_code >= 500:
                raise
            return AvailabilityResult(available=False, reason=exc.message, code=exc.code)

        return AvailabilityResult(available=True)

    @staticmethod
    def list_available_slots(
            db: Session,
            business_id: Union[str, UUID],
            slot_date: Union[str, date],
            duration_minutes: int,
            now: Optional[datetime] = None
    ) -> List[Dict]:
        """Generate bookable slots for a single day"""
        settings = get_settings()

        business = AvailabilityService.get_business(db, business_id)
        day = parse_date(slot_date)
        if duration_minutes < settings.MIN_APPOINTMENT_MINUTES or duration_minutes > settings.MAX_APPOINTMENT_MINUTES:
            raise InvalidDurationError(
                f"Duration must be between {settings.MIN_APPOINTMENT_MINUTES} "
                f"and {settings.MAX_APPOINTMENT_MINUTES} minutes"
            )

        local_now = ensure_utc(now).astimezone(business_timezone(business.timezone))
        if day < local_now.date():
            return []

        window = AvailabilityService.resolve_day_window(db, business, day)
        if window is None:
            return []

        blocks = AvailabilityService.active_blocks_for(db, business.id, day)
        booked = AvailabilityService.booked_appointments_for(db, business.id, day)

        # Slots that already started today are not offered
        earliest = window.open_minute
        if day == local_now.date():
            earliest = max(earliest, local_now.hour * 60 + local_now.minute)

        slots = []
        current = window.open_minute
        while current + duration_minutes <= window.close_minute:
            slot_end = current + duration_minutes
            if current >= earliest:
                try:
                    AvailabilityService._check_window(window, current, slot_end)
                    AvailabilityService._check_blocks(blocks, current, slot_end)
                    AvailabilityService._check_appointments(booked, current, slot_end)
                except SchedulingError:
                    pass
                else:
                    slots.append({
                        "start_time": from_minutes(current),
                        "end_time": from_minutes(slot_end),
                        "duration_minutes": duration_minutes,
                    })

            current += settings.SLOT_INTERVAL_MINUTES

        return slots

    @staticmethod
    def _check_window(window: Optional[DayWindow], start: int, end: int) -> None:
        if window is None:
            raise OutsideBusinessHoursError("Business is closed on the selected date")

        if start < window.open_minute or end > window.close_minute:
            raise OutsideBusinessHoursError(
                f"Appointment must be within business hours: "
                f"{from_minutes(window.open_minute)} - {from_minutes(window.close_minute)}"
            )

        for break_start, break_end in window.breaks:
            if overlaps(start, end, break_start, break_end):
                raise OutsideBusinessHoursError(
                    f"Selected time overlaps a break: "
                    f"{from_minutes(break_start)} - {from_minutes(break_end)}"
                )

    @staticmethod
    def _check_blocks(blocks: List[BlockedTimeSlot], start: int, end: int) -> None:
        for block in blocks:
            if overlaps(start, end, to_minutes(block.start_time), to_minutes(block.end_time)):
                message = f"Selected time conflicts with blocked period: {block.start_time} - {block.end_time}"
                if block.reason:
                    message += f" ({block.reason})"
                raise BlockedSlotError(message, details={"blocked_slot_id": str(block.id)})

    @staticmethod
    def _check_appointments(appointments: List[Appointment], start: int, end: int) -> None:
        for appointment in appointments:
            if overlaps(start, end, to_minutes(appointment.start_time), to_minutes(appointment.end_time)):
                raise SlotConflictError(
                    "Time slot conflicts with an existing appointment",
                    details={"conflicting_appointment_id": str(appointment.id)},
                )
