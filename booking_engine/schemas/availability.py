# booking_engine/schemas/availability.py
from datetime import date as DateType
from typing import Annotated, Optional, List, Literal

from pydantic import AfterValidator, BaseModel, Field, model_validator

from booking_engine.core.exceptions import InvalidFormatError
from booking_engine.services.scheduling.time_utils import to_minutes


def _validate_hhmm(value: str) -> str:
    try:
        to_minutes(value)
    except InvalidFormatError as exc:
        raise ValueError(exc.message)
    return value


# HH:MM 24-hour wall-clock time
WallClock = Annotated[str, AfterValidator(_validate_hhmm)]


class AvailabilityResult(BaseModel):
    """Outcome of checking one slot"""
    available: bool = Field(..., description="Whether the slot can be booked")
    reason: Optional[str] = Field(None, description="Why the slot is unavailable")
    code: Optional[str] = Field(None, description="Error code of the failing check")


class TimeSlot(BaseModel):
    """Available time slot"""
    start_time: str = Field(..., description="Slot start (HH:MM)")
    end_time: str = Field(..., description="Slot end (HH:MM)")
    duration_minutes: int = Field(..., description="Slot length")


class AvailableSlotsResponse(BaseModel):
    business_id: str
    date: DateType
    duration_minutes: int
    slots: List[TimeSlot] = Field(default_factory=list)


class BreakWindow(BaseModel):
    """Break inside business hours"""
    start_time: WallClock = Field(..., description="Break start (HH:MM)")
    end_time: WallClock = Field(..., description="Break end (HH:MM)")
    name: Optional[str] = Field(None, description="Label such as Lunch")


class BusinessHoursRequest(BaseModel):
    """Business operating hours for one weekday"""
    is_closed: bool = Field(False, description="Whether business is closed this day")
    open_time: Optional[WallClock] = Field(None, description="Opening time (HH:MM)")
    close_time: Optional[WallClock] = Field(None, description="Closing time (HH:MM)")
    breaks: List[BreakWindow] = Field(default_factory=list)

    @model_validator(mode="after")
    def require_times_when_open(self) -> "BusinessHoursRequest":
        if not self.is_closed and (self.open_time is None or self.close_time is None):
            raise ValueError("open_time and close_time are required when the business is open")
        return self


class AvailabilityOverrideRequest(BaseModel):
    """Special hours or a day off for one date"""
    is_available: bool = Field(..., description="False marks the whole day closed")
    start_time: Optional[WallClock] = Field(None, description="Replacement opening time (HH:MM)")
    end_time: Optional[WallClock] = Field(None, description="Replacement closing time (HH:MM)")
    reason: Optional[str] = Field(None, description="Holiday, Vacation, etc.")


class BlockedSlotRequest(BaseModel):
    """Blackout window request"""
    date: DateType = Field(..., description="Date of the block, or first date for recurring blocks")
    start_time: WallClock = Field(..., description="Block start (HH:MM)")
    end_time: WallClock = Field(..., description="Block end (HH:MM)")
    reason: Optional[str] = Field(None, description="Shown to customers when a booking is refused")
    is_recurring: bool = Field(False)
    recurring_pattern: Optional[Literal["daily", "weekly", "monthly"]] = None

    @model_validator(mode="after")
    def pattern_matches_recurrence(self) -> "BlockedSlotRequest":
        if self.is_recurring and not self.recurring_pattern:
            raise ValueError("recurring_pattern is required for recurring blocks")
        return self
