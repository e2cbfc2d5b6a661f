# booking_engine/schemas/appointment.py
from datetime import date as DateType
from typing import Optional, List

from pydantic import BaseModel, ConfigDict, Field

from booking_engine.schemas.availability import WallClock


class BookAppointmentRequest(BaseModel):
    """Appointment booking request"""
    business_id: str = Field(..., description="Business identifier")
    customer_id: str = Field(..., min_length=1, description="Customer identifier")
    date: DateType = Field(..., description="Appointment date (YYYY-MM-DD)")
    start_time: WallClock = Field(..., description="Start time (HH:MM)")
    end_time: WallClock = Field(..., description="End time (HH:MM)")
    service_type: str = Field(..., min_length=1, max_length=200, description="Requested service")
    price: Optional[float] = Field(None, ge=0, description="Service price")
    notes: Optional[str] = Field(None, max_length=2000, description="Additional notes")
    vehicle_id: Optional[str] = Field(None, description="Customer vehicle")
    staff_id: Optional[str] = Field(None, description="Assigned staff member")


class StatusChangeRequest(BaseModel):
    status: str = Field(..., description="Target status")
    reason: Optional[str] = Field(None, max_length=1000)


class CancelAppointmentRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=1000, description="Why the appointment is cancelled")


class RescheduleAppointmentRequest(BaseModel):
    new_date: DateType = Field(..., description="New date (YYYY-MM-DD)")
    new_start_time: WallClock = Field(..., description="New start time (HH:MM)")
    new_end_time: WallClock = Field(..., description="New end time (HH:MM)")
    reason: Optional[str] = Field(None, max_length=1000)


class CancellationQuoteResponse(BaseModel):
    appointment_id: str
    refund_percentage: int
    refund_amount: float
    hours_until_appointment: float


class RefundTierSchema(BaseModel):
    hours_before_appointment: float = Field(..., ge=0, allow_inf_nan=False)
    refund_percentage: int = Field(..., ge=0, le=100)


class BookingSettings(BaseModel):
    """Per-business overrides of the cancellation and reschedule policy"""
    model_config = ConfigDict(extra="forbid")

    refund_tiers: Optional[List[RefundTierSchema]] = Field(None, min_length=1)
    cancellation_hours: Optional[float] = Field(None, ge=0, allow_inf_nan=False)
    reschedule_hours: Optional[float] = Field(None, ge=0, allow_inf_nan=False)


class CancellationPolicyResponse(BaseModel):
    appointment_id: str
    can_cancel: bool
    reason: Optional[str] = None
    refund_percentage: int
    refund_amount: float
    hours_until_appointment: float
    cancellation_deadline_hours: float
    tiers: List[RefundTierSchema] = Field(default_factory=list)
