# ============================================================================
# FILE: booking_engine/api/v1/availability.py
# Slot availability endpoints
# ============================================================================
from fastapi import APIRouter, Depends, Query, Path
from sqlalchemy.orm import Session
from datetime import date
from typing import Optional
from uuid import UUID

from booking_engine.config.database import get_db
from booking_engine.schemas.availability import AvailabilityResult, AvailableSlotsResponse
from booking_engine.services.availability.availability_service import AvailabilityService

router = APIRouter(prefix="/businesses/{business_id}/availability", tags=["availability"])


@router.get("", response_model=AvailabilityResult)
def check_availability(
        business_id: UUID = Path(..., description="The business ID"),
        slot_date: date = Query(..., alias="date", description="Date (YYYY-MM-DD)"),
        start_time: str = Query(..., description="Start time (HH:MM)"),
        end_time: str = Query(..., description="End time (HH:MM)"),
        exclude_appointment_id: Optional[UUID] = Query(None, description="Ignore this appointment when checking overlaps"),
        db: Session = Depends(get_db)
):
    """
    Check whether one slot can be booked.
    Returns the reason of the first failing check when it cannot.
    """
    return AvailabilityService.check_availability(
        db=db,
        business_id=business_id,
        slot_date=slot_date,
        start_time=start_time,
        end_time=end_time,
        exclude_appointment_id=exclude_appointment_id,
    )


@router.get("/slots", response_model=AvailableSlotsResponse)
def list_available_slots(
        business_id: UUID = Path(..., description="The business ID"),
        slot_date: date = Query(..., alias="date", description="Date (YYYY-MM-DD)"),
        duration_minutes: int = Query(60, ge=1, description="Requested appointment length"),
        db: Session = Depends(get_db)
):
    slots = AvailabilityService.list_available_slots(
        db=db,
        business_id=business_id,
        slot_date=slot_date,
        duration_minutes=duration_minutes,
    )
    return {
        "business_id": str(business_id),
        "date": slot_date,
        "duration_minutes": duration_minutes,
        "slots": slots,
    }
