# ============================================================================
# FILE: booking_engine/api/v1/businesses.py
# Business calendar management: weekly hours, date overrides, blocked slots
# ============================================================================
from fastapi import APIRouter, Depends, Query, Path
from sqlalchemy.orm import Session
from datetime import date
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from booking_engine.api.dependencies import Actor, get_actor
from booking_engine.config.database import get_db
from booking_engine.schemas.appointment import BookingSettings
from booking_engine.schemas.availability import (
    AvailabilityOverrideRequest,
    BlockedSlotRequest,
    BusinessHoursRequest,
)
from booking_engine.services.availability.availability_service import AvailabilityService
from booking_engine.services.business.business_hours_service import BusinessHoursService

router = APIRouter(prefix="/businesses", tags=["businesses"])


class CreateBusinessRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    timezone: Optional[str] = Field(None, description="IANA timezone, e.g. America/New_York")
    booking_settings: BookingSettings = Field(
        default_factory=BookingSettings,
        description="Overrides: cancellation_hours, reschedule_hours, refund_tiers"
    )


@router.post("", status_code=201)
def create_business(request: CreateBusinessRequest, db: Session = Depends(get_db)):
    business = BusinessHoursService.create_business(
        db=db,
        name=request.name,
        timezone=request.timezone,
        booking_settings=request.booking_settings.model_dump(exclude_none=True),
    )
    return business.to_dict()


@router.get("/{business_id}")
def get_business(
        business_id: UUID = Path(..., description="The business ID"),
        db: Session = Depends(get_db)
):
    return AvailabilityService.get_business(db, business_id).to_dict()


# ============================================================================
# WEEKLY HOURS
# ============================================================================

@router.get("/{business_id}/hours")
def get_business_hours(
        business_id: UUID = Path(..., description="The business ID"),
        db: Session = Depends(get_db)
):
    return {
        "business_id": str(business_id),
        "hours": BusinessHoursService.get_business_hours(db, business_id),
    }


@router.put("/{business_id}/hours/{day_of_week}")
def set_business_hours(
        request: BusinessHoursRequest,
        business_id: UUID = Path(..., description="The business ID"),
        day_of_week: int = Path(..., ge=0, le=6, description="0=Monday, 6=Sunday"),
        db: Session = Depends(get_db)
):
    hours = BusinessHoursService.set_business_hours(
        db=db,
        business_id=business_id,
        day_of_week=day_of_week,
        open_time=request.open_time,
        close_time=request.close_time,
        is_closed=request.is_closed,
        breaks=[b.model_dump() for b in request.breaks],
    )
    return hours.to_dict()


# ============================================================================
# DATE OVERRIDES
# ============================================================================

@router.put("/{business_id}/overrides/{override_date}")
def set_override(
        request: AvailabilityOverrideRequest,
        business_id: UUID = Path(..., description="The business ID"),
        override_date: date = Path(..., description="Date (YYYY-MM-DD)"),
        db: Session = Depends(get_db)
):
    override = BusinessHoursService.set_override(
        db=db,
        business_id=business_id,
        override_date=override_date,
        is_available=request.is_available,
        start_time=request.start_time,
        end_time=request.end_time,
        reason=request.reason,
    )
    return override.to_dict()


@router.delete("/{business_id}/overrides/{override_date}", status_code=204)
def delete_override(
        business_id: UUID = Path(..., description="The business ID"),
        override_date: date = Path(..., description="Date (YYYY-MM-DD)"),
        db: Session = Depends(get_db)
):
    BusinessHoursService.delete_override(db=db, business_id=business_id, override_date=override_date)


# ============================================================================
# BLOCKED TIME SLOTS
# ============================================================================

@router.get("/{business_id}/blocked-slots")
def list_blocked_slots(
        business_id: UUID = Path(..., description="The business ID"),
        start_date: Optional[date] = Query(None),
        end_date: Optional[date] = Query(None),
        include_inactive: bool = Query(False),
        db: Session = Depends(get_db)
):
    return {
        "business_id": str(business_id),
        "blocked_slots": BusinessHoursService.list_blocked_slots(
            db=db,
            business_id=business_id,
            start_date=start_date,
            end_date=end_date,
            include_inactive=include_inactive,
        ),
    }


@router.post("/{business_id}/blocked-slots", status_code=201)
def create_blocked_slot(
        request: BlockedSlotRequest,
        business_id: UUID = Path(..., description="The business ID"),
        actor: Actor = Depends(get_actor),
        db: Session = Depends(get_db)
):
    block = BusinessHoursService.create_blocked_slot(
        db=db,
        business_id=business_id,
        block_date=request.date,
        start_time=request.start_time,
        end_time=request.end_time,
        reason=request.reason,
        is_recurring=request.is_recurring,
        recurring_pattern=request.recurring_pattern,
        created_by=str(actor),
    )
    return block.to_dict()


@router.delete("/{business_id}/blocked-slots/{slot_id}")
def deactivate_blocked_slot(
        business_id: UUID = Path(..., description="The business ID"),
        slot_id: UUID = Path(..., description="The blocked slot ID"),
        db: Session = Depends(get_db)
):
    block = BusinessHoursService.deactivate_blocked_slot(db=db, business_id=business_id, slot_id=slot_id)
    return block.to_dict()
