# ============================================================================
# FILE: booking_engine/api/v1/appointments.py
# Appointment endpoints - thin HTTP layer over the appointment services
# ============================================================================
from fastapi import APIRouter, Depends, Query, Path
from sqlalchemy.orm import Session
from datetime import date
from typing import Optional
from uuid import UUID

from booking_engine.api.dependencies import (
    Actor,
    get_actor,
    get_appointment_service,
    get_cancellation_service,
    get_rescheduling_service,
)
from booking_engine.config.database import get_db
from booking_engine.schemas.appointment import (
    BookAppointmentRequest,
    CancelAppointmentRequest,
    CancellationPolicyResponse,
    CancellationQuoteResponse,
    RescheduleAppointmentRequest,
    StatusChangeRequest,
)
from booking_engine.services.appointment.appointment_query_service import AppointmentQueryService
from booking_engine.services.appointment.appointment_service import AppointmentService
from booking_engine.services.appointment.cancellation_service import CancellationService
from booking_engine.services.appointment.rescheduling_service import ReschedulingService

router = APIRouter(prefix="/appointments", tags=["appointments"])


@router.post("", status_code=201)
def book_appointment(
        request: BookAppointmentRequest,
        actor: Actor = Depends(get_actor),
        service: AppointmentService = Depends(get_appointment_service),
        db: Session = Depends(get_db)
):
    """
    Book a time slot.
    Fails with 409 when the slot is outside business hours, blocked or taken.
    """
    appointment = service.book_appointment(
        db=db,
        business_id=request.business_id,
        customer_id=request.customer_id,
        appointment_date=request.date,
        start_time=request.start_time,
        end_time=request.end_time,
        service_type=request.service_type,
        price=request.price,
        notes=request.notes,
        vehicle_id=request.vehicle_id,
        staff_id=request.staff_id,
        actor=str(actor),
    )
    return AppointmentQueryService.serialize_appointment(appointment, detailed=True)


@router.get("")
def list_appointments(
        business_id: UUID = Query(..., description="Business whose appointments to list"),
        start_date: Optional[date] = Query(None, description="Filter appointments on or after this date"),
        end_date: Optional[date] = Query(None, description="Filter appointments on or before this date"),
        status: Optional[str] = Query(None,
                                      description="Filter by status (scheduled, confirmed, in-progress, completed, cancelled, no-show, rescheduled)"),
        customer_id: Optional[str] = Query(None, description="Filter by customer"),
        service_type: Optional[str] = Query(None, description="Filter by service type"),
        skip: int = Query(0, ge=0, description="Number of records to skip"),
        limit: int = Query(50, ge=1, le=100, description="Number of records to return"),
        db: Session = Depends(get_db)
):
    return AppointmentQueryService.list_appointments(
        db=db,
        business_id=business_id,
        start_date=start_date,
        end_date=end_date,
        status=status,
        customer_id=customer_id,
        service_type=service_type,
        skip=skip,
        limit=limit
    )


@router.get("/{appointment_id}")
def get_appointment(
        appointment_id: UUID = Path(..., description="The appointment ID"),
        db: Session = Depends(get_db)
):
    return AppointmentQueryService.get_appointment_by_id(db=db, appointment_id=appointment_id)


@router.post("/{appointment_id}/status")
def change_status(
        request: StatusChangeRequest,
        appointment_id: UUID = Path(..., description="The appointment ID"),
        actor: Actor = Depends(get_actor),
        service: AppointmentService = Depends(get_appointment_service),
        db: Session = Depends(get_db)
):
    """
    Move an appointment along its lifecycle (confirm, start, complete, no-show).
    Cancellation should go through /cancel so the refund policy applies.
    """
    appointment = service.transition_appointment(
        db=db,
        appointment_id=appointment_id,
        new_status=request.status,
        actor=str(actor),
        reason=request.reason,
    )
    return AppointmentQueryService.serialize_appointment(appointment, detailed=True)


@router.get("/{appointment_id}/cancellation-policy", response_model=CancellationPolicyResponse)
def get_cancellation_policy(
        appointment_id: UUID = Path(..., description="The appointment ID"),
        db: Session = Depends(get_db)
):
    return CancellationService.get_cancellation_policy(db=db, appointment_id=appointment_id)


@router.post("/{appointment_id}/cancel", response_model=CancellationQuoteResponse)
def cancel_appointment(
        request: CancelAppointmentRequest,
        appointment_id: UUID = Path(..., description="The appointment ID"),
        actor: Actor = Depends(get_actor),
        service: CancellationService = Depends(get_cancellation_service),
        db: Session = Depends(get_db)
):
    quote = service.cancel_appointment(
        db=db,
        appointment_id=appointment_id,
        actor=str(actor),
        reason=request.reason,
    )
    return {"appointment_id": str(appointment_id), **quote.to_dict()}


@router.get("/{appointment_id}/can-reschedule")
def can_reschedule(
        appointment_id: UUID = Path(..., description="The appointment ID"),
        db: Session = Depends(get_db)
):
    return ReschedulingService.can_reschedule(db=db, appointment_id=appointment_id)


@router.post("/{appointment_id}/reschedule")
def reschedule_appointment(
        request: RescheduleAppointmentRequest,
        appointment_id: UUID = Path(..., description="The appointment ID"),
        actor: Actor = Depends(get_actor),
        service: ReschedulingService = Depends(get_rescheduling_service),
        db: Session = Depends(get_db)
):
    appointment = service.reschedule_appointment(
        db=db,
        appointment_id=appointment_id,
        new_date=request.new_date,
        new_start_time=request.new_start_time,
        new_end_time=request.new_end_time,
        actor=str(actor),
        reason=request.reason,
    )
    return AppointmentQueryService.serialize_appointment(appointment, detailed=True)


@router.get("/{appointment_id}/reschedule-history")
def get_reschedule_history(
        appointment_id: UUID = Path(..., description="The appointment ID"),
        db: Session = Depends(get_db)
):
    history = ReschedulingService.get_reschedule_history(db=db, appointment_id=appointment_id)
    return {"appointment_id": str(appointment_id), "history": history}


@router.get("/{appointment_id}/status-history")
def get_status_history(
        appointment_id: UUID = Path(..., description="The appointment ID"),
        db: Session = Depends(get_db)
):
    history = AppointmentQueryService.get_status_history(db=db, appointment_id=appointment_id)
    return {"appointment_id": str(appointment_id), "history": history}
