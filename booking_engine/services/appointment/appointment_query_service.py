# ============================================================================
# booking_engine/services/appointment/appointment_query_service.py
# Read side of appointments - no FastAPI dependencies, fully testable
# ============================================================================
from sqlalchemy.orm import Session
from datetime import date
from typing import Optional, Dict, Any, List, Union
from uuid import UUID

from booking_engine.core.exceptions import NotFoundError
from booking_engine.models.appointment import Appointment
from booking_engine.services.appointment.state_machine import parse_status
from booking_engine.utils.identifiers import as_uuid


class AppointmentQueryService:
    """Service layer for reading appointments."""

    @staticmethod
    def get_appointment(db: Session, appointment_id: Union[str, UUID]) -> Appointment:
        """Load an appointment or raise NotFoundError."""
        appointment = db.get(Appointment, as_uuid(appointment_id, "appointment_id"))
        if not appointment:
            raise NotFoundError(f"Appointment {appointment_id} not found")
        return appointment

    @staticmethod
    def get_appointment_by_id(db: Session, appointment_id: Union[str, UUID]) -> Dict[str, Any]:
        appointment = AppointmentQueryService.get_appointment(db, appointment_id)
        return AppointmentQueryService.serialize_appointment(appointment, detailed=True)

    @staticmethod
    def list_appointments(
            db: Session,
            business_id: Union[str, UUID],
            start_date: Optional[date] = None,
            end_date: Optional[date] = None,
            status: Optional[str] = None,
            customer_id: Optional[str] = None,
            service_type: Optional[str] = None,
            skip: int = 0,
            limit: int = 50
    ) -> Dict[str, Any]:
        """Get paginated list of appointments with filters."""
        business_uuid = as_uuid(business_id, "business_id")
        query = db.query(Appointment).filter(Appointment.business_id == business_uuid)

        if start_date:
            query = query.filter(Appointment.date >= start_date)
        if end_date:
            query = query.filter(Appointment.date <= end_date)
        if status:
            query = query.filter(Appointment.status == parse_status(status).value)
        if customer_id:
            query = query.filter(Appointment.customer_id == customer_id)
        if service_type:
            query = query.filter(Appointment.service_type == service_type)

        query = query.order_by(Appointment.date.asc(), Appointment.start_time.asc())
        total = query.count()
        appointments = query.offset(skip).limit(limit).all()

        return {
            "business_id": str(business_uuid),
            "total_appointments": total,
            "page": {
                "skip": skip,
                "limit": limit,
                "total_pages": (total + limit - 1) // limit if total > 0 else 0
            },
            "filters": {
                "start_date": start_date.isoformat() if start_date else None,
                "end_date": end_date.isoformat() if end_date else None,
                "status": status,
                "customer_id": customer_id,
                "service_type": service_type
            },
            "appointments": [AppointmentQueryService.serialize_appointment(appt) for appt in appointments]
        }

    @staticmethod
    def get_reschedule_history(db: Session, appointment_id: Union[str, UUID]) -> List[Dict[str, Any]]:
        appointment = AppointmentQueryService.get_appointment(db, appointment_id)
        return list(appointment.reschedule_history or [])

    @staticmethod
    def get_status_history(db: Session, appointment_id: Union[str, UUID]) -> List[Dict[str, Any]]:
        appointment = AppointmentQueryService.get_appointment(db, appointment_id)
        return [change.to_dict() for change in appointment.status_changes]

    @staticmethod
    def serialize_appointment(appointment: Appointment, detailed: bool = False) -> Dict[str, Any]:
        """Convert Appointment model to dictionary."""
        base = {
            "id": str(appointment.id),
            "business_id": str(appointment.business_id),
            "customer_id": appointment.customer_id,
            "vehicle_id": appointment.vehicle_id,
            "staff_id": appointment.staff_id,
            "date": appointment.date.isoformat(),
            "start_time": appointment.start_time,
            "end_time": appointment.end_time,
            "service_type": appointment.service_type,
            "status": appointment.status,
            "price": float(appointment.price) if appointment.price is not None else None,
            "notes": appointment.notes,
            "reminder_sent": bool(appointment.reminder_sent),
            "created_at": _iso(appointment.created_at),
            "updated_at": _iso(appointment.updated_at),
        }

        if detailed:
            base.update({
                "confirmed_at": _iso(appointment.confirmed_at),
                "started_at": _iso(appointment.started_at),
                "completed_at": _iso(appointment.completed_at),
                "no_show_at": _iso(appointment.no_show_at),
                "cancelled_at": _iso(appointment.cancelled_at),
                "cancelled_by": appointment.cancelled_by,
                "cancellation_reason": appointment.cancellation_reason,
                "refund_percentage": appointment.refund_percentage,
                "refund_amount": float(appointment.refund_amount) if appointment.refund_amount is not None else None,
                "reschedule_history": list(appointment.reschedule_history or []),
            })

        return base


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None
