# ============================================================================
# booking_engine/services/appointment/appointment_service.py
# Booking and status changes - no FastAPI dependencies, fully testable
# ============================================================================
from sqlalchemy.orm import Session
from datetime import date, datetime
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Optional, Union
from uuid import UUID

from booking_engine.core.exceptions import InvalidFormatError
from booking_engine.models.appointment import Appointment
from booking_engine.services.appointment.appointment_query_service import AppointmentQueryService
from booking_engine.services.appointment.booking_transaction import BookingTransaction, booking_lock_key
from booking_engine.services.appointment.state_machine import AppointmentStateMachine, AppointmentStatus
from booking_engine.services.availability.availability_service import AvailabilityService
from booking_engine.services.notification.notification_service import (
    NotificationService,
    get_notification_service,
)
from booking_engine.services.scheduling.time_utils import parse_date, ensure_utc
from booking_engine.utils.identifiers import as_uuid
import logging

logger = logging.getLogger(__name__)

MAX_PRICE = Decimal("10000")
CENTS = Decimal("0.01")


def normalize_price(price) -> Optional[Decimal]:
    """Validate a price and round it half-up to cents."""
    if price is None:
        return None
    try:
        value = Decimal(str(price))
    except (InvalidOperation, ValueError):
        raise InvalidFormatError(f"Invalid price: {price!r}")
    if not value.is_finite() or value < 0:
        raise InvalidFormatError("Price must be a non-negative amount")
    if value > MAX_PRICE:
        raise InvalidFormatError(f"Price cannot exceed {MAX_PRICE}")
    return value.quantize(CENTS, rounding=ROUND_HALF_UP)


class AppointmentService:
    """Creates appointments and moves them through their lifecycle."""

    def __init__(
            self,
            transaction: Optional[BookingTransaction] = None,
            notifier: Optional[NotificationService] = None
    ):
        self.transaction = transaction or BookingTransaction()
        self.notifier = notifier or get_notification_service()

    def book_appointment(
            self,
            db: Session,
            business_id: Union[str, UUID],
            customer_id: str,
            appointment_date: Union[str, date],
            start_time: str,
            end_time: str,
            service_type: str,
            price=None,
            notes: Optional[str] = None,
            vehicle_id: Optional[str] = None,
            staff_id: Optional[str] = None,
            actor: Optional[str] = None,
            now: Optional[datetime] = None
    ) -> Appointment:
        """
        Book a slot.

        The availability check and the insert run under the business+date lock,
        so two overlapping requests can never both succeed.
        """
        business_uuid = as_uuid(business_id, "business_id")
        day = parse_date(appointment_date)
        if not customer_id or not str(customer_id).strip():
            raise InvalidFormatError("customer_id is required")
        if not service_type or not service_type.strip():
            raise InvalidFormatError("service_type is required")
        amount = normalize_price(price)
        created_at = ensure_utc(now)

        def work(session: Session) -> Appointment:
            AvailabilityService.ensure_slot_available(
                session, business_uuid, day, start_time, end_time, now=created_at
            )
            appointment = Appointment(
                business_id=business_uuid,
                customer_id=str(customer_id),
                vehicle_id=vehicle_id,
                staff_id=staff_id,
                date=day,
                start_time=start_time,
                end_time=end_time,
                service_type=service_type.strip(),
                price=amount,
                notes=notes,
                status=AppointmentStatus.SCHEDULED.value,
                reminder_sent=False,
                reschedule_history=[],
                created_at=created_at,
                updated_at=created_at,
            )
            session.add(appointment)
            session.flush()
            return appointment

        appointment = self.transaction.run(db, [booking_lock_key(business_uuid, day)], work)
        logger.info(
            f"Booked appointment {appointment.id} for business {business_uuid} "
            f"on {day} {start_time}-{end_time} by {actor or customer_id}"
        )

        self.notifier.notify("booking.created", AppointmentQueryService.serialize_appointment(appointment))
        return appointment

    def transition_appointment(
            self,
            db: Session,
            appointment_id: Union[str, UUID],
            new_status: Union[str, AppointmentStatus],
            actor: str,
            reason: Optional[str] = None,
            now: Optional[datetime] = None
    ) -> Appointment:
        """Apply a status change allowed by the transition table."""
        current = AppointmentQueryService.get_appointment(db, appointment_id)
        appointment_uuid = current.id
        key = booking_lock_key(current.business_id, current.date)

        def work(session: Session) -> Appointment:
            appointment = AppointmentQueryService.get_appointment(session, appointment_uuid)
            session.refresh(appointment)
            AppointmentStateMachine.transition(appointment, new_status, actor, now=now, reason=reason)
            return appointment

        appointment = self.transaction.run(db, [key], work)

        payload = AppointmentQueryService.serialize_appointment(appointment)
        payload["reason"] = reason
        self.notifier.notify("booking.status_changed", payload)
        return appointment
