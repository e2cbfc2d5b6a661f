# ============================================================================
# booking_engine/services/appointment/rescheduling_service.py
# Moves an appointment to a new slot, all-or-nothing
# ============================================================================
from sqlalchemy.orm import Session
from datetime import date, datetime
from typing import Any, Dict, List, Optional, Union
from uuid import UUID

from booking_engine.config.settings import get_settings
from booking_engine.core.exceptions import ConflictError, InvalidStateError, TooLateToRescheduleError
from booking_engine.models.appointment import Appointment
from booking_engine.models.business import Business
from booking_engine.services.appointment.appointment_query_service import AppointmentQueryService
from booking_engine.services.appointment.booking_transaction import BookingTransaction, booking_lock_key
from booking_engine.services.appointment.state_machine import AppointmentStateMachine
from booking_engine.services.availability.availability_service import AvailabilityService
from booking_engine.services.business.business_hours_service import parse_booking_settings
from booking_engine.services.notification.notification_service import (
    NotificationService,
    get_notification_service,
)
from booking_engine.services.scheduling.time_utils import business_timezone, ensure_utc, hours_until, parse_date
import logging

logger = logging.getLogger(__name__)


def reschedule_deadline_hours(business: Optional[Business]) -> float:
    """RESCHEDULE_DEADLINE_HOURS unless the business sets ``reschedule_hours``."""
    overrides = parse_booking_settings(business.booking_settings if business is not None else None)
    if overrides.reschedule_hours is None:
        return float(get_settings().RESCHEDULE_DEADLINE_HOURS)
    return overrides.reschedule_hours


class ReschedulingService:
    """Moves appointments between slots, keeping a history of where they were."""

    def __init__(
            self,
            transaction: Optional[BookingTransaction] = None,
            notifier: Optional[NotificationService] = None
    ):
        self.transaction = transaction or BookingTransaction()
        self.notifier = notifier or get_notification_service()

    @staticmethod
    def can_reschedule(
            db: Session,
            appointment_id: Union[str, UUID],
            now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        appointment = AppointmentQueryService.get_appointment(db, appointment_id)
        business = db.get(Business, appointment.business_id)
        tz = business_timezone(business.timezone if business else None)
        deadline = reschedule_deadline_hours(business)
        lead = hours_until(appointment.date, appointment.start_time, ensure_utc(now), tz)

        reason = None
        if AppointmentStateMachine.is_terminal(appointment.status):
            reason = f"Cannot reschedule a {appointment.status} appointment"
        elif lead < deadline:
            reason = f"Cannot reschedule within {deadline:g} hours of appointment"

        return {
            "appointment_id": str(appointment.id),
            "can_reschedule": reason is None,
            "reason": reason,
            "hours_until_appointment": round(lead, 2),
            "reschedule_deadline_hours": deadline,
        }

    @staticmethod
    def get_reschedule_history(db: Session, appointment_id: Union[str, UUID]) -> List[Dict[str, Any]]:
        return AppointmentQueryService.get_reschedule_history(db, appointment_id)

    def reschedule_appointment(
            self,
            db: Session,
            appointment_id: Union[str, UUID],
            new_date: Union[str, date],
            new_start_time: str,
            new_end_time: str,
            actor: str,
            reason: Optional[str] = None,
            now: Optional[datetime] = None
    ) -> Appointment:
        """
        Move an appointment to a new slot.

        Both the old and the new calendar day are locked. Any failure leaves
        the appointment exactly as it was.
        """
        current = AppointmentQueryService.get_appointment(db, appointment_id)
        appointment_uuid = current.id
        business_id = current.business_id
        old_day = current.date
        new_day = parse_date(new_date)
        rescheduled_at = ensure_utc(now)
        keys = [booking_lock_key(business_id, old_day), booking_lock_key(business_id, new_day)]

        def work(session: Session) -> Appointment:
            appointment = AppointmentQueryService.get_appointment(session, appointment_uuid)
            session.refresh(appointment)
            if appointment.date != old_day:
                raise ConflictError("Appointment was moved by another request, please try again")

            if AppointmentStateMachine.is_terminal(appointment.status):
                raise InvalidStateError(f"Cannot reschedule a {appointment.status} appointment")

            business = session.get(Business, business_id)
            tz = business_timezone(business.timezone if business else None)
            deadline = reschedule_deadline_hours(business)
            lead = hours_until(appointment.date, appointment.start_time, rescheduled_at, tz)
            if lead < deadline:
                raise TooLateToRescheduleError(
                    f"Cannot reschedule within {deadline:g} hours of appointment",
                    details={"hours_until_appointment": round(lead, 2)},
                )

            if (appointment.date, appointment.start_time, appointment.end_time) == (
                    new_day, new_start_time, new_end_time):
                raise InvalidStateError("Appointment is already scheduled for the requested time")

            AvailabilityService.ensure_slot_available(
                session, business_id, new_day, new_start_time, new_end_time,
                exclude_appointment_id=appointment.id, now=rescheduled_at,
            )

            snapshot = {
                "date": appointment.date.isoformat(),
                "start_time": appointment.start_time,
                "end_time": appointment.end_time,
                "new_date": new_day.isoformat(),
                "new_start_time": new_start_time,
                "new_end_time": new_end_time,
                "reason": reason,
                "actor": actor,
                "timestamp": rescheduled_at.isoformat(),
            }
            # Reassign so the JSON column is flagged dirty
            appointment.reschedule_history = [*(appointment.reschedule_history or []), snapshot]
            appointment.date = new_day
            appointment.start_time = new_start_time
            appointment.end_time = new_end_time
            appointment.reminder_sent = False
            appointment.updated_at = rescheduled_at
            return appointment

        appointment = self.transaction.run(db, keys, work)
        logger.info(
            f"Rescheduled appointment {appointment.id} from {old_day} to "
            f"{new_day} {new_start_time}-{new_end_time} by {actor}"
        )

        payload = AppointmentQueryService.serialize_appointment(appointment)
        payload["previous_slot"] = (appointment.reschedule_history or [])[-1]
        self.notifier.notify("booking.rescheduled", payload)
        return appointment
