# ============================================================================
# booking_engine/services/appointment/cancellation_service.py
# Cancellation deadline and tiered refunds
# ============================================================================
"""
Refund tiers and the cancellation deadline are separate rules. The deadline
decides whether a cancellation is accepted at all; the tiers only decide how
much of the price comes back once it is.
"""
from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Optional, Union
from uuid import UUID

from sqlalchemy.orm import Session

from booking_engine.config.settings import get_settings
from booking_engine.core.exceptions import TooLateToCancelError
from booking_engine.models.appointment import Appointment
from booking_engine.models.business import Business
from booking_engine.services.appointment.appointment_query_service import AppointmentQueryService
from booking_engine.services.appointment.booking_transaction import BookingTransaction, booking_lock_key
from booking_engine.services.appointment.state_machine import AppointmentStateMachine, AppointmentStatus
from booking_engine.services.business.business_hours_service import parse_booking_settings
from booking_engine.services.notification.notification_service import (
    NotificationService,
    get_notification_service,
)
from booking_engine.services.scheduling.time_utils import business_timezone, ensure_utc, hours_until
import logging

logger = logging.getLogger(__name__)

CENTS = Decimal("0.01")


@dataclass(frozen=True)
class RefundTier:
    hours_before_appointment: float
    refund_percentage: int

    def __post_init__(self):
        if self.hours_before_appointment < 0:
            raise ValueError("hours_before_appointment must be >= 0")
        if not 0 <= self.refund_percentage <= 100:
            raise ValueError("refund_percentage must be between 0 and 100")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "hours_before_appointment": self.hours_before_appointment,
            "refund_percentage": self.refund_percentage,
        }


@dataclass(frozen=True)
class CancellationQuote:
    refund_percentage: int
    refund_amount: Decimal
    hours_until_appointment: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "refund_percentage": self.refund_percentage,
            "refund_amount": float(self.refund_amount),
            "hours_until_appointment": round(self.hours_until_appointment, 2),
        }


@dataclass
class CancellationPolicy:
    """Ordered refund tiers plus the cancellation deadline"""

    tiers: List[RefundTier] = field(default_factory=list)
    cancellation_deadline_hours: float = 24

    def __post_init__(self):
        tiers = sorted(self.tiers, key=lambda tier: tier.hours_before_appointment, reverse=True)
        if not any(tier.hours_before_appointment == 0 for tier in tiers):
            tiers.append(RefundTier(0, 0))
        self.tiers = tiers

    @classmethod
    def from_tier_dicts(cls, tiers: Iterable[Dict[str, Any]], cancellation_deadline_hours: float) -> "CancellationPolicy":
        return cls(
            tiers=[
                RefundTier(float(tier["hours_before_appointment"]), int(tier["refund_percentage"]))
                for tier in tiers
            ],
            cancellation_deadline_hours=float(cancellation_deadline_hours),
        )

    @classmethod
    def from_settings(cls) -> "CancellationPolicy":
        settings = get_settings()
        return cls.from_tier_dicts(settings.REFUND_POLICY_TIERS, settings.CANCELLATION_DEADLINE_HOURS)

    @classmethod
    def for_business(cls, business: Optional[Business]) -> "CancellationPolicy":
        """Settings-wide policy with the business's own overrides applied."""
        settings = get_settings()
        overrides = parse_booking_settings(business.booking_settings if business is not None else None)
        tiers = settings.REFUND_POLICY_TIERS
        if overrides.refund_tiers:
            tiers = [tier.model_dump() for tier in overrides.refund_tiers]
        deadline = overrides.cancellation_hours
        if deadline is None:
            deadline = settings.CANCELLATION_DEADLINE_HOURS
        return cls.from_tier_dicts(tiers, deadline)

    def refund_percentage_for(self, hours: float) -> int:
        for tier in self.tiers:
            if hours >= tier.hours_before_appointment:
                return tier.refund_percentage
        # Appointment already started
        return 0

    def quote(self, appointment: Appointment, now: datetime, tz: tzinfo) -> CancellationQuote:
        hours = hours_until(appointment.date, appointment.start_time, ensure_utc(now), tz)
        percentage = self.refund_percentage_for(hours)
        price = Decimal(appointment.price) if appointment.price is not None else Decimal("0")
        amount = (price * percentage / Decimal(100)).quantize(CENTS, rounding=ROUND_HALF_UP)
        return CancellationQuote(
            refund_percentage=percentage,
            refund_amount=amount,
            hours_until_appointment=hours,
        )

    def can_cancel(self, appointment: Appointment, now: datetime, tz: tzinfo) -> bool:
        hours = hours_until(appointment.date, appointment.start_time, ensure_utc(now), tz)
        return hours >= self.cancellation_deadline_hours


class CancellationService:
    """Cancels appointments and works out the refund owed."""

    def __init__(
            self,
            transaction: Optional[BookingTransaction] = None,
            notifier: Optional[NotificationService] = None
    ):
        self.transaction = transaction or BookingTransaction()
        self.notifier = notifier or get_notification_service()

    @staticmethod
    def get_cancellation_policy(
            db: Session,
            appointment_id: Union[str, UUID],
            now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """Preview whether the appointment can be cancelled and what it would refund."""
        appointment = AppointmentQueryService.get_appointment(db, appointment_id)
        business = db.get(Business, appointment.business_id)
        policy = CancellationPolicy.for_business(business)
        tz = business_timezone(business.timezone if business else None)
        current = ensure_utc(now)

        quote = policy.quote(appointment, current, tz)
        reason = None
        can_cancel = True
        if not AppointmentStateMachine.can_transition(appointment.status, AppointmentStatus.CANCELLED):
            can_cancel = False
            reason = f"Appointment is {appointment.status}"
        elif not policy.can_cancel(appointment, current, tz):
            can_cancel = False
            reason = f"Cannot cancel within {policy.cancellation_deadline_hours:g} hours of appointment"

        return {
            "appointment_id": str(appointment.id),
            "can_cancel": can_cancel,
            "reason": reason,
            **quote.to_dict(),
            "cancellation_deadline_hours": policy.cancellation_deadline_hours,
            "tiers": [tier.to_dict() for tier in policy.tiers],
        }

    def cancel_appointment(
            self,
            db: Session,
            appointment_id: Union[str, UUID],
            actor: str,
            reason: Optional[str] = None,
            now: Optional[datetime] = None
    ) -> CancellationQuote:
        """Cancel an appointment, recording who cancelled it and the refund owed."""
        current = AppointmentQueryService.get_appointment(db, appointment_id)
        appointment_uuid = current.id
        key = booking_lock_key(current.business_id, current.date)
        cancelled_at = ensure_utc(now)

        def work(session: Session):
            appointment = AppointmentQueryService.get_appointment(session, appointment_uuid)
            session.refresh(appointment)
            AppointmentStateMachine.assert_can_transition(appointment.status, AppointmentStatus.CANCELLED)

            business = session.get(Business, appointment.business_id)
            policy = CancellationPolicy.for_business(business)
            tz = business_timezone(business.timezone if business else None)

            if not policy.can_cancel(appointment, cancelled_at, tz):
                lead = hours_until(appointment.date, appointment.start_time, cancelled_at, tz)
                raise TooLateToCancelError(
                    f"Cannot cancel within {policy.cancellation_deadline_hours:g} hours of appointment",
                    details={"hours_until_appointment": round(lead, 2)},
                )

            quote = policy.quote(appointment, cancelled_at, tz)
            AppointmentStateMachine.transition(
                appointment, AppointmentStatus.CANCELLED, actor, now=cancelled_at, reason=reason
            )
            appointment.cancelled_by = actor
            appointment.cancellation_reason = reason
            appointment.refund_percentage = quote.refund_percentage
            appointment.refund_amount = quote.refund_amount
            return appointment, quote

        appointment, quote = self.transaction.run(db, [key], work)
        logger.info(
            f"Cancelled appointment {appointment.id} by {actor}: "
            f"{quote.refund_percentage}% refund ({quote.refund_amount})"
        )

        payload = AppointmentQueryService.serialize_appointment(appointment)
        payload.update(quote.to_dict())
        payload["cancellation_reason"] = reason
        self.notifier.notify("booking.cancelled", payload)
        return quote
