# ============================================================================
# booking_engine/services/appointment/state_machine.py
# Structural legality of appointment status changes, shared by every write path
# ============================================================================
from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, Optional, Union

from booking_engine.core.exceptions import IllegalTransitionError, InvalidFormatError
from booking_engine.models.appointment import Appointment, AppointmentStatusChange
from booking_engine.services.scheduling.time_utils import ensure_utc
import logging

logger = logging.getLogger(__name__)


class AppointmentStatus(str, Enum):
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no-show"
    RESCHEDULED = "rescheduled"


TRANSITIONS: Dict[AppointmentStatus, FrozenSet[AppointmentStatus]] = {
    AppointmentStatus.SCHEDULED: frozenset({
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.RESCHEDULED,
    }),
    AppointmentStatus.CONFIRMED: frozenset({
        AppointmentStatus.IN_PROGRESS,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.NO_SHOW,
    }),
    AppointmentStatus.IN_PROGRESS: frozenset({
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
    }),
    AppointmentStatus.RESCHEDULED: frozenset({
        AppointmentStatus.SCHEDULED,
        AppointmentStatus.CANCELLED,
    }),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
    AppointmentStatus.NO_SHOW: frozenset(),
}

TERMINAL_STATUSES = frozenset(status for status, targets in TRANSITIONS.items() if not targets)

# Column stamped when an appointment enters a status
_TIMESTAMP_FIELDS = {
    AppointmentStatus.CONFIRMED: "confirmed_at",
    AppointmentStatus.IN_PROGRESS: "started_at",
    AppointmentStatus.COMPLETED: "completed_at",
    AppointmentStatus.CANCELLED: "cancelled_at",
    AppointmentStatus.NO_SHOW: "no_show_at",
}


def parse_status(value: Union[str, AppointmentStatus]) -> AppointmentStatus:
    if isinstance(value, AppointmentStatus):
        return value
    try:
        return AppointmentStatus(value)
    except ValueError:
        valid = ", ".join(status.value for status in AppointmentStatus)
        raise InvalidFormatError(f"Invalid appointment status {value!r}. Must be one of: {valid}")


class AppointmentStateMachine:
    """Enforces the transition table and timestamps each transition"""

    @staticmethod
    def can_transition(current: Union[str, AppointmentStatus], requested: Union[str, AppointmentStatus]) -> bool:
        return parse_status(requested) in TRANSITIONS[parse_status(current)]

    @staticmethod
    def assert_can_transition(current: Union[str, AppointmentStatus], requested: Union[str, AppointmentStatus]) -> None:
        current_status = parse_status(current)
        requested_status = parse_status(requested)
        if requested_status not in TRANSITIONS[current_status]:
            raise IllegalTransitionError(current_status.value, requested_status.value)

    @staticmethod
    def is_terminal(status: Union[str, AppointmentStatus]) -> bool:
        return parse_status(status) in TERMINAL_STATUSES

    @staticmethod
    def transition(
            appointment: Appointment,
            new_status: Union[str, AppointmentStatus],
            actor: str,
            now: Optional[datetime] = None,
            reason: Optional[str] = None
    ) -> AppointmentStatusChange:
        """Move an appointment to ``new_status`` and record who did it and when."""
        current_status = parse_status(appointment.status)
        requested_status = parse_status(new_status)
        AppointmentStateMachine.assert_can_transition(current_status, requested_status)

        changed_at = ensure_utc(now)
        appointment.status = requested_status.value
        appointment.updated_at = changed_at

        timestamp_field = _TIMESTAMP_FIELDS.get(requested_status)
        if timestamp_field:
            setattr(appointment, timestamp_field, changed_at)

        change = AppointmentStatusChange(
            from_status=current_status.value,
            to_status=requested_status.value,
            actor=actor,
            reason=reason,
            changed_at=changed_at,
        )
        appointment.status_changes.append(change)

        logger.info(
            f"Appointment {appointment.id} {current_status.value} -> {requested_status.value} by {actor}"
        )
        return change
