# booking_engine/core/exceptions.py
"""
Scheduling error taxonomy.

Every error here is user-facing: the caller shows ``message`` to the end user.
``retryable`` separates "try again" (write contention) from failures that
were never going to succeed.
"""
from typing import Any, Dict, Optional


class SchedulingError(Exception):
    """Base class for all scheduling errors"""

    code = "SchedulingError"
    status_code = 400
    retryable = False

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.code,
            "detail": self.message,
            "retryable": self.retryable,
            **self.details,
        }


class InvalidFormatError(SchedulingError):
    code = "InvalidFormat"
    status_code = 422


class InvalidDurationError(SchedulingError):
    code = "InvalidDuration"
    status_code = 422


class OutsideBusinessHoursError(SchedulingError):
    code = "OutsideBusinessHours"
    status_code = 409


class BlockedSlotError(SchedulingError):
    code = "BlockedSlot"
    status_code = 409


class SlotConflictError(SchedulingError):
    code = "SlotConflict"
    status_code = 409


class IllegalTransitionError(SchedulingError):
    code = "IllegalTransition"
    status_code = 409

    def __init__(self, current_status: str, requested_status: str):
        super().__init__(
            f"Cannot change status from {current_status} to {requested_status}",
            details={"current_status": current_status, "requested_status": requested_status},
        )
        self.current_status = current_status
        self.requested_status = requested_status


class TooLateToCancelError(SchedulingError):
    code = "TooLateToCancel"
    status_code = 422


class TooLateToRescheduleError(SchedulingError):
    code = "TooLateToReschedule"
    status_code = 422


class NotFoundError(SchedulingError):
    code = "NotFound"
    status_code = 404


class InvalidStateError(SchedulingError):
    code = "InvalidState"
    status_code = 409


class ConflictError(SchedulingError):
    """Concurrent write contention that outlived the retry limit"""

    code = "Conflict"
    status_code = 409
    retryable = True


class InternalError(SchedulingError):
    """Unexpected store failure, kept apart from policy errors"""

    code = "InternalError"
    status_code = 500
