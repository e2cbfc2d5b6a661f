# booking_engine/models/__init__.py
from .base import Base
from .business import Business, BusinessHours
from .availability import AvailabilityOverride, BlockedTimeSlot
from .appointment import Appointment, AppointmentStatusChange

__all__ = [
    "Base",
    "Business",
    "BusinessHours",
    "AvailabilityOverride",
    "BlockedTimeSlot",
    "Appointment",
    "AppointmentStatusChange",
]
