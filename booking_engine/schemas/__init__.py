# booking_engine/schemas/__init__.py
from .availability import (
    WallClock,
    AvailabilityResult,
    TimeSlot,
    AvailableSlotsResponse,
    BreakWindow,
    BusinessHoursRequest,
    AvailabilityOverrideRequest,
    BlockedSlotRequest
)

from .appointment import (
    BookAppointmentRequest,
    StatusChangeRequest,
    CancelAppointmentRequest,
    RescheduleAppointmentRequest,
    CancellationQuoteResponse,
    RefundTierSchema,
    BookingSettings,
    CancellationPolicyResponse
)
