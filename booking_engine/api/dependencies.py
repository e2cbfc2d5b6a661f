# ============================================================================
# FILE: booking_engine/api/dependencies.py
# Request-scoped dependencies shared by the v1 routers
# ============================================================================
from dataclasses import dataclass
from typing import Optional

from fastapi import Header

from booking_engine.services.appointment.appointment_service import AppointmentService
from booking_engine.services.appointment.cancellation_service import CancellationService
from booking_engine.services.appointment.rescheduling_service import ReschedulingService


@dataclass(frozen=True)
class Actor:
    """Identity set by the upstream authorization layer"""
    id: str
    role: Optional[str] = None

    def __str__(self):
        return f"{self.role}:{self.id}" if self.role else self.id


async def get_actor(
        x_actor_id: str = Header("anonymous", description="Acting user or system"),
        x_actor_role: Optional[str] = Header(None, description="customer, staff, admin, system")
) -> Actor:
    return Actor(id=x_actor_id, role=x_actor_role)


def get_appointment_service() -> AppointmentService:
    return AppointmentService()


def get_cancellation_service() -> CancellationService:
    return CancellationService()


def get_rescheduling_service() -> ReschedulingService:
    return ReschedulingService()
