"""
API v1 router setup
"""
from fastapi import APIRouter

from booking_engine.api.v1 import appointments, availability, businesses

api_v1_router = APIRouter()

# ============================================================================
# BUSINESS CALENDAR
# ============================================================================
api_v1_router.include_router(businesses.router)
api_v1_router.include_router(availability.router)

# ============================================================================
# APPOINTMENTS
# ============================================================================
api_v1_router.include_router(appointments.router)
