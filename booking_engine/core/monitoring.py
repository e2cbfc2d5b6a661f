"""Health checks and monitoring endpoints"""
from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from booking_engine.config.database import get_db
from booking_engine.config.redis import redis_error
from booking_engine.config.settings import get_settings

health_router = APIRouter()


@health_router.get("")
def health_check():
    """Basic health check"""
    return {"status": "healthy", "service": "booking-engine"}


@health_router.get("/detailed")
def detailed_health_check(db: Session = Depends(get_db)):
    """Detailed health check with dependencies"""
    checks = {
        "api": "healthy",
        "database": "unknown",
        "redis": "unknown",
        "overall": "unknown"
    }

    # Check database
    try:
        db.execute(text("SELECT 1"))
        checks["database"] = "healthy"
    except SQLAlchemyError as e:
        checks["database"] = f"unhealthy: {str(e)}"

    # Redis backs the booking locks and the Celery broker
    error = redis_error()
    if error is None:
        checks["redis"] = "healthy"
    elif get_settings().BOOKING_LOCK_BACKEND.lower() == "redis":
        checks["redis"] = f"unhealthy: {error}"
    else:
        checks["redis"] = f"unavailable (not required): {error}"

    # Overall status
    if checks["database"] == "healthy" and not checks["redis"].startswith("unhealthy"):
        checks["overall"] = "healthy"
    else:
        checks["overall"] = "degraded"

    return checks
