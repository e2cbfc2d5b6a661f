from sqlalchemy import Column, String, Boolean, Date, DateTime, ForeignKey, Index, UniqueConstraint, Uuid
import uuid

from booking_engine.models.base import Base, utcnow

RECURRING_PATTERNS = ("daily", "weekly", "monthly")


class AvailabilityOverride(Base):
    """Specific date overrides (holidays, time-off, special hours)"""
    __tablename__ = "availability_overrides"
    __table_args__ = (
        UniqueConstraint("business_id", "date", name="uq_availability_override_date"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    business_id = Column(Uuid(as_uuid=True), ForeignKey("businesses.id"), nullable=False)

    date = Column(Date, nullable=False)
    is_available = Column(Boolean, default=True)  # False = day off
    start_time = Column(String(5), nullable=True)
    end_time = Column(String(5), nullable=True)
    reason = Column(String, nullable=True)  # "Holiday", "Vacation", etc.

    def to_dict(self):
        return {
            "id": str(self.id),
            "date": self.date.isoformat(),
            "is_available": self.is_available,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "reason": self.reason,
        }


class BlockedTimeSlot(Base):
    """Business-declared blackout window, optionally repeating from its anchor date"""
    __tablename__ = "blocked_time_slots"
    __table_args__ = (
        Index("ix_blocked_time_slots_business_date", "business_id", "date"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    business_id = Column(Uuid(as_uuid=True), ForeignKey("businesses.id"), nullable=False)

    date = Column(Date, nullable=False)
    start_time = Column(String(5), nullable=False)
    end_time = Column(String(5), nullable=False)
    reason = Column(String, nullable=True)

    is_recurring = Column(Boolean, default=False)
    recurring_pattern = Column(String(10), nullable=True)  # daily, weekly, monthly
    is_active = Column(Boolean, default=True)

    created_by = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    def applies_on(self, day) -> bool:
        """Whether this block covers the given calendar day"""
        if day == self.date:
            return True
        if not self.is_recurring or day < self.date:
            return False
        if self.recurring_pattern == "daily":
            return True
        if self.recurring_pattern == "weekly":
            return day.weekday() == self.date.weekday()
        if self.recurring_pattern == "monthly":
            return day.day == self.date.day
        return False

    def to_dict(self):
        return {
            "id": str(self.id),
            "business_id": str(self.business_id),
            "date": self.date.isoformat(),
            "start_time": self.start_time,
            "end_time": self.end_time,
            "reason": self.reason,
            "is_recurring": self.is_recurring,
            "recurring_pattern": self.recurring_pattern,
            "is_active": self.is_active,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
