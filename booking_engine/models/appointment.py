from sqlalchemy import (
    Column, String, Integer, Text, Date, DateTime, Boolean, Numeric, JSON, ForeignKey, Index, Uuid,
)
from sqlalchemy.orm import relationship
import uuid

from booking_engine.models.base import Base, utcnow


class Appointment(Base):
    __tablename__ = "appointments"
    __table_args__ = (
        Index("ix_appointments_business_date", "business_id", "date"),
    )

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)

    # References
    business_id = Column(Uuid(as_uuid=True), ForeignKey("businesses.id"), nullable=False)
    customer_id = Column(String, nullable=False)
    vehicle_id = Column(String, nullable=True)
    staff_id = Column(String, nullable=True)

    # Appointment details
    date = Column(Date, nullable=False)
    start_time = Column(String(5), nullable=False)  # HH:MM
    end_time = Column(String(5), nullable=False)  # HH:MM
    service_type = Column(String, nullable=False)
    price = Column(Numeric(10, 2), nullable=True)
    notes = Column(Text, nullable=True)

    # Status tracking
    status = Column(String(20), nullable=False, default="scheduled")
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    no_show_at = Column(DateTime(timezone=True), nullable=True)

    # Reminders
    reminder_sent = Column(Boolean, default=False)

    # Audit trail of prior slots
    reschedule_history = Column(JSON, default=list)

    # Cancellation
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_by = Column(String, nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    refund_percentage = Column(Integer, nullable=True)
    refund_amount = Column(Numeric(10, 2), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    status_changes = relationship(
        "AppointmentStatusChange",
        back_populates="appointment",
        cascade="all, delete-orphan",
        order_by="AppointmentStatusChange.id",
    )

    def __repr__(self):
        return f"<Appointment(id={self.id}, date={self.date}, {self.start_time}-{self.end_time}, status={self.status})>"


class AppointmentStatusChange(Base):
    """One row per status transition"""
    __tablename__ = "appointment_status_changes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    appointment_id = Column(Uuid(as_uuid=True), ForeignKey("appointments.id"), nullable=False, index=True)

    from_status = Column(String(20), nullable=False)
    to_status = Column(String(20), nullable=False)
    actor = Column(String, nullable=False)
    reason = Column(Text, nullable=True)
    changed_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    appointment = relationship("Appointment", back_populates="status_changes")

    def to_dict(self):
        return {
            "from_status": self.from_status,
            "to_status": self.to_status,
            "actor": self.actor,
            "reason": self.reason,
            "changed_at": self.changed_at.isoformat() if self.changed_at else None,
        }
