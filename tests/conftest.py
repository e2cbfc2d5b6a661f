"""
Pytest configuration and shared fixtures for the booking engine tests.
"""
import os

# Settings are read at import time; keep tests off real Postgres/Redis.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("BOOKING_LOCK_BACKEND", "local")
os.environ.setdefault("NOTIFICATION_WEBHOOK_URL", "")

from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy.orm import sessionmaker

from booking_engine.config.database import build_engine
from booking_engine.models import Base, Business, BusinessHours
from booking_engine.services.appointment.appointment_service import AppointmentService
from booking_engine.services.appointment.booking_transaction import BookingTransaction, LocalLockManager
from booking_engine.services.appointment.cancellation_service import CancellationService
from booking_engine.services.appointment.rescheduling_service import ReschedulingService
from booking_engine.services.notification.notification_service import NotificationService

# Monday 2030-01-07 12:00 UTC
NOW = datetime(2030, 1, 7, 12, 0, tzinfo=timezone.utc)
# Thursday of the same week
BOOKING_DAY = date(2030, 1, 10)


def slot_start(day: date, start_time: str) -> datetime:
    hours, minutes = (int(part) for part in start_time.split(":"))
    return datetime(day.year, day.month, day.day, hours, minutes, tzinfo=timezone.utc)


def hours_before(day: date, start_time: str, hours: float) -> datetime:
    """Clock reading ``hours`` before a UTC slot starts."""
    return slot_start(day, start_time) - timedelta(hours=hours)


class RecordingNotifier(NotificationService):
    """Keeps dispatched events in memory instead of queueing Celery tasks"""

    def __init__(self):
        super().__init__(enqueue=self._record)
        self.events = []

    def _record(self, event_type, payload):
        self.events.append((event_type, payload))

    @property
    def event_types(self):
        return [event_type for event_type, _ in self.events]


@pytest.fixture
def engine(tmp_path):
    """File-backed SQLite so several threads can share one database."""
    engine = build_engine(f"sqlite:///{tmp_path / 'booking.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def transaction():
    return BookingTransaction(
        lock_manager=LocalLockManager(),
        max_attempts=3,
        lock_timeout=5.0,
        backoff_seconds=0,
    )


@pytest.fixture
def appointment_service(transaction, notifier):
    return AppointmentService(transaction=transaction, notifier=notifier)


@pytest.fixture
def cancellation_service(transaction, notifier):
    return CancellationService(transaction=transaction, notifier=notifier)


@pytest.fixture
def rescheduling_service(transaction, notifier):
    return ReschedulingService(transaction=transaction, notifier=notifier)


def add_business(session, name="Main Street Auto", booking_settings=None, timezone_name="UTC"):
    """Business open every day 09:00-17:00 with a 12:00-13:00 lunch break."""
    business = Business(name=name, timezone=timezone_name, booking_settings=booking_settings or {})
    business.hours = [
        BusinessHours(
            day_of_week=day,
            open_time="09:00",
            close_time="17:00",
            is_closed=False,
            breaks=[{"start_time": "12:00", "end_time": "13:00", "name": "Lunch"}],
        )
        for day in range(7)
    ]
    session.add(business)
    session.commit()
    return business


@pytest.fixture
def sample_business(db_session):
    return add_business(db_session)


@pytest.fixture
def book(db_session, sample_business, appointment_service):
    """Book a slot on BOOKING_DAY (or another day) for the sample business."""

    def _book(start_time, end_time, day=BOOKING_DAY, customer_id="cust-1", price=100, **kwargs):
        return appointment_service.book_appointment(
            db_session,
            business_id=sample_business.id,
            customer_id=customer_id,
            appointment_date=day,
            start_time=start_time,
            end_time=end_time,
            service_type=kwargs.pop("service_type", "Oil Change"),
            price=price,
            now=kwargs.pop("now", NOW),
            **kwargs,
        )

    return _book
