import logging
import threading
from contextlib import contextmanager
from decimal import Decimal

import pytest
import redis
from pydantic import ValidationError
from sqlalchemy.exc import OperationalError

from booking_engine.config.settings import Settings, get_settings
from booking_engine.core.exceptions import (
    ConflictError,
    IllegalTransitionError,
    InternalError,
    InvalidFormatError,
    SlotConflictError,
)
from booking_engine.models import Appointment, Business
from booking_engine.services.appointment.appointment_query_service import AppointmentQueryService
from booking_engine.services.appointment.appointment_service import AppointmentService, normalize_price
from booking_engine.services.notification.notification_service import NotificationService
from booking_engine.services.appointment.booking_transaction import (
    BookingTransaction,
    LocalLockManager,
    LockTimeoutError,
    RedisLockManager,
    advisory_lock_id,
    booking_lock_key,
    get_lock_manager,
    is_contention_error,
)

from conftest import BOOKING_DAY, NOW, RecordingNotifier


class AlwaysBusyLockManager:
    """Lock manager whose locks are never free"""

    def __init__(self):
        self.attempts = 0

    @contextmanager
    def hold(self, keys, timeout):
        self.attempts += 1
        raise LockTimeoutError(f"Timed out waiting for {keys[0]}")
        yield


def locked_database_error():
    return OperationalError("INSERT INTO appointments ...", {}, Exception("database is locked"))


@pytest.mark.booking
class TestBookAppointment:
    """Test suite for booking a slot."""

    def test_round_trip(self, db_session, sample_business, book, notifier):
        appointment = book(
            "10:00", "11:00", customer_id="cust-9", price=89.99,
            notes="Bring spare key", vehicle_id="veh-1", staff_id="staff-2",
        )

        stored = AppointmentQueryService.get_appointment_by_id(db_session, appointment.id)

        assert stored["business_id"] == str(sample_business.id)
        assert stored["customer_id"] == "cust-9"
        assert stored["date"] == BOOKING_DAY.isoformat()
        assert stored["start_time"] == "10:00"
        assert stored["end_time"] == "11:00"
        assert stored["service_type"] == "Oil Change"
        assert stored["price"] == 89.99
        assert stored["notes"] == "Bring spare key"
        assert stored["vehicle_id"] == "veh-1"
        assert stored["staff_id"] == "staff-2"
        assert stored["status"] == "scheduled"
        assert stored["reminder_sent"] is False
        assert stored["reschedule_history"] == []

        assert notifier.event_types == ["booking.created"]
        assert notifier.events[0][1]["id"] == str(appointment.id)

    def test_overlapping_booking_rejected(self, db_session, book):
        book("10:00", "11:00")

        with pytest.raises(SlotConflictError):
            book("10:30", "11:30", customer_id="cust-2")

        assert db_session.query(Appointment).count() == 1

    def test_back_to_back_bookings(self, db_session, book):
        book("10:00", "11:00")
        book("11:00", "12:00", customer_id="cust-2")

        assert db_session.query(Appointment).count() == 2

    def test_missing_customer(self, book):
        with pytest.raises(InvalidFormatError):
            book("10:00", "11:00", customer_id="  ")

    def test_bad_business_id(self, db_session, appointment_service):
        with pytest.raises(InvalidFormatError):
            appointment_service.book_appointment(
                db_session, "not-a-uuid", "cust-1", BOOKING_DAY, "10:00", "11:00", "Wash", now=NOW
            )

    @pytest.mark.parametrize("price,expected", [
        (None, None),
        (0, Decimal("0.00")),
        (19.999, Decimal("20.00")),
        ("45.125", Decimal("45.13")),
    ])
    def test_normalize_price(self, price, expected):
        assert normalize_price(price) == expected

    @pytest.mark.parametrize("price", [-1, "abc", 10000.01, float("nan")])
    def test_invalid_price(self, price):
        with pytest.raises(InvalidFormatError):
            normalize_price(price)

    def test_notification_failure_does_not_fail_booking(self, db_session, sample_business, transaction):
        def broken_enqueue(event_type, payload):
            raise ConnectionError("broker down")

        service = AppointmentService(
            transaction=transaction,
            notifier=NotificationService(enqueue=broken_enqueue),
        )
        appointment = service.book_appointment(
            db_session, sample_business.id, "cust-1", BOOKING_DAY, "10:00", "11:00", "Wash", now=NOW
        )

        assert db_session.get(Appointment, appointment.id) is not None


@pytest.mark.booking
class TestTransitionAppointment:
    """Test suite for status changes through the service."""

    def test_confirm(self, db_session, book, appointment_service, notifier):
        appointment = book("10:00", "11:00")

        updated = appointment_service.transition_appointment(
            db_session, appointment.id, "confirmed", "staff:1", reason="Called customer", now=NOW
        )

        assert updated.status == "confirmed"
        history = AppointmentQueryService.get_status_history(db_session, appointment.id)
        assert history[0]["from_status"] == "scheduled"
        assert history[0]["to_status"] == "confirmed"
        assert history[0]["actor"] == "staff:1"
        assert notifier.event_types[-1] == "booking.status_changed"

    def test_illegal_transition_is_not_saved(self, db_session, book, appointment_service):
        appointment = book("10:00", "11:00")

        with pytest.raises(IllegalTransitionError):
            appointment_service.transition_appointment(db_session, appointment.id, "completed", "staff:1", now=NOW)

        db_session.refresh(appointment)
        assert appointment.status == "scheduled"
        assert AppointmentQueryService.get_status_history(db_session, appointment.id) == []


@pytest.mark.booking
class TestConcurrentBooking:
    """Test suite for the booking transaction boundary under concurrency."""

    def test_only_one_concurrent_booking_succeeds(self, session_factory, sample_business, transaction):
        business_id = sample_business.id
        attempts = 8
        barrier = threading.Barrier(attempts)
        results = []
        results_lock = threading.Lock()

        def attempt(index):
            session = session_factory()
            service = AppointmentService(transaction=transaction, notifier=RecordingNotifier())
            try:
                barrier.wait()
                service.book_appointment(
                    session, business_id, f"cust-{index}", BOOKING_DAY, "10:00", "11:00", "Wash", now=NOW
                )
                outcome = "booked"
            except SlotConflictError:
                outcome = "conflict"
            finally:
                session.close()
            with results_lock:
                results.append(outcome)

        threads = [threading.Thread(target=attempt, args=(i,)) for i in range(attempts)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)

        assert results.count("booked") == 1
        assert results.count("conflict") == attempts - 1

        session = session_factory()
        try:
            assert session.query(Appointment).count() == 1
        finally:
            session.close()


@pytest.mark.booking
class TestBookingTransaction:
    """Test suite for retries and error mapping."""

    def test_lock_contention_becomes_conflict(self, db_session):
        lock_manager = AlwaysBusyLockManager()
        transaction = BookingTransaction(lock_manager=lock_manager, max_attempts=3, backoff_seconds=0)

        with pytest.raises(ConflictError) as exc_info:
            transaction.run(db_session, ["lock:booking:x:2030-01-10"], lambda session: None)

        assert exc_info.value.retryable is True
        assert exc_info.value.details["attempts"] == 3
        assert lock_manager.attempts == 3

    def test_database_contention_is_retried(self, db_session, transaction):
        calls = []

        def work(session):
            calls.append(1)
            if len(calls) == 1:
                raise locked_database_error()
            return "done"

        assert transaction.run(db_session, ["k"], work) == "done"
        assert len(calls) == 2

    def test_other_store_failure_becomes_internal_error(self, db_session, transaction):
        def work(session):
            raise OperationalError("SELECT 1", {}, Exception("disk I/O error"))

        with pytest.raises(InternalError):
            transaction.run(db_session, ["k"], work)

    def test_domain_error_propagates_unchanged(self, db_session, transaction):
        def work(session):
            raise SlotConflictError("taken")

        with pytest.raises(SlotConflictError):
            transaction.run(db_session, ["k"], work)

    def test_is_contention_error(self):
        assert is_contention_error(locked_database_error())
        assert not is_contention_error(OperationalError("SELECT 1", {}, Exception("no such table")))

    def test_lock_keys(self, sample_business):
        key = booking_lock_key(sample_business.id, BOOKING_DAY)

        assert key == f"lock:booking:{sample_business.id}:2030-01-10"
        assert advisory_lock_id(key) == advisory_lock_id(key)
        assert -2 ** 63 <= advisory_lock_id(key) < 2 ** 63

    def test_local_locks_are_released(self):
        manager = LocalLockManager()

        with manager.hold(["b", "a"], timeout=1):
            pass
        with manager.hold(["a"], timeout=1):
            pass

        assert manager._locks == {}

    def test_local_lock_times_out(self):
        manager = LocalLockManager()
        entered = threading.Event()
        release = threading.Event()

        def holder():
            with manager.hold(["a"], timeout=1):
                entered.set()
                release.wait(5)

        thread = threading.Thread(target=holder)
        thread.start()
        entered.wait(5)
        try:
            with pytest.raises(LockTimeoutError):
                with manager.hold(["a"], timeout=0.05):
                    pass
        finally:
            release.set()
            thread.join(5)


class FakeRedisLock:
    """Stand-in for redis.lock.Lock that reports to its client"""

    def __init__(self, client, name):
        self.client = client
        self.name = name

    def acquire(self):
        self.client.calls.append(("acquire", self.name))
        return self.name not in self.client.busy

    def owned(self):
        return self.name not in self.client.expired

    def release(self):
        self.client.calls.append(("release", self.name))
        if self.name in self.client.expired:
            raise redis.exceptions.LockNotOwnedError("Cannot release a lock that's no longer owned")


class FakeRedis:
    def __init__(self, busy=(), expired=()):
        self.busy = set(busy)
        self.expired = set(expired)
        self.calls = []
        self.lock_options = {}

    def lock(self, name, timeout=None, blocking_timeout=None):
        self.lock_options[name] = (timeout, blocking_timeout)
        return FakeRedisLock(self, name)


@pytest.mark.booking
class TestRedisLockManager:
    """Test suite for the cross-process lock backend."""

    def test_acquires_in_order_and_releases_in_reverse(self):
        client = FakeRedis()
        manager = RedisLockManager(client=client, lease_seconds=45)

        with manager.hold(["a", "b"], timeout=2) as ensure_held:
            ensure_held()

        assert client.calls == [("acquire", "a"), ("acquire", "b"), ("release", "b"), ("release", "a")]
        assert client.lock_options["a"] == (45, 2)

    def test_timeout_releases_locks_already_held(self):
        client = FakeRedis(busy={"b"})
        manager = RedisLockManager(client=client, lease_seconds=45)

        with pytest.raises(LockTimeoutError):
            with manager.hold(["a", "b"], timeout=1):
                pass

        assert client.calls == [("acquire", "a"), ("acquire", "b"), ("release", "a")]

    def test_expired_lease_is_logged_on_release(self, caplog):
        client = FakeRedis(expired={"a"})
        manager = RedisLockManager(client=client, lease_seconds=45)

        with caplog.at_level(logging.WARNING, logger="booking_engine.services.appointment.booking_transaction"):
            with manager.hold(["a"], timeout=1):
                pass

        assert "expired before release" in caplog.text

    def test_expired_lease_blocks_commit(self, db_session):
        client = FakeRedis(expired={"k"})
        transaction = BookingTransaction(
            lock_manager=RedisLockManager(client=client, lease_seconds=45), max_attempts=2, backoff_seconds=0
        )

        def work(session):
            session.add(Business(name="Ghost Garage", timezone="UTC", booking_settings={}))

        with pytest.raises(ConflictError) as exc_info:
            transaction.run(db_session, ["k"], work)

        assert exc_info.value.details["attempts"] == 2
        assert db_session.query(Business).count() == 0

    def test_transaction_through_redis_locks(self, db_session):
        client = FakeRedis()
        transaction = BookingTransaction(lock_manager=RedisLockManager(client=client), backoff_seconds=0)

        assert transaction.run(db_session, ["b", "a", "b"], lambda session: "done") == "done"
        assert client.calls == [("acquire", "a"), ("acquire", "b"), ("release", "b"), ("release", "a")]

    def test_lease_defaults_to_setting(self):
        assert RedisLockManager(client=FakeRedis()).lease_seconds == get_settings().BOOKING_LOCK_LEASE_SECONDS

    @pytest.mark.parametrize("backend,expected", [
        ("redis", RedisLockManager),
        ("REDIS", RedisLockManager),
        ("local", LocalLockManager),
        ("memcached", LocalLockManager),
    ])
    def test_backend_selection(self, monkeypatch, backend, expected):
        monkeypatch.setattr(get_settings(), "BOOKING_LOCK_BACKEND", backend)
        get_lock_manager.cache_clear()
        try:
            assert isinstance(get_lock_manager(), expected)
        finally:
            get_lock_manager.cache_clear()

    def test_lease_must_outlast_lock_wait(self):
        with pytest.raises(ValidationError):
            Settings(BOOKING_LOCK_TIMEOUT_SECONDS=10, BOOKING_LOCK_LEASE_SECONDS=15)
