# ============================================================================
# booking_engine/services/appointment/booking_transaction.py
# "Check availability, then write" as one atomic unit per business calendar day
# ============================================================================
"""
Every write to the appointment set of a business+date runs through
``BookingTransaction.run``. The conflict read and the insert/update happen while
the per-day lock is held and are committed before it is released, so two
overlapping requests for the same day are serialized.

Locks are process-local by default; set ``BOOKING_LOCK_BACKEND=redis`` when
several API processes share one database. On PostgreSQL a transaction-scoped
advisory lock is taken as well.
"""
import hashlib
import threading
import time
from contextlib import contextmanager
from datetime import date
from functools import lru_cache
from typing import Callable, Dict, Iterable, Iterator, List, Optional, TypeVar, Union
from uuid import UUID

import redis
from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session

from booking_engine.config.redis import RedisKeys, get_redis
from booking_engine.config.settings import get_settings
from booking_engine.core.exceptions import ConflictError, InternalError, SchedulingError
import logging

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Postgres SQLSTATEs for serialization failure, deadlock and lock_not_available
_CONTENTION_SQLSTATES = {"40001", "40P01", "55P03"}
_CONTENTION_MARKERS = (
    "database is locked",
    "deadlock detected",
    "could not serialize",
    "lock timeout",
    "could not obtain lock",
)


class LockTimeoutError(Exception):
    """A booking lock could not be acquired in time"""


def booking_lock_key(business_id: Union[str, UUID], day: date) -> str:
    return RedisKeys.booking_lock(business_id, day)


def advisory_lock_id(key: str) -> int:
    """Stable signed 64-bit id for pg_advisory_xact_lock"""
    digest = hashlib.blake2b(key.encode("utf-8"), digest_size=8).digest()
    return int.from_bytes(digest, "big", signed=True)


class LocalLockManager:
    """Per-key locks shared by the threads of one process"""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: Dict[str, List] = {}  # key -> [lock, users]

    def _checkout(self, key: str) -> threading.Lock:
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
            return entry[0]

    def _checkin(self, key: str) -> None:
        with self._guard:
            entry = self._locks[key]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[key]

    @contextmanager
    def hold(self, keys: List[str], timeout: float) -> Iterator[Callable[[], None]]:
        held: List[str] = []
        try:
            for key in keys:
                lock = self._checkout(key)
                if not lock.acquire(timeout=timeout):
                    self._checkin(key)
                    raise LockTimeoutError(f"Timed out waiting for {key}")
                held.append(key)
            # In-process locks cannot expire
            yield lambda: None
        finally:
            for key in reversed(held):
                self._locks[key][0].release()
                self._checkin(key)


class RedisLockManager:
    """Per-key locks shared by every process talking to the same Redis"""

    def __init__(self, client: Optional[redis.Redis] = None, lease_seconds: Optional[float] = None):
        self._client = client
        self.lease_seconds = lease_seconds if lease_seconds is not None else get_settings().BOOKING_LOCK_LEASE_SECONDS

    @property
    def client(self) -> redis.Redis:
        if self._client is None:
            self._client = get_redis()
        return self._client

    @contextmanager
    def hold(self, keys: List[str], timeout: float) -> Iterator[Callable[[], None]]:
        held = []

        def ensure_held() -> None:
            for lock in held:
                if not lock.owned():
                    raise LockTimeoutError(f"Lease on {lock.name} expired before commit")

        try:
            for key in keys:
                lock = self.client.lock(key, timeout=self.lease_seconds, blocking_timeout=timeout)
                if not lock.acquire():
                    raise LockTimeoutError(f"Timed out waiting for {key}")
                held.append(lock)
            yield ensure_held
        finally:
            for lock in reversed(held):
                try:
                    lock.release()
                except redis.exceptions.LockError:
                    # Lease expired while the transaction was running
                    logger.warning(f"Booking lock {lock.name} expired before release")


@lru_cache()
def get_lock_manager():
    """Lock manager selected by BOOKING_LOCK_BACKEND"""
    backend = get_settings().BOOKING_LOCK_BACKEND.lower()
    if backend == "redis":
        return RedisLockManager()
    if backend != "local":
        logger.warning(f"Unknown BOOKING_LOCK_BACKEND {backend!r}, using local locks")
    return LocalLockManager()


def is_contention_error(exc: SQLAlchemyError) -> bool:
    """Whether a store error is write contention worth retrying"""
    if not isinstance(exc, (OperationalError, DBAPIError)):
        return False
    if getattr(getattr(exc, "orig", None), "pgcode", None) in _CONTENTION_SQLSTATES:
        return True
    message = str(exc).lower()
    return any(marker in message for marker in _CONTENTION_MARKERS)


class BookingTransaction:
    """Runs a unit of work atomically under the locks of the calendar days it touches"""

    def __init__(
            self,
            lock_manager=None,
            max_attempts: Optional[int] = None,
            lock_timeout: Optional[float] = None,
            backoff_seconds: Optional[float] = None
    ):
        settings = get_settings()
        self.lock_manager = lock_manager or get_lock_manager()
        self.max_attempts = max(1, max_attempts or settings.MAX_RETRY_ATTEMPTS)
        self.lock_timeout = lock_timeout if lock_timeout is not None else settings.BOOKING_LOCK_TIMEOUT_SECONDS
        self.backoff_seconds = (
            backoff_seconds if backoff_seconds is not None else settings.BOOKING_RETRY_BACKOFF_SECONDS
        )

    def run(self, db: Session, keys: Iterable[str], work: Callable[[Session], T]) -> T:
        """
        Execute ``work(db)`` and commit while holding every lock in ``keys``.

        Domain errors roll back and propagate unchanged. Contention is retried
        up to ``max_attempts`` times, then raised as ConflictError. Any other
        store failure becomes InternalError.
        """
        lock_keys = sorted(set(keys))

        for attempt in range(1, self.max_attempts + 1):
            try:
                with self.lock_manager.hold(lock_keys, self.lock_timeout) as ensure_held:
                    self._take_advisory_locks(db, lock_keys)
                    result = work(db)
                    # A lapsed lease means another writer may already hold the day
                    if ensure_held is not None:
                        ensure_held()
                    db.commit()
                    return result

            except SchedulingError:
                db.rollback()
                raise

            except LockTimeoutError as exc:
                db.rollback()
                self._before_retry(attempt, exc, lock_keys)

            except (OperationalError, DBAPIError) as exc:
                db.rollback()
                if isinstance(exc, IntegrityError) or not is_contention_error(exc):
                    logger.error(f"Store failure during booking transaction on {lock_keys}: {exc}")
                    raise InternalError("The booking could not be saved") from exc
                self._before_retry(attempt, exc, lock_keys)

            except SQLAlchemyError as exc:
                db.rollback()
                logger.error(f"Store failure during booking transaction on {lock_keys}: {exc}")
                raise InternalError("The booking could not be saved") from exc

        # _before_retry raises on the last attempt
        raise ConflictError("The calendar is busy, please try again")

    def _before_retry(self, attempt: int, exc: Exception, lock_keys: List[str]) -> None:
        if attempt >= self.max_attempts:
            logger.warning(f"Giving up on {lock_keys} after {attempt} attempts: {exc}")
            raise ConflictError(
                "The calendar is busy, please try again",
                details={"attempts": attempt},
            ) from exc

        logger.warning(f"Contention on {lock_keys} (attempt {attempt}/{self.max_attempts}): {exc}")
        time.sleep(self.backoff_seconds * attempt)

    @staticmethod
    def _take_advisory_locks(db: Session, lock_keys: List[str]) -> None:
        if db.get_bind().dialect.name != "postgresql":
            return
        for key in lock_keys:
            db.execute(text("SELECT pg_advisory_xact_lock(:lock_id)"), {"lock_id": advisory_lock_id(key)})
