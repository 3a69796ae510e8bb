"""
backend/appointments/services/locks.py

Commit locks keyed by (provider_id, provider-local date).

The booking commit re-reads busy intervals and inserts the booking while
holding the locks of every local day the booking touches, so two
overlapping commits for the same provider are serialized and the second
one sees the first.

Backends:
- RedisBookingLocks: shared between processes (redis-py Lock)
- LocalBookingLocks: threading locks, valid inside a single process only
"""

import logging
import threading
from contextlib import AbstractContextManager, ExitStack, contextmanager
from datetime import date
from functools import lru_cache
from typing import Iterable, Iterator, Protocol

from redis import Redis
from redis.exceptions import LockError, RedisError

from ..config import settings
from .exceptions import PersistenceFailure, SlotUnavailable

logger = logging.getLogger(__name__)


class BookingLocks(Protocol):
    def hold(self, provider_id: int, local_date: date) -> AbstractContextManager[None]:
        ...


def _lock_name(provider_id: int, local_date: date) -> str:
    return f"booking:lock:{provider_id}:{local_date.isoformat()}"


class RedisBookingLocks:
    def __init__(
        self,
        redis: Redis,
        timeout: float | None = None,
        wait: float | None = None,
    ):
        self.redis = redis
        self.timeout = timeout or settings.booking_lock_timeout_seconds
        self.wait = wait or settings.booking_lock_wait_seconds

    @contextmanager
    def hold(self, provider_id: int, local_date: date) -> Iterator[None]:
        """
        Raises:
            SlotUnavailable: lock not acquired within the wait time
            PersistenceFailure: Redis unreachable
        """
        name = _lock_name(provider_id, local_date)
        lock = self.redis.lock(name, timeout=self.timeout, blocking_timeout=self.wait)
        try:
            acquired = lock.acquire()
        except RedisError as e:
            raise PersistenceFailure(f"Booking lock unavailable: {e}") from e
        if not acquired:
            logger.warning(f"Booking lock contention on {name}")
            raise SlotUnavailable("Another booking for this day is in progress, try again")
        try:
            yield
        finally:
            try:
                lock.release()
            except LockError:
                # Expired while held; the unique index still guards the insert
                logger.warning(f"Booking lock {name} expired before release")


class LocalBookingLocks:
    def __init__(self, wait: float | None = None):
        self.wait = wait or settings.booking_lock_wait_seconds
        # name -> [lock, number of threads holding or waiting]
        self._locks: dict[str, list] = {}
        self._guard = threading.Lock()

    def _checkout(self, name: str) -> threading.Lock:
        with self._guard:
            entry = self._locks.get(name)
            if entry is None:
                entry = self._locks[name] = [threading.Lock(), 0]
            entry[1] += 1
            return entry[0]

    def _checkin(self, name: str) -> None:
        with self._guard:
            entry = self._locks[name]
            entry[1] -= 1
            if entry[1] == 0:
                del self._locks[name]

    @contextmanager
    def hold(self, provider_id: int, local_date: date) -> Iterator[None]:
        name = _lock_name(provider_id, local_date)
        lock = self._checkout(name)
        try:
            if not lock.acquire(timeout=self.wait):
                logger.warning(f"Booking lock contention on {name}")
                raise SlotUnavailable("Another booking for this day is in progress, try again")
            try:
                yield
            finally:
                lock.release()
        finally:
            self._checkin(name)


@contextmanager
def hold_days(locks: BookingLocks, provider_id: int, local_dates: Iterable[date]) -> Iterator[None]:
    """Hold the locks of several days, always taken in date order."""
    with ExitStack() as stack:
        for local_date in sorted(set(local_dates)):
            stack.enter_context(locks.hold(provider_id, local_date))
        yield


@lru_cache
def get_booking_locks() -> BookingLocks:
    """Lock backend selected by settings.booking_lock_backend (singleton)."""
    if settings.booking_lock_backend == "local":
        return LocalBookingLocks()
    from ..redis_client import redis_client
    return RedisBookingLocks(redis_client)
