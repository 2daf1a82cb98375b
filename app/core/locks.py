import asyncio
import logging
import weakref
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from app.core.config import settings
from app.core.exceptions import StoreUnavailable

logger = logging.getLogger(__name__)


def _lock_key(doctor_id: str) -> str:
    return f"doctor:{doctor_id}:booking"


class DoctorLockRegistry:
    """One asyncio.Lock per doctor, so admissions for a doctor run single-file.

    Locks are held in a WeakValueDictionary and disappear once no booking for
    that doctor is waiting on them.
    """

    def __init__(self, timeout_s: float | None = None) -> None:
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()
        self._timeout_s = timeout_s

    def _get(self, doctor_id: str) -> asyncio.Lock:
        key = _lock_key(doctor_id)
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    @asynccontextmanager
    async def hold(self, doctor_id: str) -> AsyncIterator[None]:
        lock = self._get(doctor_id)
        timeout = self._timeout_s if self._timeout_s is not None else settings.store_timeout_seconds
        try:
            async with asyncio.timeout(timeout):
                await lock.acquire()
        except TimeoutError as exc:
            logger.warning("booking_lock_timeout doctor_id=%s timeout_s=%s", doctor_id, timeout)
            raise StoreUnavailable(f"Booking queue for doctor {doctor_id} is busy") from exc
        try:
            yield
        finally:
            lock.release()


booking_locks = DoctorLockRegistry()
