"""
Overlap detection and provider-scoped locking for booking writes.
"""

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.exc import DBAPIError

from ..repositories.booking_repository import BookingRepository
from ..utils.exceptions import BarberNotFoundError, LockTimeoutError, SlotUnavailableError

logger = logging.getLogger(__name__)

# PostgreSQL lock_not_available
_PG_LOCK_NOT_AVAILABLE = "55P03"
_LOCK_TIMEOUT_MESSAGES = (
    "lock timeout",
    "canceling statement due to lock timeout",
    "database is locked",
    "could not obtain lock",
)


def is_lock_timeout(exc: BaseException) -> bool:
    """Check whether a database error means a lock wait expired."""
    if not isinstance(exc, DBAPIError):
        return False

    orig = exc.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code == _PG_LOCK_NOT_AVAILABLE:
        return True

    message = str(orig).lower()
    return any(fragment in message for fragment in _LOCK_TIMEOUT_MESSAGES)


class ConflictResolver:
    """
    Detect and prevent overlapping bookings for one barber.

    Every method runs inside the caller's transaction. ``reserve`` is the
    write-path entry point: it serialises concurrent writers for the same
    barber and then checks the committed state, so the insert or update
    that follows in the same transaction cannot race another writer.
    """

    def __init__(self, repository: BookingRepository):
        self.repository = repository

    async def acquire(self, barber_id: int, timeout: Optional[float] = None) -> None:
        """
        Take the barber's timeline lock.

        Raises:
            BarberNotFoundError: When the barber row does not exist
            LockTimeoutError: When the lock wait expired
        """
        try:
            found = await self.repository.lock_barber_timeline(barber_id, timeout)
        except DBAPIError as e:
            if is_lock_timeout(e):
                logger.warning(f"Lock wait expired for barber {barber_id}")
                raise LockTimeoutError(f"barber {barber_id}", timeout) from e
            raise

        if not found:
            raise BarberNotFoundError(barber_id)

    async def has_conflict(
        self,
        barber_id: int,
        start_time: datetime,
        end_time: datetime,
        exclude_booking_id: Optional[int] = None,
        lock: bool = True
    ) -> bool:
        """
        Check the barber's timeline for an occupying booking overlapping ``[start, end)``.

        Args:
            barber_id: Barber whose timeline is checked
            start_time: Start of the requested interval
            end_time: End of the requested interval, exclusive
            exclude_booking_id: Booking to ignore, used when rescheduling
            lock: Row-lock any overlapping bookings found

        Returns:
            True when the interval is taken
        """
        try:
            if lock:
                return await self.repository.check_conflict_for_update(
                    barber_id, start_time, end_time, exclude_booking_id
                )
            return await self.repository.check_conflict(
                barber_id, start_time, end_time, exclude_booking_id
            )
        except DBAPIError as e:
            if is_lock_timeout(e):
                raise LockTimeoutError(f"barber {barber_id}", None) from e
            raise

    async def reserve(
        self,
        barber_id: int,
        start_time: datetime,
        end_time: datetime,
        exclude_booking_id: Optional[int] = None,
        timeout: Optional[float] = None
    ) -> None:
        """
        Lock the barber's timeline and make sure ``[start, end)`` is free.

        Raises:
            LockTimeoutError: When the lock wait expired
            SlotUnavailableError: When an occupying booking overlaps
        """
        await self.acquire(barber_id, timeout)

        if await self.has_conflict(barber_id, start_time, end_time, exclude_booking_id):
            logger.info(
                f"Slot conflict for barber {barber_id}: {start_time.isoformat()} - {end_time.isoformat()}"
            )
            raise SlotUnavailableError(barber_id, start_time, end_time)

    async def is_available(
        self,
        barber_id: int,
        start_time: datetime,
        end_time: datetime,
        buffer_minutes: int = 0
    ) -> bool:
        """
        Read-only availability probe; takes no locks.

        A positive ``buffer_minutes`` widens the interval on both sides, so a
        booking ending or starting within the buffer counts as a conflict.
        """
        if buffer_minutes > 0:
            buffer = timedelta(minutes=buffer_minutes)
            start_time, end_time = start_time - buffer, end_time + buffer
        return not await self.has_conflict(barber_id, start_time, end_time, lock=False)
