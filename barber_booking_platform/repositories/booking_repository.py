"""
Data access for bookings and their audit trail.

All methods run inside the caller's transaction; the repository never
commits or rolls back on its own.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from sqlalchemy import and_, func, select, text
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.barber import Barber
from ..models.booking import Booking
from ..models.booking_history import BookingHistory
from ..models.booking_state_machine import OCCUPYING_STATUSES, BookingStatus

logger = logging.getLogger(__name__)

_OCCUPYING = tuple(sorted(OCCUPYING_STATUSES, key=lambda status: status.value))


class BookingRepository:
    """Repository for booking persistence."""

    def __init__(self, session: AsyncSession):
        self.session = session

    @property
    def dialect_name(self) -> str:
        return self.session.get_bind().dialect.name

    # Lookups

    async def find_by_id(self, booking_id: int, for_update: bool = False) -> Optional[Booking]:
        query = select(Booking).where(Booking.id == booking_id)
        if for_update:
            # Refresh an instance already in the identity map with the locked row
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def find_by_uuid(self, booking_uuid: str) -> Optional[Booking]:
        result = await self.session.execute(select(Booking).where(Booking.uuid == booking_uuid))
        return result.scalar_one_or_none()

    async def find_by_booking_number(self, booking_number: str) -> Optional[Booking]:
        result = await self.session.execute(
            select(Booking).where(Booking.booking_number == booking_number)
        )
        return result.scalar_one_or_none()

    async def find_by_customer(
        self,
        customer_id: int,
        status: Optional[BookingStatus] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        limit: int = 20,
        offset: int = 0
    ) -> List[Booking]:
        """Get a customer's bookings, most recent start first."""
        query = select(Booking).where(Booking.customer_id == customer_id)
        query = self._apply_filters(query, status, start_date, end_date)
        query = query.order_by(Booking.scheduled_start_time.desc()).limit(limit).offset(offset)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def find_by_barber(
        self,
        barber_id: int,
        status: Optional[BookingStatus] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        limit: int = 20,
        offset: int = 0
    ) -> List[Booking]:
        """Get a barber's bookings in chronological order."""
        query = select(Booking).where(Booking.barber_id == barber_id)
        query = self._apply_filters(query, status, start_date, end_date)
        query = query.order_by(Booking.scheduled_start_time.asc()).limit(limit).offset(offset)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def find_upcoming(self, barber_id: int, now: datetime, limit: int = 20) -> List[Booking]:
        """Get occupying bookings that have not started yet."""
        result = await self.session.execute(
            select(Booking)
            .where(
                Booking.barber_id == barber_id,
                Booking.scheduled_start_time > now,
                Booking.status.in_(_OCCUPYING),
            )
            .order_by(Booking.scheduled_start_time.asc())
            .limit(limit)
        )
        return list(result.scalars().all())

    @staticmethod
    def _apply_filters(query, status, start_date, end_date):
        if status is not None:
            query = query.where(Booking.status == status)
        if start_date is not None:
            query = query.where(Booking.scheduled_start_time >= start_date)
        if end_date is not None:
            query = query.where(Booking.scheduled_start_time < end_date)
        return query

    # Conflict detection

    @staticmethod
    def _overlap_condition(
        barber_id: int,
        start_time: datetime,
        end_time: datetime,
        exclude_booking_id: Optional[int]
    ):
        # Half-open intervals: [s1, e1) and [s2, e2) overlap iff s1 < e2 and s2 < e1
        conditions = [
            Booking.barber_id == barber_id,
            Booking.status.in_(_OCCUPYING),
            Booking.scheduled_start_time < end_time,
            Booking.scheduled_end_time > start_time,
        ]
        if exclude_booking_id is not None:
            conditions.append(Booking.id != exclude_booking_id)
        return and_(*conditions)

    async def check_conflict(
        self,
        barber_id: int,
        start_time: datetime,
        end_time: datetime,
        exclude_booking_id: Optional[int] = None
    ) -> bool:
        """Read-only probe, takes no locks."""
        result = await self.session.execute(
            select(func.count(Booking.id)).where(
                self._overlap_condition(barber_id, start_time, end_time, exclude_booking_id)
            )
        )
        return result.scalar_one() > 0

    async def check_conflict_for_update(
        self,
        barber_id: int,
        start_time: datetime,
        end_time: datetime,
        exclude_booking_id: Optional[int] = None
    ) -> bool:
        """Conflict check that row-locks every overlapping booking it finds."""
        result = await self.session.execute(
            select(Booking.id)
            .where(self._overlap_condition(barber_id, start_time, end_time, exclude_booking_id))
            .with_for_update()
        )
        return len(result.scalars().all()) > 0

    async def set_lock_timeout(self, timeout: Optional[float]) -> None:
        """Bound row-lock waits for the rest of the transaction (PostgreSQL only)."""
        if timeout is None or self.dialect_name != "postgresql":
            return
        timeout_ms = max(int(timeout * 1000), 1)
        await self.session.execute(text(f"SET LOCAL lock_timeout = '{timeout_ms}ms'"))

    async def lock_barber_timeline(self, barber_id: int, timeout: Optional[float] = None) -> bool:
        """
        Take the provider-scoped lock for the rest of the transaction.

        On PostgreSQL this locks the barber row, so writers for the same barber
        queue up while writers for other barbers proceed. SQLite transactions
        are opened with ``BEGIN IMMEDIATE`` and already hold the database
        write lock, so only the existence check runs there.

        Returns:
            False when the barber row does not exist
        """
        query = select(Barber.id).where(Barber.id == barber_id)

        if self.dialect_name == "postgresql":
            await self.set_lock_timeout(timeout)
            query = query.with_for_update()

        result = await self.session.execute(query)
        return result.scalar_one_or_none() is not None

    # Writes

    async def booking_number_exists(self, booking_number: str) -> bool:
        result = await self.session.execute(
            select(Booking.id).where(Booking.booking_number == booking_number)
        )
        return result.first() is not None

    async def add(self, booking: Booking) -> Booking:
        self.session.add(booking)
        await self.session.flush()
        return booking

    async def flush(self) -> None:
        await self.session.flush()

    # History

    async def append_history(self, entry: BookingHistory) -> BookingHistory:
        self.session.add(entry)
        await self.session.flush()
        return entry

    async def get_history(self, booking_id: int) -> List[BookingHistory]:
        result = await self.session.execute(
            select(BookingHistory)
            .where(BookingHistory.booking_id == booking_id)
            .order_by(BookingHistory.created_at.asc(), BookingHistory.id.asc())
        )
        return list(result.scalars().all())

    # Reporting

    async def get_barber_stats(
        self,
        barber_id: int,
        start_date: datetime,
        end_date: datetime
    ) -> Dict[str, object]:
        """Count bookings per status and sum completed revenue in a date range."""
        result = await self.session.execute(
            select(
                Booking.status,
                func.count(Booking.id),
                func.sum(Booking.total_price),
            )
            .where(
                Booking.barber_id == barber_id,
                Booking.scheduled_start_time >= start_date,
                Booking.scheduled_start_time < end_date,
            )
            .group_by(Booking.status)
        )
        rows: Sequence = result.all()

        counts = {status.value: 0 for status in BookingStatus}
        revenue = Decimal("0.00")
        for status, count, total in rows:
            counts[BookingStatus(status).value] = count
            if BookingStatus(status) == BookingStatus.COMPLETED and total is not None:
                revenue = Decimal(str(total)).quantize(Decimal("0.01"))

        return {
            "total_bookings": sum(counts.values()),
            "status_counts": counts,
            "completed_revenue": revenue,
        }
