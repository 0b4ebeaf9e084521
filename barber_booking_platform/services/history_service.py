"""
Append-only audit trail for bookings.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..models.booking_history import BookingHistory, ChangeType
from ..repositories.booking_repository import BookingRepository
from ..schemas.history import BookingDelta

logger = logging.getLogger(__name__)


class HistoryService:
    """
    Write booking history entries.

    Entries are written in their own session and transaction, after the
    booking change they describe has committed.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def record(
        self,
        booking_id: int,
        delta: BookingDelta,
        changed_by: Optional[int] = None,
        reason: Optional[str] = None,
        recorded_at: Optional[datetime] = None
    ) -> BookingHistory:
        """
        Append one history entry.

        Args:
            booking_id: Booking the change applies to
            delta: Typed before/after values for the change
            changed_by: Acting user id, None for system changes
            reason: Optional free-text reason
            recorded_at: When the change committed; defaults to the time of the write
        """
        old_values, new_values = delta.to_columns()
        entry = BookingHistory(
            booking_id=booking_id,
            changed_by=changed_by,
            change_type=ChangeType(delta.change_type),
            old_values=old_values,
            new_values=new_values,
            change_reason=reason,
        )
        if recorded_at is not None:
            entry.created_at = recorded_at

        async with self.session_factory() as session:
            async with session.begin():
                await BookingRepository(session).append_history(entry)

        logger.debug(f"Recorded {delta.change_type} history for booking {booking_id}")
        return entry
