"""
BookingHistory model for tracking the booking audit trail.
"""

import enum
from typing import Any, Dict, Optional, TYPE_CHECKING

from sqlalchemy import JSON, Enum, ForeignKey, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base

if TYPE_CHECKING:
    from .booking import Booking


class ChangeType(str, enum.Enum):
    """Enumeration for booking change types."""
    CREATED = "created"
    UPDATED = "updated"
    STATUS_CHANGED = "status_changed"
    RESCHEDULED = "rescheduled"


class BookingHistory(Base):
    """Append-only audit entry written after every booking mutation."""

    __tablename__ = "booking_history"

    # Foreign key relationships
    booking_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("bookings.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )

    # Null for system initiated changes
    changed_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    change_type: Mapped[ChangeType] = mapped_column(
        Enum(ChangeType, native_enum=False, length=20, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        index=True
    )

    old_values: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    new_values: Mapped[Optional[Dict[str, Any]]] = mapped_column(JSON, nullable=True)
    change_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Relationships
    booking: Mapped["Booking"] = relationship("Booking", back_populates="booking_history", lazy="raise")

    def __repr__(self) -> str:
        """String representation of the booking history entry."""
        return (
            f"<BookingHistory(id={self.id}, booking_id={self.booking_id}, "
            f"change_type={self.change_type.value}, created_at={self.created_at})>"
        )
