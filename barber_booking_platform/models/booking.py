"""
Booking model for barber appointments.
"""

import uuid
from datetime import datetime, timedelta
from decimal import Decimal
from typing import FrozenSet, List, Optional, TYPE_CHECKING

from sqlalchemy import CheckConstraint, Enum, ForeignKey, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, UTCDateTime
from . import booking_state_machine as state_machine
from .booking_state_machine import BookingStatus

if TYPE_CHECKING:
    from .barber import Barber
    from .booking_history import BookingHistory


class Booking(Base):
    """Booking model for a single barber appointment."""

    __tablename__ = "bookings"

    # Public identifiers
    uuid: Mapped[str] = mapped_column(
        String(36),
        unique=True,
        nullable=False,
        default=lambda: str(uuid.uuid4())
    )
    booking_number: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)

    # Parties
    barber_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("barbers.id", ondelete="RESTRICT"),
        nullable=False,
        index=True
    )
    customer_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    customer_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    customer_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    customer_phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    # Service snapshot taken at booking time
    service_name: Mapped[str] = mapped_column(String(255), nullable=False)
    duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False)

    # Schedule
    scheduled_start_time: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    scheduled_end_time: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    actual_start_time: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    actual_end_time: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)

    # Pricing
    service_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    discount_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False, default=Decimal("0.00"))
    total_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    # Status
    status: Mapped[BookingStatus] = mapped_column(
        Enum(BookingStatus, native_enum=False, length=32, values_callable=lambda e: [m.value for m in e]),
        default=BookingStatus.PENDING,
        nullable=False,
        index=True
    )

    # Free text
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    special_requests: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    internal_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Cancellation
    cancelled_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime(), nullable=True)
    cancelled_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    cancellation_reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    booking_source: Mapped[str] = mapped_column(String(20), nullable=False, default="web_app")

    # Relationships
    barber: Mapped["Barber"] = relationship("Barber", lazy="raise")
    booking_history: Mapped[List["BookingHistory"]] = relationship(
        "BookingHistory",
        back_populates="booking",
        lazy="raise"
    )

    __table_args__ = (
        Index("ix_bookings_barber_schedule", "barber_id", "scheduled_start_time", "scheduled_end_time"),
        CheckConstraint("scheduled_end_time > scheduled_start_time", name="ck_bookings_end_after_start"),
        CheckConstraint("duration_minutes > 0", name="ck_bookings_duration_positive"),
    )

    def reschedule_to(self, start_time: datetime, duration_minutes: int) -> None:
        """Move the booking; start, end and duration always change together."""
        self.scheduled_start_time = start_time
        self.duration_minutes = duration_minutes
        self.scheduled_end_time = start_time + timedelta(minutes=duration_minutes)

    @property
    def is_guest(self) -> bool:
        return self.customer_id is None

    @property
    def is_terminal(self) -> bool:
        return state_machine.is_terminal(self.status)

    @property
    def occupies_slot(self) -> bool:
        return self.status in state_machine.OCCUPYING_STATUSES

    @property
    def can_reschedule(self) -> bool:
        return state_machine.can_reschedule(self.status)

    @property
    def can_cancel(self) -> bool:
        """True when at least one party may still cancel."""
        return (
            state_machine.can_cancel(self.status, by_customer=True)
            or state_machine.can_cancel(self.status, by_customer=False)
        )

    @property
    def allowed_transitions(self) -> FrozenSet[BookingStatus]:
        return state_machine.allowed_transitions(self.status)

    def is_upcoming(self, now: datetime) -> bool:
        return self.occupies_slot and self.scheduled_start_time > now

    def __repr__(self) -> str:
        """String representation of the booking."""
        return (
            f"<Booking(id={self.id}, number={self.booking_number}, barber_id={self.barber_id}, "
            f"start={self.scheduled_start_time}, status={self.status.value})>"
        )
