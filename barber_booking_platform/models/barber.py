"""
Read-only catalog models for barbers and the services they offer.

Catalog CRUD lives in another service; the booking engine only reads these
rows to validate and snapshot a booking.
"""

import enum
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import Boolean, Enum, ForeignKey, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base


class BarberStatus(str, enum.Enum):
    """Enumeration for barber account status."""
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"
    PENDING = "pending"


class Barber(Base):
    """Service provider whose timeline bookings are allocated on."""

    __tablename__ = "barbers"

    user_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    shop_name: Mapped[str] = mapped_column(String(255), nullable=False)
    business_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    bio: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default="UTC")

    status: Mapped[BarberStatus] = mapped_column(
        Enum(BarberStatus, native_enum=False, length=20, values_callable=lambda e: [m.value for m in e]),
        default=BarberStatus.PENDING,
        nullable=False
    )

    services: Mapped[List["BarberService"]] = relationship(
        "BarberService",
        back_populates="barber",
        lazy="raise"
    )

    @property
    def is_active(self) -> bool:
        return self.status == BarberStatus.ACTIVE

    def __repr__(self) -> str:
        return f"<Barber(id={self.id}, shop_name={self.shop_name}, status={self.status.value})>"


class BarberService(Base):
    """A service offered by one barber, with that barber's price."""

    __tablename__ = "barber_services"

    barber_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("barbers.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    service_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    custom_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    default_duration_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=30)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    barber: Mapped["Barber"] = relationship("Barber", back_populates="services", lazy="raise")

    @property
    def display_name(self) -> str:
        """Name snapshotted onto bookings."""
        return self.custom_name or self.service_name or "Unknown Service"

    def __repr__(self) -> str:
        return f"<BarberService(id={self.id}, barber_id={self.barber_id}, name={self.display_name})>"
