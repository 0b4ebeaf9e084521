"""
Database models for the Barber Booking Platform.
"""

from .base import Base
from .barber import Barber, BarberService, BarberStatus
from .booking import Booking, BookingStatus
from .booking_history import BookingHistory, ChangeType

__all__ = [
    "Base",
    "Barber",
    "BarberService",
    "BarberStatus",
    "Booking",
    "BookingStatus",
    "BookingHistory",
    "ChangeType",
]
