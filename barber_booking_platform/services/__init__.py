"""Business logic services for the Barber Booking Platform."""

from .pricing import PricingBreakdown, PricingCalculator
from .time_slot_validator import TimeSlotValidator
from .conflict_resolver import ConflictResolver
from .history_service import HistoryService
from .booking_service import BookingService

__all__ = [
    "PricingBreakdown",
    "PricingCalculator",
    "TimeSlotValidator",
    "ConflictResolver",
    "HistoryService",
    "BookingService",
]
