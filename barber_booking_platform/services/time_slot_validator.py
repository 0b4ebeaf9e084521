"""
Temporal and duration rules for a requested booking interval.
"""

import enum
from datetime import datetime, timedelta
from typing import Callable, Optional

from ..config import Settings
from ..utils.exceptions import TimeSlotValidationError
from ..utils.timeutils import ensure_utc, utcnow

Clock = Callable[[], datetime]


class TimeSlotErrorKind(str, enum.Enum):
    """Rule violated by a requested time slot."""
    PAST_TIME = "past_time"
    INSUFFICIENT_NOTICE = "insufficient_notice"
    TOO_FAR_AHEAD = "too_far_ahead"
    DURATION_OUT_OF_RANGE = "duration_out_of_range"


class TimeSlotValidator:
    """
    Validate a requested start time and duration.

    Rules are checked in order and the first violation is raised:

    1. the start is strictly in the future
    2. the start is at least ``min_advance`` from now
    3. the start is at most ``max_advance`` from now
    4. the duration lies in ``[min_duration, max_duration]`` minutes

    Boundary values are accepted.
    """

    def __init__(
        self,
        min_advance: timedelta = timedelta(hours=1),
        max_advance: timedelta = timedelta(days=30),
        min_duration_minutes: int = 15,
        max_duration_minutes: int = 480,
        clock: Optional[Clock] = None
    ):
        self.min_advance = min_advance
        self.max_advance = max_advance
        self.min_duration_minutes = min_duration_minutes
        self.max_duration_minutes = max_duration_minutes
        self.clock = clock or utcnow

    @classmethod
    def from_settings(cls, settings: Settings, clock: Optional[Clock] = None) -> "TimeSlotValidator":
        return cls(
            min_advance=timedelta(minutes=settings.min_advance_booking_minutes),
            max_advance=timedelta(days=settings.max_advance_booking_days),
            min_duration_minutes=settings.min_booking_duration_minutes,
            max_duration_minutes=settings.max_booking_duration_minutes,
            clock=clock,
        )

    def validate(self, start_time: datetime, duration_minutes: int, now: Optional[datetime] = None) -> None:
        """
        Validate a requested slot.

        Args:
            start_time: Requested start; naive values are read as UTC
            duration_minutes: Requested length of the appointment
            now: Reference instant, defaults to the validator's clock

        Raises:
            TimeSlotValidationError: With ``kind`` set to the first broken rule
        """
        now = ensure_utc(now or self.clock())
        start_time = ensure_utc(start_time)

        if start_time <= now:
            raise TimeSlotValidationError(
                TimeSlotErrorKind.PAST_TIME,
                "booking time must be in the future"
            )

        if start_time < now + self.min_advance:
            raise TimeSlotValidationError(
                TimeSlotErrorKind.INSUFFICIENT_NOTICE,
                f"booking must be at least {_format_delta(self.min_advance)} in advance"
            )

        if start_time > now + self.max_advance:
            raise TimeSlotValidationError(
                TimeSlotErrorKind.TOO_FAR_AHEAD,
                f"booking cannot be more than {_format_delta(self.max_advance)} in advance"
            )

        if duration_minutes < self.min_duration_minutes:
            raise TimeSlotValidationError(
                TimeSlotErrorKind.DURATION_OUT_OF_RANGE,
                f"booking duration must be at least {self.min_duration_minutes} minutes"
            )

        if duration_minutes > self.max_duration_minutes:
            raise TimeSlotValidationError(
                TimeSlotErrorKind.DURATION_OUT_OF_RANGE,
                f"booking duration cannot exceed {self.max_duration_minutes} minutes"
            )


def _format_delta(delta: timedelta) -> str:
    seconds = int(delta.total_seconds())
    if seconds % 86400 == 0:
        days = seconds // 86400
        return f"{days} day" if days == 1 else f"{days} days"
    if seconds % 3600 == 0:
        hours = seconds // 3600
        return f"{hours} hour" if hours == 1 else f"{hours} hours"
    return f"{seconds // 60} minutes"
