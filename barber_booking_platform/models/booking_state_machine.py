"""
Booking status state machine.

              pending
     ┌───────┬───┴────────┬──────────┐
     ↓       ↓            ↓          ↓
 confirmed  rejected  cancelled_by_customer / cancelled_by_barber
     │
     ├──────────┬──────────────┐
     ↓          ↓              ↓
 in_progress  no_show   cancelled_by_customer / cancelled_by_barber
     │
     ├───────────┐
     ↓           ↓
 completed  cancelled_by_barber
"""

import enum
from typing import Dict, FrozenSet

from ..utils.exceptions import InvalidStatusTransitionError


class BookingStatus(str, enum.Enum):
    """Enumeration for booking status."""
    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED_BY_CUSTOMER = "cancelled_by_customer"
    CANCELLED_BY_BARBER = "cancelled_by_barber"
    REJECTED = "rejected"
    NO_SHOW = "no_show"


TRANSITIONS: Dict[BookingStatus, FrozenSet[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({
        BookingStatus.CONFIRMED,
        BookingStatus.CANCELLED_BY_CUSTOMER,
        BookingStatus.CANCELLED_BY_BARBER,
        BookingStatus.REJECTED,
    }),
    BookingStatus.CONFIRMED: frozenset({
        BookingStatus.IN_PROGRESS,
        BookingStatus.CANCELLED_BY_CUSTOMER,
        BookingStatus.CANCELLED_BY_BARBER,
        BookingStatus.NO_SHOW,
    }),
    BookingStatus.IN_PROGRESS: frozenset({
        BookingStatus.COMPLETED,
        BookingStatus.CANCELLED_BY_BARBER,
    }),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED_BY_CUSTOMER: frozenset(),
    BookingStatus.CANCELLED_BY_BARBER: frozenset(),
    BookingStatus.REJECTED: frozenset(),
    BookingStatus.NO_SHOW: frozenset(),
}

TERMINAL_STATUSES: FrozenSet[BookingStatus] = frozenset(
    status for status, allowed in TRANSITIONS.items() if not allowed
)

# Statuses whose interval blocks the barber's timeline
OCCUPYING_STATUSES: FrozenSet[BookingStatus] = frozenset(TRANSITIONS) - TERMINAL_STATUSES

RESCHEDULABLE_STATUSES: FrozenSet[BookingStatus] = frozenset({
    BookingStatus.PENDING,
    BookingStatus.CONFIRMED,
})

CANCELLATION_STATUSES: FrozenSet[BookingStatus] = frozenset({
    BookingStatus.CANCELLED_BY_CUSTOMER,
    BookingStatus.CANCELLED_BY_BARBER,
})


def _coerce(status) -> BookingStatus:
    return status if isinstance(status, BookingStatus) else BookingStatus(status)


def allowed_transitions(current) -> FrozenSet[BookingStatus]:
    """Return every status reachable from ``current`` in one step."""
    return TRANSITIONS[_coerce(current)]


def can_transition_to(current, target) -> bool:
    """Check whether ``current -> target`` is a legal single transition."""
    try:
        return _coerce(target) in allowed_transitions(current)
    except ValueError:
        return False


def validate_transition(current, target) -> None:
    """Raise InvalidStatusTransitionError unless ``current -> target`` is legal."""
    current = _coerce(current)
    if not can_transition_to(current, target):
        target_value = target.value if isinstance(target, BookingStatus) else str(target)
        raise InvalidStatusTransitionError(
            current.value,
            target_value,
            [status.value for status in TRANSITIONS[current]],
        )


def is_terminal(status) -> bool:
    return _coerce(status) in TERMINAL_STATUSES


def can_reschedule(status) -> bool:
    """Rescheduling keeps the status and is limited to pending/confirmed bookings."""
    return _coerce(status) in RESCHEDULABLE_STATUSES


def cancellation_status(by_customer: bool) -> BookingStatus:
    if by_customer:
        return BookingStatus.CANCELLED_BY_CUSTOMER
    return BookingStatus.CANCELLED_BY_BARBER


def can_cancel(status, by_customer: bool) -> bool:
    """Check whether the given party may cancel a booking in ``status``."""
    return can_transition_to(status, cancellation_status(by_customer))
