"""Tests for the booking status state machine."""

import pytest

from barber_booking_platform.models.booking_state_machine import (
    OCCUPYING_STATUSES,
    TERMINAL_STATUSES,
    TRANSITIONS,
    BookingStatus,
    allowed_transitions,
    can_cancel,
    can_reschedule,
    can_transition_to,
    cancellation_status,
    is_terminal,
    validate_transition,
)
from barber_booking_platform.utils.exceptions import InvalidStatusTransitionError, StateError

S = BookingStatus


class TestTransitionTable:
    def test_every_status_has_an_entry(self):
        assert set(TRANSITIONS) == set(BookingStatus)

    def test_pending(self):
        assert allowed_transitions(S.PENDING) == {
            S.CONFIRMED, S.CANCELLED_BY_CUSTOMER, S.CANCELLED_BY_BARBER, S.REJECTED
        }

    def test_confirmed(self):
        assert allowed_transitions(S.CONFIRMED) == {
            S.IN_PROGRESS, S.CANCELLED_BY_CUSTOMER, S.CANCELLED_BY_BARBER, S.NO_SHOW
        }

    def test_in_progress(self):
        assert allowed_transitions(S.IN_PROGRESS) == {S.COMPLETED, S.CANCELLED_BY_BARBER}

    @pytest.mark.parametrize("status", sorted(TERMINAL_STATUSES, key=lambda s: s.value))
    def test_terminal_statuses_have_no_exits(self, status):
        assert allowed_transitions(status) == frozenset()
        assert is_terminal(status)

    def test_terminal_set(self):
        assert TERMINAL_STATUSES == {
            S.COMPLETED, S.CANCELLED_BY_CUSTOMER, S.CANCELLED_BY_BARBER, S.REJECTED, S.NO_SHOW
        }

    def test_occupying_set(self):
        assert OCCUPYING_STATUSES == {S.PENDING, S.CONFIRMED, S.IN_PROGRESS}

    def test_accepts_string_values(self):
        assert can_transition_to("pending", "confirmed")
        assert not can_transition_to("pending", "completed")

    def test_unknown_target_is_not_a_transition(self):
        assert not can_transition_to(S.PENDING, "teleported")

    def test_self_transition_is_illegal(self):
        assert not can_transition_to(S.CONFIRMED, S.CONFIRMED)


class TestValidateTransition:
    def test_legal_transition_passes(self):
        validate_transition(S.PENDING, S.CONFIRMED)

    def test_illegal_transition_reports_allowed_set(self):
        with pytest.raises(InvalidStatusTransitionError) as exc_info:
            validate_transition(S.PENDING, S.COMPLETED)

        error = exc_info.value
        assert isinstance(error, StateError)
        assert error.current_status == "pending"
        assert error.target_status == "completed"
        assert error.allowed_transitions == [
            "cancelled_by_barber", "cancelled_by_customer", "confirmed", "rejected"
        ]
        assert error.details["current_status"] == "pending"

    def test_leaving_a_terminal_status(self):
        with pytest.raises(InvalidStatusTransitionError) as exc_info:
            validate_transition(S.COMPLETED, S.PENDING)
        assert exc_info.value.allowed_transitions == []


class TestReschedulingAndCancellation:
    @pytest.mark.parametrize("status,expected", [
        (S.PENDING, True),
        (S.CONFIRMED, True),
        (S.IN_PROGRESS, False),
        (S.COMPLETED, False),
        (S.NO_SHOW, False),
    ])
    def test_can_reschedule(self, status, expected):
        assert can_reschedule(status) is expected

    def test_cancellation_status_by_party(self):
        assert cancellation_status(True) == S.CANCELLED_BY_CUSTOMER
        assert cancellation_status(False) == S.CANCELLED_BY_BARBER

    def test_customer_cannot_cancel_in_progress(self):
        assert not can_cancel(S.IN_PROGRESS, by_customer=True)
        assert can_cancel(S.IN_PROGRESS, by_customer=False)

    def test_nobody_cancels_terminal_bookings(self):
        assert not can_cancel(S.COMPLETED, by_customer=True)
        assert not can_cancel(S.COMPLETED, by_customer=False)
