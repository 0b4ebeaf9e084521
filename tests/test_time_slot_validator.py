"""Tests for scheduling rule validation."""

from datetime import timedelta

import pytest

from barber_booking_platform.config import Settings
from barber_booking_platform.services.time_slot_validator import TimeSlotErrorKind, TimeSlotValidator
from barber_booking_platform.utils.exceptions import TimeSlotValidationError, ValidationError

from conftest import FIXED_NOW, fixed_clock


@pytest.fixture
def validator():
    return TimeSlotValidator(clock=fixed_clock)


def assert_kind(validator, start_time, duration, kind):
    with pytest.raises(TimeSlotValidationError) as exc_info:
        validator.validate(start_time, duration)
    assert exc_info.value.kind == kind
    assert exc_info.value.details["kind"] == kind.value


class TestStartTime:
    def test_now_is_in_the_past(self, validator):
        assert_kind(validator, FIXED_NOW, 30, TimeSlotErrorKind.PAST_TIME)

    def test_earlier_is_in_the_past(self, validator):
        assert_kind(validator, FIXED_NOW - timedelta(days=1), 30, TimeSlotErrorKind.PAST_TIME)

    def test_less_than_an_hour_ahead(self, validator):
        assert_kind(validator, FIXED_NOW + timedelta(minutes=59), 30, TimeSlotErrorKind.INSUFFICIENT_NOTICE)

    def test_exactly_one_hour_ahead_is_accepted(self, validator):
        validator.validate(FIXED_NOW + timedelta(hours=1), 30)

    def test_exactly_thirty_days_ahead_is_accepted(self, validator):
        validator.validate(FIXED_NOW + timedelta(days=30), 30)

    def test_beyond_thirty_days(self, validator):
        assert_kind(validator, FIXED_NOW + timedelta(days=30, minutes=1), 30, TimeSlotErrorKind.TOO_FAR_AHEAD)

    def test_naive_start_is_read_as_utc(self, validator):
        naive = (FIXED_NOW + timedelta(hours=2)).replace(tzinfo=None)
        validator.validate(naive, 30)

    def test_message(self, validator):
        with pytest.raises(TimeSlotValidationError, match="at least 1 hour in advance"):
            validator.validate(FIXED_NOW + timedelta(minutes=30), 30)


class TestDuration:
    @pytest.mark.parametrize("duration", [15, 60, 480])
    def test_within_range(self, validator, duration):
        validator.validate(FIXED_NOW + timedelta(hours=2), duration)

    @pytest.mark.parametrize("duration", [0, 10, 14, 481])
    def test_out_of_range(self, validator, duration):
        assert_kind(validator, FIXED_NOW + timedelta(hours=2), duration, TimeSlotErrorKind.DURATION_OUT_OF_RANGE)


class TestRuleOrder:
    def test_past_time_reported_before_bad_duration(self, validator):
        assert_kind(validator, FIXED_NOW - timedelta(hours=1), 5, TimeSlotErrorKind.PAST_TIME)

    def test_notice_reported_before_bad_duration(self, validator):
        assert_kind(validator, FIXED_NOW + timedelta(minutes=10), 5, TimeSlotErrorKind.INSUFFICIENT_NOTICE)


def test_is_a_validation_error(validator):
    with pytest.raises(ValidationError):
        validator.validate(FIXED_NOW, 30)


def test_limits_come_from_settings():
    settings = Settings(
        _env_file=None,
        min_advance_booking_minutes=120,
        max_advance_booking_days=7,
        min_booking_duration_minutes=30,
        max_booking_duration_minutes=90,
    )
    validator = TimeSlotValidator.from_settings(settings, clock=fixed_clock)

    assert_kind(validator, FIXED_NOW + timedelta(hours=1), 30, TimeSlotErrorKind.INSUFFICIENT_NOTICE)
    assert_kind(validator, FIXED_NOW + timedelta(days=8), 30, TimeSlotErrorKind.TOO_FAR_AHEAD)
    assert_kind(validator, FIXED_NOW + timedelta(hours=3), 15, TimeSlotErrorKind.DURATION_OUT_OF_RANGE)
    validator.validate(FIXED_NOW + timedelta(hours=2), 90)
