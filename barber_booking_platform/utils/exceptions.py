"""
Custom exceptions for the Barber Booking Platform.
"""

from typing import Any, Dict, Iterable, Optional, List
from enum import Enum


class ErrorCode(str, Enum):
    """Standard error codes for the platform."""

    # General errors
    INTERNAL_ERROR = "INTERNAL_ERROR"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    NOT_FOUND = "NOT_FOUND"

    # Scheduling errors
    INVALID_TIME_SLOT = "INVALID_TIME_SLOT"
    SLOT_UNAVAILABLE = "SLOT_UNAVAILABLE"
    BARBER_UNAVAILABLE = "BARBER_UNAVAILABLE"
    SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"

    # Lifecycle errors
    INVALID_STATUS_TRANSITION = "INVALID_STATUS_TRANSITION"
    BOOKING_TERMINAL = "BOOKING_TERMINAL"
    BOOKING_NOT_RESCHEDULABLE = "BOOKING_NOT_RESCHEDULABLE"

    # Transient errors
    LOCK_TIMEOUT = "LOCK_TIMEOUT"
    STORE_UNAVAILABLE = "STORE_UNAVAILABLE"

    # Best-effort collaborators
    CACHE_SERVICE_ERROR = "CACHE_SERVICE_ERROR"


class BookingPlatformError(Exception):
    """Base exception class for the booking platform."""

    def __init__(
        self,
        message: str,
        error_code: ErrorCode = ErrorCode.INTERNAL_ERROR,
        details: Optional[Dict[str, Any]] = None,
        suggestions: Optional[List[str]] = None,
        retry_after: Optional[int] = None
    ):
        """Initialize the exception with comprehensive error information."""
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        self.suggestions = suggestions or []
        self.retry_after = retry_after
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API responses."""
        result = {
            "error_code": self.error_code.value,
            "message": self.message,
        }

        if self.details:
            result["details"] = self.details

        if self.suggestions:
            result["suggestions"] = self.suggestions

        if self.retry_after:
            result["retry_after"] = self.retry_after

        return result


class ValidationError(BookingPlatformError):
    """Exception raised for validation errors."""

    def __init__(
        self,
        message: str,
        field_errors: Optional[Dict[str, List[str]]] = None,
        error_code: ErrorCode = ErrorCode.VALIDATION_ERROR,
        details: Optional[Dict[str, Any]] = None,
        **kwargs
    ):
        merged = dict(details or {})
        if field_errors:
            merged["field_errors"] = field_errors
        super().__init__(message, error_code=error_code, details=merged or None, **kwargs)
        self.field_errors = field_errors or {}


class TimeSlotValidationError(ValidationError):
    """Exception raised when a requested interval breaks a scheduling rule."""

    def __init__(self, kind: Enum, message: str, **kwargs):
        super().__init__(
            message,
            error_code=ErrorCode.INVALID_TIME_SLOT,
            details={"kind": kind.value},
            **kwargs
        )
        self.kind = kind


class GuestContactRequiredError(ValidationError):
    """Exception raised when a guest booking lacks contact details."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            field_errors={"customer": [message]},
            suggestions=["Provide a customer_id, or a name plus an email or phone number"],
            **kwargs
        )


class BarberUnavailableError(ValidationError):
    """Exception raised when a barber is not accepting bookings."""

    def __init__(self, barber_id: int, status: str, **kwargs):
        super().__init__(
            f"Barber {barber_id} is not accepting bookings",
            error_code=ErrorCode.BARBER_UNAVAILABLE,
            details={"barber_id": barber_id, "status": status},
            **kwargs
        )


class ServiceUnavailableError(ValidationError):
    """Exception raised when a service is inactive or offered by another barber."""

    def __init__(self, service_id: int, reason: str = "Service is not available", **kwargs):
        super().__init__(
            reason,
            error_code=ErrorCode.SERVICE_UNAVAILABLE,
            details={"service_id": service_id},
            **kwargs
        )


class NotFoundError(BookingPlatformError):
    """Base exception for resource not found errors."""

    def __init__(self, message: str, resource_type: Optional[str] = None, resource_id: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            error_code=ErrorCode.NOT_FOUND,
            details={"resource_type": resource_type, "resource_id": resource_id} if resource_type else None,
            **kwargs
        )


class BookingNotFoundError(NotFoundError):
    """Exception raised when a booking is not found."""

    def __init__(self, booking_ref: Any, **kwargs):
        super().__init__(
            f"Booking {booking_ref} not found",
            resource_type="booking",
            resource_id=str(booking_ref),
            suggestions=["Check the booking ID", "Look the booking up by its booking number"],
            **kwargs
        )


class BarberNotFoundError(NotFoundError):
    """Exception raised when a barber is not found."""

    def __init__(self, barber_id: int, **kwargs):
        super().__init__(
            f"Barber {barber_id} not found",
            resource_type="barber",
            resource_id=str(barber_id),
            **kwargs
        )


class ServiceNotFoundError(NotFoundError):
    """Exception raised when a barber service is not found."""

    def __init__(self, service_id: int, **kwargs):
        super().__init__(
            f"Service {service_id} not found",
            resource_type="service",
            resource_id=str(service_id),
            **kwargs
        )


class SlotUnavailableError(BookingPlatformError):
    """Exception raised when the requested interval overlaps an active booking."""

    def __init__(self, barber_id: int, start_time: Any, end_time: Any, **kwargs):
        super().__init__(
            "Time slot is not available, please choose another time",
            error_code=ErrorCode.SLOT_UNAVAILABLE,
            details={
                "barber_id": barber_id,
                "start_time": str(start_time),
                "end_time": str(end_time),
            },
            suggestions=["Choose a different time", "Check the barber's availability first"],
            **kwargs
        )


class StateError(BookingPlatformError):
    """Base exception for operations not permitted in the booking's status."""

    def __init__(
        self,
        message: str,
        current_status: str,
        allowed_transitions: Iterable[str] = (),
        error_code: ErrorCode = ErrorCode.INVALID_STATUS_TRANSITION,
        **kwargs
    ):
        allowed = sorted(allowed_transitions)
        super().__init__(
            message,
            error_code=error_code,
            details={"current_status": current_status, "allowed_transitions": allowed},
            **kwargs
        )
        self.current_status = current_status
        self.allowed_transitions = allowed


class InvalidStatusTransitionError(StateError):
    """Exception raised when a status change is not in the transition table."""

    def __init__(self, current_status: str, target_status: str, allowed_transitions: Iterable[str], **kwargs):
        allowed = sorted(allowed_transitions)
        super().__init__(
            f"Cannot change booking status from '{current_status}' to '{target_status}'",
            current_status=current_status,
            allowed_transitions=allowed,
            **kwargs
        )
        self.target_status = target_status
        self.details["target_status"] = target_status


class BookingTerminalStateError(StateError):
    """Exception raised when operating on a booking that reached a final status."""

    def __init__(self, booking_id: int, current_status: str, **kwargs):
        super().__init__(
            f"Booking {booking_id} is already in a terminal state: {current_status}",
            current_status=current_status,
            error_code=ErrorCode.BOOKING_TERMINAL,
            **kwargs
        )


class BookingNotReschedulableError(StateError):
    """Exception raised when rescheduling outside pending/confirmed."""

    def __init__(self, booking_id: int, current_status: str, allowed_transitions: Iterable[str] = (), **kwargs):
        super().__init__(
            f"Booking {booking_id} cannot be rescheduled in status: {current_status}",
            current_status=current_status,
            allowed_transitions=allowed_transitions,
            error_code=ErrorCode.BOOKING_NOT_RESCHEDULABLE,
            **kwargs
        )


class TransientError(BookingPlatformError):
    """Exception raised for retryable failures."""

    def __init__(self, message: str, error_code: ErrorCode = ErrorCode.STORE_UNAVAILABLE, retry_after: int = 1, **kwargs):
        super().__init__(
            message,
            error_code=error_code,
            retry_after=retry_after,
            suggestions=["Please try again", "Wait a moment and retry"],
            **kwargs
        )


class LockTimeoutError(TransientError):
    """Exception raised when a lock could not be acquired before the deadline."""

    def __init__(self, resource: str, timeout: Optional[float], **kwargs):
        super().__init__(
            f"Timed out waiting for the lock on {resource}",
            error_code=ErrorCode.LOCK_TIMEOUT,
            details={"resource": resource, "timeout_seconds": timeout},
            **kwargs
        )


class StoreUnavailableError(TransientError):
    """Exception raised when the database cannot be reached."""

    def __init__(self, message: str = "Booking store temporarily unavailable", **kwargs):
        super().__init__(message, error_code=ErrorCode.STORE_UNAVAILABLE, **kwargs)


class InternalError(BookingPlatformError):
    """Exception raised for unexpected persistence failures."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        **kwargs
    ):
        merged = dict(details or {})
        if operation:
            merged["operation"] = operation
        super().__init__(message, error_code=ErrorCode.INTERNAL_ERROR, details=merged or None, **kwargs)


class CacheServiceError(BookingPlatformError):
    """Exception raised for cache service failures."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            f"cache service error: {message}",
            error_code=ErrorCode.CACHE_SERVICE_ERROR,
            **kwargs
        )
