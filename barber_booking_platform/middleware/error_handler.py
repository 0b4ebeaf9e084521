"""
Error handling middleware for the Barber Booking Platform.
"""

import logging
import traceback
from datetime import datetime, timezone
from typing import Dict
from uuid import uuid4

from fastapi import Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from sqlalchemy.exc import OperationalError, TimeoutError as SQLTimeoutError
from pydantic import ValidationError as PydanticValidationError

from ..utils.exceptions import (
    BookingPlatformError,
    ErrorCode,
    InternalError,
    NotFoundError,
    SlotUnavailableError,
    StateError,
    StoreUnavailableError,
    TransientError,
    ValidationError,
)

logger = logging.getLogger(__name__)

STATUS_MAP: Dict[ErrorCode, int] = {
    ErrorCode.VALIDATION_ERROR: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.INVALID_TIME_SLOT: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.BARBER_UNAVAILABLE: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.SERVICE_UNAVAILABLE: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ErrorCode.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.SLOT_UNAVAILABLE: status.HTTP_409_CONFLICT,
    ErrorCode.INVALID_STATUS_TRANSITION: status.HTTP_409_CONFLICT,
    ErrorCode.BOOKING_TERMINAL: status.HTTP_409_CONFLICT,
    ErrorCode.BOOKING_NOT_RESCHEDULABLE: status.HTTP_409_CONFLICT,
    ErrorCode.LOCK_TIMEOUT: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.STORE_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.CACHE_SERVICE_ERROR: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.INTERNAL_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def status_code_for(exc: BookingPlatformError) -> int:
    """Map an error code to its HTTP status code."""
    return STATUS_MAP.get(exc.error_code, status.HTTP_500_INTERNAL_SERVER_ERROR)


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Turn exceptions raised by the routes into structured JSON responses."""

    def __init__(self, app, debug: bool = False):
        super().__init__(app)
        self.debug = debug

    async def dispatch(self, request: Request, call_next):
        """Process request and handle any exceptions."""
        error_id = str(uuid4())

        try:
            return await call_next(request)
        except Exception as exc:
            return self._handle_exception(request, exc, error_id)

    def _handle_exception(self, request: Request, exc: Exception, error_id: str) -> JSONResponse:
        self._log_error(request, exc, error_id)

        if isinstance(exc, BookingPlatformError):
            return self._error_response(exc, error_id)
        elif isinstance(exc, PydanticValidationError):
            return self._handle_validation_error(exc, error_id)
        elif isinstance(exc, (OperationalError, SQLTimeoutError)):
            return self._error_response(StoreUnavailableError(), error_id)
        return self._handle_unexpected_error(exc, error_id)

    def _error_response(self, exc: BookingPlatformError, error_id: str) -> JSONResponse:
        response_data = {
            "error": exc.to_dict(),
            "error_id": error_id,
            "timestamp": self._get_timestamp()
        }

        headers = {}
        if exc.retry_after:
            headers["Retry-After"] = str(exc.retry_after)

        return JSONResponse(
            status_code=status_code_for(exc),
            content=response_data,
            headers=headers
        )

    def _handle_validation_error(self, exc: PydanticValidationError, error_id: str) -> JSONResponse:
        field_errors: Dict[str, list] = {}
        for error in exc.errors():
            field_path = ".".join(str(loc) for loc in error["loc"])
            field_errors.setdefault(field_path, []).append(error["msg"])

        return self._error_response(
            ValidationError("Request validation failed", field_errors=field_errors),
            error_id
        )

    def _handle_unexpected_error(self, exc: Exception, error_id: str) -> JSONResponse:
        internal = InternalError(
            "An unexpected error occurred",
            details={"error_type": type(exc).__name__} if self.debug else None
        )
        response_data = {
            "error": internal.to_dict(),
            "error_id": error_id,
            "timestamp": self._get_timestamp()
        }

        # Include stack trace in debug mode
        if self.debug:
            response_data["debug"] = {
                "exception": str(exc),
                "traceback": "".join(traceback.format_exception(exc))
            }

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=response_data
        )

    def _log_error(self, request: Request, exc: Exception, error_id: str) -> None:
        request_info = {
            "method": request.method,
            "path": request.url.path,
            "client_ip": request.client.host if request.client else None,
            "actor_id": request.headers.get("x-user-id"),
        }

        if isinstance(exc, BookingPlatformError):
            extra = {
                "error_id": error_id,
                "error_code": exc.error_code.value,
                "request": request_info,
                "details": exc.details
            }
            if isinstance(exc, (ValidationError, NotFoundError, SlotUnavailableError, StateError)):
                logger.warning(f"Client error [{error_id}]: {exc.message}", extra=extra)
            elif isinstance(exc, TransientError):
                logger.warning(f"Transient error [{error_id}]: {exc.message}", extra=extra)
            else:
                logger.error(f"System error [{error_id}]: {exc.message}", extra=extra)
        else:
            logger.error(
                f"Unexpected error [{error_id}]: {str(exc)}",
                exc_info=exc,
                extra={
                    "error_id": error_id,
                    "error_type": type(exc).__name__,
                    "request": request_info,
                }
            )

    @staticmethod
    def _get_timestamp() -> str:
        return datetime.now(timezone.utc).isoformat()
