"""
Request/response logging middleware.
"""

import contextvars
import logging
import time
from typing import FrozenSet, Iterable, Optional
from uuid import uuid4

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from ..utils.logging_config import log_performance

logger = logging.getLogger(__name__)

# Context variable for request ID
request_id_var: contextvars.ContextVar[str] = contextvars.ContextVar('request_id', default='no-request-id')

DEFAULT_QUIET_PATHS = ("/health", "/", "/docs", "/redoc", "/openapi.json")
SLOW_REQUEST_THRESHOLD = 2.0


class LoggingMiddleware(BaseHTTPMiddleware):
    """Log every request with a request ID and its processing time."""

    def __init__(
        self,
        app,
        log_requests: bool = True,
        log_responses: bool = True,
        quiet_paths: Optional[Iterable[str]] = None,
        sensitive_headers: Optional[Iterable[str]] = None
    ):
        super().__init__(app)
        self.log_requests = log_requests
        self.log_responses = log_responses
        # Health checks and docs are logged at DEBUG
        self.quiet_paths: FrozenSet[str] = frozenset(quiet_paths or DEFAULT_QUIET_PATHS)
        self.sensitive_headers: FrozenSet[str] = frozenset(
            header.lower() for header in (sensitive_headers or ("authorization", "cookie", "x-api-key"))
        )

    async def dispatch(self, request: Request, call_next):
        """Log request and response with comprehensive context."""
        request_id = request.headers.get("x-request-id") or str(uuid4())
        request.state.request_id = request_id
        token = request_id_var.set(request_id)

        start_time = time.perf_counter()
        quiet = request.url.path in self.quiet_paths

        if self.log_requests:
            self._log_request(request, request_id, quiet)

        try:
            response = await call_next(request)

            process_time = time.perf_counter() - start_time
            response.headers["X-Request-ID"] = request_id
            response.headers["X-Process-Time"] = f"{process_time:.4f}"

            if self.log_responses:
                self._log_response(request, response, request_id, process_time, quiet)

            return response

        except Exception as exc:
            process_time = time.perf_counter() - start_time
            logger.error(
                f"Request failed: {request.method} {request.url.path} ({process_time:.4f}s)",
                exc_info=True,
                extra={
                    "request_id": request_id,
                    "exception_type": type(exc).__name__,
                    "process_time": process_time,
                }
            )
            raise
        finally:
            request_id_var.reset(token)

    def _log_request(self, request: Request, request_id: str, quiet: bool) -> None:
        request_info = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "query_params": dict(request.query_params),
            "client_ip": self._get_client_ip(request),
            "user_agent": request.headers.get("user-agent"),
            "actor_id": request.headers.get("x-user-id"),
            "headers": self._sanitize_headers(dict(request.headers)),
        }

        if quiet:
            logger.debug(f"Health check: {request.method} {request.url.path}", extra=request_info)
        elif request.url.path.startswith("/api/v1/bookings"):
            logger.info(f"Booking request: {request.method} {request.url.path}", extra=request_info)
        else:
            logger.info(f"API request: {request.method} {request.url.path}", extra=request_info)

    def _log_response(
        self,
        request: Request,
        response: Response,
        request_id: str,
        process_time: float,
        quiet: bool
    ) -> None:
        response_info = {
            "request_id": request_id,
            "status_code": response.status_code,
            "process_time": process_time,
        }

        if quiet and response.status_code < 400:
            logger.debug(f"Response: {response.status_code} ({process_time:.4f}s)", extra=response_info)
        elif response.status_code < 400:
            logger.info(f"Response: {response.status_code} ({process_time:.4f}s)", extra=response_info)
        elif response.status_code < 500:
            logger.warning(f"Client error: {response.status_code} ({process_time:.4f}s)", extra=response_info)
        else:
            logger.error(f"Server error: {response.status_code} ({process_time:.4f}s)", extra=response_info)

        if process_time > SLOW_REQUEST_THRESHOLD:
            log_performance(
                f"{request.method} {request.url.path}",
                process_time,
                slow_request=True,
                threshold=SLOW_REQUEST_THRESHOLD,
            )

    def _sanitize_headers(self, headers: dict) -> dict:
        return {
            key: "***MASKED***" if key.lower() in self.sensitive_headers else value
            for key, value in headers.items()
        }

    @staticmethod
    def _get_client_ip(request: Request) -> Optional[str]:
        forwarded_for = request.headers.get("x-forwarded-for")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()
        return request.client.host if request.client else None
