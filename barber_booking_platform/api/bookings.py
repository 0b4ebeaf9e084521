"""
FastAPI routes for booking scheduling and lifecycle.
"""

import logging
from datetime import datetime, timedelta
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, status

from ..models.booking import BookingStatus
from ..schemas.booking import (
    AvailabilityResponse,
    BarberStatsResponse,
    BookingCancelRequest,
    BookingCreateRequest,
    BookingListResponse,
    BookingRescheduleRequest,
    BookingResponse,
    BookingStatusUpdateRequest,
    BookingUpdateRequest,
    TransitionsResponse,
)
from ..schemas.history import BookingHistoryResponse
from ..services.booking_service import BookingService
from ..utils.dependencies import get_actor_id, get_booking_service
from ..utils.timeutils import ensure_utc

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/bookings", tags=["bookings"])


def _list_response(bookings, limit: int, offset: int, now: datetime) -> BookingListResponse:
    return BookingListResponse(
        bookings=[BookingResponse.from_booking(b, now) for b in bookings],
        total=len(bookings),
        limit=limit,
        offset=offset
    )


@router.post("/", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
async def create_booking(
    request: BookingCreateRequest,
    actor_id: Optional[int] = Depends(get_actor_id),
    service: BookingService = Depends(get_booking_service)
):
    """
    Book a barber's service for a time slot.

    Concurrent requests for overlapping slots of the same barber are
    serialized; exactly one of them succeeds and the others get a 409.
    """
    booking = await service.create_booking(request, actor_id=actor_id)
    return BookingResponse.from_booking(booking, service.clock())


@router.get("/availability", response_model=AvailabilityResponse)
async def check_availability(
    barber_id: int = Query(...),
    start_time: datetime = Query(...),
    duration_minutes: int = Query(..., gt=0),
    buffer_minutes: int = Query(0, ge=0),
    service: BookingService = Depends(get_booking_service)
):
    """Check whether a barber is free for the given interval, optionally with buffer time around it."""
    start_time = ensure_utc(start_time)
    available = await service.check_availability(barber_id, start_time, duration_minutes, buffer_minutes)
    return AvailabilityResponse(
        barber_id=barber_id,
        start_time=start_time,
        end_time=start_time + timedelta(minutes=duration_minutes),
        available=available
    )


@router.get("/uuid/{booking_uuid}", response_model=BookingResponse)
async def get_booking_by_uuid(booking_uuid: str, service: BookingService = Depends(get_booking_service)):
    booking = await service.get_booking_by_uuid(booking_uuid)
    return BookingResponse.from_booking(booking, service.clock())


@router.get("/number/{booking_number}", response_model=BookingResponse)
async def get_booking_by_number(booking_number: str, service: BookingService = Depends(get_booking_service)):
    booking = await service.get_booking_by_number(booking_number)
    return BookingResponse.from_booking(booking, service.clock())


@router.get("/barber/{barber_id}", response_model=BookingListResponse)
async def list_barber_bookings(
    barber_id: int,
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    service: BookingService = Depends(get_booking_service)
):
    """List a barber's bookings, optionally filtered by status and start date range."""
    bookings = await service.list_barber_bookings(
        barber_id,
        status=status_filter,
        start_date=ensure_utc(start_date) if start_date else None,
        end_date=ensure_utc(end_date) if end_date else None,
        limit=limit,
        offset=offset
    )
    return _list_response(bookings, limit, offset, service.clock())


@router.get("/barber/{barber_id}/upcoming", response_model=List[BookingResponse])
async def list_upcoming_bookings(
    barber_id: int,
    limit: int = Query(20, ge=1, le=100),
    service: BookingService = Depends(get_booking_service)
):
    now = service.clock()
    bookings = await service.get_upcoming_bookings(barber_id, limit=limit)
    return [BookingResponse.from_booking(b, now) for b in bookings]


@router.get("/barber/{barber_id}/today", response_model=List[BookingResponse])
async def list_today_bookings(barber_id: int, service: BookingService = Depends(get_booking_service)):
    now = service.clock()
    bookings = await service.get_today_bookings(barber_id)
    return [BookingResponse.from_booking(b, now) for b in bookings]


@router.get("/barber/{barber_id}/stats", response_model=BarberStatsResponse)
async def get_barber_stats(
    barber_id: int,
    start_date: datetime = Query(...),
    end_date: datetime = Query(...),
    service: BookingService = Depends(get_booking_service)
):
    """Booking counts per status and completed revenue between two dates."""
    start_date, end_date = ensure_utc(start_date), ensure_utc(end_date)
    stats = await service.get_barber_stats(barber_id, start_date, end_date)
    return BarberStatsResponse(barber_id=barber_id, start_date=start_date, end_date=end_date, **stats)


@router.get("/customer/{customer_id}", response_model=BookingListResponse)
async def list_customer_bookings(
    customer_id: int,
    status_filter: Optional[BookingStatus] = Query(None, alias="status"),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    service: BookingService = Depends(get_booking_service)
):
    bookings = await service.list_customer_bookings(
        customer_id,
        status=status_filter,
        start_date=ensure_utc(start_date) if start_date else None,
        end_date=ensure_utc(end_date) if end_date else None,
        limit=limit,
        offset=offset
    )
    return _list_response(bookings, limit, offset, service.clock())


@router.get("/{booking_id}", response_model=BookingResponse)
async def get_booking(booking_id: int, service: BookingService = Depends(get_booking_service)):
    booking = await service.get_booking(booking_id)
    return BookingResponse.from_booking(booking, service.clock())


@router.patch("/{booking_id}", response_model=BookingResponse)
async def update_booking(
    booking_id: int,
    request: BookingUpdateRequest,
    actor_id: Optional[int] = Depends(get_actor_id),
    service: BookingService = Depends(get_booking_service)
):
    """Update contact details and notes; omitted fields are left unchanged."""
    booking = await service.update_booking(booking_id, request, actor_id=actor_id)
    return BookingResponse.from_booking(booking, service.clock())


@router.post("/{booking_id}/reschedule", response_model=BookingResponse)
async def reschedule_booking(
    booking_id: int,
    request: BookingRescheduleRequest,
    actor_id: Optional[int] = Depends(get_actor_id),
    service: BookingService = Depends(get_booking_service)
):
    """
    Move a pending or confirmed booking to another slot.

    On a conflict the booking keeps its current times.
    """
    booking = await service.reschedule_booking(booking_id, request, actor_id=actor_id)
    return BookingResponse.from_booking(booking, service.clock())


@router.patch("/{booking_id}/status", response_model=BookingResponse)
async def update_booking_status(
    booking_id: int,
    request: BookingStatusUpdateRequest,
    actor_id: Optional[int] = Depends(get_actor_id),
    service: BookingService = Depends(get_booking_service)
):
    booking = await service.update_status(booking_id, request.status, actor_id=actor_id, reason=request.reason)
    return BookingResponse.from_booking(booking, service.clock())


@router.post("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(
    booking_id: int,
    request: BookingCancelRequest,
    actor_id: Optional[int] = Depends(get_actor_id),
    service: BookingService = Depends(get_booking_service)
):
    """Cancel a booking on behalf of the customer or the barber."""
    booking = await service.cancel_booking(booking_id, request, actor_id=actor_id)
    return BookingResponse.from_booking(booking, service.clock())


@router.get("/{booking_id}/history", response_model=List[BookingHistoryResponse])
async def get_booking_history(booking_id: int, service: BookingService = Depends(get_booking_service)):
    """Audit trail of the booking, oldest entry first."""
    entries = await service.get_booking_history(booking_id)
    return [BookingHistoryResponse.from_entry(entry) for entry in entries]


@router.get("/{booking_id}/transitions", response_model=TransitionsResponse)
async def get_booking_transitions(booking_id: int, service: BookingService = Depends(get_booking_service)):
    """Statuses the booking may move to next."""
    booking = await service.get_booking(booking_id)
    return TransitionsResponse(
        booking_id=booking.id,
        current_status=booking.status,
        allowed_transitions=sorted(booking.allowed_transitions, key=lambda s: s.value),
        is_terminal=booking.is_terminal,
        can_cancel=booking.can_cancel,
        can_reschedule=booking.can_reschedule
    )
