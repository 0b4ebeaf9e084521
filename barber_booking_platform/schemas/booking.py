"""
Pydantic schemas for booking-related API requests and responses.
"""

import enum
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from ..models.booking import Booking, BookingStatus
from ..utils.timeutils import ensure_utc, humanize_until, utcnow


class BookingSource(str, enum.Enum):
    """Channel a booking was made through."""
    MOBILE_APP = "mobile_app"
    WEB_APP = "web_app"
    PHONE = "phone"
    WALK_IN = "walk_in"
    ADMIN = "admin"


class BookingCreateRequest(BaseModel):
    """Schema for creating a new booking."""

    barber_id: int = Field(..., description="ID of the barber to book")
    service_id: int = Field(..., description="ID of the barber's service")
    start_time: datetime = Field(..., description="Requested start; naive values are read as UTC")
    duration_minutes: int = Field(..., description="Appointment length in minutes")

    # Either customer_id or guest contact details
    customer_id: Optional[int] = Field(None, description="Registered customer ID")
    customer_name: Optional[str] = Field(None, max_length=255)
    customer_email: Optional[EmailStr] = None
    customer_phone: Optional[str] = Field(None, max_length=50)

    notes: Optional[str] = Field(None, max_length=2000)
    special_requests: Optional[str] = Field(None, max_length=2000)
    booking_source: Optional[BookingSource] = None

    # Catalog price and no discount when omitted
    service_price: Optional[Decimal] = Field(None, ge=0, decimal_places=2)
    discount_amount: Optional[Decimal] = Field(None, ge=0, decimal_places=2)

    @field_validator('start_time')
    @classmethod
    def normalize_start_time(cls, v):
        return ensure_utc(v)

    @property
    def is_guest(self) -> bool:
        return self.customer_id is None


class BookingUpdateRequest(BaseModel):
    """
    Schema for updating booking details.

    Fields left out of the request body are not touched; an explicit
    ``null`` clears the field.
    """

    customer_name: Optional[str] = Field(None, max_length=255)
    customer_email: Optional[EmailStr] = None
    customer_phone: Optional[str] = Field(None, max_length=50)
    notes: Optional[str] = Field(None, max_length=2000)
    special_requests: Optional[str] = Field(None, max_length=2000)
    internal_notes: Optional[str] = Field(None, max_length=2000)

    def changes(self) -> Dict[str, Optional[str]]:
        """Only the fields present in the request."""
        return self.model_dump(include=self.model_fields_set, mode="json")


class BookingRescheduleRequest(BaseModel):
    """Schema for moving a booking to another slot."""

    new_start_time: datetime = Field(..., description="New start; naive values are read as UTC")
    duration_minutes: Optional[int] = Field(None, description="New length, defaults to the current one")
    reason: Optional[str] = Field(None, max_length=500)

    @field_validator('new_start_time')
    @classmethod
    def normalize_start_time(cls, v):
        return ensure_utc(v)


class BookingStatusUpdateRequest(BaseModel):
    """Schema for a status transition."""

    status: BookingStatus
    reason: Optional[str] = Field(None, max_length=500)


class BookingCancelRequest(BaseModel):
    """Schema for cancelling a booking."""

    reason: Optional[str] = Field(None, max_length=500, description="Optional cancellation reason")
    is_by_customer: bool = Field(True, description="False when the barber cancels")


class BookingResponse(BaseModel):
    """Schema for booking responses."""

    id: int
    uuid: str
    booking_number: str
    barber_id: int
    customer_id: Optional[int]
    customer_name: Optional[str]
    customer_email: Optional[str]
    customer_phone: Optional[str]

    service_name: str
    duration_minutes: int
    scheduled_start_time: datetime
    scheduled_end_time: datetime
    actual_start_time: Optional[datetime] = None
    actual_end_time: Optional[datetime] = None

    service_price: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    total_price: Decimal
    currency: str

    status: BookingStatus
    booking_source: str
    notes: Optional[str] = None
    special_requests: Optional[str] = None
    internal_notes: Optional[str] = None

    cancelled_at: Optional[datetime] = None
    cancelled_by: Optional[int] = None
    cancellation_reason: Optional[str] = None

    created_at: datetime
    updated_at: datetime

    # Computed
    can_cancel: bool = False
    can_reschedule: bool = False
    allowed_transitions: List[BookingStatus] = []
    time_until: Optional[str] = None

    model_config = {"from_attributes": True}

    @classmethod
    def from_booking(cls, booking: Booking, now: Optional[datetime] = None) -> "BookingResponse":
        now = now or utcnow()
        response = cls.model_validate(booking)
        response.can_cancel = booking.can_cancel
        response.can_reschedule = booking.can_reschedule
        response.allowed_transitions = sorted(booking.allowed_transitions, key=lambda s: s.value)
        if booking.is_upcoming(now):
            response.time_until = humanize_until(booking.scheduled_start_time, now)
        return response


class BookingListResponse(BaseModel):
    """Schema for booking list responses."""

    bookings: List[BookingResponse]
    total: int
    limit: int
    offset: int


class AvailabilityResponse(BaseModel):
    """Schema for a slot availability probe."""

    barber_id: int
    start_time: datetime
    end_time: datetime
    available: bool


class TransitionsResponse(BaseModel):
    """Schema for the statuses reachable from a booking's current status."""

    booking_id: int
    current_status: BookingStatus
    allowed_transitions: List[BookingStatus]
    is_terminal: bool
    can_cancel: bool
    can_reschedule: bool


class BarberStatsResponse(BaseModel):
    """Schema for barber booking statistics."""

    barber_id: int
    start_date: datetime
    end_date: datetime
    total_bookings: int
    status_counts: Dict[str, int]
    completed_revenue: Decimal
