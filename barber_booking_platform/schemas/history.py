"""
Typed audit deltas recorded in the booking history.

Each change type has its own schema; ``to_columns`` maps a delta onto the
``old_values`` / ``new_values`` JSON columns and ``delta_from_columns``
rebuilds it when the trail is read back.
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, Field

from ..models.booking_history import ChangeType
from ..models.booking_state_machine import BookingStatus

Columns = Tuple[Optional[Dict[str, Any]], Optional[Dict[str, Any]]]


class BookingCreated(BaseModel):
    """Snapshot of the booking as it was created."""

    change_type: Literal["created"] = "created"
    status: BookingStatus
    barber_id: int
    start_time: datetime
    end_time: datetime
    total_price: Decimal

    def to_columns(self) -> Columns:
        return None, self.model_dump(mode="json", exclude={"change_type"})

    @classmethod
    def from_columns(cls, old: Optional[Dict[str, Any]], new: Optional[Dict[str, Any]]) -> "BookingCreated":
        return cls(**(new or {}))


class BookingDetailsUpdated(BaseModel):
    """Contact details or notes changed; only the touched fields are listed."""

    change_type: Literal["updated"] = "updated"
    old: Dict[str, Optional[str]] = Field(default_factory=dict)
    new: Dict[str, Optional[str]] = Field(default_factory=dict)

    @property
    def changed_fields(self) -> List[str]:
        return sorted(self.new)

    def to_columns(self) -> Columns:
        return dict(self.old), dict(self.new)

    @classmethod
    def from_columns(cls, old, new) -> "BookingDetailsUpdated":
        return cls(old=old or {}, new=new or {})


class StatusChanged(BaseModel):
    """A single state machine transition."""

    change_type: Literal["status_changed"] = "status_changed"
    old_status: BookingStatus
    new_status: BookingStatus

    def to_columns(self) -> Columns:
        return {"status": self.old_status.value}, {"status": self.new_status.value}

    @classmethod
    def from_columns(cls, old, new) -> "StatusChanged":
        return cls(old_status=old["status"], new_status=new["status"])


class BookingRescheduled(BaseModel):
    """The booking moved to another interval."""

    change_type: Literal["rescheduled"] = "rescheduled"
    old_start_time: datetime
    old_end_time: datetime
    new_start_time: datetime
    new_end_time: datetime

    def to_columns(self) -> Columns:
        data = self.model_dump(mode="json")
        return (
            {"scheduled_start_time": data["old_start_time"], "scheduled_end_time": data["old_end_time"]},
            {"scheduled_start_time": data["new_start_time"], "scheduled_end_time": data["new_end_time"]},
        )

    @classmethod
    def from_columns(cls, old, new) -> "BookingRescheduled":
        return cls(
            old_start_time=old["scheduled_start_time"],
            old_end_time=old["scheduled_end_time"],
            new_start_time=new["scheduled_start_time"],
            new_end_time=new["scheduled_end_time"],
        )


BookingDelta = Annotated[
    Union[BookingCreated, BookingDetailsUpdated, StatusChanged, BookingRescheduled],
    Field(discriminator="change_type"),
]

DELTA_TYPES = {
    ChangeType.CREATED: BookingCreated,
    ChangeType.UPDATED: BookingDetailsUpdated,
    ChangeType.STATUS_CHANGED: StatusChanged,
    ChangeType.RESCHEDULED: BookingRescheduled,
}


def delta_from_columns(change_type: ChangeType, old: Optional[Dict[str, Any]], new: Optional[Dict[str, Any]]):
    """Rebuild the typed delta for a stored history row."""
    return DELTA_TYPES[ChangeType(change_type)].from_columns(old, new)


class BookingHistoryResponse(BaseModel):
    """Schema for a booking history entry."""

    id: int
    booking_id: int
    changed_by: Optional[int]
    change_type: ChangeType
    change_reason: Optional[str]
    delta: BookingDelta
    created_at: datetime

    @classmethod
    def from_entry(cls, entry) -> "BookingHistoryResponse":
        return cls(
            id=entry.id,
            booking_id=entry.booking_id,
            changed_by=entry.changed_by,
            change_type=entry.change_type,
            change_reason=entry.change_reason,
            delta=delta_from_columns(entry.change_type, entry.old_values, entry.new_values),
            created_at=entry.created_at,
        )
