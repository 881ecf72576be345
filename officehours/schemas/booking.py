"""Slot, availability check and booking schemas."""
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, List
from datetime import datetime

from officehours.core.timeutils import ensure_utc


class Slot(BaseModel):
    """A bookable ``[start, end)`` range."""

    start: datetime
    end: datetime


class SlotsResponse(BaseModel):
    """Schema for an event's bookable slots."""

    event_id: int
    host_id: Optional[int] = None
    duration_minutes: int
    range_start: datetime
    range_end: datetime
    slots: List[Slot]


class AvailabilityCheckRequest(BaseModel):
    """Schema for checking a single candidate."""

    start: datetime
    end: datetime
    host_id: Optional[int] = None


class AvailabilityCheckResponse(BaseModel):
    """Schema for an availability check result."""

    available: bool
    reason: Optional[str] = None
    host_id: Optional[int] = None


class ReserveRequest(BaseModel):
    """Schema for reserving a slot."""

    start: datetime
    attendee_email: str = Field(min_length=3)
    attendee_name: Optional[str] = None
    host_id: Optional[int] = None


class BookingInDB(BaseModel):
    """Schema for booking from database."""

    id: int
    event_id: int
    host_id: int
    start_time: datetime
    end_time: datetime
    attendee_email: str
    attendee_name: Optional[str] = None
    collective_key: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @field_validator("start_time", "end_time", "cancelled_at", "created_at")
    @classmethod
    def as_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        # SQLite hands back naive UTC
        return ensure_utc(value) if value is not None else None


class HostShare(BaseModel):
    """One host's share of a round-robin event."""

    host_id: int
    host_name: Optional[str] = None
    booking_count: int
    percentage: float


class RoundRobinStats(BaseModel):
    """Schema for round-robin distribution in the current period."""

    event_id: int
    strategy: str
    period: str
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None
    total_bookings: int
    last_assigned_host_id: Optional[int] = None
    hosts: List[HostShare]
