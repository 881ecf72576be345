"""Event schemas."""
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Literal
from datetime import datetime

RoundRobinStrategy = Literal[
    "least_bookings",
    "least_bookings_available",
    "cycle",
    "availability_weighted",
    "priority",
]
RoundRobinPeriod = Literal["day", "week", "month", "all_time"]
MeetingType = Literal["round_robin", "collective"]


class EventHostIn(BaseModel):
    """A co-host and their round-robin priority."""

    host_id: int
    priority: int = Field(default=3, ge=1, le=5)


class EventHostInDB(EventHostIn):
    """Schema for event host link from database."""

    model_config = ConfigDict(from_attributes=True)


class EventBase(BaseModel):
    """Base event schema."""

    slug: str
    title: str
    duration_minutes: int = Field(default=30, ge=1, le=1440)
    buffer_before: int = Field(default=0, ge=0, le=1440)
    buffer_after: int = Field(default=0, ge=0, le=1440)
    min_notice_hours: int = Field(default=24, ge=0)
    booking_window_days: int = Field(default=60, ge=1, le=730)
    start_time_increment: int = Field(default=30, ge=1, le=1440)
    max_daily_bookings: Optional[int] = Field(default=None, ge=0)
    max_weekly_bookings: Optional[int] = Field(default=None, ge=0)
    ignore_busy_blocks: bool = False
    display_timezone: Optional[str] = None
    meeting_type: MeetingType = "round_robin"
    round_robin_strategy: RoundRobinStrategy = "least_bookings_available"
    round_robin_period: RoundRobinPeriod = "week"


class EventCreate(EventBase):
    """Schema for creating an event with its co-hosts in order."""

    hosts: List[EventHostIn] = Field(min_length=1)


class EventUpdate(BaseModel):
    """Schema for updating an event."""

    title: Optional[str] = None
    duration_minutes: Optional[int] = Field(default=None, ge=1, le=1440)
    buffer_before: Optional[int] = Field(default=None, ge=0, le=1440)
    buffer_after: Optional[int] = Field(default=None, ge=0, le=1440)
    min_notice_hours: Optional[int] = Field(default=None, ge=0)
    booking_window_days: Optional[int] = Field(default=None, ge=1, le=730)
    start_time_increment: Optional[int] = Field(default=None, ge=1, le=1440)
    max_daily_bookings: Optional[int] = Field(default=None, ge=0)
    max_weekly_bookings: Optional[int] = Field(default=None, ge=0)
    ignore_busy_blocks: Optional[bool] = None
    display_timezone: Optional[str] = None
    meeting_type: Optional[MeetingType] = None
    round_robin_strategy: Optional[RoundRobinStrategy] = None
    round_robin_period: Optional[RoundRobinPeriod] = None


class EventInDB(EventBase):
    """Schema for event from database."""

    id: int
    hosts: List[EventHostInDB] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
