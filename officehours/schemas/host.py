"""Host and availability pattern schemas."""
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List
from datetime import datetime, time


class HostBase(BaseModel):
    """Base host schema."""

    email: str
    name: Optional[str] = None
    timezone: Optional[str] = "America/New_York"
    calendar_id: Optional[str] = None
    max_meetings_per_day: Optional[int] = Field(default=None, ge=0)
    max_meetings_per_week: Optional[int] = Field(default=None, ge=0)


class HostCreate(HostBase):
    """Schema for creating a host."""

    pass


class HostUpdate(BaseModel):
    """Schema for updating a host."""

    name: Optional[str] = None
    timezone: Optional[str] = None
    calendar_id: Optional[str] = None
    max_meetings_per_day: Optional[int] = Field(default=None, ge=0)
    max_meetings_per_week: Optional[int] = Field(default=None, ge=0)


class HostInDB(HostBase):
    """Schema for host from database."""

    id: int
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class PatternIn(BaseModel):
    """One weekly window in the host's local wall clock."""

    day_of_week: int = Field(ge=0, le=6)  # 0 = Sunday
    start_time: time
    end_time: time


class PatternInDB(PatternIn):
    """Schema for availability pattern from database."""

    id: int
    host_id: int
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


class PatternsReplace(BaseModel):
    """Full replacement of a host's weekly availability."""

    patterns: List[PatternIn]


class BusySyncResult(BaseModel):
    """Result of a manual busy block refresh."""

    host_id: int
    window_start: datetime
    window_end: datetime
    busy_blocks: int
