"""Company holiday schemas."""
from pydantic import BaseModel, ConfigDict
from datetime import date


class HolidayCreate(BaseModel):
    """Schema for creating a company holiday."""

    date: date
    name: str


class HolidayInDB(HolidayCreate):
    """Schema for company holiday from database."""

    id: int

    model_config = ConfigDict(from_attributes=True)
