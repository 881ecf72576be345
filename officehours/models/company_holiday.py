"""Company holiday model."""
from sqlalchemy import Column, Integer, String, Date, DateTime
from sqlalchemy.sql import func
from officehours.core.database import Base


class CompanyHoliday(Base):
    """A date on which no host can be booked."""

    __tablename__ = "company_holidays"

    id = Column(Integer, primary_key=True, index=True)
    date = Column(Date, unique=True, nullable=False, index=True)
    name = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
