"""Host model."""
from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from officehours.core.database import Base


class Host(Base):
    """A person whose time can be booked."""

    __tablename__ = "hosts"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, nullable=False, index=True)
    name = Column(String, nullable=True)
    timezone = Column(String, nullable=True, default="America/New_York")
    calendar_id = Column(String, nullable=True)  # Provider calendar id, None = no calendar connected
    max_meetings_per_day = Column(Integer, nullable=True)   # None = unlimited
    max_meetings_per_week = Column(Integer, nullable=True)  # None = unlimited
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    availability_patterns = relationship("AvailabilityPattern", back_populates="host", cascade="all, delete-orphan")
    busy_blocks = relationship("BusyBlock", back_populates="host", cascade="all, delete-orphan")
    event_links = relationship("EventHost", back_populates="host", cascade="all, delete-orphan")
