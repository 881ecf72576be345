"""Availability pattern model."""
from sqlalchemy import Column, Integer, Boolean, ForeignKey, DateTime, Time, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from officehours.core.database import Base


class AvailabilityPattern(Base):
    """A recurring weekly open window in the host's local wall clock."""

    __tablename__ = "availability_patterns"

    id = Column(Integer, primary_key=True, index=True)
    host_id = Column(Integer, ForeignKey("hosts.id", ondelete="CASCADE"), nullable=False, index=True)
    day_of_week = Column(Integer, nullable=False)  # 0 = Sunday ... 6 = Saturday
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    host = relationship("Host", back_populates="availability_patterns")

    __table_args__ = (
        Index("ix_patterns_host_day", "host_id", "day_of_week"),
    )
