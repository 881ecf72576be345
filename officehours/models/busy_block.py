"""Busy block models."""
from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Index
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from officehours.core.database import Base

SOURCE_CALENDAR = "calendar"
SOURCE_BOOKING = "booking"


class BusyBlock(Base):
    """A span of time during which a host is not bookable."""

    __tablename__ = "busy_blocks"

    id = Column(Integer, primary_key=True, index=True)
    host_id = Column(Integer, ForeignKey("hosts.id", ondelete="CASCADE"), nullable=False, index=True)
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=True)
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=False)
    source = Column(String, nullable=False, default=SOURCE_CALENDAR)  # calendar, booking
    synced_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    # Relationships
    host = relationship("Host", back_populates="busy_blocks")

    __table_args__ = (
        Index("ix_busy_blocks_host_range", "host_id", "start_time", "end_time"),
    )


class BusySyncWindow(Base):
    """Records that a host's calendar was synced for a window at a point in time."""

    __tablename__ = "busy_sync_windows"

    id = Column(Integer, primary_key=True, index=True)
    host_id = Column(Integer, ForeignKey("hosts.id", ondelete="CASCADE"), nullable=False, index=True)
    window_start = Column(DateTime(timezone=True), nullable=False)
    window_end = Column(DateTime(timezone=True), nullable=False)
    synced_at = Column(DateTime(timezone=True), nullable=False, index=True)
    block_count = Column(Integer, default=0, nullable=False)
