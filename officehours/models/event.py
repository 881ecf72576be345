"""Event models."""
from sqlalchemy import Column, Integer, Boolean, String, ForeignKey, DateTime, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from officehours.core.database import Base

MEETING_ROUND_ROBIN = "round_robin"
MEETING_COLLECTIVE = "collective"  # every co-host attends


class Event(Base):
    """A bookable meeting type and its scheduling constraints."""

    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)
    slug = Column(String, unique=True, nullable=False, index=True)
    title = Column(String, nullable=False)
    duration_minutes = Column(Integer, default=30, nullable=False)
    buffer_before = Column(Integer, default=0, nullable=False)  # minutes
    buffer_after = Column(Integer, default=0, nullable=False)   # minutes
    min_notice_hours = Column(Integer, default=24, nullable=False)
    booking_window_days = Column(Integer, default=60, nullable=False)
    start_time_increment = Column(Integer, default=30, nullable=False)  # minutes
    max_daily_bookings = Column(Integer, nullable=True)
    max_weekly_bookings = Column(Integer, nullable=True)
    ignore_busy_blocks = Column(Boolean, default=False, nullable=False)
    display_timezone = Column(String, nullable=True)
    meeting_type = Column(String, default=MEETING_ROUND_ROBIN, nullable=False)
    round_robin_strategy = Column(String, default="least_bookings_available", nullable=False)
    round_robin_period = Column(String, default="week", nullable=False)  # day, week, month, all_time
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    host_links = relationship(
        "EventHost",
        back_populates="event",
        cascade="all, delete-orphan",
        order_by="EventHost.id",
    )
    bookings = relationship("Booking", back_populates="event")


class EventHost(Base):
    """Links a host to an event; insertion order is the co-host order."""

    __tablename__ = "event_hosts"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    host_id = Column(Integer, ForeignKey("hosts.id", ondelete="CASCADE"), nullable=False, index=True)
    priority = Column(Integer, default=3, nullable=False)  # 1-5, higher gets meetings first
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    event = relationship("Event", back_populates="host_links")
    host = relationship("Host", back_populates="event_links")

    __table_args__ = (
        UniqueConstraint("event_id", "host_id", name="uq_event_hosts_event_host"),
    )
