"""Booking model."""
from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Index, text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from officehours.core.database import Base


class Booking(Base):
    """A reserved time range on one host for one event.

    Cancellation sets ``cancelled_at``; rows are never deleted. A collective
    booking writes one row per host, all sharing ``collective_key``.
    """

    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False, index=True)
    host_id = Column(Integer, ForeignKey("hosts.id", ondelete="CASCADE"), nullable=False, index=True)
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=False)
    attendee_email = Column(String, nullable=False)
    attendee_name = Column(String, nullable=True)
    collective_key = Column(String, nullable=True, index=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    event = relationship("Event", back_populates="bookings")
    host = relationship("Host")

    __table_args__ = (
        # Two live bookings can never start at the same instant on the same host
        Index(
            "uq_bookings_host_start_active",
            "host_id",
            "start_time",
            unique=True,
            sqlite_where=text("cancelled_at IS NULL"),
            postgresql_where=text("cancelled_at IS NULL"),
        ),
        Index("ix_bookings_host_range", "host_id", "start_time", "end_time"),
        Index("ix_bookings_event_start", "event_id", "start_time"),
    )
