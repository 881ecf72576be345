"""Round-robin rotation state model."""
from sqlalchemy import Column, Integer, ForeignKey, DateTime
from officehours.core.database import Base


class RoundRobinState(Base):
    """Rotation pointer for an event; breaks least-booked ties."""

    __tablename__ = "round_robin_state"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), unique=True, nullable=False)
    last_assigned_host_id = Column(Integer, ForeignKey("hosts.id", ondelete="SET NULL"), nullable=True)
    last_assigned_at = Column(DateTime(timezone=True), nullable=True)
    assignment_count = Column(Integer, default=0, nullable=False)
