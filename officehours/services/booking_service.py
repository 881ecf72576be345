"""Booking orchestration: event lookup, host choice and reservation."""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from officehours.core.errors import ConfigurationMissing
from officehours.core.intervals import TimeInterval
from officehours.core.timeutils import ensure_utc, utcnow
from officehours.models.booking import Booking
from officehours.models.event import MEETING_COLLECTIVE
from officehours.services.constraints import EventConstraints
from officehours.services.reservation_guard import AvailabilityCheck, ReservationGuard, reservation_guard
from officehours.services.round_robin import RoundRobinService, round_robin_service
from officehours.services.slot_generator import get_event, get_event_host_ids, get_host

logger = logging.getLogger(__name__)


class BookingService:
    """Entry point for checking and booking event slots."""

    def __init__(
        self,
        guard: ReservationGuard = reservation_guard,
        round_robin: RoundRobinService = round_robin_service,
    ):
        self.guard = guard
        self.round_robin = round_robin

    async def book(
        self,
        db: AsyncSession,
        event_id: int,
        start: datetime,
        attendee_email: str,
        attendee_name: Optional[str] = None,
        host_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> Booking:
        """
        Book an event slot.

        Single-host events and requests naming a host reserve on that host.
        Collective events reserve every co-host at once and return the first
        co-host's booking. Otherwise round-robin picks among the co-hosts
        free at ``start``.

        Args:
            db: Database session
            event_id: Event ID
            start: Requested start
            attendee_email: Attendee email
            attendee_name: Attendee name
            host_id: Explicit host (must be a co-host; not allowed for
                collective events)
            now: Reference time

        Returns:
            The committed booking

        Raises:
            ConfigurationMissing: Unknown event, event without hosts, or a
                host that is not a co-host
            NoHostAvailable: No co-host is free for a round-robin request
            SlotUnavailable: The chosen host (or any collective host) cannot
                take the slot
        """
        now = ensure_utc(now) if now else utcnow()
        event = await get_event(db, event_id)
        host_ids = await get_event_host_ids(db, event_id)
        constraints = EventConstraints.from_event(event)

        start = ensure_utc(start)
        candidate = TimeInterval(start, start + constraints.duration)

        if event.meeting_type == MEETING_COLLECTIVE and len(host_ids) > 1:
            if host_id is not None:
                raise ValueError("Collective events book every host; host_id cannot be chosen")
            bookings = await self.guard.reserve_collective(
                db, host_ids, event.id, candidate, constraints, attendee_email, attendee_name, now
            )
            return bookings[0]

        if host_id is not None:
            if host_id not in host_ids:
                raise ConfigurationMissing(f"Host {host_id} is not a host of event {event_id}")
            return await self.guard.reserve(
                db, host_id, event.id, candidate, constraints, attendee_email, attendee_name, now
            )

        if len(host_ids) == 1:
            return await self.guard.reserve(
                db, host_ids[0], event.id, candidate, constraints, attendee_email, attendee_name, now
            )

        assigned = await self.round_robin.assign_host(
            db, event, host_ids, candidate, now, constraints=constraints, record=False
        )
        booking = await self.guard.reserve(
            db, assigned, event.id, candidate, constraints, attendee_email, attendee_name, now
        )
        await self.round_robin.record_assignment(db, event.id, assigned, now)
        return booking

    async def check(
        self,
        db: AsyncSession,
        event_id: int,
        candidate: TimeInterval,
        host_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> AvailabilityCheck:
        """
        Check a candidate against one host, or against every co-host.

        Without a host, a round-robin candidate is available if any co-host
        can take it and the reported reason is the first host's. A collective
        candidate needs every co-host; the first blocked host is reported.
        """
        now = ensure_utc(now) if now else utcnow()
        event = await get_event(db, event_id)
        host_ids = await get_event_host_ids(db, event_id)
        constraints = EventConstraints.from_event(
            event, duration_minutes=int(candidate.duration.total_seconds() // 60)
        )

        if host_id is not None:
            if host_id not in host_ids:
                raise ConfigurationMissing(f"Host {host_id} is not a host of event {event_id}")
            host_ids = [host_id]

        if event.meeting_type == MEETING_COLLECTIVE:
            for candidate_host_id in host_ids:
                host = await get_host(db, candidate_host_id)
                check = await self.guard.check_availability(db, host, constraints, candidate, now)
                if not check.available:
                    return check
            return AvailabilityCheck(available=True, host_id=host_id)

        first_failure = None
        for candidate_host_id in host_ids:
            host = await get_host(db, candidate_host_id)
            check = await self.guard.check_availability(db, host, constraints, candidate, now)
            if check.available:
                return check
            if first_failure is None:
                first_failure = check

        return first_failure


# Singleton instance
booking_service = BookingService()
