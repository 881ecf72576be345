"""Reservation guard.

Re-validates a requested slot against current state and commits the
booking. The commit transaction first takes a row lock on the host
(``SELECT ... FOR UPDATE``), so concurrent commits for one host run one
after another and the overlap re-check always sees the rival's booking,
whatever the isolation level. The partial unique index on live
``(host_id, start_time)`` backs this up for identical starts. The loser
gets ``SlotUnavailable``; the lock lives in the database, so any number of
stateless instances can serve bookings.
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, and_
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from officehours.core.errors import SlotUnavailable, StorageConflict
from officehours.core.intervals import TimeInterval
from officehours.core.timeutils import ensure_utc, utcnow
from officehours.models.booking import Booking
from officehours.models.host import Host
from officehours.services.busy_cache import BusyBlockCache, busy_block_cache
from officehours.services.constraints import EventConstraints
from officehours.services.slot_generator import candidate_conflict, get_host, load_schedule

logger = logging.getLogger(__name__)

SERIALIZATION_FAILURE = "40001"


@dataclass(frozen=True)
class AvailabilityCheck:
    """Outcome of checking one candidate."""

    available: bool
    reason: Optional[str] = None
    host_id: Optional[int] = None


class ReservationGuard:
    """Validates and atomically commits bookings."""

    def __init__(self, busy_cache: BusyBlockCache = busy_block_cache):
        self.busy_cache = busy_cache

    async def check_availability(
        self,
        db: AsyncSession,
        host: Host,
        constraints: EventConstraints,
        candidate: TimeInterval,
        now: Optional[datetime] = None,
    ) -> AvailabilityCheck:
        """
        Check a candidate against the host's current state.

        Args:
            db: Database session
            host: Host
            constraints: Event constraints
            candidate: Requested ``[start, end)``
            now: Reference time

        Returns:
            AvailabilityCheck with a reason when unavailable
        """
        now = ensure_utc(now) if now else utcnow()
        candidate = TimeInterval(ensure_utc(candidate.start), ensure_utc(candidate.end))

        schedule = await load_schedule(
            db, host, constraints, candidate.start, candidate.end, now, self.busy_cache
        )
        reason = candidate_conflict(schedule, constraints, candidate, now)

        return AvailabilityCheck(available=reason is None, reason=reason, host_id=host.id)

    async def reserve(
        self,
        db: AsyncSession,
        host_id: int,
        event_id: int,
        candidate: TimeInterval,
        constraints: EventConstraints,
        attendee_email: str,
        attendee_name: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Booking:
        """
        Re-validate a candidate and commit the booking.

        Returns:
            The committed booking

        Raises:
            SlotUnavailable: If the candidate fails validation or loses the
                race at commit. Nothing is written in either case.
        """
        host = await get_host(db, host_id)
        check = await self.check_availability(db, host, constraints, candidate, now)
        if not check.available:
            logger.info(
                f"Rejected booking on host {host_id} at {candidate.start.isoformat()}: {check.reason}"
            )
            raise SlotUnavailable(check.reason)

        try:
            bookings = await self._commit(
                db, [host_id], event_id, candidate, attendee_email, attendee_name
            )
        except StorageConflict as e:
            logger.info(f"Booking race lost on host {host_id} at {candidate.start.isoformat()}: {e}")
            raise SlotUnavailable("This time slot was just booked by someone else") from e

        booking = bookings[0]
        logger.info(f"Booked host {host_id} for event {event_id} at {candidate.start.isoformat()} (booking {booking.id})")
        return booking

    async def reserve_collective(
        self,
        db: AsyncSession,
        host_ids: List[int],
        event_id: int,
        candidate: TimeInterval,
        constraints: EventConstraints,
        attendee_email: str,
        attendee_name: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> List[Booking]:
        """
        Book every host of a collective event for the same candidate.

        One booking row is written per host, all sharing a
        ``collective_key``, in a single transaction: either every host is
        booked or none is.

        Returns:
            The committed bookings in co-host order

        Raises:
            SlotUnavailable: If any host fails validation or the commit loses
                a race; the reason names the first blocked host
        """
        for host_id in host_ids:
            host = await get_host(db, host_id)
            check = await self.check_availability(db, host, constraints, candidate, now)
            if not check.available:
                logger.info(
                    f"Rejected collective booking at {candidate.start.isoformat()}: host {host_id} {check.reason}"
                )
                raise SlotUnavailable(check.reason)

        try:
            bookings = await self._commit(
                db,
                host_ids,
                event_id,
                candidate,
                attendee_email,
                attendee_name,
                collective_key=uuid.uuid4().hex,
            )
        except StorageConflict as e:
            logger.info(f"Collective booking race lost at {candidate.start.isoformat()}: {e}")
            raise SlotUnavailable("This time slot was just booked by someone else") from e

        logger.info(
            f"Booked hosts {host_ids} for event {event_id} at {candidate.start.isoformat()} "
            f"(collective {bookings[0].collective_key})"
        )
        return bookings

    async def _commit(
        self,
        db: AsyncSession,
        host_ids: List[int],
        event_id: int,
        candidate: TimeInterval,
        attendee_email: str,
        attendee_name: Optional[str],
        collective_key: Optional[str] = None,
    ) -> List[Booking]:
        """
        Insert the bookings and their busy blocks in one transaction.

        Host rows are locked in ID order before anything is written, so
        commits touching the same host serialize and never deadlock.

        Raises:
            StorageConflict: On a uniqueness violation, a serialization
                failure, or an overlapping live booking seen by the re-check
        """
        start = ensure_utc(candidate.start)
        end = ensure_utc(candidate.end)

        try:
            await db.execute(host_lock(host_ids))

            bookings = []
            for host_id in host_ids:
                booking = Booking(
                    event_id=event_id,
                    host_id=host_id,
                    start_time=start,
                    end_time=end,
                    attendee_email=attendee_email.strip().lower(),
                    attendee_name=attendee_name,
                    collective_key=collective_key,
                )
                db.add(booking)
                bookings.append(booking)
            await db.flush()

            for booking in bookings:
                result = await db.execute(
                    select(Booking.id)
                    .where(
                        and_(
                            Booking.host_id == booking.host_id,
                            Booking.id != booking.id,
                            Booking.cancelled_at.is_(None),
                            Booking.start_time < end,
                            Booking.end_time > start,
                        )
                    )
                    .limit(1)
                )
                if result.scalar_one_or_none() is not None:
                    raise StorageConflict(
                        f"Host {booking.host_id} already has a booking overlapping {start.isoformat()}"
                    )
                db.add(self.busy_cache.booking_block(booking.host_id, booking.id, TimeInterval(start, end)))

            await db.commit()
        except IntegrityError as e:
            await db.rollback()
            raise StorageConflict("Uniqueness violation on host time range", original=e) from e
        except StorageConflict:
            await db.rollback()
            raise
        except DBAPIError as e:
            await db.rollback()
            if _is_serialization_failure(e):
                raise StorageConflict("Serialization failure", original=e) from e
            raise

        for booking in bookings:
            await db.refresh(booking)
        return bookings

    async def cancel(
        self, db: AsyncSession, booking_id: int, now: Optional[datetime] = None
    ) -> Booking:
        """
        Cancel a booking by tombstoning it. Cancelling twice is a no-op.

        Cancelling one booking of a collective cancels it for every host.

        Raises:
            ValueError: If the booking does not exist
        """
        result = await db.execute(select(Booking).where(Booking.id == booking_id))
        booking = result.scalar_one_or_none()

        if not booking:
            raise ValueError(f"Booking {booking_id} not found")

        if booking.cancelled_at is None:
            cancelled_at = ensure_utc(now) if now else utcnow()
            siblings = [booking]
            if booking.collective_key:
                result = await db.execute(
                    select(Booking).where(
                        and_(
                            Booking.collective_key == booking.collective_key,
                            Booking.cancelled_at.is_(None),
                        )
                    )
                )
                siblings = result.scalars().all()

            for sibling in siblings:
                sibling.cancelled_at = cancelled_at
                await self.busy_cache.remove_booking_block(db, sibling.id)
            await db.commit()
            await db.refresh(booking)
            logger.info(f"Cancelled booking {booking_id}")

        return booking


def host_lock(host_ids: List[int]):
    """``SELECT ... FOR UPDATE`` on the given hosts, in ID order."""
    return (
        select(Host.id)
        .where(Host.id.in_(host_ids))
        .order_by(Host.id)
        .with_for_update()
    )


def _is_serialization_failure(error: DBAPIError) -> bool:
    """True for PostgreSQL serialization failures (SQLSTATE 40001)."""
    original = error.orig
    code = getattr(original, "sqlstate", None) or getattr(original, "pgcode", None)
    return code == SERIALIZATION_FAILURE


# Singleton instance
reservation_guard = ReservationGuard()
