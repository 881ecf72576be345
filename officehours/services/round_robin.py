"""Round-robin host assignment.

Distributes an event's bookings across its co-hosts. Every strategy ends
in the same tie-break: among equally good hosts, the first one after the
last assigned host in co-host order wins, so repeated ties rotate instead
of always favouring the first host.
"""
import logging
from datetime import datetime, time
from typing import Dict, List, Optional

from sqlalchemy import select, func, and_
from sqlalchemy.ext.asyncio import AsyncSession

from officehours.core.config import settings
from officehours.core.errors import NoHostAvailable
from officehours.core.intervals import TimeInterval
from officehours.core.timeutils import ensure_utc, get_timezone, local_date, local_day, local_month, local_week, utcnow
from officehours.models.booking import Booking
from officehours.models.event import Event, EventHost
from officehours.models.host import Host
from officehours.models.round_robin_state import RoundRobinState
from officehours.services.constraints import EventConstraints
from officehours.services.pattern_store import get_active_patterns
from officehours.services.reservation_guard import ReservationGuard, reservation_guard
from officehours.services.slot_generator import get_event, get_event_host_ids, get_host

logger = logging.getLogger(__name__)

# Strategies
LEAST_BOOKINGS = "least_bookings"
LEAST_BOOKINGS_AVAILABLE = "least_bookings_available"
CYCLE = "cycle"
AVAILABILITY_WEIGHTED = "availability_weighted"
PRIORITY = "priority"

STRATEGIES = (LEAST_BOOKINGS, LEAST_BOOKINGS_AVAILABLE, CYCLE, AVAILABILITY_WEIGHTED, PRIORITY)

# Periods
PERIOD_DAY = "day"
PERIOD_WEEK = "week"
PERIOD_MONTH = "month"
PERIOD_ALL_TIME = "all_time"

PERIODS = (PERIOD_DAY, PERIOD_WEEK, PERIOD_MONTH, PERIOD_ALL_TIME)

HOURS_PER_DAY = 24


def period_bounds(period: str, reference: datetime, tz) -> Optional[TimeInterval]:
    """The period containing ``reference``; None for all time."""
    day = local_date(reference, tz)
    if period == PERIOD_DAY:
        return local_day(day, tz)
    if period == PERIOD_WEEK:
        return local_week(day, tz)
    if period == PERIOD_MONTH:
        return local_month(day, tz)
    if period == PERIOD_ALL_TIME:
        return None
    raise ValueError(f"Unknown round-robin period: {period}")


def _event_timezone(event: Event):
    return get_timezone(event.display_timezone or settings.DEFAULT_TIMEZONE)


async def get_host_booking_counts(
    db: AsyncSession,
    event_id: int,
    host_ids: List[int],
    period: str,
    reference: datetime,
    tz=None,
) -> Dict[int, int]:
    """
    Non-cancelled bookings of an event per host within a period.

    Args:
        db: Database session
        event_id: Event ID
        host_ids: Hosts to count (absent hosts count 0)
        period: day, week, month or all_time
        reference: Any instant inside the period
        tz: Timezone the period boundaries are drawn in

    Returns:
        Mapping of host ID to booking count
    """
    tz = tz or get_timezone(settings.DEFAULT_TIMEZONE)
    conditions = [
        Booking.event_id == event_id,
        Booking.host_id.in_(host_ids),
        Booking.cancelled_at.is_(None),
    ]

    bounds = period_bounds(period, ensure_utc(reference), tz)
    if bounds is not None:
        conditions.append(Booking.start_time >= bounds.start)
        conditions.append(Booking.start_time < bounds.end)

    result = await db.execute(
        select(Booking.host_id, func.count(Booking.id))
        .where(and_(*conditions))
        .group_by(Booking.host_id)
    )

    counts = {host_id: 0 for host_id in host_ids}
    for host_id, count in result.all():
        counts[host_id] = count
    return counts


async def get_weekly_available_hours(db: AsyncSession, host_id: int) -> float:
    """Open hours in a host's week; a weekday without patterns counts as 24."""
    patterns = await get_active_patterns(db, host_id)

    by_day: Dict[int, float] = {}
    for pattern in patterns:
        hours = max(0.0, _hours(pattern.end_time) - _hours(pattern.start_time))
        by_day[pattern.day_of_week] = by_day.get(pattern.day_of_week, 0.0) + hours

    return sum(by_day.get(day_of_week, float(HOURS_PER_DAY)) for day_of_week in range(7))


def _hours(value: time) -> float:
    return value.hour + value.minute / 60 + value.second / 3600


def rotate(tied: List[int], host_ids: List[int], last_host_id: Optional[int]) -> int:
    """
    First tied host after ``last_host_id`` in co-host order, wrapping.

    Falls back to the first tied host when nobody was assigned yet or the
    last assigned host is no longer a co-host.
    """
    if last_host_id is None or last_host_id not in host_ids:
        return min(tied, key=host_ids.index)

    last_position = host_ids.index(last_host_id)
    return min(tied, key=lambda host_id: (host_ids.index(host_id) - last_position - 1) % len(host_ids))


class RoundRobinService:
    """Selects a co-host for each round-robin booking."""

    def __init__(self, guard: ReservationGuard = reservation_guard):
        self.guard = guard

    async def get_state(self, db: AsyncSession, event_id: int) -> Optional[RoundRobinState]:
        result = await db.execute(select(RoundRobinState).where(RoundRobinState.event_id == event_id))
        return result.scalar_one_or_none()

    async def available_hosts(
        self,
        db: AsyncSession,
        host_ids: List[int],
        constraints: EventConstraints,
        candidate: TimeInterval,
        now: datetime,
    ) -> List[int]:
        """Co-hosts that pass the reservation checks for the candidate."""
        available = []
        for host_id in host_ids:
            host = await get_host(db, host_id)
            check = await self.guard.check_availability(db, host, constraints, candidate, now)
            if check.available:
                available.append(host_id)
            else:
                logger.debug(f"Host {host_id} unavailable at {candidate.start.isoformat()}: {check.reason}")
        return available

    async def assign_host(
        self,
        db: AsyncSession,
        event: Event,
        host_ids: List[int],
        candidate: TimeInterval,
        now: Optional[datetime] = None,
        constraints: Optional[EventConstraints] = None,
        record: bool = True,
    ) -> int:
        """
        Pick the host for a candidate.

        Args:
            db: Database session
            event: Round-robin event
            host_ids: Co-hosts in co-host order
            candidate: Requested ``[start, end)``
            now: Reference time
            constraints: Event constraints (defaults to the event's own)
            record: Whether to advance the rotation pointer now

        Returns:
            Selected host ID

        Raises:
            NoHostAvailable: If the strategy needs a free host and none is
        """
        now = ensure_utc(now) if now else utcnow()
        constraints = constraints or EventConstraints.from_event(event)
        strategy = event.round_robin_strategy or LEAST_BOOKINGS_AVAILABLE
        if strategy not in STRATEGIES:
            raise ValueError(f"Unknown round-robin strategy: {strategy}")

        if not host_ids:
            raise NoHostAvailable(f"Event {event.id} has no hosts")

        if strategy == LEAST_BOOKINGS:
            candidates = list(host_ids)
        else:
            candidates = await self.available_hosts(db, host_ids, constraints, candidate, now)
            if not candidates:
                raise NoHostAvailable()

        state = await self.get_state(db, event.id)
        last_host_id = state.last_assigned_host_id if state else None

        if strategy == CYCLE:
            selected = rotate(candidates, host_ids, last_host_id)
        else:
            counts = await get_host_booking_counts(
                db,
                event.id,
                candidates,
                event.round_robin_period or PERIOD_WEEK,
                candidate.start,
                _event_timezone(event),
            )
            tied = await self._best(db, event.id, strategy, candidates, counts)
            selected = rotate(tied, host_ids, last_host_id)

        logger.info(f"Round-robin ({strategy}) assigned host {selected} for event {event.id}")

        if record:
            await self.record_assignment(db, event.id, selected, now)
        return selected

    async def _best(
        self,
        db: AsyncSession,
        event_id: int,
        strategy: str,
        candidates: List[int],
        counts: Dict[int, int],
    ) -> List[int]:
        """Hosts sharing the best score under the strategy."""
        if strategy == AVAILABILITY_WEIGHTED:
            scores = {}
            for host_id in candidates:
                hours = await get_weekly_available_hours(db, host_id)
                scores[host_id] = counts[host_id] / hours if hours > 0 else float("inf")
            best = min(scores.values())
            return [host_id for host_id in candidates if scores[host_id] == best]

        if strategy == PRIORITY:
            result = await db.execute(
                select(EventHost.host_id, EventHost.priority).where(
                    and_(
                        EventHost.event_id == event_id,
                        EventHost.host_id.in_(candidates),
                    )
                )
            )
            priorities = dict(result.all())
            top = max(priorities.get(host_id, 0) for host_id in candidates)
            candidates = [host_id for host_id in candidates if priorities.get(host_id, 0) == top]

        fewest = min(counts[host_id] for host_id in candidates)
        return [host_id for host_id in candidates if counts[host_id] == fewest]

    async def record_assignment(
        self, db: AsyncSession, event_id: int, host_id: int, now: Optional[datetime] = None
    ) -> RoundRobinState:
        """Advance the rotation pointer to ``host_id``."""
        now = ensure_utc(now) if now else utcnow()
        state = await self.get_state(db, event_id)
        if state is None:
            state = RoundRobinState(event_id=event_id, assignment_count=0)
            db.add(state)

        state.last_assigned_host_id = host_id
        state.last_assigned_at = now
        state.assignment_count = (state.assignment_count or 0) + 1

        await db.commit()
        await db.refresh(state)
        return state

    async def get_round_robin_stats(
        self, db: AsyncSession, event_id: int, now: Optional[datetime] = None
    ) -> Dict:
        """
        Current-period booking distribution of a round-robin event.

        Returns:
            Dictionary with the period, its bounds and per-host counts
        """
        now = ensure_utc(now) if now else utcnow()
        event = await get_event(db, event_id)
        host_ids = await get_event_host_ids(db, event_id)
        period = event.round_robin_period or PERIOD_WEEK
        tz = _event_timezone(event)

        counts = await get_host_booking_counts(db, event.id, host_ids, period, now, tz)
        total = sum(counts.values())

        result = await db.execute(select(Host.id, Host.name, Host.email).where(Host.id.in_(host_ids)))
        names = {host_id: name or email for host_id, name, email in result.all()}

        state = await self.get_state(db, event.id)
        bounds = period_bounds(period, now, tz)

        return {
            "event_id": event.id,
            "strategy": event.round_robin_strategy,
            "period": period,
            "period_start": bounds.start if bounds else None,
            "period_end": bounds.end if bounds else None,
            "total_bookings": total,
            "last_assigned_host_id": state.last_assigned_host_id if state else None,
            "hosts": [
                {
                    "host_id": host_id,
                    "host_name": names.get(host_id),
                    "booking_count": counts[host_id],
                    "percentage": round(counts[host_id] / total * 100, 1) if total else 0.0,
                }
                for host_id in host_ids
            ],
        }


# Singleton instance
round_robin_service = RoundRobinService()
