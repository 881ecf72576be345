"""Slot generation.

Combines a host's weekly availability patterns, their cached calendar busy
time, their existing bookings and an event's constraints into the list of
start times an attendee may pick. The reservation guard re-runs the same
checks against a single candidate through ``HostSchedule``.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, List, Optional

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from officehours.core.errors import ConfigurationMissing
from officehours.core.intervals import TimeInterval, expand, intersect, merge, overlaps, subtract
from officehours.core.timeutils import (
    day_of_week,
    ensure_utc,
    get_timezone,
    iter_local_dates,
    local_date,
    local_day,
    local_to_utc,
    local_week,
    utcnow,
)
from officehours.models.booking import Booking
from officehours.models.event import MEETING_COLLECTIVE, Event, EventHost
from officehours.models.host import Host
from officehours.services.busy_cache import BusyBlockCache, busy_block_cache
from officehours.services.constraints import (
    BookingCounts,
    EventConstraints,
    booking_starts,
    get_holidays,
)
from officehours.services.pattern_store import get_active_patterns

logger = logging.getLogger(__name__)


@dataclass
class HostSchedule:
    """Snapshot of everything that decides a host's availability over a span."""

    host: Host
    tz: object
    patterns: Dict[int, List[tuple]] = field(default_factory=dict)
    calendar_busy: List[TimeInterval] = field(default_factory=list)
    bookings: List[TimeInterval] = field(default_factory=list)
    holidays: Dict[date, str] = field(default_factory=dict)
    event_counts: Optional[BookingCounts] = None
    host_counts: Optional[BookingCounts] = None

    def windows_for(self, day: date) -> List[TimeInterval]:
        """
        Absolute availability windows for a local date.

        A weekday without any pattern is open for the whole local day.
        Zero-length patterns contribute nothing.
        """
        day_patterns = self.patterns.get(day_of_week(day))
        if not day_patterns:
            return [local_day(day, self.tz)]

        windows = []
        for start_time, end_time in day_patterns:
            if end_time <= start_time:
                continue
            start = local_to_utc(day, start_time, self.tz)
            end = local_to_utc(day, end_time, self.tz)
            if end > start:
                windows.append(TimeInterval(start, end))
        return windows

    def busy(self, constraints: EventConstraints) -> List[TimeInterval]:
        """
        Busy time expanded so that no candidate can start inside it.

        A candidate ``[s, s + duration)`` must keep ``buffer_before`` free
        ahead of it and ``buffer_after`` behind it, so each busy interval
        grows by ``buffer_after`` at its start and ``buffer_before`` at its end.
        """
        if constraints.ignore_busy_blocks:
            return []
        return merge(
            expand(interval, before=constraints.after, after=constraints.before)
            for interval in self.calendar_busy + self.bookings
        )

    def limit_reason(self, day: date, constraints: EventConstraints) -> Optional[str]:
        """Why no more bookings fit on ``day``, or None."""
        if self.event_counts is not None:
            reached = self.event_counts.limit_reached(
                day, constraints.max_daily_bookings, constraints.max_weekly_bookings
            )
            if reached == "daily":
                return f"This event has reached its daily booking limit of {constraints.max_daily_bookings}."
            if reached == "weekly":
                return f"This event has reached its weekly booking limit of {constraints.max_weekly_bookings}."

        if self.host_counts is not None:
            reached = self.host_counts.limit_reached(
                day, self.host.max_meetings_per_day, self.host.max_meetings_per_week
            )
            if reached == "daily":
                return "The host has reached their daily meeting limit."
            if reached == "weekly":
                return "The host has reached their weekly meeting limit."

        return None


async def load_schedule(
    db: AsyncSession,
    host: Host,
    constraints: EventConstraints,
    start: datetime,
    end: datetime,
    now: datetime,
    busy_cache: BusyBlockCache = busy_block_cache,
) -> HostSchedule:
    """
    Gather a host's patterns, busy time, bookings, holidays and booking counts.

    Args:
        db: Database session
        host: Host
        constraints: Event constraints
        start: Span start
        end: Span end
        now: Reference time
        busy_cache: Busy block cache

    Returns:
        HostSchedule covering every local day touched by ``[start, end)``
    """
    tz = get_timezone(host.timezone)
    days = list(iter_local_dates(start, end, tz))
    schedule = HostSchedule(host=host, tz=tz)
    if not days:
        return schedule

    span = TimeInterval(local_day(days[0], tz).start, local_day(days[-1], tz).end)

    patterns = await get_active_patterns(db, host.id)
    for pattern in patterns:
        schedule.patterns.setdefault(pattern.day_of_week, []).append(
            (pattern.start_time, pattern.end_time)
        )

    schedule.holidays = await get_holidays(db, days[0], days[-1])

    if not constraints.ignore_busy_blocks:
        pad = max(constraints.before, constraints.after)
        # Busy time that ended before now cannot block a future start
        busy_start = max(span.start - pad, now - pad)
        busy_end = span.end + pad
        if busy_end > busy_start:
            schedule.calendar_busy = await busy_cache.get_busy(db, host, busy_start, busy_end, now)
            schedule.bookings = await _host_booking_intervals(db, host.id, busy_start, busy_end)

    weeks = TimeInterval(local_week(days[0], tz).start, local_week(days[-1], tz).end)
    if constraints.max_daily_bookings is not None or constraints.max_weekly_bookings is not None:
        starts = await booking_starts(db, weeks.start, weeks.end, event_id=constraints.event_id)
        schedule.event_counts = BookingCounts(starts, tz)
    if host.max_meetings_per_day is not None or host.max_meetings_per_week is not None:
        starts = await booking_starts(db, weeks.start, weeks.end, host_id=host.id)
        schedule.host_counts = BookingCounts(starts, tz)

    return schedule


async def _host_booking_intervals(
    db: AsyncSession, host_id: int, start: datetime, end: datetime
) -> List[TimeInterval]:
    """Non-cancelled bookings of a host overlapping ``[start, end)``."""
    result = await db.execute(
        select(Booking.start_time, Booking.end_time).where(
            and_(
                Booking.host_id == host_id,
                Booking.cancelled_at.is_(None),
                Booking.start_time < ensure_utc(end),
                Booking.end_time > ensure_utc(start),
            )
        )
    )
    intervals = []
    for booking_start, booking_end in result.all():
        booking_start = ensure_utc(booking_start)
        booking_end = ensure_utc(booking_end)
        if booking_end > booking_start:
            intervals.append(TimeInterval(booking_start, booking_end))
    return merge(intervals)


def eligible_windows(
    schedule: HostSchedule,
    constraints: EventConstraints,
    start: datetime,
    end: datetime,
) -> List[TimeInterval]:
    """Availability windows of every local day in range not ruled out by a holiday or cap."""
    windows = []
    for day in iter_local_dates(start, end, schedule.tz):
        if day in schedule.holidays:
            continue
        if schedule.limit_reason(day, constraints):
            continue
        windows.extend(schedule.windows_for(day))
    return windows


def _grid_slots(
    windows: List[TimeInterval],
    busy: List[TimeInterval],
    constraints: EventConstraints,
    start: datetime,
    end: datetime,
    now: datetime,
) -> List[TimeInterval]:
    earliest = constraints.earliest_start(now)
    latest = constraints.latest_start(now)

    slots = set()
    for window in windows:
        for free in subtract(window, busy):
            offset = free.start - window.start
            steps = -(-offset // constraints.increment)  # ceiling division
            candidate = window.start + steps * constraints.increment

            while candidate + constraints.duration <= free.end:
                if candidate > latest or candidate >= end:
                    break
                if candidate >= start and candidate >= earliest:
                    slots.add(TimeInterval(candidate, candidate + constraints.duration))
                candidate += constraints.increment

    return sorted(slots)


def compute_slots(
    schedule: HostSchedule,
    constraints: EventConstraints,
    start: datetime,
    end: datetime,
    now: datetime,
) -> List[TimeInterval]:
    """
    Enumerate bookable slots from a loaded schedule.

    Start times sit on each availability window's increment grid, so a busy
    block ending at 12:10 in a window starting 09:00 with 30 minute
    increments next offers 12:30.
    """
    start = ensure_utc(start)
    end = ensure_utc(end)
    windows = eligible_windows(schedule, constraints, start, end)
    return _grid_slots(windows, schedule.busy(constraints), constraints, start, end, now)


def compute_collective_slots(
    schedules: List[HostSchedule],
    constraints: EventConstraints,
    start: datetime,
    end: datetime,
    now: datetime,
) -> List[TimeInterval]:
    """
    Slots where every host of a collective event is free.

    The hosts' windows are intersected and their busy time combined; start
    times sit on the grid of each common window.
    """
    start = ensure_utc(start)
    end = ensure_utc(end)

    common: Optional[List[TimeInterval]] = None
    busy: List[TimeInterval] = []
    for schedule in schedules:
        windows = eligible_windows(schedule, constraints, start, end)
        common = merge(windows) if common is None else intersect(common, windows)
        busy.extend(schedule.busy(constraints))

    if not common:
        return []
    return _grid_slots(common, merge(busy), constraints, start, end, now)


def candidate_conflict(
    schedule: HostSchedule,
    constraints: EventConstraints,
    candidate: TimeInterval,
    now: datetime,
) -> Optional[str]:
    """
    Re-check one candidate against a schedule.

    Returns:
        A human-readable reason the candidate cannot be booked, or None
    """
    day = local_date(candidate.start, schedule.tz)

    if day in schedule.holidays:
        return f"Company holiday: {schedule.holidays[day]}"

    if candidate.start < constraints.earliest_start(now):
        return f"This slot requires {constraints.min_notice_hours} hours notice."
    if candidate.start > constraints.latest_start(now):
        return f"Bookings can only be made up to {constraints.booking_window_days} days in advance."

    if not any(window.contains(candidate) for window in schedule.windows_for(day)):
        return "Outside of set availability hours"

    if not constraints.ignore_busy_blocks:
        for booking in schedule.bookings:
            if overlaps(candidate, expand(booking, before=constraints.after, after=constraints.before)):
                return "Conflicts with existing booking"
        for block in schedule.calendar_busy:
            if overlaps(candidate, expand(block, before=constraints.after, after=constraints.before)):
                return "Conflicts with calendar event"

    return schedule.limit_reason(day, constraints)


class SlotGenerator:
    """Generates bookable slots for hosts and events."""

    def __init__(self, busy_cache: BusyBlockCache = busy_block_cache):
        self.busy_cache = busy_cache

    async def generate_slots(
        self,
        db: AsyncSession,
        host_id: int,
        constraints: EventConstraints,
        start: datetime,
        end: datetime,
        now: Optional[datetime] = None,
    ) -> List[TimeInterval]:
        """
        Bookable slots for one host.

        Args:
            db: Database session
            host_id: Host ID
            constraints: Event constraints
            start: Range start (slot starts are >= start)
            end: Range end (slot starts are < end)
            now: Reference time for notice and booking window

        Returns:
            Ascending, duplicate-free list of ``[start, start + duration)``
        """
        now = ensure_utc(now) if now else utcnow()
        host = await get_host(db, host_id)

        if ensure_utc(end) <= ensure_utc(start):
            return []

        schedule = await load_schedule(db, host, constraints, start, end, now, self.busy_cache)
        slots = compute_slots(schedule, constraints, start, end, now)

        logger.debug(f"Generated {len(slots)} slot(s) for host {host_id}")
        return slots

    async def generate_event_slots(
        self,
        db: AsyncSession,
        event: Event,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        now: Optional[datetime] = None,
        host_id: Optional[int] = None,
        duration_minutes: Optional[int] = None,
        buffer_before: Optional[int] = None,
        buffer_after: Optional[int] = None,
    ) -> List[TimeInterval]:
        """
        Bookable slots for an event.

        For round-robin events with several co-hosts a time is offered when
        any host is free and the host is picked at booking time. Collective
        events only offer times when every co-host is free.
        The range defaults to ``EventConstraints.default_range``.
        """
        now = ensure_utc(now) if now else utcnow()
        constraints = EventConstraints.from_event(
            event,
            duration_minutes=duration_minutes,
            buffer_before=buffer_before,
            buffer_after=buffer_after,
        )
        default_start, default_end = constraints.default_range(now)
        start = ensure_utc(start) if start else default_start
        end = ensure_utc(end) if end else default_end

        host_ids = await get_event_host_ids(db, event.id)
        if host_id is not None:
            if host_id not in host_ids:
                raise ConfigurationMissing(f"Host {host_id} is not a host of event {event.id}")
            host_ids = [host_id]

        if event.meeting_type == MEETING_COLLECTIVE and len(host_ids) > 1:
            return await self.generate_collective_slots(db, host_ids, constraints, start, end, now)

        slots = set()
        for candidate_host_id in host_ids:
            slots.update(
                await self.generate_slots(db, candidate_host_id, constraints, start, end, now)
            )
        return sorted(slots)

    async def generate_collective_slots(
        self,
        db: AsyncSession,
        host_ids: List[int],
        constraints: EventConstraints,
        start: datetime,
        end: datetime,
        now: Optional[datetime] = None,
    ) -> List[TimeInterval]:
        """Slots at which every one of ``host_ids`` can be booked."""
        now = ensure_utc(now) if now else utcnow()
        if ensure_utc(end) <= ensure_utc(start):
            return []

        schedules = []
        for host_id in host_ids:
            host = await get_host(db, host_id)
            schedules.append(
                await load_schedule(db, host, constraints, start, end, now, self.busy_cache)
            )

        slots = compute_collective_slots(schedules, constraints, start, end, now)
        logger.debug(f"Generated {len(slots)} collective slot(s) for hosts {host_ids}")
        return slots


async def get_host(db: AsyncSession, host_id: int) -> Host:
    """Load a host or raise ConfigurationMissing."""
    result = await db.execute(select(Host).where(Host.id == host_id))
    host = result.scalar_one_or_none()
    if not host:
        raise ConfigurationMissing(f"Host {host_id} not found")
    return host


async def get_event(db: AsyncSession, event_id: int) -> Event:
    """Load an event or raise ConfigurationMissing."""
    result = await db.execute(select(Event).where(Event.id == event_id))
    event = result.scalar_one_or_none()
    if not event:
        raise ConfigurationMissing(f"Event {event_id} not found")
    return event


async def get_event_host_ids(db: AsyncSession, event_id: int) -> List[int]:
    """Co-host IDs of an event in insertion order."""
    result = await db.execute(
        select(EventHost.host_id).where(EventHost.event_id == event_id).order_by(EventHost.id)
    )
    host_ids = list(result.scalars().all())
    if not host_ids:
        raise ConfigurationMissing(f"Event {event_id} has no hosts")
    return host_ids


# Singleton instance
slot_generator = SlotGenerator()
