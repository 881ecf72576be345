"""Event booking constraints and the booking counts they are checked against."""
import logging
from collections import Counter
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy import select, and_
from sqlalchemy.ext.asyncio import AsyncSession

from officehours.core.timeutils import ensure_utc, local_date, week_start
from officehours.models.booking import Booking
from officehours.models.company_holiday import CompanyHoliday
from officehours.models.event import Event

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EventConstraints:
    """Read-only scheduling rules of an event."""

    duration_minutes: int
    buffer_before: int = 0
    buffer_after: int = 0
    min_notice_hours: int = 24
    booking_window_days: int = 60
    start_time_increment: int = 30
    max_daily_bookings: Optional[int] = None
    max_weekly_bookings: Optional[int] = None
    ignore_busy_blocks: bool = False
    display_timezone: Optional[str] = None
    event_id: Optional[int] = None

    def __post_init__(self):
        if self.duration_minutes <= 0:
            raise ValueError("duration_minutes must be positive")
        if self.start_time_increment <= 0:
            raise ValueError("start_time_increment must be positive")
        if self.buffer_before < 0 or self.buffer_after < 0:
            raise ValueError("buffers cannot be negative")

    @classmethod
    def from_event(
        cls,
        event: Event,
        duration_minutes: Optional[int] = None,
        buffer_before: Optional[int] = None,
        buffer_after: Optional[int] = None,
    ) -> "EventConstraints":
        """Build constraints from an event row, applying request overrides."""
        constraints = cls(
            duration_minutes=event.duration_minutes,
            buffer_before=event.buffer_before or 0,
            buffer_after=event.buffer_after or 0,
            min_notice_hours=event.min_notice_hours if event.min_notice_hours is not None else 24,
            booking_window_days=event.booking_window_days if event.booking_window_days is not None else 60,
            start_time_increment=event.start_time_increment or 30,
            max_daily_bookings=event.max_daily_bookings,
            max_weekly_bookings=event.max_weekly_bookings,
            ignore_busy_blocks=bool(event.ignore_busy_blocks),
            display_timezone=event.display_timezone,
            event_id=event.id,
        )
        overrides = {
            key: value
            for key, value in (
                ("duration_minutes", duration_minutes),
                ("buffer_before", buffer_before),
                ("buffer_after", buffer_after),
            )
            if value is not None
        }
        return replace(constraints, **overrides) if overrides else constraints

    @property
    def duration(self) -> timedelta:
        return timedelta(minutes=self.duration_minutes)

    @property
    def before(self) -> timedelta:
        return timedelta(minutes=self.buffer_before)

    @property
    def after(self) -> timedelta:
        return timedelta(minutes=self.buffer_after)

    @property
    def increment(self) -> timedelta:
        return timedelta(minutes=self.start_time_increment)

    def earliest_start(self, now: datetime) -> datetime:
        """Minimum notice: nothing may start before this."""
        return now + timedelta(hours=self.min_notice_hours)

    def latest_start(self, now: datetime) -> datetime:
        """Booking window: nothing may start after this."""
        return now + timedelta(days=self.booking_window_days)

    def default_range(self, now: datetime) -> Tuple[datetime, datetime]:
        """
        The listing range used when a request gives none.

        Slot starts fall in ``[start, end)``; ``end`` sits just past
        ``latest_start`` so a start exactly at the window edge is offered.
        """
        return self.earliest_start(now), self.latest_start(now) + timedelta(microseconds=1)


class BookingCounts:
    """Non-cancelled bookings bucketed by local day and Sunday-based week."""

    def __init__(self, starts: Iterable[datetime], tz):
        self.by_day: Counter = Counter()
        self.by_week: Counter = Counter()
        for start in starts:
            day = local_date(start, tz)
            self.by_day[day] += 1
            self.by_week[week_start(day)] += 1

    def day_count(self, day: date) -> int:
        return self.by_day[day]

    def week_count(self, day: date) -> int:
        return self.by_week[week_start(day)]

    def limit_reached(
        self,
        day: date,
        max_daily: Optional[int],
        max_weekly: Optional[int],
    ) -> Optional[str]:
        """'daily' or 'weekly' if a cap is met on ``day``, else None."""
        if max_daily is not None and self.day_count(day) >= max_daily:
            return "daily"
        if max_weekly is not None and self.week_count(day) >= max_weekly:
            return "weekly"
        return None


async def booking_starts(
    db: AsyncSession,
    start: datetime,
    end: datetime,
    event_id: Optional[int] = None,
    host_id: Optional[int] = None,
) -> List[datetime]:
    """
    Start instants of non-cancelled bookings beginning in ``[start, end)``.

    A collective booking counts once however many hosts it holds.
    """
    conditions = [
        Booking.cancelled_at.is_(None),
        Booking.start_time >= ensure_utc(start),
        Booking.start_time < ensure_utc(end),
    ]
    if event_id is not None:
        conditions.append(Booking.event_id == event_id)
    if host_id is not None:
        conditions.append(Booking.host_id == host_id)

    result = await db.execute(
        select(Booking.start_time, Booking.collective_key).where(and_(*conditions))
    )

    starts = []
    seen = set()
    for start_time, collective_key in result.all():
        if collective_key is not None:
            if collective_key in seen:
                continue
            seen.add(collective_key)
        starts.append(ensure_utc(start_time))
    return starts


async def get_holidays(db: AsyncSession, first: date, last: date) -> Dict[date, str]:
    """Company holidays between two dates inclusive, keyed by date."""
    result = await db.execute(
        select(CompanyHoliday.date, CompanyHoliday.name).where(
            and_(
                CompanyHoliday.date >= first,
                CompanyHoliday.date <= last,
            )
        )
    )
    return {holiday_date: name for holiday_date, name in result.all()}
