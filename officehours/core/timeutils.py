"""Timezone handling.

All interval arithmetic runs on aware UTC instants. Wall-clock values
(availability patterns, holidays, day and week boundaries) are converted
per local calendar date through the helpers below, so DST shifts are
resolved by pytz rather than by comparing clock strings.
"""
import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterator, Optional

import pytz

from officehours.core.config import settings
from officehours.core.intervals import TimeInterval

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Normalize to aware UTC; naive values (e.g. read back from SQLite) are UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def get_timezone(name: Optional[str]):
    """Resolve a timezone name, falling back to the configured default."""
    try:
        return pytz.timezone(name or settings.DEFAULT_TIMEZONE)
    except pytz.UnknownTimeZoneError:
        logger.warning(f"Unknown timezone '{name}', using {settings.DEFAULT_TIMEZONE}")
        return pytz.timezone(settings.DEFAULT_TIMEZONE)


def local_to_utc(day: date, wall_clock: time, tz) -> datetime:
    """
    Convert a wall-clock time on a local date to an absolute UTC instant.

    Nonexistent times (spring-forward gap) resolve forward; ambiguous times
    (fall-back overlap) resolve to the standard-time reading.
    """
    naive = datetime.combine(day, wall_clock.replace(tzinfo=None))
    local = tz.normalize(tz.localize(naive, is_dst=False))
    return local.astimezone(timezone.utc)


def local_date(instant: datetime, tz) -> date:
    """The calendar date of an instant in the given timezone."""
    return ensure_utc(instant).astimezone(tz).date()


def local_day(day: date, tz) -> TimeInterval:
    """The absolute span of a local calendar day (23 or 25 hours across DST)."""
    return TimeInterval(
        local_to_utc(day, time(0, 0), tz),
        local_to_utc(day + timedelta(days=1), time(0, 0), tz),
    )


def iter_local_dates(start: datetime, end: datetime, tz) -> Iterator[date]:
    """Yield every local date touched by ``[start, end)``."""
    if end <= start:
        return
    current = local_date(start, tz)
    last = local_date(end - timedelta(microseconds=1), tz)
    while current <= last:
        yield current
        current += timedelta(days=1)


def day_of_week(day: date) -> int:
    """Weekday number with 0 = Sunday ... 6 = Saturday."""
    return (day.weekday() + 1) % 7


def week_start(day: date) -> date:
    """The Sunday that starts the week containing ``day``."""
    return day - timedelta(days=day_of_week(day))


def local_week(day: date, tz) -> TimeInterval:
    """The absolute span of the Sunday-based local week containing ``day``."""
    first = week_start(day)
    return TimeInterval(
        local_to_utc(first, time(0, 0), tz),
        local_to_utc(first + timedelta(days=7), time(0, 0), tz),
    )


def local_month(day: date, tz) -> TimeInterval:
    """The absolute span of the local calendar month containing ``day``."""
    first = day.replace(day=1)
    if first.month == 12:
        following = first.replace(year=first.year + 1, month=1)
    else:
        following = first.replace(month=first.month + 1)
    return TimeInterval(
        local_to_utc(first, time(0, 0), tz),
        local_to_utc(following, time(0, 0), tz),
    )
