"""
Pytest configuration and fixtures for the scheduler tests.

This module provides fixtures for:
- A file-backed SQLite database per test (so concurrent sessions really race)
- An in-process fake of the calendar provider
- Factories for hosts, patterns, events and holidays
"""

import os
from datetime import datetime, time, timedelta, timezone
from typing import AsyncGenerator, Dict, List

# Settings are read at import time; point them at SQLite before importing the package
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SYNC_ENABLED", "false")
os.environ.setdefault("DEFAULT_TIMEZONE", "UTC")

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from officehours.core.database import Base
from officehours.core.errors import CalendarFetchFailed
from officehours.core.intervals import TimeInterval, merge
from officehours.models import AvailabilityPattern, CompanyHoliday, Event, EventHost, Host
from officehours.services.busy_cache import BusyBlockCache
from officehours.services.calendar_client import CalendarClient

UTC = timezone.utc

# Sunday noon; the Monday after is 2024-01-15
NOW = datetime(2024, 1, 14, 12, 0, tzinfo=UTC)
MONDAY = datetime(2024, 1, 15, tzinfo=UTC)


def at(day: datetime, hour: int, minute: int = 0) -> datetime:
    """An instant on ``day`` at hour:minute UTC."""
    return day.replace(hour=hour, minute=minute, second=0, microsecond=0)


class FakeCalendarClient(CalendarClient):
    """Calendar provider stand-in that serves canned busy intervals."""

    def __init__(self):
        super().__init__(base_url="http://calendar.test", token="", request_delay=0, max_retries=1)
        self.busy: Dict[str, List[TimeInterval]] = {}
        self.fail = False
        self.calls = 0

    async def get_free_busy(self, calendar_id, start, end):
        self.calls += 1
        if self.fail:
            raise CalendarFetchFailed("provider down")
        return merge(self.busy.get(calendar_id, []))


# ============ Database Fixtures ============

@pytest_asyncio.fixture
async def engine(tmp_path):
    """Async SQLAlchemy engine on a throwaway SQLite file."""
    import officehours.models  # noqa: F401

    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'officehours.db'}", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


# ============ Calendar Fixtures ============

@pytest.fixture
def fake_calendar():
    return FakeCalendarClient()


@pytest.fixture
def busy_cache(fake_calendar):
    return BusyBlockCache(fake_calendar, ttl=timedelta(minutes=10))


# ============ Factories ============

async def make_host(db: AsyncSession, email: str = "host@example.com", **kwargs) -> Host:
    host = Host(email=email, name=kwargs.pop("name", email.split("@")[0]), timezone=kwargs.pop("timezone", "UTC"), **kwargs)
    db.add(host)
    await db.commit()
    await db.refresh(host)
    return host


async def add_pattern(db: AsyncSession, host: Host, day_of_week: int, start: time, end: time) -> AvailabilityPattern:
    pattern = AvailabilityPattern(
        host_id=host.id, day_of_week=day_of_week, start_time=start, end_time=end, is_active=True
    )
    db.add(pattern)
    await db.commit()
    await db.refresh(pattern)
    return pattern


async def make_event(db: AsyncSession, hosts: List[Host], slug: str = "intro-call", priorities=None, **kwargs) -> Event:
    defaults = {
        "title": "Intro call",
        "duration_minutes": 30,
        "min_notice_hours": 0,
        "booking_window_days": 60,
        "start_time_increment": 30,
        "display_timezone": "UTC",
    }
    defaults.update(kwargs)
    event = Event(slug=slug, **defaults)
    db.add(event)
    await db.flush()

    for index, host in enumerate(hosts):
        priority = priorities[index] if priorities else 3
        db.add(EventHost(event_id=event.id, host_id=host.id, priority=priority))
        await db.flush()

    await db.commit()
    await db.refresh(event)
    return event


async def add_holiday(db: AsyncSession, day, name: str = "Founders Day") -> CompanyHoliday:
    holiday = CompanyHoliday(date=day, name=name)
    db.add(holiday)
    await db.commit()
    await db.refresh(holiday)
    return holiday


@pytest_asyncio.fixture
async def monday_host(db):
    """A UTC host available Mondays 09:00-17:00 only."""
    host = await make_host(db)
    await add_pattern(db, host, 1, time(9, 0), time(17, 0))
    for day_of_week in (0, 2, 3, 4, 5, 6):
        # Zero-length pattern: the weekday is restricted but contributes nothing
        await add_pattern(db, host, day_of_week, time(0, 0), time(0, 0))
    return host
