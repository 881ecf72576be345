"""Tests for booking orchestration of collective events."""

from datetime import time, timedelta

import pytest
from sqlalchemy import select

from conftest import MONDAY, NOW, add_pattern, at, make_event, make_host
from officehours.core.errors import SlotUnavailable
from officehours.core.intervals import TimeInterval
from officehours.models import Booking
from officehours.services.booking_service import BookingService
from officehours.services.reservation_guard import ReservationGuard
from officehours.services.round_robin import RoundRobinService


@pytest.fixture
def booking(busy_cache):
    guard = ReservationGuard(busy_cache)
    return BookingService(guard=guard, round_robin=RoundRobinService(guard))


async def make_panel(db, count=2):
    hosts = []
    for index in range(count):
        host = await make_host(db, f"panel{index}@example.com")
        await add_pattern(db, host, 1, time(9, 0), time(17, 0))
        hosts.append(host)
    return hosts


class TestCollectiveBooking:
    """Tests for events that need every co-host."""

    @pytest.mark.asyncio
    async def test_book_reserves_every_host(self, db, booking):
        hosts = await make_panel(db)
        event = await make_event(db, hosts, meeting_type="collective")

        first = await booking.book(db, event.id, at(MONDAY, 10), "guest@example.com", now=NOW)

        assert first.host_id == hosts[0].id
        result = await db.execute(select(Booking.host_id).where(Booking.collective_key == first.collective_key))
        assert sorted(result.scalars().all()) == sorted(host.id for host in hosts)

    @pytest.mark.asyncio
    async def test_busy_co_host_blocks_the_booking(self, db, booking):
        hosts = await make_panel(db)
        solo = await make_event(db, [hosts[1]], slug="solo")
        await booking.book(db, solo.id, at(MONDAY, 10), "x@example.com", now=NOW)
        event = await make_event(db, hosts, meeting_type="collective")

        with pytest.raises(SlotUnavailable):
            await booking.book(db, event.id, at(MONDAY, 10), "guest@example.com", now=NOW)

    @pytest.mark.asyncio
    async def test_check_reports_the_blocked_host(self, db, booking):
        hosts = await make_panel(db)
        solo = await make_event(db, [hosts[1]], slug="solo")
        await booking.book(db, solo.id, at(MONDAY, 10), "x@example.com", now=NOW)
        event = await make_event(db, hosts, meeting_type="collective")
        candidate = TimeInterval(at(MONDAY, 10), at(MONDAY, 10, 30))

        check = await booking.check(db, event.id, candidate, now=NOW)

        assert not check.available
        assert check.host_id == hosts[1].id
        assert check.reason == "Conflicts with existing booking"

        free = await booking.check(db, event.id, TimeInterval(at(MONDAY, 11), at(MONDAY, 11, 30)), now=NOW)
        assert free.available

    @pytest.mark.asyncio
    async def test_collective_booking_counts_once_toward_daily_cap(self, db, booking):
        hosts = await make_panel(db, count=3)
        event = await make_event(db, hosts, meeting_type="collective", max_daily_bookings=2)

        await booking.book(db, event.id, at(MONDAY, 10), "a@example.com", now=NOW)
        second = await booking.book(db, event.id, at(MONDAY, 11), "b@example.com", now=NOW)

        assert second.start_time is not None
        with pytest.raises(SlotUnavailable) as exc_info:
            await booking.book(db, event.id, at(MONDAY, 12), "c@example.com", now=NOW)
        assert "daily booking limit" in exc_info.value.reason

    @pytest.mark.asyncio
    async def test_explicit_host_is_rejected(self, db, booking):
        hosts = await make_panel(db)
        event = await make_event(db, hosts, meeting_type="collective")

        with pytest.raises(ValueError):
            await booking.book(
                db, event.id, at(MONDAY, 10), "guest@example.com", host_id=hosts[0].id, now=NOW
            )

    @pytest.mark.asyncio
    async def test_cancelled_collective_frees_the_time(self, db, booking):
        hosts = await make_panel(db)
        event = await make_event(db, hosts, meeting_type="collective")
        first = await booking.book(db, event.id, at(MONDAY, 10), "a@example.com", now=NOW)

        await booking.guard.cancel(db, first.id, now=NOW + timedelta(minutes=1))
        again = await booking.book(db, event.id, at(MONDAY, 10), "b@example.com", now=NOW)

        assert again.collective_key != first.collective_key
