"""Tests for round-robin host assignment."""

from datetime import time, timedelta

import pytest

from conftest import MONDAY, NOW, add_pattern, at, make_event, make_host
from officehours.core.errors import NoHostAvailable
from officehours.core.intervals import TimeInterval
from officehours.services.booking_service import BookingService
from officehours.services.reservation_guard import ReservationGuard
from officehours.services.round_robin import RoundRobinService, get_host_booking_counts, rotate


@pytest.fixture
def round_robin(busy_cache):
    return RoundRobinService(ReservationGuard(busy_cache))


@pytest.fixture
def booking(busy_cache, round_robin):
    return BookingService(guard=ReservationGuard(busy_cache), round_robin=round_robin)


async def make_team(db, size=3):
    hosts = []
    for index in range(size):
        host = await make_host(db, f"host{index}@example.com")
        await add_pattern(db, host, 1, time(9, 0), time(17, 0))
        hosts.append(host)
    return hosts


def slot(hour, minute=0):
    start = at(MONDAY, hour, minute)
    return TimeInterval(start, start + timedelta(minutes=30))


class TestRotate:
    """Tests for the tie-break pointer."""

    def test_first_tied_host_without_history(self):
        assert rotate([3, 2], [1, 2, 3], None) == 2

    def test_next_after_last_assigned(self):
        assert rotate([1, 2, 3], [1, 2, 3], 1) == 2
        assert rotate([1, 2, 3], [1, 2, 3], 3) == 1

    def test_skips_hosts_that_are_not_tied(self):
        assert rotate([1, 3], [1, 2, 3], 1) == 3


class TestAssignHost:
    """Tests for strategy selection."""

    @pytest.mark.asyncio
    async def test_ties_rotate_through_co_hosts(self, db, round_robin):
        hosts = await make_team(db)
        event = await make_event(db, hosts, round_robin_strategy="least_bookings")
        host_ids = [host.id for host in hosts]

        picks = [await round_robin.assign_host(db, event, host_ids, slot(9), NOW) for _ in range(4)]

        assert picks == [host_ids[0], host_ids[1], host_ids[2], host_ids[0]]

    @pytest.mark.asyncio
    async def test_sequential_bookings_stay_balanced(self, db, booking):
        hosts = await make_team(db)
        event = await make_event(db, hosts, round_robin_strategy="least_bookings_available")
        host_ids = [host.id for host in hosts]

        for index in range(7):
            await booking.book(db, event.id, at(MONDAY, 9) + timedelta(minutes=30 * index), "a@example.com", now=NOW)

            counts = await get_host_booking_counts(db, event.id, host_ids, "week", at(MONDAY, 9))
            assert max(counts.values()) - min(counts.values()) <= 1

    @pytest.mark.asyncio
    async def test_busy_host_is_skipped(self, db, booking):
        hosts = await make_team(db, size=2)
        event = await make_event(db, hosts)

        first = await booking.book(db, event.id, at(MONDAY, 10), "a@example.com", now=NOW)
        second = await booking.book(db, event.id, at(MONDAY, 10), "b@example.com", now=NOW)

        assert {first.host_id, second.host_id} == {hosts[0].id, hosts[1].id}

    @pytest.mark.asyncio
    async def test_no_available_host_raises(self, db, round_robin):
        hosts = await make_team(db, size=2)
        event = await make_event(db, hosts)

        with pytest.raises(NoHostAvailable):
            await round_robin.assign_host(db, event, [host.id for host in hosts], slot(18), NOW)

    @pytest.mark.asyncio
    async def test_priority_prefers_higher_priority(self, db, round_robin):
        hosts = await make_team(db)
        event = await make_event(db, hosts, round_robin_strategy="priority", priorities=[2, 5, 3])

        assert await round_robin.assign_host(db, event, [h.id for h in hosts], slot(9), NOW) == hosts[1].id

    @pytest.mark.asyncio
    async def test_cycle_follows_co_host_order(self, db, round_robin):
        hosts = await make_team(db)
        event = await make_event(db, hosts, round_robin_strategy="cycle")
        host_ids = [host.id for host in hosts]

        picks = [await round_robin.assign_host(db, event, host_ids, slot(9), NOW) for _ in range(3)]

        assert picks == host_ids

    @pytest.mark.asyncio
    async def test_availability_weighted_prefers_fewer_bookings_per_hour(self, db, booking, round_robin):
        part_time = await make_host(db, "part@example.com")
        await add_pattern(db, part_time, 1, time(9, 0), time(11, 0))
        full_time = await make_host(db, "full@example.com")
        await add_pattern(db, full_time, 1, time(9, 0), time(17, 0))
        event = await make_event(db, [part_time, full_time], round_robin_strategy="availability_weighted")

        await booking.book(db, event.id, at(MONDAY, 9), "a@example.com", host_id=part_time.id, now=NOW)
        await booking.book(db, event.id, at(MONDAY, 12), "b@example.com", host_id=full_time.id, now=NOW)

        # The same single booking weighs more against fewer open hours
        assert await round_robin.assign_host(
            db, event, [part_time.id, full_time.id], slot(10), NOW
        ) == full_time.id


class TestStats:
    """Tests for the distribution report."""

    @pytest.mark.asyncio
    async def test_stats_report_current_period(self, db, booking, round_robin):
        hosts = await make_team(db, size=2)
        event = await make_event(db, hosts)

        for index in range(4):
            await booking.book(db, event.id, at(MONDAY, 9) + timedelta(hours=index), "a@example.com", now=NOW)

        stats = await round_robin.get_round_robin_stats(db, event.id, now=at(MONDAY, 18))

        assert stats["total_bookings"] == 4
        assert [share["booking_count"] for share in stats["hosts"]] == [2, 2]
        assert [share["percentage"] for share in stats["hosts"]] == [50.0, 50.0]
        assert stats["period"] == "week"
        assert stats["last_assigned_host_id"] in {host.id for host in hosts}

    @pytest.mark.asyncio
    async def test_stats_exclude_other_periods(self, db, booking, round_robin):
        hosts = await make_team(db, size=2)
        event = await make_event(db, hosts)
        await booking.book(db, event.id, at(MONDAY, 9), "a@example.com", now=NOW)

        stats = await round_robin.get_round_robin_stats(db, event.id, now=at(MONDAY, 9) + timedelta(days=7))

        assert stats["total_bookings"] == 0
        assert [share["percentage"] for share in stats["hosts"]] == [0.0, 0.0]
