"""Tests for the busy block cache."""

from datetime import timedelta

import httpx
import pytest
from sqlalchemy import select

from conftest import MONDAY, NOW, at, make_host
from officehours.core.intervals import TimeInterval
from officehours.core.timeutils import ensure_utc
from officehours.models import BusyBlock, BusySyncWindow
from officehours.services.busy_cache import BusyBlockCache
from officehours.services.calendar_client import CalendarClient


@pytest.fixture
def window():
    return at(MONDAY, 0), at(MONDAY + timedelta(days=1), 0)


class TestBusyBlockCache:
    """Tests for freshness, fallback and invalidation."""

    @pytest.mark.asyncio
    async def test_fetches_and_stores_on_first_read(self, db, busy_cache, fake_calendar, window):
        host = await make_host(db, calendar_id="cal-1")
        fake_calendar.busy["cal-1"] = [TimeInterval(at(MONDAY, 12), at(MONDAY, 13))]

        busy = await busy_cache.get_busy(db, host, *window, now=NOW)

        assert busy == [TimeInterval(at(MONDAY, 12), at(MONDAY, 13))]
        assert fake_calendar.calls == 1
        result = await db.execute(select(BusySyncWindow).where(BusySyncWindow.host_id == host.id))
        assert len(result.scalars().all()) == 1

    @pytest.mark.asyncio
    async def test_fresh_cache_is_served_without_fetching(self, db, busy_cache, fake_calendar, window):
        host = await make_host(db, calendar_id="cal-1")
        fake_calendar.busy["cal-1"] = [TimeInterval(at(MONDAY, 12), at(MONDAY, 13))]

        await busy_cache.get_busy(db, host, *window, now=NOW)
        busy = await busy_cache.get_busy(db, host, *window, now=NOW + timedelta(minutes=5))

        assert busy == [TimeInterval(at(MONDAY, 12), at(MONDAY, 13))]
        assert fake_calendar.calls == 1

    @pytest.mark.asyncio
    async def test_stale_cache_is_refetched(self, db, busy_cache, fake_calendar, window):
        host = await make_host(db, calendar_id="cal-1")
        fake_calendar.busy["cal-1"] = [TimeInterval(at(MONDAY, 12), at(MONDAY, 13))]
        await busy_cache.get_busy(db, host, *window, now=NOW)

        fake_calendar.busy["cal-1"] = [TimeInterval(at(MONDAY, 15), at(MONDAY, 16))]
        busy = await busy_cache.get_busy(db, host, *window, now=NOW + timedelta(minutes=11))

        assert busy == [TimeInterval(at(MONDAY, 15), at(MONDAY, 16))]
        assert fake_calendar.calls == 2

    @pytest.mark.asyncio
    async def test_provider_failure_falls_back_to_stale_snapshot(self, db, busy_cache, fake_calendar, window):
        host = await make_host(db, calendar_id="cal-1")
        fake_calendar.busy["cal-1"] = [TimeInterval(at(MONDAY, 12), at(MONDAY, 13))]
        await busy_cache.get_busy(db, host, *window, now=NOW)

        fake_calendar.fail = True
        busy = await busy_cache.get_busy(db, host, *window, now=NOW + timedelta(minutes=30))

        assert busy == [TimeInterval(at(MONDAY, 12), at(MONDAY, 13))]
        assert fake_calendar.calls == 2

    @pytest.mark.asyncio
    async def test_provider_failure_without_snapshot_means_free(self, db, busy_cache, fake_calendar, window):
        host = await make_host(db, calendar_id="cal-1")
        fake_calendar.fail = True

        assert await busy_cache.get_busy(db, host, *window, now=NOW) == []

    @pytest.mark.asyncio
    async def test_host_without_calendar_never_fetches(self, db, busy_cache, fake_calendar, window):
        host = await make_host(db)

        assert await busy_cache.get_busy(db, host, *window, now=NOW) == []
        assert fake_calendar.calls == 0

    @pytest.mark.asyncio
    async def test_invalidate_forces_refetch(self, db, busy_cache, fake_calendar, window):
        host = await make_host(db, calendar_id="cal-1")
        await busy_cache.get_busy(db, host, *window, now=NOW)

        await busy_cache.invalidate(db, host.id)
        await busy_cache.get_busy(db, host, *window, now=NOW + timedelta(minutes=1))

        assert fake_calendar.calls == 2

    @pytest.mark.asyncio
    async def test_refresh_keeps_block_parts_outside_window(self, db, busy_cache, fake_calendar):
        host = await make_host(db, calendar_id="cal-1")
        fake_calendar.busy["cal-1"] = [TimeInterval(at(MONDAY, 10), at(MONDAY, 14))]
        await busy_cache.refresh(db, host, at(MONDAY, 0), at(MONDAY, 23), NOW)

        fake_calendar.busy["cal-1"] = []
        await busy_cache.refresh(db, host, at(MONDAY, 12), at(MONDAY, 20), NOW)

        cached = await busy_cache.cached_busy(db, host.id, at(MONDAY, 0), at(MONDAY, 23))
        assert cached == [TimeInterval(at(MONDAY, 10), at(MONDAY, 12))]

    @pytest.mark.asyncio
    async def test_booking_blocks_survive_refresh(self, db, busy_cache, fake_calendar):
        host = await make_host(db, calendar_id="cal-1")
        db.add(busy_cache.booking_block(host.id, None, TimeInterval(at(MONDAY, 9), at(MONDAY, 10))))
        await db.commit()

        await busy_cache.refresh(db, host, at(MONDAY, 0), at(MONDAY, 23), NOW)

        result = await db.execute(select(BusyBlock).where(BusyBlock.host_id == host.id))
        sources = [block.source for block in result.scalars().all()]
        assert sources == ["booking"]

    @pytest.mark.asyncio
    async def test_garbage_provider_payload_falls_back_to_snapshot(self, db, window):
        client = CalendarClient(
            base_url="http://calendar.test",
            token="",
            request_delay=0,
            max_retries=1,
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json=[])),
        )
        cache = BusyBlockCache(client, ttl=timedelta(minutes=10))
        host = await make_host(db, calendar_id="cal-1")
        db.add(cache.booking_block(host.id, None, TimeInterval(at(MONDAY, 9), at(MONDAY, 10))))
        await db.commit()

        busy = await cache.get_busy(db, host, *window, now=NOW)

        assert busy == [TimeInterval(at(MONDAY, 9), at(MONDAY, 10))]

    @pytest.mark.asyncio
    async def test_refresh_drops_expired_sync_windows(self, db, busy_cache, fake_calendar, window):
        host = await make_host(db, calendar_id="cal-1")

        for minutes in (0, 15, 30, 45):
            await busy_cache.refresh(db, host, *window, now=NOW + timedelta(minutes=minutes))

        result = await db.execute(select(BusySyncWindow).where(BusySyncWindow.host_id == host.id))
        synced = [ensure_utc(row.synced_at) for row in result.scalars().all()]
        assert synced == [NOW + timedelta(minutes=45)]

    @pytest.mark.asyncio
    async def test_refresh_drops_long_past_calendar_blocks(self, db, busy_cache, fake_calendar, window):
        host = await make_host(db, calendar_id="cal-1")
        last_week = NOW - timedelta(days=7)
        db.add(
            BusyBlock(
                host_id=host.id,
                start_time=last_week,
                end_time=last_week + timedelta(hours=1),
                source="calendar",
                synced_at=last_week,
            )
        )
        db.add(busy_cache.booking_block(host.id, None, TimeInterval(last_week, last_week + timedelta(hours=1))))
        recent = NOW - timedelta(hours=2)
        db.add(
            BusyBlock(
                host_id=host.id,
                start_time=recent,
                end_time=recent + timedelta(hours=1),
                source="calendar",
                synced_at=recent,
            )
        )
        await db.commit()

        await busy_cache.refresh(db, host, *window, now=NOW)

        result = await db.execute(select(BusyBlock).where(BusyBlock.host_id == host.id))
        kept = sorted((block.source, ensure_utc(block.start_time)) for block in result.scalars().all())
        assert kept == [("booking", last_week), ("calendar", recent)]
