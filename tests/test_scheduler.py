"""Tests for the background busy block sync."""

from datetime import timedelta

import pytest

from conftest import MONDAY, NOW, at, make_host
from officehours.core.intervals import TimeInterval
from officehours.services.scheduler import BusySyncScheduler


class TestBusySync:
    """Tests for the sync job."""

    @pytest.mark.asyncio
    async def test_syncs_connected_hosts_only(self, db, session_factory, busy_cache, fake_calendar):
        connected = await make_host(db, "cal@example.com", calendar_id="cal-1")
        await make_host(db, "nocal@example.com")
        fake_calendar.busy["cal-1"] = [TimeInterval(at(MONDAY, 12), at(MONDAY, 13))]

        scheduler = BusySyncScheduler(busy_cache, session_factory)
        synced = await scheduler.sync_busy_blocks(now=NOW)

        assert synced == 1
        assert fake_calendar.calls == 1

        # A request shortly after the sync is served from the cache
        busy = await busy_cache.get_busy(db, connected, at(MONDAY, 0), at(MONDAY, 23), now=NOW + timedelta(minutes=5))
        assert busy == [TimeInterval(at(MONDAY, 12), at(MONDAY, 13))]
        assert fake_calendar.calls == 1

    @pytest.mark.asyncio
    async def test_provider_failure_is_logged_and_skipped(self, db, session_factory, busy_cache, fake_calendar):
        await make_host(db, "cal@example.com", calendar_id="cal-1")
        fake_calendar.fail = True

        scheduler = BusySyncScheduler(busy_cache, session_factory)

        assert await scheduler.sync_busy_blocks(now=NOW) == 0
