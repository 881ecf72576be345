"""Background scheduler that keeps the busy block cache warm."""
import logging
from datetime import datetime, timedelta
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from officehours.core.config import settings
from officehours.core.database import AsyncSessionLocal
from officehours.core.errors import CalendarFetchFailed
from officehours.core.timeutils import utcnow
from officehours.models.host import Host
from officehours.services.busy_cache import BusyBlockCache, busy_block_cache

logger = logging.getLogger(__name__)


class BusySyncScheduler:
    """Periodically refreshes every connected host's busy blocks."""

    def __init__(self, busy_cache: BusyBlockCache = busy_block_cache, session_factory=None):
        """Initialize the scheduler."""
        self.scheduler = AsyncIOScheduler()
        self.busy_cache = busy_cache
        self.session_factory = session_factory or AsyncSessionLocal
        self.running = False

    async def start(self):
        """Start the scheduler."""
        if self.running:
            logger.warning("Scheduler is already running")
            return

        logger.info("Starting busy block sync scheduler")

        self.scheduler.add_job(
            self.sync_busy_blocks,
            IntervalTrigger(minutes=settings.SYNC_INTERVAL_MINUTES),
            id="busy_sync_job",
            name="Sync host busy blocks",
            replace_existing=True,
        )

        self.scheduler.start()
        self.running = True
        logger.info("Busy block sync scheduler started")

    async def stop(self):
        """Stop the scheduler."""
        if not self.running:
            return

        logger.info("Stopping busy block sync scheduler")
        self.scheduler.shutdown(wait=False)
        self.running = False
        logger.info("Busy block sync scheduler stopped")

    async def sync_busy_blocks(self, now: Optional[datetime] = None) -> int:
        """
        Refresh busy blocks for every host with a connected calendar.

        The window starts a day back so that any request within the TTL
        falls inside the recorded sync window. A failing host is logged and
        skipped; its last snapshot stays in place.

        Returns:
            Number of hosts synced successfully
        """
        now = now or utcnow()
        window_start = now - timedelta(days=1)
        window_end = now + timedelta(days=settings.SYNC_DAYS_AHEAD)
        synced = 0

        async with self.session_factory() as db:
            try:
                result = await db.execute(select(Host).where(Host.calendar_id.isnot(None)))
                hosts = result.scalars().all()

                logger.info(f"Syncing busy blocks for {len(hosts)} host(s)")

                for host in hosts:
                    if await self._sync_host(db, host, window_start, window_end, now):
                        synced += 1

            except Exception as e:
                logger.error(f"Error in busy block sync: {e}", exc_info=True)

        return synced

    async def _sync_host(
        self,
        db: AsyncSession,
        host: Host,
        window_start: datetime,
        window_end: datetime,
        now: datetime,
    ) -> bool:
        try:
            await self.busy_cache.refresh(db, host, window_start, window_end, now)
            return True
        except CalendarFetchFailed as e:
            logger.warning(f"Busy sync failed for host {host.id} ({host.email}): {e}")
        except Exception as e:
            logger.error(f"Unexpected error syncing host {host.id}: {e}", exc_info=True)
        # Keep the previous snapshot on failure
        await db.rollback()
        return False


# Singleton instance
busy_sync_scheduler = BusySyncScheduler()
