"""Busy block cache.

A host's external calendar commitments are cached in ``busy_blocks``.
Each successful provider fetch records a ``BusySyncWindow``; a read is
served from the cache while a sync window covering the requested range is
younger than the TTL (``BUSY_CACHE_TTL_MINUTES``, 10 minutes by default).
Otherwise the provider is queried live.

If the provider fails, the last-known snapshot is used even when stale,
and with no snapshot at all the host is treated as free. Availability is
favoured over freshness: a provider outage must never fail a slot listing.

Two concurrent refreshes for the same host may both hit the provider; the
last write wins and no lock is taken.
"""
import logging
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import select, delete, and_
from sqlalchemy.ext.asyncio import AsyncSession

from officehours.core.config import settings
from officehours.core.errors import CalendarFetchFailed
from officehours.core.intervals import TimeInterval, clip, merge
from officehours.core.timeutils import ensure_utc, utcnow
from officehours.models.busy_block import BusyBlock, BusySyncWindow, SOURCE_BOOKING, SOURCE_CALENDAR
from officehours.models.host import Host
from officehours.services.calendar_client import CalendarClient, calendar_client

logger = logging.getLogger(__name__)

# Calendar blocks that ended longer ago than this are dropped on refresh
CALENDAR_BLOCK_RETENTION = timedelta(days=1)


class BusyBlockCache:
    """Staleness-tolerant cache of host busy intervals."""

    def __init__(self, client: CalendarClient, ttl: Optional[timedelta] = None):
        self.client = client
        self.ttl = ttl if ttl is not None else timedelta(minutes=settings.BUSY_CACHE_TTL_MINUTES)

    async def get_busy(
        self,
        db: AsyncSession,
        host: Host,
        start: datetime,
        end: datetime,
        now: Optional[datetime] = None,
    ) -> List[TimeInterval]:
        """
        Busy intervals for a host within ``[start, end)``.

        Args:
            db: Database session
            host: Host
            start: Window start
            end: Window end
            now: Reference time for the freshness check

        Returns:
            Sorted disjoint busy intervals clipped to the window
        """
        now = ensure_utc(now) if now else utcnow()

        if not host.calendar_id:
            return await self.cached_busy(db, host.id, start, end)

        if await self.is_fresh(db, host.id, start, end, now):
            logger.debug(f"Busy cache hit for host {host.id}")
            return await self.cached_busy(db, host.id, start, end)

        try:
            return await self.refresh(db, host, start, end, now)
        except CalendarFetchFailed as e:
            logger.warning(f"Calendar fetch failed for host {host.id}, using cached busy blocks: {e}")
            return await self.cached_busy(db, host.id, start, end)

    async def is_fresh(
        self,
        db: AsyncSession,
        host_id: int,
        start: datetime,
        end: datetime,
        now: datetime,
    ) -> bool:
        """True if a sync window covering ``[start, end)`` is younger than the TTL."""
        result = await db.execute(
            select(BusySyncWindow.id)
            .where(
                and_(
                    BusySyncWindow.host_id == host_id,
                    BusySyncWindow.window_start <= ensure_utc(start),
                    BusySyncWindow.window_end >= ensure_utc(end),
                    BusySyncWindow.synced_at >= ensure_utc(now) - self.ttl,
                )
            )
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def refresh(
        self,
        db: AsyncSession,
        host: Host,
        start: datetime,
        end: datetime,
        now: Optional[datetime] = None,
    ) -> List[TimeInterval]:
        """
        Fetch live busy data and replace the host's snapshot for the window.

        Calendar blocks straddling the window edge keep their parts outside
        the window. Booking-derived blocks are never touched.
        Sync windows past the TTL and calendar blocks that ended over a day
        ago are pruned at the same time.

        Raises:
            CalendarFetchFailed: If the provider cannot be queried
        """
        if not host.calendar_id:
            raise CalendarFetchFailed(f"Host {host.id} has no connected calendar")

        now = ensure_utc(now) if now else utcnow()
        window = TimeInterval(ensure_utc(start), ensure_utc(end))

        fetched = await self.client.get_free_busy(host.calendar_id, window.start, window.end)

        result = await db.execute(
            select(BusyBlock).where(
                and_(
                    BusyBlock.host_id == host.id,
                    BusyBlock.source == SOURCE_CALENDAR,
                    BusyBlock.start_time < window.end,
                    BusyBlock.end_time > window.start,
                )
            )
        )
        outside_parts = []
        for block in result.scalars().all():
            block_start = ensure_utc(block.start_time)
            block_end = ensure_utc(block.end_time)
            if block_start < window.start:
                outside_parts.append(TimeInterval(block_start, window.start))
            if block_end > window.end:
                outside_parts.append(TimeInterval(window.end, block_end))
            await db.delete(block)

        # Flush deletes before inserting the replacement snapshot
        await db.flush()
        await self.prune(db, host.id, now)

        in_window = [part for part in (clip(i, window) for i in fetched) if part]
        for interval in merge(in_window + outside_parts):
            db.add(
                BusyBlock(
                    host_id=host.id,
                    start_time=interval.start,
                    end_time=interval.end,
                    source=SOURCE_CALENDAR,
                    synced_at=now,
                )
            )

        db.add(
            BusySyncWindow(
                host_id=host.id,
                window_start=window.start,
                window_end=window.end,
                synced_at=now,
                block_count=len(in_window),
            )
        )
        await db.commit()

        logger.info(f"Synced {len(in_window)} busy block(s) for host {host.id}")
        return await self.cached_busy(db, host.id, window.start, window.end)

    async def cached_busy(
        self,
        db: AsyncSession,
        host_id: int,
        start: datetime,
        end: datetime,
    ) -> List[TimeInterval]:
        """Cached busy blocks of every source, clipped to ``[start, end)`` and merged."""
        window = TimeInterval(ensure_utc(start), ensure_utc(end))
        result = await db.execute(
            select(BusyBlock.start_time, BusyBlock.end_time).where(
                and_(
                    BusyBlock.host_id == host_id,
                    BusyBlock.start_time < window.end,
                    BusyBlock.end_time > window.start,
                )
            )
        )

        intervals = []
        for block_start, block_end in result.all():
            block_start = ensure_utc(block_start)
            block_end = ensure_utc(block_end)
            if block_end <= block_start:
                continue
            part = clip(TimeInterval(block_start, block_end), window)
            if part:
                intervals.append(part)

        return merge(intervals)

    async def prune(self, db: AsyncSession, host_id: int, now: datetime) -> None:
        """Delete expired sync windows and long-past calendar blocks (caller commits)."""
        now = ensure_utc(now)
        await db.execute(
            delete(BusySyncWindow).where(
                and_(
                    BusySyncWindow.host_id == host_id,
                    BusySyncWindow.synced_at < now - self.ttl,
                )
            ).execution_options(synchronize_session=False)
        )
        await db.execute(
            delete(BusyBlock).where(
                and_(
                    BusyBlock.host_id == host_id,
                    BusyBlock.source == SOURCE_CALENDAR,
                    BusyBlock.end_time < now - CALENDAR_BLOCK_RETENTION,
                )
            ).execution_options(synchronize_session=False)
        )

    async def invalidate(self, db: AsyncSession, host_id: int) -> None:
        """Forget the host's sync history so the next read refetches."""
        await db.execute(delete(BusySyncWindow).where(BusySyncWindow.host_id == host_id))
        await db.commit()
        logger.info(f"Invalidated busy cache for host {host_id}")

    def booking_block(self, host_id: int, booking_id: int, interval: TimeInterval) -> BusyBlock:
        """The busy block that mirrors a confirmed booking."""
        return BusyBlock(
            host_id=host_id,
            booking_id=booking_id,
            start_time=interval.start,
            end_time=interval.end,
            source=SOURCE_BOOKING,
            synced_at=utcnow(),
        )

    async def remove_booking_block(self, db: AsyncSession, booking_id: int) -> None:
        """Drop the busy block of a cancelled booking (caller commits)."""
        await db.execute(
            delete(BusyBlock).where(
                and_(
                    BusyBlock.booking_id == booking_id,
                    BusyBlock.source == SOURCE_BOOKING,
                )
            )
        )


# Singleton instance
busy_block_cache = BusyBlockCache(calendar_client)
