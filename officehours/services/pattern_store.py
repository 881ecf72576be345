"""Availability pattern storage."""
import logging
from datetime import time
from typing import Iterable, List, Tuple

from sqlalchemy import select, update, and_
from sqlalchemy.ext.asyncio import AsyncSession

from officehours.models.availability_pattern import AvailabilityPattern

logger = logging.getLogger(__name__)


async def get_active_patterns(db: AsyncSession, host_id: int) -> List[AvailabilityPattern]:
    """Active patterns for a host ordered by weekday then start time."""
    result = await db.execute(
        select(AvailabilityPattern)
        .where(
            and_(
                AvailabilityPattern.host_id == host_id,
                AvailabilityPattern.is_active == True,  # noqa: E712
            )
        )
        .order_by(AvailabilityPattern.day_of_week, AvailabilityPattern.start_time)
    )
    return list(result.scalars().all())


async def replace_patterns(
    db: AsyncSession,
    host_id: int,
    patterns: Iterable[Tuple[int, time, time]],
) -> List[AvailabilityPattern]:
    """
    Replace a host's weekly availability.

    Existing active patterns are soft-disabled rather than deleted, since
    bookings made against them may still reference the old schedule.

    Args:
        db: Database session
        host_id: Host ID
        patterns: (day_of_week, start_time, end_time) tuples

    Returns:
        The newly created patterns
    """
    await db.execute(
        update(AvailabilityPattern)
        .where(
            and_(
                AvailabilityPattern.host_id == host_id,
                AvailabilityPattern.is_active == True,  # noqa: E712
            )
        )
        .values(is_active=False)
    )

    created = []
    for day_of_week, start_time, end_time in patterns:
        pattern = AvailabilityPattern(
            host_id=host_id,
            day_of_week=day_of_week,
            start_time=start_time,
            end_time=end_time,
            is_active=True,
        )
        db.add(pattern)
        created.append(pattern)

    await db.commit()
    for pattern in created:
        await db.refresh(pattern)

    logger.info(f"Replaced availability for host {host_id} with {len(created)} pattern(s)")
    return created
