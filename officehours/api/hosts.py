"""Host endpoints."""
from datetime import timedelta
from typing import List
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from officehours.core.config import settings
from officehours.core.database import get_db
from officehours.core.errors import CalendarFetchFailed
from officehours.core.timeutils import utcnow
from officehours.models.host import Host
from officehours.schemas.host import (
    BusySyncResult,
    HostCreate,
    HostInDB,
    HostUpdate,
    PatternInDB,
    PatternsReplace,
)
from officehours.services.busy_cache import busy_block_cache
from officehours.services.pattern_store import get_active_patterns, replace_patterns

router = APIRouter(prefix="/hosts", tags=["hosts"])


async def _get_host_or_404(db: AsyncSession, host_id: int) -> Host:
    result = await db.execute(select(Host).where(Host.id == host_id))
    host = result.scalar_one_or_none()

    if not host:
        raise HTTPException(status_code=404, detail="Host not found")

    return host


@router.post("", response_model=HostInDB, status_code=201)
async def create_host(
    host: HostCreate,
    db: AsyncSession = Depends(get_db),
):
    """
    Create a new host.

    Args:
        host: Host data
        db: Database session

    Returns:
        Created host
    """
    email = host.email.strip().lower()

    # Check if host already exists
    result = await db.execute(select(Host).where(Host.email == email))
    existing_host = result.scalar_one_or_none()

    if existing_host:
        raise HTTPException(
            status_code=400,
            detail=f"Host with email {email} already exists (ID: {existing_host.id})",
        )

    db_host = Host(**{**host.model_dump(), "email": email})
    db.add(db_host)
    await db.commit()
    await db.refresh(db_host)

    return db_host


@router.get("", response_model=List[HostInDB])
async def list_hosts(
    skip: int = 0,
    limit: int = 100,
    db: AsyncSession = Depends(get_db),
):
    """List hosts."""
    result = await db.execute(select(Host).order_by(Host.id).offset(skip).limit(limit))
    return result.scalars().all()


@router.get("/{host_id}", response_model=HostInDB)
async def get_host(
    host_id: int,
    db: AsyncSession = Depends(get_db),
):
    """Get a specific host by ID."""
    return await _get_host_or_404(db, host_id)


@router.patch("/{host_id}", response_model=HostInDB)
async def update_host(
    host_id: int,
    host_update: HostUpdate,
    db: AsyncSession = Depends(get_db),
):
    """
    Update a host's settings.

    Changing the connected calendar drops the busy cache's sync history so
    the next read refetches.

    Args:
        host_id: Host ID
        host_update: Fields to update
        db: Database session

    Returns:
        Updated host
    """
    host = await _get_host_or_404(db, host_id)

    update_data = host_update.model_dump(exclude_unset=True)
    calendar_changed = "calendar_id" in update_data and update_data["calendar_id"] != host.calendar_id
    for field, value in update_data.items():
        setattr(host, field, value)

    await db.commit()
    await db.refresh(host)

    if calendar_changed:
        await busy_block_cache.invalidate(db, host.id)

    return host


@router.get("/{host_id}/patterns", response_model=List[PatternInDB])
async def get_patterns(
    host_id: int,
    db: AsyncSession = Depends(get_db),
):
    """Active weekly availability patterns of a host."""
    await _get_host_or_404(db, host_id)
    return await get_active_patterns(db, host_id)


@router.put("/{host_id}/patterns", response_model=List[PatternInDB])
async def put_patterns(
    host_id: int,
    body: PatternsReplace,
    db: AsyncSession = Depends(get_db),
):
    """
    Replace a host's weekly availability.

    A weekday without any pattern is open all day; send an empty list to
    clear every restriction.

    Args:
        host_id: Host ID
        body: New patterns
        db: Database session

    Returns:
        The now active patterns
    """
    await _get_host_or_404(db, host_id)
    return await replace_patterns(
        db,
        host_id,
        [(p.day_of_week, p.start_time, p.end_time) for p in body.patterns],
    )


@router.post("/{host_id}/sync-busy", response_model=BusySyncResult)
async def sync_busy(
    host_id: int,
    db: AsyncSession = Depends(get_db),
):
    """
    Refresh a host's busy blocks from the calendar provider now.

    Unlike slot listing, which falls back to the cached snapshot, a manual
    sync reports provider failures.
    """
    host = await _get_host_or_404(db, host_id)

    if not host.calendar_id:
        raise HTTPException(status_code=400, detail="Host has no connected calendar")

    now = utcnow()
    window_start = now - timedelta(days=1)
    window_end = now + timedelta(days=settings.SYNC_DAYS_AHEAD)

    try:
        busy = await busy_block_cache.refresh(db, host, window_start, window_end, now)
    except CalendarFetchFailed as e:
        await db.rollback()
        raise HTTPException(status_code=502, detail=f"Calendar provider failed: {e.message}")
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to sync busy blocks: {str(e)}")

    return BusySyncResult(
        host_id=host.id,
        window_start=window_start,
        window_end=window_end,
        busy_blocks=len(busy),
    )


@router.post("/{host_id}/invalidate-busy", status_code=204)
async def invalidate_busy(
    host_id: int,
    db: AsyncSession = Depends(get_db),
):
    """Force the next read of this host's busy time to hit the provider."""
    await _get_host_or_404(db, host_id)
    await busy_block_cache.invalidate(db, host_id)
