"""Event endpoints."""
from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from officehours.core.database import get_db
from officehours.models.event import Event, EventHost
from officehours.models.host import Host
from officehours.schemas.event import EventCreate, EventHostInDB, EventInDB, EventUpdate

router = APIRouter(prefix="/events", tags=["events"])


async def _event_response(db: AsyncSession, event: Event) -> EventInDB:
    """Event with its co-hosts in co-host order."""
    result = await db.execute(
        select(EventHost).where(EventHost.event_id == event.id).order_by(EventHost.id)
    )
    links = result.scalars().all()

    data = {column.name: getattr(event, column.name) for column in Event.__table__.columns}
    data["hosts"] = [EventHostInDB.model_validate(link) for link in links]
    return EventInDB(**data)


@router.post("", response_model=EventInDB, status_code=201)
async def create_event(
    event: EventCreate,
    db: AsyncSession = Depends(get_db),
):
    """
    Create a new event.

    The order of ``hosts`` is the co-host order used by round-robin
    tie-breaking.

    Args:
        event: Event data and co-hosts
        db: Database session

    Returns:
        Created event
    """
    result = await db.execute(select(Event).where(Event.slug == event.slug))
    if result.scalar_one_or_none():
        raise HTTPException(status_code=400, detail=f"Event with slug '{event.slug}' already exists")

    host_ids = [link.host_id for link in event.hosts]
    if len(set(host_ids)) != len(host_ids):
        raise HTTPException(status_code=400, detail="Duplicate host in event hosts")

    result = await db.execute(select(Host.id).where(Host.id.in_(host_ids)))
    missing = set(host_ids) - set(result.scalars().all())
    if missing:
        raise HTTPException(status_code=404, detail=f"Hosts not found: {sorted(missing)}")

    db_event = Event(**event.model_dump(exclude={"hosts"}))
    db.add(db_event)
    await db.flush()

    # Insert one by one so IDs follow the requested order
    for link in event.hosts:
        db.add(EventHost(event_id=db_event.id, host_id=link.host_id, priority=link.priority))
        await db.flush()

    await db.commit()
    await db.refresh(db_event)

    return await _event_response(db, db_event)


@router.get("/{event_id}", response_model=EventInDB)
async def get_event(
    event_id: int,
    db: AsyncSession = Depends(get_db),
):
    """Get a specific event by ID."""
    result = await db.execute(select(Event).where(Event.id == event_id))
    event = result.scalar_one_or_none()

    if not event:
        raise HTTPException(status_code=404, detail="Event not found")

    return await _event_response(db, event)


@router.patch("/{event_id}", response_model=EventInDB)
async def update_event(
    event_id: int,
    event_update: EventUpdate,
    db: AsyncSession = Depends(get_db),
):
    """
    Update an event's settings.

    Args:
        event_id: Event ID
        event_update: Fields to update
        db: Database session

    Returns:
        Updated event
    """
    result = await db.execute(select(Event).where(Event.id == event_id))
    event = result.scalar_one_or_none()

    if not event:
        raise HTTPException(status_code=404, detail="Event not found")

    update_data = event_update.model_dump(exclude_unset=True)
    for field, value in update_data.items():
        setattr(event, field, value)

    await db.commit()
    await db.refresh(event)

    return await _event_response(db, event)
