"""Slot listing, availability check, reservation and cancellation endpoints."""
import logging
from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from officehours.core.database import get_db
from officehours.core.errors import ConfigurationMissing, NoHostAvailable, SlotUnavailable
from officehours.core.intervals import TimeInterval
from officehours.core.timeutils import ensure_utc, utcnow
from officehours.schemas.booking import (
    AvailabilityCheckRequest,
    AvailabilityCheckResponse,
    BookingInDB,
    ReserveRequest,
    RoundRobinStats,
    Slot,
    SlotsResponse,
)
from officehours.services.booking_service import booking_service
from officehours.services.constraints import EventConstraints
from officehours.services.reservation_guard import reservation_guard
from officehours.services.round_robin import round_robin_service
from officehours.services.slot_generator import get_event, slot_generator

logger = logging.getLogger(__name__)

router = APIRouter(tags=["scheduling"])


def _conflict(error: Exception) -> HTTPException:
    """409 carrying the typed conflict."""
    reason = error.reason if isinstance(error, SlotUnavailable) else error.message
    return HTTPException(status_code=409, detail={"code": error.code, "reason": reason})


@router.get("/events/{event_id}/available-slots", response_model=SlotsResponse)
async def get_available_slots(
    event_id: int,
    start: Optional[datetime] = Query(default=None, description="Earliest slot start (ISO 8601)"),
    end: Optional[datetime] = Query(default=None, description="Slot starts are before this (ISO 8601)"),
    host_id: Optional[int] = Query(default=None, description="Restrict to one co-host"),
    duration_minutes: Optional[int] = Query(default=None, ge=1, le=1440),
    buffer_before: Optional[int] = Query(default=None, ge=0, le=1440),
    buffer_after: Optional[int] = Query(default=None, ge=0, le=1440),
    db: AsyncSession = Depends(get_db),
):
    """
    List bookable slots of an event.

    The range defaults to ``[now + min notice, now + booking window]``;
    ``range_end`` in the response is exclusive. For round-robin events a
    slot is listed when any co-host is free, for collective events only
    when all of them are.

    Args:
        event_id: Event ID
        start: Range start
        end: Range end
        host_id: Optional co-host filter
        duration_minutes: Override the event's duration
        buffer_before: Override the event's buffer before
        buffer_after: Override the event's buffer after
        db: Database session

    Returns:
        Ordered slots
    """
    now = utcnow()
    try:
        event = await get_event(db, event_id)
        constraints = EventConstraints.from_event(
            event,
            duration_minutes=duration_minutes,
            buffer_before=buffer_before,
            buffer_after=buffer_after,
        )
        default_start, default_end = constraints.default_range(now)
        range_start = ensure_utc(start) if start else default_start
        range_end = ensure_utc(end) if end else default_end
        if range_end < range_start:
            raise HTTPException(status_code=400, detail="end must not be before start")

        slots = await slot_generator.generate_event_slots(
            db,
            event,
            start=range_start,
            end=range_end,
            now=now,
            host_id=host_id,
            duration_minutes=duration_minutes,
            buffer_before=buffer_before,
            buffer_after=buffer_after,
        )
    except HTTPException:
        raise
    except ConfigurationMissing as e:
        raise HTTPException(status_code=404, detail=e.message)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to generate slots for event {event_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to generate slots: {str(e)}")

    return SlotsResponse(
        event_id=event_id,
        host_id=host_id,
        duration_minutes=constraints.duration_minutes,
        range_start=range_start,
        range_end=range_end,
        slots=[Slot(start=slot.start, end=slot.end) for slot in slots],
    )


@router.post("/events/{event_id}/check-availability", response_model=AvailabilityCheckResponse)
async def check_availability(
    event_id: int,
    body: AvailabilityCheckRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Check whether a single candidate can be booked right now.

    Args:
        event_id: Event ID
        body: Candidate range and optional host
        db: Database session

    Returns:
        Availability with a reason when unavailable
    """
    try:
        candidate = TimeInterval(ensure_utc(body.start), ensure_utc(body.end))
        check = await booking_service.check(db, event_id, candidate, host_id=body.host_id)
    except ConfigurationMissing as e:
        raise HTTPException(status_code=404, detail=e.message)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to check availability for event {event_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to check availability: {str(e)}")

    return AvailabilityCheckResponse(available=check.available, reason=check.reason, host_id=check.host_id)


@router.post("/events/{event_id}/reserve", response_model=BookingInDB, status_code=201)
async def reserve(
    event_id: int,
    body: ReserveRequest,
    db: AsyncSession = Depends(get_db),
):
    """
    Reserve a slot.

    Returns 409 with ``{"code": "slot_unavailable", "reason": ...}`` when the
    slot fails validation or was taken concurrently, and
    ``{"code": "no_host_available", ...}`` when no round-robin host is free.

    Args:
        event_id: Event ID
        body: Start, attendee and optional host
        db: Database session

    Returns:
        The booking
    """
    try:
        booking = await booking_service.book(
            db,
            event_id,
            body.start,
            body.attendee_email,
            attendee_name=body.attendee_name,
            host_id=body.host_id,
        )
    except ConfigurationMissing as e:
        raise HTTPException(status_code=404, detail=e.message)
    except (SlotUnavailable, NoHostAvailable) as e:
        raise _conflict(e)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to reserve slot for event {event_id}: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Failed to reserve slot: {str(e)}")

    return booking


@router.get("/events/{event_id}/round-robin/stats", response_model=RoundRobinStats)
async def get_round_robin_stats(
    event_id: int,
    db: AsyncSession = Depends(get_db),
):
    """Booking distribution across co-hosts for the current period."""
    try:
        return await round_robin_service.get_round_robin_stats(db, event_id)
    except ConfigurationMissing as e:
        raise HTTPException(status_code=404, detail=e.message)
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to get round-robin stats: {str(e)}")


@router.post("/bookings/{booking_id}/cancel", response_model=BookingInDB)
async def cancel_booking(
    booking_id: int,
    db: AsyncSession = Depends(get_db),
):
    """
    Cancel a booking. The slot becomes bookable again immediately.

    Args:
        booking_id: Booking ID
        db: Database session

    Returns:
        The cancelled booking
    """
    try:
        return await reservation_guard.cancel(db, booking_id)
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Exception as e:
        raise HTTPException(status_code=500, detail=f"Failed to cancel booking: {str(e)}")
