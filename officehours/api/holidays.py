"""Company holiday endpoints."""
from datetime import date
from typing import List, Optional
from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from officehours.core.database import get_db
from officehours.models.company_holiday import CompanyHoliday
from officehours.schemas.holiday import HolidayCreate, HolidayInDB

router = APIRouter(prefix="/holidays", tags=["holidays"])


@router.get("", response_model=List[HolidayInDB])
async def list_holidays(
    start_date: Optional[date] = Query(default=None),
    end_date: Optional[date] = Query(default=None),
    db: AsyncSession = Depends(get_db),
):
    """List company holidays, optionally within a date range."""
    query = select(CompanyHoliday).order_by(CompanyHoliday.date)
    if start_date:
        query = query.where(CompanyHoliday.date >= start_date)
    if end_date:
        query = query.where(CompanyHoliday.date <= end_date)

    result = await db.execute(query)
    return result.scalars().all()


@router.post("", response_model=HolidayInDB, status_code=201)
async def create_holiday(
    holiday: HolidayCreate,
    db: AsyncSession = Depends(get_db),
):
    """
    Add a company holiday. No host can be booked on that date.

    Args:
        holiday: Date and name
        db: Database session

    Returns:
        Created holiday
    """
    result = await db.execute(select(CompanyHoliday).where(CompanyHoliday.date == holiday.date))
    if result.scalar_one_or_none():
        raise HTTPException(status_code=400, detail=f"A holiday on {holiday.date} already exists")

    db_holiday = CompanyHoliday(**holiday.model_dump())
    db.add(db_holiday)
    await db.commit()
    await db.refresh(db_holiday)

    return db_holiday


@router.delete("/{holiday_id}", status_code=204)
async def delete_holiday(
    holiday_id: int,
    db: AsyncSession = Depends(get_db),
):
    """Delete a company holiday."""
    result = await db.execute(select(CompanyHoliday).where(CompanyHoliday.id == holiday_id))
    holiday = result.scalar_one_or_none()

    if not holiday:
        raise HTTPException(status_code=404, detail="Holiday not found")

    await db.delete(holiday)
    await db.commit()
