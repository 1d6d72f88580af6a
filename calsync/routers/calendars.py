from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import date
from typing import Optional

from calsync.core.database import get_db
from calsync.models import User
from calsync.routers.auth import current_active_user
from calsync.schemas.calendar import BusyTimesResponse, CalendarsResponse
from calsync.services.cal_api import CalApiClient, get_cal_api
from calsync.services.cal_calendars import get_busy_times, get_connected_calendars
from calsync.services.integrations import get_active_integration

router = APIRouter()

@router.get("", response_model=CalendarsResponse)
async def list_calendars(
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_db),
    cal_api: CalApiClient = Depends(get_cal_api),
):
    await get_active_integration(db, user.id)
    return CalendarsResponse(calendars=await get_connected_calendars(cal_api, user.id))

@router.get("/busy-times", response_model=BusyTimesResponse)
async def busy_times(
    day: date = Query(..., alias="date"),
    timezone: Optional[str] = Query(None, description="Browser timezone, used when the calendar has none"),
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_db),
    cal_api: CalApiClient = Depends(get_cal_api),
):
    intervals = await get_busy_times(db, cal_api, user.id, day, browser_timezone=timezone)
    return BusyTimesResponse(busy_times=intervals)
