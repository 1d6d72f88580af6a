from typing import Literal

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from calsync.core.database import get_db
from calsync.models import User
from calsync.routers.auth import current_active_user
from calsync.schemas.availability import AvailabilityResponse, AvailabilityUpdate, ScheduleResult
from calsync.services.availability import ensure_default_schedule, get_default_schedule, save_schedule
from calsync.services.cal_api import CalApiClient, get_cal_api

router = APIRouter()

@router.get("", response_model=AvailabilityResponse)
async def get_availability(
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_db),
):
    schedule = await get_default_schedule(db, user.id)
    if not schedule:
        raise HTTPException(status_code=404, detail="No availability schedule set")
    return schedule

@router.put("", response_model=ScheduleResult)
async def update_availability(
    payload: AvailabilityUpdate,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_db),
    cal_api: CalApiClient = Depends(get_cal_api),
):
    return await save_schedule(db, cal_api, user.id, payload)

@router.post("/ensure-default", response_model=ScheduleResult)
async def ensure_default_availability(
    slot_policy: Literal["reject", "bump"] = "reject",
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_db),
    cal_api: CalApiClient = Depends(get_cal_api),
):
    return await ensure_default_schedule(db, cal_api, user.id, slot_policy=slot_policy)
