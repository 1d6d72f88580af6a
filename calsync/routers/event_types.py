from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List
from uuid import UUID

from calsync.core.database import get_db
from calsync.core.exceptions import EventTypeNotFound
from calsync.models import User
from calsync.routers.auth import current_active_user
from calsync.schemas.event_type import (
    EventTypeCreate,
    EventTypeResponse,
    EventTypeResult,
    EventTypeUpdate,
    ReconcileResult,
    SyncRequest,
    SyncResult,
)
from calsync.services import cal_event_types
from calsync.services.cal_api import CalApiClient, get_cal_api
from calsync.services.cal_reconciler import ensure_default_event_types, get_hourly_rate
from calsync.services.integrations import get_active_integration

router = APIRouter()

@router.get("", response_model=List[EventTypeResponse])
async def list_event_types(
    active_only: bool = False,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_db),
):
    integration = await get_active_integration(db, user.id)
    return await cal_event_types.list_event_types(db, integration, active_only=active_only)

@router.post("", response_model=EventTypeResult)
async def create_event_type(
    event_type: EventTypeCreate,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_db),
    cal_api: CalApiClient = Depends(get_cal_api),
):
    integration = await get_active_integration(db, user.id)
    hourly_rate = None if event_type.is_free or event_type.price else await get_hourly_rate(db, user.id)
    return await cal_event_types.create_event_type(db, cal_api, integration, event_type, hourly_rate=hourly_rate)

@router.post("/sync", response_model=SyncResult)
async def sync_event_types(
    request: SyncRequest = SyncRequest(),
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_db),
    cal_api: CalApiClient = Depends(get_cal_api),
):
    integration = await get_active_integration(db, user.id, require_managed_user=True)
    return await cal_event_types.sync_event_types(db, cal_api, integration, delete_missing=request.delete_missing)

@router.post("/create-default", response_model=ReconcileResult)
async def create_default_event_types(
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_db),
    cal_api: CalApiClient = Depends(get_cal_api),
):
    """Create the default event types if the coach does not have them yet."""
    return await ensure_default_event_types(db, cal_api, user.id)

@router.patch("/{event_type_id}", response_model=EventTypeResult)
async def update_event_type(
    event_type_id: UUID,
    event_type: EventTypeUpdate,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_db),
    cal_api: CalApiClient = Depends(get_cal_api),
):
    integration = await get_active_integration(db, user.id)
    try:
        return await cal_event_types.update_event_type(db, cal_api, integration, event_type_id, event_type)
    except EventTypeNotFound:
        raise HTTPException(status_code=404, detail="Event type not found")

@router.delete("/{event_type_id}", response_model=EventTypeResult)
async def delete_event_type(
    event_type_id: UUID,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_db),
    cal_api: CalApiClient = Depends(get_cal_api),
):
    integration = await get_active_integration(db, user.id)
    try:
        return await cal_event_types.delete_event_type(db, cal_api, integration, event_type_id)
    except EventTypeNotFound:
        raise HTTPException(status_code=404, detail="Event type not found")
