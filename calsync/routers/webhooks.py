from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession
from uuid import UUID
import logging

from calsync.core.database import get_db
from calsync.core.exceptions import NotFoundError, WebhookSignatureError
from calsync.models import User
from calsync.routers.auth import current_active_user
from calsync.schemas.base import ResponseBase
from calsync.schemas.webhook import (
    CalWebhookEvent,
    WebhookListResponse,
    WebhookReceiptResponse,
    WebhookReconcileResult,
)
from calsync.services.cal_api import CalApiClient, get_cal_api
from calsync.services.cal_webhook_events import SIGNATURE_HEADER, handle_webhook_event, verify_signature
from calsync.services.cal_webhooks import (
    delete_webhook_subscription,
    ensure_default_webhook,
    list_webhook_subscriptions,
)

logger = logging.getLogger(__name__)

router = APIRouter()

@router.get("", response_model=WebhookListResponse)
async def list_webhooks(
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_db),
):
    return WebhookListResponse(webhooks=await list_webhook_subscriptions(db, user.id))

@router.post("", response_model=WebhookReconcileResult)
async def create_default_webhook(
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_db),
    cal_api: CalApiClient = Depends(get_cal_api),
):
    """Register the booking webhook unless it already exists."""
    return await ensure_default_webhook(db, cal_api, user.id)

@router.delete("/{subscription_id}", response_model=ResponseBase)
async def delete_webhook(
    subscription_id: UUID,
    user: User = Depends(current_active_user),
    db: AsyncSession = Depends(get_db),
    cal_api: CalApiClient = Depends(get_cal_api),
):
    try:
        warning = await delete_webhook_subscription(db, cal_api, user.id, subscription_id)
    except NotFoundError:
        raise HTTPException(status_code=404, detail="Webhook subscription not found")
    return ResponseBase(success=True, message="Webhook deleted", warning=warning)

@router.post("/receiver", response_model=WebhookReceiptResponse)
async def receive_webhook(request: Request, db: AsyncSession = Depends(get_db)):
    """Public endpoint Cal.com posts booking events to."""
    raw_body = await request.body()
    try:
        verify_signature(raw_body, request.headers.get(SIGNATURE_HEADER))
    except WebhookSignatureError as e:
        logger.warning(f"Rejected Cal.com webhook: {e.message}")
        raise HTTPException(status_code=401, detail=e.message)

    try:
        event = CalWebhookEvent.model_validate_json(raw_body)
    except ValidationError as e:
        logger.warning(f"Invalid Cal.com webhook payload: {e.error_count()} errors")
        raise HTTPException(status_code=400, detail="Invalid webhook payload")

    return await handle_webhook_event(db, event)
