"""Default Cal.com webhook subscription (booking events pushed back to us)."""
import logging
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from calsync.core.config import settings
from calsync.core.exceptions import NotFoundError
from calsync.models import CalendarIntegration, CalWebhookSubscription
from calsync.schemas.webhook import WebhookReconcileResult
from calsync.services.cal_api import CalApiClient
from calsync.services.integrations import get_active_integration

logger = logging.getLogger(__name__)

REQUIRED_TRIGGERS = ["BOOKING_CREATED", "BOOKING_RESCHEDULED", "BOOKING_CANCELLED"]


def default_subscriber_url() -> str:
    return f"{settings.FRONTEND_URL.rstrip('/')}{settings.API_V1_STR}/cal/webhooks/receiver"


def _is_complete(hook: dict) -> bool:
    triggers = set(hook.get("triggers") or [])
    return bool(hook.get("active", True)) and set(REQUIRED_TRIGGERS).issubset(triggers)


def _webhook_list(data: Any) -> list[dict]:
    if isinstance(data, dict):
        data = data.get("webhooks") or []
    return [hook for hook in data or [] if isinstance(hook, dict)]


async def list_cal_webhooks(cal_api: CalApiClient, user_id) -> list[dict]:
    response = await cal_api.get("webhooks", user_id=user_id)
    return _webhook_list(response.data)


async def _mirror_subscription(db: AsyncSession, integration: CalendarIntegration, hook: dict) -> Optional[str]:
    """Upsert the local copy of a provider webhook. Returns a warning on failure."""
    try:
        result = await db.execute(
            select(CalWebhookSubscription).where(
                CalWebhookSubscription.calendar_integration_id == integration.id,
                CalWebhookSubscription.subscriber_url == hook.get("subscriberUrl"),
            )
        )
        subscription = result.scalars().first()
        if subscription is None:
            subscription = CalWebhookSubscription(
                user_id=integration.user_id,
                calendar_integration_id=integration.id,
                subscriber_url=hook.get("subscriberUrl"),
            )
            db.add(subscription)
        subscription.cal_webhook_id = str(hook["id"]) if hook.get("id") is not None else None
        subscription.event_triggers = list(hook.get("triggers") or [])
        subscription.active = bool(hook.get("active", True))
        await db.commit()
        return None
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Webhook {hook.get('id')} is registered on Cal.com but the local copy was not saved: {e}")
        return "Webhook is registered on Cal.com but could not be saved locally"


async def ensure_default_webhook(db: AsyncSession, cal_api: CalApiClient, user_id) -> WebhookReconcileResult:
    """Register the booking webhook once. A second call reports ``already_exists``."""
    integration = await get_active_integration(db, user_id)
    subscriber_url = default_subscriber_url()

    hooks = await list_cal_webhooks(cal_api, user_id)
    matching = [hook for hook in hooks if hook.get("subscriberUrl") == subscriber_url]

    for hook in matching:
        if _is_complete(hook):
            warning = await _mirror_subscription(db, integration, hook)
            logger.info(f"Default webhook already registered for user {user_id} (id={hook.get('id')})")
            return WebhookReconcileResult(
                already_exists=True,
                cal_webhook_id=str(hook.get("id")),
                subscriber_url=subscriber_url,
                event_triggers=list(hook.get("triggers") or []),
                warning=warning,
            )

    # Same URL but inactive or missing triggers, replace it
    for hook in matching:
        logger.info(f"Replacing incomplete webhook {hook.get('id')} for user {user_id}")
        await cal_api.delete(f"webhooks/{hook['id']}", user_id=user_id)

    body = {"subscriberUrl": subscriber_url, "triggers": REQUIRED_TRIGGERS, "active": True}
    if settings.CAL_WEBHOOK_SECRET:
        body["secret"] = settings.CAL_WEBHOOK_SECRET
    response = await cal_api.post("webhooks", body, user_id=user_id)
    hook = response.data if isinstance(response.data, dict) else {}
    hook.setdefault("subscriberUrl", subscriber_url)
    hook.setdefault("triggers", REQUIRED_TRIGGERS)

    warning = await _mirror_subscription(db, integration, hook)
    logger.info(f"Registered default webhook {hook.get('id')} for user {user_id}")
    return WebhookReconcileResult(
        already_exists=False,
        cal_webhook_id=str(hook["id"]) if hook.get("id") is not None else None,
        subscriber_url=subscriber_url,
        event_triggers=list(hook.get("triggers") or []),
        warning=warning,
    )


async def list_webhook_subscriptions(db: AsyncSession, user_id) -> list[CalWebhookSubscription]:
    integration = await get_active_integration(db, user_id)
    result = await db.execute(
        select(CalWebhookSubscription)
        .where(CalWebhookSubscription.calendar_integration_id == integration.id)
        .order_by(CalWebhookSubscription.created_at)
    )
    return list(result.scalars().all())


async def delete_webhook_subscription(db: AsyncSession, cal_api: CalApiClient, user_id, subscription_id) -> Optional[str]:
    integration = await get_active_integration(db, user_id)
    result = await db.execute(
        select(CalWebhookSubscription).where(
            CalWebhookSubscription.id == subscription_id,
            CalWebhookSubscription.calendar_integration_id == integration.id,
        )
    )
    subscription = result.scalar_one_or_none()
    if not subscription:
        raise NotFoundError(f"Webhook subscription {subscription_id} not found")

    cal_webhook_id = subscription.cal_webhook_id
    if cal_webhook_id:
        await cal_api.delete(f"webhooks/{cal_webhook_id}", user_id=user_id)

    try:
        await db.delete(subscription)
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Webhook {cal_webhook_id} deleted on Cal.com but the local copy remains: {e}")
        return "Webhook was removed from Cal.com but the local copy could not be deleted"
    return None
