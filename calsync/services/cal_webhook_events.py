"""Booking events pushed by Cal.com to the webhook receiver."""
import hashlib
import hmac
import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from calsync.core.config import settings
from calsync.core.exceptions import WebhookSignatureError
from calsync.models import CalBooking, CalendarIntegration
from calsync.schemas.webhook import CalWebhookEvent, WebhookReceiptResponse

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Cal-Signature-256"

HANDLED_TRIGGERS = ("BOOKING_CREATED", "BOOKING_RESCHEDULED", "BOOKING_CANCELLED")


def verify_signature(raw_body: bytes, signature: Optional[str], secret: Optional[str] = None):
    """Check the HMAC-SHA256 of the raw body. No secret configured means no check."""
    secret = settings.CAL_WEBHOOK_SECRET if secret is None else secret
    if not secret:
        return
    if not signature:
        raise WebhookSignatureError(f"Missing {SIGNATURE_HEADER} header")
    expected = hmac.new(secret.encode(), raw_body, hashlib.sha256).hexdigest()
    if not hmac.compare_digest(expected, signature.strip()):
        raise WebhookSignatureError("Webhook signature does not match")


async def _find_integration(db: AsyncSession, managed_user_id: Optional[int]) -> Optional[CalendarIntegration]:
    if managed_user_id is None:
        return None
    result = await db.execute(
        select(CalendarIntegration).where(
            CalendarIntegration.cal_managed_user_id == managed_user_id,
            CalendarIntegration.is_active.is_(True),
        )
    )
    return result.scalars().first()


async def _get_booking(db: AsyncSession, uid: str) -> Optional[CalBooking]:
    result = await db.execute(select(CalBooking).where(CalBooking.cal_booking_uid == uid))
    return result.scalar_one_or_none()


async def handle_webhook_event(db: AsyncSession, event: CalWebhookEvent) -> WebhookReceiptResponse:
    trigger = event.triggerEvent
    payload = event.payload

    if trigger not in HANDLED_TRIGGERS:
        logger.info(f"Ignoring Cal.com webhook trigger {trigger}")
        return WebhookReceiptResponse(processed=False, trigger=trigger, booking_uid=payload.uid, message="Trigger ignored")

    integration = await _find_integration(db, payload.organizer.id)
    if integration is None:
        logger.warning(f"Cal.com webhook {trigger} for unknown organizer {payload.organizer.id}, acknowledging")
        return WebhookReceiptResponse(processed=False, trigger=trigger, booking_uid=payload.uid, message="Unknown organizer")

    booking = await _get_booking(db, payload.uid)
    if booking is None:
        booking = CalBooking(user_id=integration.user_id, cal_booking_uid=payload.uid)
        db.add(booking)

    attendee = payload.attendees[0] if payload.attendees else None
    booking.cal_event_type_id = payload.eventTypeId
    booking.title = payload.title
    booking.description = payload.description
    booking.start_time = payload.startTime
    booking.end_time = payload.endTime
    booking.attendee_email = attendee.email if attendee else None
    booking.attendee_name = attendee.name if attendee else None
    booking.last_trigger = trigger
    booking.raw_payload = payload.model_dump(mode="json")
    booking.updated_at = datetime.now(timezone.utc)
    if trigger == "BOOKING_CANCELLED":
        booking.status = "CANCELLED"
    else:
        booking.status = (payload.status or "ACCEPTED").upper()

    # A reschedule arrives as a new booking that points at the one it replaces
    previous_uid = (payload.model_extra or {}).get("rescheduleUid")
    if trigger == "BOOKING_RESCHEDULED" and previous_uid and previous_uid != payload.uid:
        previous = await _get_booking(db, previous_uid)
        if previous is not None:
            previous.status = "RESCHEDULED"
            previous.last_trigger = trigger

    await db.commit()
    logger.info(f"Processed Cal.com {trigger} for booking {payload.uid} (user {integration.user_id})")
    return WebhookReceiptResponse(processed=True, trigger=trigger, booking_uid=payload.uid)
