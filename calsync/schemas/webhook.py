from pydantic import BaseModel
from typing import Optional, List
from uuid import UUID
from datetime import datetime

class WebhookSubscriptionResponse(BaseModel):
    id: UUID
    cal_webhook_id: Optional[str] = None
    subscriber_url: str
    event_triggers: List[str] = []
    active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class WebhookReconcileResult(BaseModel):
    success: bool = True
    already_exists: bool = False
    cal_webhook_id: Optional[str] = None
    subscriber_url: str
    event_triggers: List[str] = []
    warning: Optional[str] = None

class WebhookListResponse(BaseModel):
    success: bool = True
    webhooks: List[WebhookSubscriptionResponse] = []

# Inbound payloads pushed by Cal.com to the receiver

class CalWebhookPerson(BaseModel):
    id: Optional[int] = None
    name: Optional[str] = None
    email: Optional[str] = None
    timeZone: Optional[str] = None

class CalBookingPayload(BaseModel):
    uid: str
    title: Optional[str] = None
    description: Optional[str] = None
    startTime: Optional[datetime] = None
    endTime: Optional[datetime] = None
    status: Optional[str] = None
    eventTypeId: Optional[int] = None
    organizer: CalWebhookPerson
    attendees: List[CalWebhookPerson] = []

    model_config = {"extra": "allow"}

class CalWebhookEvent(BaseModel):
    triggerEvent: str
    createdAt: Optional[datetime] = None
    payload: CalBookingPayload

class WebhookReceiptResponse(BaseModel):
    success: bool = True
    processed: bool = False
    trigger: Optional[str] = None
    booking_uid: Optional[str] = None
    message: Optional[str] = None
