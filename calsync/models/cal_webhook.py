from sqlalchemy import String, Text, Integer, Boolean, DateTime, JSON, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column
from typing import Optional
from datetime import datetime, timezone
import uuid
from calsync.core.database import Base

class CalWebhookSubscription(Base):
    __tablename__ = "cal_webhook_subscriptions"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(index=True)
    calendar_integration_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("calendar_integrations.id", ondelete="cascade"), index=True
    )
    cal_webhook_id: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    subscriber_url: Mapped[str] = mapped_column(Text)
    event_triggers: Mapped[list] = mapped_column(JSON, default=list)
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
