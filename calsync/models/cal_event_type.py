from sqlalchemy import String, Text, Integer, Boolean, DateTime, JSON, ForeignKey
from sqlalchemy.orm import Mapped, mapped_column
from typing import Optional
from datetime import datetime, timezone
import uuid
from calsync.core.database import Base

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)

class CalEventType(Base):
    __tablename__ = "cal_event_types"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    calendar_integration_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("calendar_integrations.id", ondelete="cascade"), index=True
    )
    cal_event_type_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    name: Mapped[str] = mapped_column(String)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    length_in_minutes: Mapped[int] = mapped_column(Integer, default=30)
    is_free: Mapped[bool] = mapped_column(Boolean, default=False)
    price: Mapped[int] = mapped_column(Integer, default=0)  # cents
    currency: Mapped[str] = mapped_column(String, default="USD")
    scheduling: Mapped[str] = mapped_column(String, default="MANAGED")  # MANAGED, OFFICE_HOURS, GROUP
    is_default: Mapped[bool] = mapped_column(Boolean, default=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    hidden: Mapped[bool] = mapped_column(Boolean, default=False)
    position: Mapped[int] = mapped_column(Integer, default=0)
    before_event_buffer: Mapped[int] = mapped_column(Integer, default=0)
    after_event_buffer: Mapped[int] = mapped_column(Integer, default=0)
    minimum_booking_notice: Mapped[int] = mapped_column(Integer, default=0)
    min_participants: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    max_participants: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    discount_percentage: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    locations: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    slug: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    # "metadata" is reserved on declarative classes
    event_metadata: Mapped[Optional[dict]] = mapped_column("metadata", JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
