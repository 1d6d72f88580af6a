from sqlalchemy import String, Text, Integer, Boolean, DateTime, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from typing import Optional
from datetime import datetime, timezone
import uuid
from calsync.core.database import Base

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)

class CalendarIntegration(Base):
    __tablename__ = "calendar_integrations"
    __table_args__ = (
        UniqueConstraint("user_id", "provider", name="uq_calendar_integration_user_provider"),
    )

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(index=True)
    provider: Mapped[str] = mapped_column(String, default="CAL")
    cal_managed_user_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    cal_username: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    # Both tokens are Fernet-encrypted, see calsync.utils.encryption
    cal_access_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    cal_refresh_token: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    cal_access_token_expires_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    time_zone: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    default_schedule_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    week_start: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    time_format: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    locale: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    sync_enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    last_synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
