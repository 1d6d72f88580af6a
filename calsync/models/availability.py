from sqlalchemy import String, Integer, Boolean, DateTime, JSON
from sqlalchemy.orm import Mapped, mapped_column
from typing import Optional
from datetime import datetime, timezone
import uuid
from calsync.core.database import Base

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)

class CoachingAvailabilitySchedule(Base):
    __tablename__ = "coaching_availability_schedules"

    id: Mapped[uuid.UUID] = mapped_column(primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(index=True)
    name: Mapped[str] = mapped_column(String, default="Working Hours")
    time_zone: Mapped[Optional[str]] = mapped_column(String, nullable=True)
    cal_schedule_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    # {"MONDAY": [{"start": "09:00", "end": "17:00"}], ...}
    availability: Mapped[dict] = mapped_column(JSON, default=dict)
    overrides: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    sync_source: Mapped[str] = mapped_column(String, default="LOCAL")  # LOCAL, CALCOM, SYNCED
    last_synced_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    allow_custom_duration: Mapped[bool] = mapped_column(Boolean, default=False)
    minimum_duration: Mapped[int] = mapped_column(Integer, default=30)
    default_duration: Mapped[int] = mapped_column(Integer, default=60)
    maximum_duration: Mapped[int] = mapped_column(Integer, default=120)
    buffer_before: Mapped[int] = mapped_column(Integer, default=0)
    buffer_after: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)
