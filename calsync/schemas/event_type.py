from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Any
from uuid import UUID
from datetime import datetime

SCHEDULING_TYPES = ("MANAGED", "OFFICE_HOURS", "GROUP")

class EventTypeBase(BaseModel):
    name: str = Field(..., min_length=1)
    description: Optional[str] = None
    length_in_minutes: int = Field(30, gt=0)
    is_free: bool = False
    price: int = Field(0, ge=0, description="Price in cents")
    currency: str = "USD"
    scheduling: str = "MANAGED"
    hidden: bool = False
    is_active: bool = True
    position: int = 0
    before_event_buffer: int = 0
    after_event_buffer: int = 0
    minimum_booking_notice: int = 0
    min_participants: Optional[int] = None
    max_participants: Optional[int] = None
    discount_percentage: Optional[int] = None
    locations: Optional[List[dict]] = None

    @field_validator("scheduling")
    @classmethod
    def validate_scheduling(cls, v):
        v = v.upper()
        if v not in SCHEDULING_TYPES:
            raise ValueError(f"scheduling must be one of {', '.join(SCHEDULING_TYPES)}")
        return v

class EventTypeCreate(EventTypeBase):
    pass

class EventTypeUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    length_in_minutes: Optional[int] = Field(None, gt=0)
    is_free: Optional[bool] = None
    price: Optional[int] = Field(None, ge=0)
    hidden: Optional[bool] = None
    is_active: Optional[bool] = None
    position: Optional[int] = None
    before_event_buffer: Optional[int] = None
    after_event_buffer: Optional[int] = None
    minimum_booking_notice: Optional[int] = None
    max_participants: Optional[int] = None
    discount_percentage: Optional[int] = None
    locations: Optional[List[dict]] = None

class EventTypeResponse(BaseModel):
    id: UUID
    calendar_integration_id: UUID
    cal_event_type_id: Optional[int] = None
    name: str
    description: Optional[str] = None
    length_in_minutes: int
    is_free: bool
    price: int
    currency: str
    scheduling: str
    is_default: bool
    is_active: bool
    hidden: bool
    position: int
    before_event_buffer: int
    after_event_buffer: int
    minimum_booking_notice: int
    max_participants: Optional[int] = None
    slug: Optional[str] = None
    locations: Optional[List[dict]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class EventTypeResult(BaseModel):
    success: bool = True
    event_type: Optional[EventTypeResponse] = None
    cal_event_type_id: Optional[int] = None
    warning: Optional[str] = None

class SyncStats(BaseModel):
    fetched_from_cal: int = 0
    fetched_from_db: int = 0
    created_in_db: int = 0
    updated_in_db: int = 0
    deactivated_in_db: int = 0
    deleted_in_db: int = 0
    skipped: int = 0

class SyncRequest(BaseModel):
    delete_missing: bool = False

class SyncResult(BaseModel):
    success: bool = True
    stats: SyncStats = Field(default_factory=SyncStats)
    errors: List[str] = []

class FailedDefault(BaseModel):
    name: str
    error: str

class ReconcileResult(BaseModel):
    success: bool = True
    total_created: int = 0
    created: List[Any] = []
    skipped: List[str] = []
    failed: List[FailedDefault] = []
    warning: Optional[str] = None
