from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Dict, Literal
from uuid import UUID
from datetime import datetime
import re

WEEKDAYS = ("MONDAY", "TUESDAY", "WEDNESDAY", "THURSDAY", "FRIDAY", "SATURDAY", "SUNDAY")

_HHMM = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

class TimeSlot(BaseModel):
    start: str
    end: str

    @field_validator("start", "end")
    @classmethod
    def validate_hhmm(cls, v):
        # Cal.com sometimes returns seconds, "09:00:00"
        if len(v) == 8 and v.count(":") == 2:
            v = v[:5]
        if not _HHMM.match(v):
            raise ValueError(f"'{v}' is not a valid HH:mm time")
        return v

class DateOverride(BaseModel):
    date: str
    start: Optional[str] = None
    end: Optional[str] = None

class AvailabilityUpdate(BaseModel):
    name: Optional[str] = None
    time_zone: Optional[str] = None
    browser_time_zone: Optional[str] = None
    availability: Dict[str, List[TimeSlot]]
    overrides: Optional[List[DateOverride]] = None
    slot_policy: Literal["reject", "bump"] = "reject"
    allow_custom_duration: Optional[bool] = None
    minimum_duration: Optional[int] = Field(None, gt=0)
    default_duration: Optional[int] = Field(None, gt=0)
    maximum_duration: Optional[int] = Field(None, gt=0)
    buffer_before: Optional[int] = Field(None, ge=0)
    buffer_after: Optional[int] = Field(None, ge=0)

    @field_validator("availability")
    @classmethod
    def validate_days(cls, v):
        normalized = {}
        for day, slots in v.items():
            key = day.upper()
            if key not in WEEKDAYS:
                raise ValueError(f"Unknown weekday '{day}'")
            normalized[key] = slots
        return normalized

class AvailabilityResponse(BaseModel):
    id: UUID
    user_id: UUID
    name: str
    time_zone: Optional[str] = None
    cal_schedule_id: Optional[int] = None
    availability: Dict[str, List[TimeSlot]]
    overrides: Optional[List[dict]] = None
    sync_source: str
    last_synced_at: Optional[datetime] = None
    is_default: bool
    active: bool
    allow_custom_duration: bool
    minimum_duration: int
    default_duration: int
    maximum_duration: int
    buffer_before: int
    buffer_after: int

    class Config:
        from_attributes = True

class ScheduleResult(BaseModel):
    success: bool = True
    schedule: Optional[AvailabilityResponse] = None
    created: bool = False
    cal_schedule_id: Optional[int] = None
    warning: Optional[str] = None
