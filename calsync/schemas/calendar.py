from pydantic import BaseModel
from typing import Optional, List
from datetime import datetime

class ConnectedCalendar(BaseModel):
    credential_id: int
    external_id: str
    integration: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    primary: bool = False
    is_selected: bool = False

class CalendarsResponse(BaseModel):
    success: bool = True
    calendars: List[ConnectedCalendar] = []

class BusyInterval(BaseModel):
    start: datetime
    end: datetime
    source: Optional[str] = None

class BusyTimesResponse(BaseModel):
    success: bool = True
    busy_times: List[BusyInterval] = []
