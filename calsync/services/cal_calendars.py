import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from calsync.core.config import settings
from calsync.core.exceptions import CalCredentialError, CalendarReconnectRequired
from calsync.schemas.calendar import BusyInterval, ConnectedCalendar
from calsync.services.availability import resolve_timezone
from calsync.services.cal_api import CalApiClient
from calsync.services.integrations import get_active_integration

logger = logging.getLogger(__name__)


def flatten_connected_calendars(data: Any) -> list[ConnectedCalendar]:
    """Turn the ``connectedCalendars`` tree from ``GET /calendars`` into one flat list."""
    if not isinstance(data, dict):
        return []
    calendars = []
    for connection in data.get("connectedCalendars") or []:
        integration = connection.get("integration") or {}
        credential_id = connection.get("credentialId") or integration.get("credentialId")
        if credential_id is None:
            continue
        for calendar in connection.get("calendars") or []:
            if not calendar.get("externalId"):
                continue
            calendars.append(
                ConnectedCalendar(
                    credential_id=int(credential_id),
                    external_id=calendar["externalId"],
                    integration=integration.get("type"),
                    name=calendar.get("name"),
                    email=calendar.get("email") or integration.get("email"),
                    primary=bool(calendar.get("primary")),
                    is_selected=bool(calendar.get("isSelected")),
                )
            )
    return calendars


async def get_connected_calendars(cal_api: CalApiClient, user_id) -> list[ConnectedCalendar]:
    try:
        response = await cal_api.get("calendars", user_id=user_id)
    except CalCredentialError as e:
        raise CalendarReconnectRequired(e.message, failure=e.failure, method=e.method, path=e.path)
    return flatten_connected_calendars(response.data)


def _as_aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


async def get_busy_times(
    db: AsyncSession,
    cal_api: CalApiClient,
    user_id,
    day: date,
    browser_timezone: Optional[str] = None,
) -> list[BusyInterval]:
    """Busy intervals of the coach's selected calendars for ``day``.

    Expired tokens are handled by the gateway's single retry; if the calendar
    still refuses, ``CalendarReconnectRequired`` tells the UI to ask the coach
    to reconnect.
    """
    integration = await get_active_integration(db, user_id)
    time_zone = resolve_timezone(integration.time_zone, None, browser_timezone)

    calendars = await get_connected_calendars(cal_api, user_id)
    to_load = [c for c in calendars if c.is_selected or c.primary]
    if not to_load:
        logger.info(f"No connected calendars to check for user {user_id}")
        return []

    params = [
        ("dateFrom", day.isoformat()),
        ("dateTo", (day + timedelta(days=settings.BUSY_TIMES_WINDOW_DAYS)).isoformat()),
        ("loggedInUsersTz", time_zone),
    ]
    for index, calendar in enumerate(to_load):
        params.append((f"calendarsToLoad[{index}][credentialId]", str(calendar.credential_id)))
        params.append((f"calendarsToLoad[{index}][externalId]", calendar.external_id))

    try:
        response = await cal_api.get("calendars/busy-times", user_id=user_id, params=params)
    except CalCredentialError as e:
        raise CalendarReconnectRequired(e.message, failure=e.failure, method=e.method, path=e.path)

    intervals = []
    seen = set()
    for raw in response.data or []:
        if not isinstance(raw, dict) or not raw.get("start") or not raw.get("end"):
            continue
        interval = BusyInterval.model_validate(raw)
        interval.start = _as_aware(interval.start)
        interval.end = _as_aware(interval.end)
        key = (interval.start, interval.end, interval.source)
        if key in seen:
            continue
        seen.add(key)
        intervals.append(interval)

    intervals.sort(key=lambda i: (i.start, i.end))
    logger.info(f"Found {len(intervals)} busy intervals for user {user_id} on {day.isoformat()}")
    return intervals
