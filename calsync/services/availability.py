"""Weekly availability: slot validation, timezone resolution, Cal.com schedule mapping."""
import logging
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from calsync.core.config import settings
from calsync.core.exceptions import CalApiError, IntegrationNotFound, InvalidTimeSlot
from calsync.models import CalendarIntegration, CoachingAvailabilitySchedule
from calsync.schemas.availability import WEEKDAYS, AvailabilityResponse, AvailabilityUpdate, ScheduleResult, TimeSlot
from calsync.services.cal_api import CalApiClient
from calsync.services.integrations import get_active_integration

logger = logging.getLogger(__name__)

DEFAULT_SCHEDULE_NAME = "Working Hours"
LAST_MINUTE_OF_DAY = 23 * 60 + 59

DEFAULT_WEEKLY_AVAILABILITY = {
    day: [{"start": "09:00", "end": "17:00"}] for day in ("MONDAY", "TUESDAY", "WEDNESDAY", "THURSDAY", "FRIDAY")
}


def _to_minutes(hhmm: str) -> int:
    hours, minutes = hhmm[:5].split(":")
    return int(hours) * 60 + int(minutes)


def _to_hhmm(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def validate_time_slot(slot, policy: str = "reject", bump_minutes: Optional[int] = None) -> TimeSlot:
    """Return a slot whose end is strictly after its start.

    ``reject`` raises ``InvalidTimeSlot`` for ``end <= start``; ``bump`` moves
    the end to ``start + bump_minutes`` (capped at 23:59) and only raises if
    that still is not after the start.
    """
    if not isinstance(slot, TimeSlot):
        slot = TimeSlot.model_validate(slot)
    start = _to_minutes(slot.start)
    end = _to_minutes(slot.end)
    if end > start:
        return slot

    if policy != "bump":
        raise InvalidTimeSlot(
            f"End time {slot.end} must be after start time {slot.start}",
            detail={"start": slot.start, "end": slot.end},
        )

    if bump_minutes is None:
        bump_minutes = settings.SLOT_BUMP_MINUTES
    bumped = min(start + bump_minutes, LAST_MINUTE_OF_DAY)
    if bumped <= start:
        raise InvalidTimeSlot(
            f"Cannot fit a slot starting at {slot.start}",
            detail={"start": slot.start, "end": slot.end},
        )
    logger.info(f"Bumped slot end from {slot.end} to {_to_hhmm(bumped)} (start {slot.start})")
    return TimeSlot(start=slot.start, end=_to_hhmm(bumped))


def validate_weekly_availability(weekly: dict, policy: str = "reject") -> dict[str, list[dict]]:
    validated = {}
    for day, slots in weekly.items():
        day_key = day.upper()
        if day_key not in WEEKDAYS:
            raise InvalidTimeSlot(f"Unknown weekday '{day}'")
        checked = [validate_time_slot(slot, policy) for slot in slots]
        validated[day_key] = [s.model_dump() for s in sorted(checked, key=lambda s: s.start)]
    return validated


def resolve_timezone(
    integration_tz: Optional[str] = None,
    schedule_tz: Optional[str] = None,
    browser_tz: Optional[str] = None,
    default: Optional[str] = None,
) -> str:
    """Integration timezone wins, then the schedule's, then the browser's."""
    for candidate in (integration_tz, schedule_tz, browser_tz):
        if candidate:
            return candidate
    return default or settings.DEFAULT_TIMEZONE


def cal_availability_to_weekly(cal_availability: Optional[list[dict]]) -> dict[str, list[dict]]:
    """``[{days: ["Monday"], startTime, endTime}]`` -> ``{"MONDAY": [{start, end}]}``."""
    weekly: dict[str, list[dict]] = {}
    for block in cal_availability or []:
        start = str(block.get("startTime", ""))[:5]
        end = str(block.get("endTime", ""))[:5]
        for day in block.get("days") or []:
            day_key = str(day).upper()
            if day_key not in WEEKDAYS:
                continue
            weekly.setdefault(day_key, []).append({"start": start, "end": end})
    for slots in weekly.values():
        slots.sort(key=lambda s: s["start"])
    return weekly


def sanitize_mirrored_availability(weekly: dict[str, list[dict]], policy: str = "reject") -> dict[str, list[dict]]:
    """Check slots that came from Cal.com, dropping the ones that cannot be fixed.

    Unlike ``validate_weekly_availability`` this never raises: a bad block on
    the provider side should not stop the rest of the schedule from mirroring.
    """
    sanitized: dict[str, list[dict]] = {}
    for day, slots in weekly.items():
        kept = []
        for slot in slots:
            try:
                kept.append(validate_time_slot(slot, policy).model_dump())
            except (InvalidTimeSlot, ValueError) as e:
                logger.warning(f"Dropped Cal.com slot {slot} on {day}: {e}")
        if kept:
            sanitized[day] = sorted(kept, key=lambda s: s["start"])
    return sanitized


def weekly_to_cal_availability(weekly: dict) -> list[dict]:
    """Group days that share an interval into one Cal.com availability block."""
    grouped: dict[tuple, list[str]] = {}
    for day in WEEKDAYS:
        for slot in weekly.get(day) or []:
            if isinstance(slot, TimeSlot):
                slot = slot.model_dump()
            grouped.setdefault((slot["start"], slot["end"]), []).append(day.capitalize())
    return [
        {"days": days, "startTime": start, "endTime": end}
        for (start, end), days in sorted(grouped.items())
    ]


def _cal_schedule_list(data: Any) -> list[dict]:
    if isinstance(data, dict):
        data = data.get("schedules") or [data]
    return [schedule for schedule in data or [] if isinstance(schedule, dict)]


async def get_default_schedule(db: AsyncSession, user_id) -> Optional[CoachingAvailabilitySchedule]:
    result = await db.execute(
        select(CoachingAvailabilitySchedule)
        .where(
            CoachingAvailabilitySchedule.user_id == user_id,
            CoachingAvailabilitySchedule.is_default.is_(True),
            CoachingAvailabilitySchedule.active.is_(True),
        )
        .order_by(CoachingAvailabilitySchedule.created_at)
    )
    return result.scalars().first()


async def _commit_or_warn(db: AsyncSession, user_id) -> Optional[str]:
    try:
        await db.commit()
        return None
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(f"Schedule for user {user_id} exists on Cal.com but was not saved locally: {e}")
        return "Schedule exists on Cal.com but could not be saved locally"


def _result(schedule: CoachingAvailabilitySchedule, **kwargs) -> ScheduleResult:
    return ScheduleResult(
        schedule=AvailabilityResponse.model_validate(schedule),
        cal_schedule_id=schedule.cal_schedule_id,
        **kwargs,
    )


async def ensure_default_schedule(
    db: AsyncSession,
    cal_api: CalApiClient,
    user_id,
    slot_policy: str = "reject",
) -> ScheduleResult:
    """Make sure the coach has a default schedule, mirroring or creating it on Cal.com.

    Mirrored slots go through ``slot_policy`` like a coach's own edits; blocks
    that still fail are left out of the local copy.
    """
    integration = await get_active_integration(db, user_id)

    existing = await get_default_schedule(db, user_id)
    if existing is not None:
        return _result(existing, created=False)

    response = await cal_api.get("schedules", user_id=user_id)
    cal_default = next((s for s in _cal_schedule_list(response.data) if s.get("isDefault")), None)

    if cal_default is not None:
        schedule = CoachingAvailabilitySchedule(
            user_id=user_id,
            name=cal_default.get("name") or DEFAULT_SCHEDULE_NAME,
            time_zone=resolve_timezone(integration.time_zone, cal_default.get("timeZone")),
            cal_schedule_id=cal_default.get("id"),
            availability=sanitize_mirrored_availability(
                cal_availability_to_weekly(cal_default.get("availability")), slot_policy
            ),
            overrides=cal_default.get("overrides") or None,
            sync_source="CALCOM",
            last_synced_at=datetime.now(timezone.utc),
            is_default=True,
            active=True,
        )
        created = False
        logger.info(f"Mirrored Cal.com default schedule {cal_default.get('id')} for user {user_id}")
    else:
        time_zone = resolve_timezone(integration.time_zone)
        body = {
            "name": DEFAULT_SCHEDULE_NAME,
            "timeZone": time_zone,
            "isDefault": True,
            "availability": weekly_to_cal_availability(DEFAULT_WEEKLY_AVAILABILITY),
        }
        created_response = await cal_api.post("schedules", body, user_id=user_id)
        cal_schedule = created_response.data if isinstance(created_response.data, dict) else {}
        schedule = CoachingAvailabilitySchedule(
            user_id=user_id,
            name=DEFAULT_SCHEDULE_NAME,
            time_zone=time_zone,
            cal_schedule_id=cal_schedule.get("id"),
            availability={day: list(slots) for day, slots in DEFAULT_WEEKLY_AVAILABILITY.items()},
            sync_source="SYNCED",
            last_synced_at=datetime.now(timezone.utc),
            is_default=True,
            active=True,
        )
        created = True
        logger.info(f"Created default Cal.com schedule {cal_schedule.get('id')} for user {user_id}")

    cal_schedule_id = schedule.cal_schedule_id
    db.add(schedule)
    if cal_schedule_id is not None:
        integration.default_schedule_id = cal_schedule_id
    warning = await _commit_or_warn(db, user_id)
    if warning:
        return ScheduleResult(created=created, cal_schedule_id=cal_schedule_id, warning=warning)
    return _result(schedule, created=created)


async def save_schedule(
    db: AsyncSession,
    cal_api: CalApiClient,
    user_id,
    payload: AvailabilityUpdate,
) -> ScheduleResult:
    """Store a coach's edit locally, then push it to Cal.com.

    A Cal.com failure leaves the local row in place with ``sync_source=LOCAL``
    and comes back as a warning.
    """
    availability = validate_weekly_availability(
        {day: [slot.model_dump() for slot in slots] for day, slots in payload.availability.items()},
        payload.slot_policy,
    )

    integration: Optional[CalendarIntegration]
    try:
        integration = await get_active_integration(db, user_id)
    except IntegrationNotFound:
        integration = None

    schedule = await get_default_schedule(db, user_id)
    created = schedule is None
    if created:
        schedule = CoachingAvailabilitySchedule(user_id=user_id, name=DEFAULT_SCHEDULE_NAME, is_default=True, active=True)
        db.add(schedule)

    schedule.time_zone = resolve_timezone(
        integration.time_zone if integration else None,
        payload.time_zone or schedule.time_zone,
        payload.browser_time_zone,
    )
    schedule.availability = availability
    schedule.sync_source = "LOCAL"
    if payload.name:
        schedule.name = payload.name
    if payload.overrides is not None:
        schedule.overrides = [o.model_dump(exclude_none=True) for o in payload.overrides]
    for field in (
        "allow_custom_duration",
        "minimum_duration",
        "default_duration",
        "maximum_duration",
        "buffer_before",
        "buffer_after",
    ):
        value = getattr(payload, field)
        if value is not None:
            setattr(schedule, field, value)
    await db.commit()

    if integration is None:
        return _result(schedule, created=created, warning="No calendar connected, schedule saved locally only")

    body = {
        "name": schedule.name,
        "timeZone": schedule.time_zone,
        "isDefault": True,
        "availability": weekly_to_cal_availability(availability),
    }
    if schedule.overrides:
        body["overrides"] = [
            {"date": o["date"], "startTime": o.get("start"), "endTime": o.get("end")} for o in schedule.overrides
        ]

    try:
        if schedule.cal_schedule_id:
            await cal_api.patch(f"schedules/{schedule.cal_schedule_id}", body, user_id=user_id)
        else:
            response = await cal_api.post("schedules", body, user_id=user_id)
            if isinstance(response.data, dict) and response.data.get("id") is not None:
                schedule.cal_schedule_id = response.data["id"]
                integration.default_schedule_id = schedule.cal_schedule_id
    except CalApiError as e:
        logger.warning(f"Schedule for user {user_id} saved locally but not pushed to Cal.com: {e}")
        return _result(schedule, created=created, warning="Schedule saved but could not be synced to Cal.com")

    schedule.sync_source = "SYNCED"
    schedule.last_synced_at = datetime.now(timezone.utc)
    warning = await _commit_or_warn(db, user_id)
    if warning:
        # The rollback expired the row; reload the LOCAL copy saved above
        await db.refresh(schedule)
    return _result(schedule, created=created, warning=warning)
