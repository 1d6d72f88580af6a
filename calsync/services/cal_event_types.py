"""Event types: mapping to and from Cal.com, sync into the local DB, CRUD."""
import logging
import math
import re
from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from calsync.core.config import settings
from calsync.core.exceptions import EventTypeNotFound
from calsync.models import CalendarIntegration, CalEventType
from calsync.schemas.event_type import (
    EventTypeCreate,
    EventTypeResponse,
    EventTypeResult,
    EventTypeUpdate,
    SyncResult,
    SyncStats,
)
from calsync.services.cal_api import CalApiClient

logger = logging.getLogger(__name__)

DEFAULT_COLOR = {"lightThemeHex": "#3B82F6", "darkThemeHex": "#60A5FA"}

# Columns compared before rewriting a synced row
SYNCED_FIELDS = (
    "name",
    "description",
    "length_in_minutes",
    "is_active",
    "hidden",
    "scheduling",
    "position",
    "is_free",
    "price",
    "currency",
    "minimum_booking_notice",
    "before_event_buffer",
    "after_event_buffer",
    "max_participants",
    "discount_percentage",
    "slug",
    "locations",
    "event_metadata",
    "is_default",
)

# EventTypeUpdate field -> Cal.com field
UPDATE_FIELD_MAP = {
    "name": "title",
    "description": "description",
    "length_in_minutes": "lengthInMinutes",
    "hidden": "hidden",
    "price": "price",
    "minimum_booking_notice": "minimumBookingNotice",
    "before_event_buffer": "beforeEventBuffer",
    "after_event_buffer": "afterEventBuffer",
    "locations": "locations",
}


def calculate_event_price(hourly_rate: Optional[float], duration_minutes: int) -> int:
    """Price in cents for a session of ``duration_minutes`` at ``hourly_rate`` dollars."""
    if not hourly_rate or hourly_rate <= 0:
        return 0
    # Half-up rounding
    hourly_rate_cents = math.floor(hourly_rate * 100 + 0.5)
    return math.floor(hourly_rate_cents * duration_minutes / 60 + 0.5)


def generate_slug(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


def default_locations() -> list[dict]:
    return [{"type": "link", "link": settings.DEFAULT_EVENT_LOCATION_URL, "public": True}]


def event_type_to_cal_payload(event_type: dict, hourly_rate: Optional[float] = None) -> dict:
    """Build the Cal.com create payload from local event type fields."""
    name = event_type["name"]
    length = event_type.get("length_in_minutes") or 30
    if event_type.get("is_free"):
        price = 0
    elif hourly_rate:
        price = calculate_event_price(hourly_rate, length)
    else:
        price = event_type.get("price") or 0

    metadata = dict(event_type.get("metadata") or {})
    if event_type.get("discount_percentage"):
        metadata["discountPercentage"] = event_type["discount_percentage"]

    payload = {
        "title": name,
        "slug": event_type.get("slug") or generate_slug(name),
        "description": event_type.get("description") or "",
        "lengthInMinutes": length,
        "hidden": bool(event_type.get("hidden", False)),
        "price": price,
        "currency": event_type.get("currency") or "USD",
        "schedulingType": (event_type.get("scheduling") or "MANAGED").upper(),
        "locations": event_type.get("locations") or default_locations(),
        "minimumBookingNotice": event_type.get("minimum_booking_notice", 60),
        "disableGuests": True,
        "slotInterval": 30,
        "confirmationPolicy": {"disabled": True},
        "color": DEFAULT_COLOR,
        "seats": {
            "seatsPerTimeSlot": event_type.get("max_participants") or 1,
            "showAttendeeInfo": False,
            "showAvailabilityCount": False,
        },
        "customName": f"Dibs: {name} between {{Organiser}} and {{Scheduler}}",
        "useDestinationCalendarEmail": True,
        "hideCalendarEventDetails": False,
    }
    if event_type.get("before_event_buffer") is not None:
        payload["beforeEventBuffer"] = event_type["before_event_buffer"]
    if event_type.get("after_event_buffer") is not None:
        payload["afterEventBuffer"] = event_type["after_event_buffer"]
    if metadata:
        payload["metadata"] = metadata
    return payload


def cal_event_type_to_db_fields(cal_event_type: dict, existing: Optional[CalEventType] = None) -> dict:
    """Map a Cal.com event type onto ``CalEventType`` columns."""
    metadata = cal_event_type.get("metadata") or None
    price = cal_event_type.get("price") or 0
    seats = cal_event_type.get("seats") if isinstance(cal_event_type.get("seats"), dict) else {}
    is_default = bool(existing is not None and existing.is_default) or bool(
        isinstance(metadata, dict) and metadata.get("isDefault") is True
    )
    hidden = bool(cal_event_type.get("hidden", False))
    return {
        "cal_event_type_id": int(cal_event_type["id"]),
        "name": cal_event_type.get("title") or "",
        "description": cal_event_type.get("description") or "",
        "length_in_minutes": cal_event_type.get("lengthInMinutes") or cal_event_type.get("length") or 30,
        "is_active": not hidden,
        "hidden": hidden,
        "scheduling": (cal_event_type.get("schedulingType") or "MANAGED").upper(),
        "position": cal_event_type.get("position") or 0,
        "is_free": price == 0,
        "price": price,
        "currency": cal_event_type.get("currency") or "USD",
        "minimum_booking_notice": cal_event_type.get("minimumBookingNotice") or 0,
        "before_event_buffer": cal_event_type.get("beforeEventBuffer") or 0,
        "after_event_buffer": cal_event_type.get("afterEventBuffer") or 0,
        "max_participants": cal_event_type.get("seatsPerTimeSlot") or seats.get("seatsPerTimeSlot"),
        "discount_percentage": metadata.get("discountPercentage") if isinstance(metadata, dict) else None,
        "slug": cal_event_type.get("slug"),
        "locations": cal_event_type.get("locations") or [],
        "event_metadata": metadata,
        "is_default": is_default,
    }


def _flatten_event_types(data: Any) -> list[dict]:
    if isinstance(data, list):
        return [et for et in data if isinstance(et, dict) and et.get("id") is not None]
    if isinstance(data, dict):
        # Older API versions group event types per profile
        if "eventTypeGroups" in data:
            flat = []
            for group in data.get("eventTypeGroups") or []:
                flat.extend(group.get("eventTypes") or [])
            return _flatten_event_types(flat)
        if "eventTypes" in data:
            return _flatten_event_types(data["eventTypes"])
    return []


async def fetch_cal_event_types(cal_api: CalApiClient, user_id, username: str) -> list[dict]:
    response = await cal_api.get("event-types", user_id=user_id, params={"username": username})
    return _flatten_event_types(response.data)


async def list_event_types(db: AsyncSession, integration: CalendarIntegration, active_only: bool = False) -> list[CalEventType]:
    stmt = select(CalEventType).where(CalEventType.calendar_integration_id == integration.id)
    if active_only:
        stmt = stmt.where(CalEventType.is_active.is_(True))
    result = await db.execute(stmt.order_by(CalEventType.position, CalEventType.created_at))
    return list(result.scalars().all())


async def has_active_defaults(db: AsyncSession, integration: CalendarIntegration) -> bool:
    result = await db.execute(
        select(CalEventType.id).where(
            CalEventType.calendar_integration_id == integration.id,
            CalEventType.is_default.is_(True),
            CalEventType.is_active.is_(True),
        ).limit(1)
    )
    return result.first() is not None


async def sync_event_types(
    db: AsyncSession,
    cal_api: CalApiClient,
    integration: CalendarIntegration,
    cal_event_types: Optional[list[dict]] = None,
    delete_missing: bool = False,
) -> SyncResult:
    """Bring local rows in line with the event types Cal.com holds.

    Rows missing on Cal.com are deactivated, or deleted when ``delete_missing``
    is set. Default event types are only ever deactivated.
    """
    stats = SyncStats()
    user_id = integration.user_id
    if cal_event_types is None:
        cal_event_types = await fetch_cal_event_types(cal_api, user_id, integration.cal_username)
    stats.fetched_from_cal = len(cal_event_types)

    local_rows = await list_event_types(db, integration)
    stats.fetched_from_db = len(local_rows)
    by_cal_id = {row.cal_event_type_id: row for row in local_rows if row.cal_event_type_id is not None}
    seen_ids = set()

    for cal_event_type in cal_event_types:
        cal_id = int(cal_event_type["id"])
        seen_ids.add(cal_id)
        existing = by_cal_id.get(cal_id)
        fields = cal_event_type_to_db_fields(cal_event_type, existing)

        if existing is None:
            db.add(CalEventType(calendar_integration_id=integration.id, **fields))
            stats.created_in_db += 1
            continue

        changed = {key: value for key, value in fields.items() if key in SYNCED_FIELDS and getattr(existing, key) != value}
        if not changed:
            stats.skipped += 1
            continue
        for key, value in changed.items():
            setattr(existing, key, value)
        stats.updated_in_db += 1

    for row in local_rows:
        if row.cal_event_type_id is None or row.cal_event_type_id in seen_ids:
            continue
        if delete_missing and not row.is_default:
            await db.delete(row)
            stats.deleted_in_db += 1
        elif row.is_active:
            row.is_active = False
            stats.deactivated_in_db += 1

    try:
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        await _reload(db, integration)
        logger.error(f"Event type sync for user {user_id} could not be saved: {e}")
        return SyncResult(success=False, stats=stats, errors=[f"Database error: {e.__class__.__name__}"])

    logger.info(f"Event type sync for user {user_id} complete: {stats.model_dump()}")
    return SyncResult(success=True, stats=stats)


async def _get_event_type(db: AsyncSession, integration: CalendarIntegration, event_type_id) -> CalEventType:
    result = await db.execute(
        select(CalEventType).where(
            CalEventType.id == event_type_id,
            CalEventType.calendar_integration_id == integration.id,
        )
    )
    event_type = result.scalar_one_or_none()
    if not event_type:
        raise EventTypeNotFound(f"Event type {event_type_id} not found")
    return event_type


async def _reload(db: AsyncSession, *objects):
    """Re-load objects the caller keeps using after a rollback expired them."""
    for obj in objects:
        if obj in db:
            await db.refresh(obj)


async def _commit_or_warn(db: AsyncSession, what: str, *keep) -> Optional[str]:
    try:
        await db.commit()
        return None
    except SQLAlchemyError as e:
        await db.rollback()
        await _reload(db, *keep)
        logger.error(f"{what} succeeded on Cal.com but the local copy was not saved: {e}")
        return f"{what} succeeded on Cal.com but could not be saved locally"


async def create_event_type(
    db: AsyncSession,
    cal_api: CalApiClient,
    integration: CalendarIntegration,
    data: EventTypeCreate,
    hourly_rate: Optional[float] = None,
    metadata: Optional[dict] = None,
    is_default: bool = False,
) -> EventTypeResult:
    user_id = integration.user_id
    fields = data.model_dump()
    fields["metadata"] = metadata
    payload = event_type_to_cal_payload(fields, hourly_rate)
    response = await cal_api.post("event-types", payload, user_id=user_id)
    cal_data = response.data if isinstance(response.data, dict) else {}
    cal_id = cal_data.get("id")

    event_type = CalEventType(
        calendar_integration_id=integration.id,
        cal_event_type_id=int(cal_id) if cal_id is not None else None,
        name=data.name,
        description=data.description,
        length_in_minutes=data.length_in_minutes,
        is_free=data.is_free,
        price=payload["price"],
        currency=payload["currency"],
        scheduling=payload["schedulingType"],
        is_default=is_default,
        is_active=data.is_active and not data.hidden,
        hidden=data.hidden,
        position=data.position,
        before_event_buffer=data.before_event_buffer,
        after_event_buffer=data.after_event_buffer,
        minimum_booking_notice=data.minimum_booking_notice,
        min_participants=data.min_participants,
        max_participants=data.max_participants,
        discount_percentage=data.discount_percentage,
        locations=payload["locations"],
        slug=cal_data.get("slug") or payload["slug"],
        event_metadata=payload.get("metadata"),
    )
    db.add(event_type)
    warning = await _commit_or_warn(db, f"Creating event type '{data.name}'", integration)
    logger.info(f"Created Cal.com event type {cal_id} ('{data.name}') for user {user_id}")
    return EventTypeResult(
        success=True,
        event_type=EventTypeResponse.model_validate(event_type) if warning is None else None,
        cal_event_type_id=cal_id,
        warning=warning,
    )


async def update_event_type(
    db: AsyncSession,
    cal_api: CalApiClient,
    integration: CalendarIntegration,
    event_type_id,
    data: EventTypeUpdate,
) -> EventTypeResult:
    event_type = await _get_event_type(db, integration, event_type_id)
    cal_id = event_type.cal_event_type_id
    changes = data.model_dump(exclude_unset=True)

    cal_payload = {UPDATE_FIELD_MAP[key]: value for key, value in changes.items() if key in UPDATE_FIELD_MAP}
    if "max_participants" in changes:
        cal_payload["seats"] = {
            "seatsPerTimeSlot": changes["max_participants"] or 1,
            "showAttendeeInfo": False,
            "showAvailabilityCount": False,
        }
    if "is_free" in changes and changes["is_free"]:
        cal_payload["price"] = 0
    if "is_active" in changes and "hidden" not in changes:
        cal_payload["hidden"] = not changes["is_active"]

    if cal_payload and cal_id is not None:
        await cal_api.patch(f"event-types/{cal_id}", cal_payload, user_id=integration.user_id)

    for key, value in changes.items():
        setattr(event_type, key, value)
    if changes.get("is_free"):
        event_type.price = 0
    if "hidden" in changes and "is_active" not in changes:
        event_type.is_active = not changes["hidden"]
    if "is_active" in changes and "hidden" not in changes:
        event_type.hidden = not changes["is_active"]

    warning = await _commit_or_warn(db, f"Updating event type {event_type_id}", integration)
    return EventTypeResult(
        success=True,
        event_type=EventTypeResponse.model_validate(event_type) if warning is None else None,
        cal_event_type_id=cal_id,
        warning=warning,
    )


async def delete_event_type(
    db: AsyncSession,
    cal_api: CalApiClient,
    integration: CalendarIntegration,
    event_type_id,
) -> EventTypeResult:
    """Delete a custom event type. Default event types are hidden and deactivated instead."""
    event_type = await _get_event_type(db, integration, event_type_id)
    cal_id = event_type.cal_event_type_id
    user_id = integration.user_id

    if event_type.is_default:
        if cal_id is not None:
            await cal_api.patch(f"event-types/{cal_id}", {"hidden": True}, user_id=user_id)
        event_type.is_active = False
        event_type.hidden = True
        warning = await _commit_or_warn(db, f"Deactivating default event type {event_type_id}", integration)
        logger.info(f"Deactivated default event type {event_type_id} for user {user_id}")
        return EventTypeResult(success=True, cal_event_type_id=cal_id, warning=warning)

    if cal_id is not None:
        await cal_api.delete(f"event-types/{cal_id}", user_id=user_id)
    await db.delete(event_type)
    warning = await _commit_or_warn(db, f"Deleting event type {event_type_id}", integration)
    logger.info(f"Deleted event type {event_type_id} for user {user_id}")
    return EventTypeResult(success=True, cal_event_type_id=cal_id, warning=warning)
