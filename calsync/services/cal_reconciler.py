"""Makes sure every connected coach has the default event types on Cal.com."""
import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from calsync.core.exceptions import CalApiError, CalCredentialError, ReconcileError
from calsync.models import CoachProfile
from calsync.schemas.event_type import EventTypeCreate, FailedDefault, ReconcileResult
from calsync.services.cal_api import CalApiClient
from calsync.services.cal_event_types import (
    calculate_event_price,
    create_event_type,
    has_active_defaults,
    sync_event_types,
)
from calsync.services.integrations import get_active_integration

logger = logging.getLogger(__name__)

DEFAULT_BUFFER_MINUTES = 5

DEFAULT_EVENT_TYPES = [
    {
        "name": "Coaching Session",
        "description": "A focused 30-minute coaching session to answer your specific questions and provide tailored advice.",
        "length_in_minutes": 30,
        "is_free": False,
        "minimum_booking_notice": 60,
        "required": True,
    },
    {
        "name": "Deep Dive Coaching Call",
        "description": "An in-depth 60-minute coaching session to dive deeper into your challenges and create actionable strategies.",
        "length_in_minutes": 60,
        "is_free": False,
        "minimum_booking_notice": 240,
        "required": True,
    },
    {
        "name": "Get to Know You",
        "description": "A free 15-minute introductory call to discuss your goals and how I can help you achieve them.",
        "length_in_minutes": 15,
        "is_free": True,
        "minimum_booking_notice": 60,
        "required": False,
    },
]


async def get_hourly_rate(db: AsyncSession, user_id) -> Optional[float]:
    result = await db.execute(select(CoachProfile.hourly_rate).where(CoachProfile.user_id == user_id))
    return result.scalar_one_or_none()


def _default_event_type(entry: dict, position: int) -> EventTypeCreate:
    return EventTypeCreate(
        name=entry["name"],
        description=entry["description"],
        length_in_minutes=entry["length_in_minutes"],
        is_free=entry["is_free"],
        scheduling="MANAGED",
        position=position,
        before_event_buffer=DEFAULT_BUFFER_MINUTES,
        after_event_buffer=DEFAULT_BUFFER_MINUTES,
        minimum_booking_notice=entry["minimum_booking_notice"],
        max_participants=1,
    )


async def ensure_default_event_types(db: AsyncSession, cal_api: CalApiClient, user_id) -> ReconcileResult:
    """Create the default event types unless they already exist locally or on Cal.com.

    Safe to call any number of times: once the defaults exist nothing is
    created. Paid defaults are skipped while the coach has no hourly rate.
    """
    integration = await get_active_integration(db, user_id, require_managed_user=True)

    if await has_active_defaults(db, integration):
        logger.info(f"Default event types already present for user {user_id}")
        return ReconcileResult(success=True, total_created=0)

    try:
        sync_result = await sync_event_types(db, cal_api, integration)
        if not sync_result.success:
            logger.warning(f"Event type sync before creating defaults failed for user {user_id}: {sync_result.errors}")
    except CalCredentialError:
        raise
    except CalApiError as e:
        logger.warning(f"Could not sync event types from Cal.com for user {user_id}, continuing: {e}")

    if await has_active_defaults(db, integration):
        logger.info(f"Default event types found on Cal.com for user {user_id}")
        return ReconcileResult(success=True, total_created=0)

    hourly_rate = await get_hourly_rate(db, user_id)
    result = ReconcileResult(success=True)
    warnings = []

    for position, entry in enumerate(DEFAULT_EVENT_TYPES):
        if not entry["is_free"] and (not hourly_rate or hourly_rate <= 0):
            logger.info(f"Skipping paid default '{entry['name']}' for user {user_id}: no hourly rate set")
            result.skipped.append(entry["name"])
            continue

        try:
            created = await create_event_type(
                db,
                cal_api,
                integration,
                _default_event_type(entry, position),
                hourly_rate=hourly_rate,
                metadata={"isDefault": True, "isRequired": entry["required"]},
                is_default=True,
            )
        except CalCredentialError:
            raise
        except CalApiError as e:
            logger.error(f"Failed to create default event type '{entry['name']}' for user {user_id}: {e}")
            result.failed.append(FailedDefault(name=entry["name"], error=str(e)))
            continue

        result.created.append(
            {
                "name": entry["name"],
                "cal_event_type_id": created.cal_event_type_id,
                "length_in_minutes": entry["length_in_minutes"],
                "is_free": entry["is_free"],
                "price": 0 if entry["is_free"] else calculate_event_price(hourly_rate, entry["length_in_minutes"]),
            }
        )
        if created.warning:
            warnings.append(created.warning)

    result.total_created = len(result.created)
    if result.failed and not result.created:
        raise ReconcileError(
            "Failed to create default event types",
            detail=[failure.model_dump() for failure in result.failed],
        )
    if warnings:
        result.warning = "; ".join(warnings)

    logger.info(
        f"Default event types for user {user_id}: created={result.total_created} "
        f"skipped={len(result.skipped)} failed={len(result.failed)}"
    )
    return result
