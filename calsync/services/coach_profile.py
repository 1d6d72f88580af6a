"""Coach profile completion, including whether the coach can take bookings."""
import logging
import math
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from calsync.core.exceptions import IntegrationNotFound
from calsync.models import CoachProfile
from calsync.schemas.coach import ProfileCompletionResponse
from calsync.services.cal_event_types import has_active_defaults
from calsync.services.integrations import get_active_integration

logger = logging.getLogger(__name__)

MIN_BIO_LENGTH = 50


def _has_text(value) -> bool:
    return bool(value) and bool(str(value).strip())


# (name, weight, required, check)
PROFILE_FIELDS = [
    ("firstName", 10, True, lambda p, s: _has_text(p.first_name)),
    ("lastName", 10, True, lambda p, s: _has_text(p.last_name)),
    ("bio", 15, True, lambda p, s: bool(p.bio) and len(p.bio.strip()) >= MIN_BIO_LENGTH),
    ("profileImage", 15, True, lambda p, s: _has_text(p.profile_image_url)),
    ("coachingSpecialties", 15, True, lambda p, s: isinstance(p.coaching_specialties, list) and len(p.coaching_specialties) > 0),
    ("hourlyRate", 10, True, lambda p, s: p.hourly_rate is not None and p.hourly_rate > 0),
    ("yearsCoaching", 5, False, lambda p, s: p.years_coaching is not None and p.years_coaching >= 0),
    # Scheduling is satisfied by the calendar itself, not by profile URLs
    ("calendarConnected", 10, True, lambda p, s: s["calendar_connected"]),
    ("defaultEventTypes", 10, True, lambda p, s: s["has_default_event_types"]),
]


def _round(value: float) -> int:
    return math.floor(value + 0.5)


def calculate_profile_completion(
    profile: Optional[CoachProfile],
    calendar_connected: bool = False,
    has_default_event_types: bool = False,
) -> ProfileCompletionResponse:
    """Weighted completion, 80% from required fields and 20% from optional ones."""
    profile = profile or CoachProfile()
    scheduling = {"calendar_connected": calendar_connected, "has_default_event_types": has_default_event_types}

    totals = {True: 0, False: 0}
    completed = {True: 0, False: 0}
    missing_required = []
    missing_optional = []

    for name, weight, required, check in PROFILE_FIELDS:
        totals[required] += weight
        if check(profile, scheduling):
            completed[required] += weight
        elif required:
            missing_required.append(name)
        else:
            missing_optional.append(name)

    required_pct = _round(completed[True] / totals[True] * 100) if totals[True] else 0
    optional_pct = _round(completed[False] / totals[False] * 100) if totals[False] else 0
    percentage = _round(required_pct * 0.8 + optional_pct * 0.2)

    return ProfileCompletionResponse(
        percentage=percentage,
        can_publish=not missing_required,
        is_bookable=calendar_connected and has_default_event_types,
        missing_required=missing_required,
        missing_optional=missing_optional,
    )


async def get_profile_completion(db: AsyncSession, user_id) -> ProfileCompletionResponse:
    result = await db.execute(select(CoachProfile).where(CoachProfile.user_id == user_id))
    profile = result.scalar_one_or_none()

    calendar_connected = False
    has_defaults = False
    try:
        integration = await get_active_integration(db, user_id)
        calendar_connected = True
        has_defaults = await has_active_defaults(db, integration)
    except IntegrationNotFound:
        pass

    completion = calculate_profile_completion(profile, calendar_connected, has_defaults)
    if profile is not None and profile.completion_percentage != completion.percentage:
        profile.completion_percentage = completion.percentage
        await db.commit()
    logger.info(f"Profile completion for user {user_id}: {completion.percentage}% (bookable={completion.is_bookable})")
    return completion
