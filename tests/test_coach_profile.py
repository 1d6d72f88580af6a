"""Profile completion counts a connected calendar and default event types as required."""

from __future__ import annotations

import pytest
from sqlalchemy import select

from calsync.models import CalEventType, CoachProfile
from calsync.services.coach_profile import calculate_profile_completion, get_profile_completion

from .conftest import seed_profile

pytestmark = pytest.mark.asyncio


def _complete_profile() -> CoachProfile:
    return CoachProfile(
        first_name="Jane",
        last_name="Doe",
        bio="Executive coach helping first-time managers find their footing and lead well.",
        profile_image_url="https://cdn.coach.test/jane.png",
        coaching_specialties=["leadership"],
        hourly_rate=75.0,
        years_coaching=6,
    )


async def test_complete_and_bookable():
    completion = calculate_profile_completion(_complete_profile(), calendar_connected=True, has_default_event_types=True)

    assert completion.percentage == 100
    assert completion.can_publish is True
    assert completion.is_bookable is True
    assert completion.missing_required == []


async def test_scheduling_is_required_for_publishing():
    completion = calculate_profile_completion(_complete_profile())

    assert completion.percentage == 83
    assert completion.can_publish is False
    assert completion.is_bookable is False
    assert completion.missing_required == ["calendarConnected", "defaultEventTypes"]


async def test_short_bio_and_missing_optional():
    profile = _complete_profile()
    profile.bio = "Coach."
    profile.years_coaching = None

    completion = calculate_profile_completion(profile, True, True)

    assert completion.missing_required == ["bio"]
    assert completion.missing_optional == ["yearsCoaching"]
    assert completion.percentage == 67


async def test_no_profile_at_all():
    completion = calculate_profile_completion(None)
    assert completion.percentage == 0
    assert len(completion.missing_required) == 8


async def test_stored_percentage_follows_calendar_state(db, session_factory, integration, user_id):
    await seed_profile(session_factory, user_id)

    completion = await get_profile_completion(db, user_id)

    assert completion.percentage == 34
    assert "calendarConnected" not in completion.missing_required
    assert "defaultEventTypes" in completion.missing_required

    db.add(CalEventType(calendar_integration_id=integration.id, name="Coaching Session", is_default=True, is_active=True))
    await db.commit()

    completion = await get_profile_completion(db, user_id)

    assert completion.percentage == 42
    assert completion.is_bookable is True
    async with session_factory() as session:
        stored = (await session.execute(select(CoachProfile).where(CoachProfile.user_id == user_id))).scalar_one()
        assert stored.completion_percentage == 42
