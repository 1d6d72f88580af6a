"""Connected calendars and busy times."""

from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from calsync.core.exceptions import CalendarReconnectRequired
from calsync.services.cal_calendars import flatten_connected_calendars, get_busy_times, get_connected_calendars

pytestmark = pytest.mark.asyncio

GOOGLE = {
    "integration": {"type": "google_calendar", "credentialId": 11, "email": "jane@coach.test"},
    "credentialId": 11,
    "calendars": [
        {"externalId": "jane@coach.test", "name": "Jane", "primary": True, "isSelected": True},
        {"externalId": "holidays@group", "name": "Holidays", "primary": False, "isSelected": False},
        {"name": "No external id"},
    ],
}
OUTLOOK = {
    "integration": {"type": "office365_calendar", "credentialId": 12},
    "calendars": [{"externalId": "work@corp.test", "name": "Work", "isSelected": True}],
}


async def test_flatten_connected_calendars():
    calendars = flatten_connected_calendars({"connectedCalendars": [GOOGLE, OUTLOOK, {"calendars": []}]})

    assert [(c.credential_id, c.external_id) for c in calendars] == [
        (11, "jane@coach.test"),
        (11, "holidays@group"),
        (12, "work@corp.test"),
    ]
    assert calendars[0].primary is True
    assert calendars[0].email == "jane@coach.test"
    assert flatten_connected_calendars(None) == []


async def test_connected_calendars(cal_api, fake_cal, integration, user_id):
    fake_cal.connected_calendars = [GOOGLE]

    calendars = await get_connected_calendars(cal_api, user_id)

    assert [c.name for c in calendars] == ["Jane", "Holidays"]


async def test_busy_times_query_selected_calendars(db, cal_api, fake_cal, integration, user_id):
    fake_cal.connected_calendars = [GOOGLE, OUTLOOK]
    fake_cal.busy_times = [
        {"start": "2026-10-21T18:00:00Z", "end": "2026-10-21T19:00:00Z", "source": "google"},
        {"start": "2026-10-21T14:00:00Z", "end": "2026-10-21T15:00:00Z", "source": "office365"},
        {"start": "2026-10-21T18:00:00Z", "end": "2026-10-21T19:00:00Z", "source": "google"},
        {"start": "2026-10-21T20:00:00Z"},
    ]

    busy = await get_busy_times(db, cal_api, user_id, date(2026, 10, 21), browser_timezone="America/Denver")

    assert [(b.start, b.source) for b in busy] == [
        (datetime(2026, 10, 21, 14, tzinfo=timezone.utc), "office365"),
        (datetime(2026, 10, 21, 18, tzinfo=timezone.utc), "google"),
    ]
    params = fake_cal.requests[-1].url.params
    assert params["dateFrom"] == "2026-10-21"
    assert params["dateTo"] == "2026-10-22"
    assert params["loggedInUsersTz"] == "America/Chicago"
    assert params["calendarsToLoad[0][credentialId]"] == "11"
    assert params["calendarsToLoad[0][externalId]"] == "jane@coach.test"
    assert params["calendarsToLoad[1][externalId]"] == "work@corp.test"
    assert "calendarsToLoad[2][externalId]" not in params


async def test_no_calendars_means_no_busy_times(db, cal_api, fake_cal, integration, user_id):
    assert await get_busy_times(db, cal_api, user_id, date(2026, 10, 21)) == []
    assert fake_cal.count("GET", "calendars/busy-times") == 0


async def test_expired_token_is_retried_transparently(db, cal_api, fake_cal, integration, user_id):
    fake_cal.connected_calendars = [GOOGLE]
    fake_cal.fail("GET", "calendars/busy-times", 498)

    await get_busy_times(db, cal_api, user_id, date(2026, 10, 21))

    assert fake_cal.count("GET", "calendars/busy-times") == 2


async def test_revoked_access_asks_for_reconnect(db, cal_api, fake_cal, integration, user_id):
    fake_cal.reject_all_tokens = True

    with pytest.raises(CalendarReconnectRequired) as exc_info:
        await get_busy_times(db, cal_api, user_id, date(2026, 10, 21))

    assert exc_info.value.code == "RECONNECT_CALENDAR"
