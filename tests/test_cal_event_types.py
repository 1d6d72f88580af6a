"""Event type mapping helpers, provider/local sync and CRUD."""

from __future__ import annotations

import uuid

import pytest
from sqlalchemy import select

from calsync.core.exceptions import EventTypeNotFound
from calsync.models import CalEventType
from calsync.schemas.event_type import EventTypeCreate, EventTypeUpdate
from calsync.services.cal_event_types import (
    calculate_event_price,
    cal_event_type_to_db_fields,
    create_event_type,
    delete_event_type,
    event_type_to_cal_payload,
    generate_slug,
    has_active_defaults,
    sync_event_types,
    update_event_type,
)
from calsync.services.integrations import get_active_integration

from .conftest import fail_commit

pytestmark = pytest.mark.asyncio


def _cal_event_type(cal_id: int, title: str, **extra) -> dict:
    return {"id": cal_id, "title": title, "slug": generate_slug(title), "lengthInMinutes": 30, "price": 0, "hidden": False, **extra}


async def _rows(session_factory) -> dict[int, CalEventType]:
    async with session_factory() as session:
        result = await session.execute(select(CalEventType))
        return {row.cal_event_type_id: row for row in result.scalars().all()}


class TestHelpers:
    async def test_price_in_cents(self):
        assert calculate_event_price(75, 30) == 3750
        assert calculate_event_price(75, 60) == 7500
        assert calculate_event_price(99.99, 45) == 7499
        assert calculate_event_price(0, 30) == 0
        assert calculate_event_price(None, 30) == 0

    async def test_slug(self):
        assert generate_slug("Deep Dive Coaching Call!") == "deep-dive-coaching-call"
        assert generate_slug("  Get to Know You ") == "get-to-know-you"

    async def test_payload_uses_hourly_rate_unless_free(self):
        paid = event_type_to_cal_payload({"name": "Session", "length_in_minutes": 60}, hourly_rate=120)
        free = event_type_to_cal_payload({"name": "Intro", "length_in_minutes": 15, "is_free": True}, hourly_rate=120)

        assert paid["price"] == 12000
        assert paid["slug"] == "session"
        assert paid["currency"] == "USD"
        assert paid["confirmationPolicy"] == {"disabled": True}
        assert paid["customName"] == "Dibs: Session between {Organiser} and {Scheduler}"
        assert free["price"] == 0
        assert "metadata" not in free

    async def test_db_fields_keep_existing_default_flag(self):
        existing = CalEventType(is_default=True)
        fields = cal_event_type_to_db_fields(_cal_event_type(7, "Custom"), existing)
        assert fields["is_default"] is True
        assert cal_event_type_to_db_fields(_cal_event_type(7, "Custom"))["is_default"] is False


async def test_sync_creates_updates_and_deactivates(db, session_factory, cal_api, fake_cal, integration):
    fake_cal.event_types = [_cal_event_type(1, "One"), _cal_event_type(2, "Two")]
    first = await sync_event_types(db, cal_api, integration)
    assert first.stats.created_in_db == 2
    assert first.stats.fetched_from_cal == 2

    fake_cal.event_types = [_cal_event_type(1, "One renamed")]
    second = await sync_event_types(db, cal_api, integration)

    assert second.stats.fetched_from_db == 2
    assert second.stats.updated_in_db == 1
    assert second.stats.deactivated_in_db == 1
    rows = await _rows(session_factory)
    assert rows[1].name == "One renamed"
    assert rows[2].is_active is False

    third = await sync_event_types(db, cal_api, integration)
    assert third.stats.skipped == 1
    assert third.stats.updated_in_db == 0
    assert third.stats.deactivated_in_db == 0


async def test_sync_delete_missing_spares_defaults(db, session_factory, cal_api, fake_cal, integration):
    fake_cal.event_types = [
        _cal_event_type(1, "Default", metadata={"isDefault": True}),
        _cal_event_type(2, "Custom"),
    ]
    await sync_event_types(db, cal_api, integration)

    fake_cal.event_types = []
    result = await sync_event_types(db, cal_api, integration, delete_missing=True)

    assert result.stats.deleted_in_db == 1
    assert result.stats.deactivated_in_db == 1
    rows = await _rows(session_factory)
    assert list(rows) == [1]
    assert rows[1].is_default is True
    assert rows[1].is_active is False


async def test_create_custom_event_type(db, session_factory, cal_api, fake_cal, integration):
    result = await create_event_type(
        db,
        cal_api,
        integration,
        EventTypeCreate(name="Group Workshop", length_in_minutes=90, price=5000, scheduling="group", max_participants=8),
    )

    assert result.success is True
    assert result.warning is None
    assert fake_cal.event_types[0]["price"] == 5000
    assert fake_cal.event_types[0]["schedulingType"] == "GROUP"
    assert fake_cal.event_types[0]["seats"]["seatsPerTimeSlot"] == 8
    assert result.event_type.cal_event_type_id == fake_cal.event_types[0]["id"]
    assert result.event_type.is_default is False


async def test_update_pushes_changes_to_cal(db, session_factory, cal_api, fake_cal, integration):
    created = await create_event_type(db, cal_api, integration, EventTypeCreate(name="Session"))

    result = await update_event_type(
        db, cal_api, integration, created.event_type.id, EventTypeUpdate(name="Longer Session", length_in_minutes=45)
    )

    assert result.event_type.name == "Longer Session"
    assert fake_cal.event_types[0]["title"] == "Longer Session"
    assert fake_cal.event_types[0]["lengthInMinutes"] == 45


async def test_delete_default_only_deactivates(db, session_factory, cal_api, fake_cal, integration):
    created = await create_event_type(db, cal_api, integration, EventTypeCreate(name="Coaching Session"), is_default=True)

    await delete_event_type(db, cal_api, integration, created.event_type.id)

    assert fake_cal.count("DELETE", f"event-types/{created.cal_event_type_id}") == 0
    assert fake_cal.event_types[0]["hidden"] is True
    row = (await _rows(session_factory))[created.cal_event_type_id]
    assert row.is_active is False
    assert row.hidden is True


async def test_delete_custom_removes_everywhere(db, session_factory, cal_api, fake_cal, integration):
    created = await create_event_type(db, cal_api, integration, EventTypeCreate(name="Custom"))

    await delete_event_type(db, cal_api, integration, created.event_type.id)

    assert fake_cal.event_types == []
    assert await _rows(session_factory) == {}


async def test_unknown_event_type(db, cal_api, integration):
    with pytest.raises(EventTypeNotFound):
        await delete_event_type(db, cal_api, integration, uuid.uuid4())


class TestLocalSaveFailures:
    """Cal.com accepted the change but the local commit did not go through."""

    async def test_create_warns_and_keeps_cal_copy(self, db, session_factory, cal_api, fake_cal, integration, monkeypatch):
        fail_commit(monkeypatch, db)

        result = await create_event_type(db, cal_api, integration, EventTypeCreate(name="Session"))

        assert result.success is True
        assert result.warning is not None
        assert result.event_type is None
        assert len(fake_cal.event_types) == 1
        assert result.cal_event_type_id == fake_cal.event_types[0]["id"]
        assert await _rows(session_factory) == {}

    async def test_update_warns_after_patch(self, db, session_factory, cal_api, fake_cal, integration, monkeypatch):
        created = await create_event_type(db, cal_api, integration, EventTypeCreate(name="Session"))
        fail_commit(monkeypatch, db)

        result = await update_event_type(db, cal_api, integration, created.event_type.id, EventTypeUpdate(name="Renamed"))

        assert result.warning is not None
        assert result.cal_event_type_id == created.cal_event_type_id
        assert fake_cal.count("PATCH", f"event-types/{created.cal_event_type_id}") == 1
        assert fake_cal.event_types[0]["title"] == "Renamed"
        assert (await _rows(session_factory))[created.cal_event_type_id].name == "Session"

    async def test_delete_custom_warns_after_cal_delete(self, db, session_factory, cal_api, fake_cal, integration, monkeypatch):
        created = await create_event_type(db, cal_api, integration, EventTypeCreate(name="Custom"))
        fail_commit(monkeypatch, db)

        result = await delete_event_type(db, cal_api, integration, created.event_type.id)

        assert result.warning is not None
        assert fake_cal.count("DELETE", f"event-types/{created.cal_event_type_id}") == 1
        assert fake_cal.event_types == []
        assert created.cal_event_type_id in await _rows(session_factory)

    async def test_delete_default_warns_after_hiding(self, db, session_factory, cal_api, fake_cal, integration, monkeypatch):
        created = await create_event_type(db, cal_api, integration, EventTypeCreate(name="Coaching Session"), is_default=True)
        fail_commit(monkeypatch, db)

        result = await delete_event_type(db, cal_api, integration, created.event_type.id)

        assert result.warning is not None
        assert fake_cal.event_types[0]["hidden"] is True
        assert (await _rows(session_factory))[created.cal_event_type_id].is_active is True

    async def test_failed_sync_leaves_session_integration_usable(self, db, cal_api, fake_cal, integration, user_id, monkeypatch):
        fake_cal.event_types = [_cal_event_type(1, "One")]
        attached = await get_active_integration(db, user_id)
        fail_commit(monkeypatch, db)

        result = await sync_event_types(db, cal_api, attached)

        assert result.success is False
        assert result.errors == ["Database error: OperationalError"]
        # Rolled back rows are reloaded, not lazily fetched
        assert attached.user_id == user_id
        assert await has_active_defaults(db, attached) is False

    async def test_create_with_session_integration(self, db, cal_api, fake_cal, integration, user_id, monkeypatch):
        attached = await get_active_integration(db, user_id)
        fail_commit(monkeypatch, db)

        result = await create_event_type(db, cal_api, attached, EventTypeCreate(name="Session"))

        assert result.warning is not None
        assert attached.cal_username == "coach-jane"
