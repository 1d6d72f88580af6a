"""Shared fixtures: in-memory database, a fake Cal.com API and a seeded coach."""

from __future__ import annotations

import json
import os
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any

# Settings are read at import time
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["CAL_API_BASE_URL"] = "https://api.cal.test/v2"
os.environ["CAL_CLIENT_ID"] = "test-client"
os.environ["CAL_CLIENT_SECRET"] = "test-client-secret"
os.environ["CAL_WEBHOOK_SECRET"] = ""
os.environ["FRONTEND_URL"] = "https://coach.test"

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import calsync.models  # noqa: F401
from calsync.core.database import Base
from calsync.models import CalendarIntegration, CoachProfile
from calsync.services.cal_api import CalApiClient
from calsync.services.cal_tokens import CalTokenService, RefreshTracker
from calsync.utils.encryption import encrypt_token

CLIENT_ID = "test-client"
MANAGED_USER_ID = 101
CAL_USERNAME = "coach-jane"


def _epoch_ms(dt: datetime) -> int:
    return int(dt.timestamp() * 1000)


class FakeCal:
    """In-memory Cal.com v2 API. Every request is recorded in ``calls``."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []
        self.requests: list[httpx.Request] = []
        self.valid_access_token = "access-0"
        self.token_counter = 0
        self.token_lifetime = timedelta(minutes=60)
        self.refresh_status = 200
        self.force_refresh_status = 200
        self.expired_status = 498
        self.reject_all_tokens = False
        self.event_types: list[dict] = []
        self.webhooks: list[dict] = []
        self.schedules: list[dict] = []
        self.connected_calendars: list[dict] = []
        self.busy_times: list[dict] = []
        self._failures: dict[tuple[str, str], list[tuple[int, Any]]] = {}
        self._next_id = 1000

    # Test helpers

    def fail(self, method: str, path: str, status: int, body: Any = None, times: int = 1) -> None:
        queue = self._failures.setdefault((method.upper(), path), [])
        for _ in range(times):
            queue.append((status, body if body is not None else {"status": "error", "error": {"code": f"HTTP_{status}", "message": "boom"}}))

    def count(self, method: str, path: str) -> int:
        return sum(1 for call in self.calls if call == (method.upper(), path))

    def new_id(self) -> int:
        self._next_id += 1
        return self._next_id

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    # Request handling

    def _issue_tokens(self) -> dict:
        self.token_counter += 1
        self.valid_access_token = f"access-{self.token_counter}"
        return {
            "accessToken": self.valid_access_token,
            "refreshToken": f"refresh-{self.token_counter}",
            "accessTokenExpiresAt": _epoch_ms(datetime.now(timezone.utc) + self.token_lifetime),
        }

    @staticmethod
    def _ok(data: Any, status: int = 200) -> httpx.Response:
        return httpx.Response(status, json={"status": "success", "data": data})

    def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix("/v2/")
        method = request.method
        self.calls.append((method, path))
        self.requests.append(request)

        queued = self._failures.get((method, path))
        if queued:
            status, body = queued.pop(0)
            return httpx.Response(status, json=body)

        if path == f"oauth/{CLIENT_ID}/refresh":
            if self.refresh_status != 200:
                return httpx.Response(self.refresh_status, json={"status": "error", "error": {"code": "INVALID_REFRESH", "message": "refresh token invalid"}})
            return self._ok(self._issue_tokens())
        if path == f"oauth-clients/{CLIENT_ID}/users/{MANAGED_USER_ID}/force-refresh":
            if self.force_refresh_status != 200:
                return httpx.Response(self.force_refresh_status, json={"status": "error", "error": {"code": "FORCE_REFRESH_FAILED", "message": "nope"}})
            return self._ok(self._issue_tokens())

        if self.reject_all_tokens or request.headers.get("Authorization") != f"Bearer {self.valid_access_token}":
            return httpx.Response(
                self.expired_status,
                json={"status": "error", "error": {"code": "TokenExpiredException", "message": "expired"}},
            )

        body = json.loads(request.content) if request.content else None
        return self._route(method, path, request, body)

    def _route(self, method: str, path: str, request: httpx.Request, body: Any) -> httpx.Response:
        parts = path.split("/")

        if parts[0] == "event-types":
            if method == "GET":
                return self._ok(list(self.event_types))
            if method == "POST":
                created = {"id": self.new_id(), **body}
                self.event_types.append(created)
                return self._ok(created, 201)
            target = next((et for et in self.event_types if str(et["id"]) == parts[1]), None)
            if target is None:
                return httpx.Response(404, json={"status": "error", "error": {"code": "NotFoundException", "message": "not found"}})
            if method == "PATCH":
                target.update(body or {})
                return self._ok(target)
            if method == "DELETE":
                self.event_types.remove(target)
                return self._ok(target)

        if parts[0] == "webhooks":
            if method == "GET":
                return self._ok(list(self.webhooks))
            if method == "POST":
                created = {"id": f"wh-{self.new_id()}", **body}
                self.webhooks.append(created)
                return self._ok(created, 201)
            if method == "DELETE":
                self.webhooks = [hook for hook in self.webhooks if hook["id"] != parts[1]]
                return self._ok({"id": parts[1]})

        if parts[0] == "schedules":
            if method == "GET":
                return self._ok(list(self.schedules))
            if method == "POST":
                created = {"id": self.new_id(), **body}
                self.schedules.append(created)
                return self._ok(created, 201)
            if method == "PATCH":
                target = next(s for s in self.schedules if str(s["id"]) == parts[1])
                target.update(body)
                return self._ok(target)

        if path == "calendars":
            return self._ok({"connectedCalendars": self.connected_calendars, "destinationCalendar": {}})
        if path == "calendars/busy-times":
            return self._ok(list(self.busy_times))

        return httpx.Response(404, json={"status": "error", "error": {"code": "NotFoundException", "message": path}})


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def fake_cal() -> FakeCal:
    return FakeCal()


@pytest_asyncio.fixture
async def http_client(fake_cal):
    async with httpx.AsyncClient(transport=fake_cal.transport) as client:
        yield client


@pytest.fixture
def tracker() -> RefreshTracker:
    return RefreshTracker()


@pytest.fixture
def token_service(session_factory, http_client, tracker) -> CalTokenService:
    return CalTokenService(session_factory=session_factory, http_client=http_client, tracker=tracker)


@pytest.fixture
def cal_api(token_service, http_client) -> CalApiClient:
    return CalApiClient(token_service, http_client)


@pytest.fixture
def user_id() -> uuid.UUID:
    return uuid.uuid4()


async def seed_integration(session_factory, user_id, **overrides) -> CalendarIntegration:
    values = {
        "user_id": user_id,
        "provider": "CAL",
        "cal_managed_user_id": MANAGED_USER_ID,
        "cal_username": CAL_USERNAME,
        "cal_access_token": encrypt_token("access-0"),
        "cal_refresh_token": encrypt_token("refresh-0"),
        "cal_access_token_expires_at": datetime.now(timezone.utc) + timedelta(minutes=60),
        "time_zone": "America/Chicago",
    }
    values.update(overrides)
    async with session_factory() as session:
        integration = CalendarIntegration(**values)
        session.add(integration)
        await session.commit()
        return integration


async def seed_profile(session_factory, user_id, **overrides) -> CoachProfile:
    values = {"user_id": user_id, "first_name": "Jane", "last_name": "Doe", "hourly_rate": 75.0}
    values.update(overrides)
    async with session_factory() as session:
        profile = CoachProfile(**values)
        session.add(profile)
        await session.commit()
        return profile


@pytest_asyncio.fixture
async def integration(session_factory, user_id) -> CalendarIntegration:
    return await seed_integration(session_factory, user_id)


def fail_commit(monkeypatch, session, skip: int = 0, times: int = 1) -> list[int]:
    """Make ``session.commit`` raise after ``skip`` good commits, ``times`` times.

    Returns a one-item list holding the number of failed commits so far.
    """
    original = session.commit
    failed = [0]
    state = {"skip": skip, "left": times}

    async def commit():
        if state["skip"] > 0:
            state["skip"] -= 1
            return await original()
        if state["left"] > 0:
            state["left"] -= 1
            failed[0] += 1
            await session.flush()
            raise OperationalError("COMMIT", {}, Exception("database is locked"))
        return await original()

    monkeypatch.setattr(session, "commit", commit)
    return failed
