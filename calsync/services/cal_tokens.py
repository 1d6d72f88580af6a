"""Cal.com managed-user token lifecycle.

Access tokens are short lived. ``ensure_valid_token`` is the only entry point
the rest of the service needs: it hands back a token that stays valid for at
least the configured margin, refreshing (and falling back to a forced
re-authorization) when it does not. A fresh token that already falls inside
the margin is still returned, with a TOKEN_SHORT_LIVED warning.
"""
import logging
import time
from collections import defaultdict, deque
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

import httpx
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from calsync.core.config import settings
from calsync.core.database import get_db_background
from calsync.core.exceptions import (
    CalCredentialError,
    CalRefreshFailed,
    CalTransientError,
    IntegrationNotFound,
)
from calsync.schemas.cal_api import (
    CalErrorDetail,
    CalFailure,
    TokenInfo,
    TokenSet,
    parse_cal_response,
)
from calsync.services.integrations import get_active_integration
from calsync.utils.encryption import decrypt_token, encrypt_token
from calsync.utils.httpx import cal_url, get_cal_client_headers, get_http_client

logger = logging.getLogger(__name__)

IMMINENT_EXPIRY_MINUTES = 2


def _as_utc(value: Union[datetime, int, float, str, None]) -> Optional[datetime]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        expires_at = value
    elif isinstance(value, (int, float)):
        expires_at = datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    else:
        text = str(value).strip()
        if text.isdigit():
            expires_at = datetime.fromtimestamp(int(text) / 1000, tz=timezone.utc)
        else:
            expires_at = datetime.fromisoformat(text.replace("Z", "+00:00"))
    if expires_at.tzinfo is None:
        # SQLite hands back naive datetimes, everything is stored as UTC
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return expires_at


def is_token_expired(expires_at, margin_minutes: Optional[int] = None) -> bool:
    """True when the token expires within ``margin_minutes`` or the expiry is unknown."""
    if margin_minutes is None:
        margin_minutes = settings.CAL_TOKEN_EXPIRY_MARGIN_MINUTES
    try:
        parsed = _as_utc(expires_at)
    except (TypeError, ValueError, OverflowError, OSError):
        logger.warning(f"Unparsable Cal.com token expiry {expires_at!r}, treating token as expired")
        return True
    if parsed is None:
        return True
    return datetime.now(timezone.utc) + timedelta(minutes=margin_minutes) >= parsed


class RefreshTracker:
    """Counts refresh cycles per user to stop refresh loops.

    One instance lives for the whole process; tests create their own or call
    ``reset()``.
    """

    def __init__(self, max_attempts: int = 3, window_seconds: float = 30.0, clock=time.monotonic):
        self.max_attempts = max_attempts
        self.window_seconds = window_seconds
        self._clock = clock
        self._attempts: dict[str, deque] = defaultdict(deque)

    def record(self, user_id) -> int:
        """Register a refresh cycle, raising ``CalRefreshFailed`` past the limit."""
        now = self._clock()
        attempts = self._attempts[str(user_id)]
        while attempts and now - attempts[0] >= self.window_seconds:
            attempts.popleft()
        if len(attempts) >= self.max_attempts:
            logger.warning(
                f"Token refresh loop detected for user {user_id}: "
                f"{len(attempts)} refreshes in the last {self.window_seconds:.0f}s"
            )
            raise CalRefreshFailed("refresh loop detected")
        attempts.append(now)
        return len(attempts)

    def reset(self, user_id=None):
        if user_id is None:
            self._attempts.clear()
        else:
            self._attempts.pop(str(user_id), None)


refresh_tracker = RefreshTracker()


class CalTokenService:
    """Reads, refreshes and persists the Cal.com token pair of a managed user.

    Persistence goes through its own short-lived sessions from
    ``session_factory`` so that a failed token write never rolls back the
    caller's unit of work.
    """

    def __init__(
        self,
        session_factory=get_db_background,
        http_client: Optional[httpx.AsyncClient] = None,
        tracker: Optional[RefreshTracker] = None,
        margin_minutes: Optional[int] = None,
    ):
        self._session_factory = session_factory
        self._http_client = http_client
        self.tracker = tracker or refresh_tracker
        self.margin_minutes = (
            settings.CAL_TOKEN_EXPIRY_MARGIN_MINUTES if margin_minutes is None else margin_minutes
        )

    @property
    def http_client(self) -> httpx.AsyncClient:
        return self._http_client or get_http_client()

    def is_token_expired(self, expires_at, margin_minutes: Optional[int] = None) -> bool:
        return is_token_expired(expires_at, self.margin_minutes if margin_minutes is None else margin_minutes)

    async def _call_token_endpoint(self, kind: str, path: str, user_id, body: Optional[dict] = None) -> TokenSet:
        url = cal_url(path)
        try:
            response = await self.http_client.post(url, json=body, headers=get_cal_client_headers())
        except httpx.RequestError as e:
            logger.error(f"Cal.com {kind} for user {user_id} failed: {e.__class__.__name__}")
            raise CalRefreshFailed(f"{kind} request failed: {e.__class__.__name__}", transient=True)

        try:
            payload = response.json()
        except ValueError:
            payload = None

        parsed = parse_cal_response(response.status_code, payload)
        if isinstance(parsed, CalFailure):
            logger.warning(
                f"Cal.com {kind} for user {user_id} rejected: "
                f"status={response.status_code} code={parsed.error.code}"
            )
            raise CalRefreshFailed(
                f"{kind} rejected by Cal.com: {parsed.error.message or parsed.error.code}",
                status_code=response.status_code,
                body=parsed.error.model_dump(),
            )

        try:
            return TokenSet.model_validate(parsed.data)
        except ValidationError:
            # Do not attach the body, it may hold a usable token
            logger.error(f"Cal.com {kind} for user {user_id} returned a malformed token body")
            raise CalRefreshFailed(f"{kind} returned a malformed body", status_code=response.status_code)

    async def refresh_access_token(self, user_id) -> TokenSet:
        """Exchange the stored refresh token for a new pair and persist it."""
        async with self._session_factory() as session:
            integration = await get_active_integration(session, user_id)
            refresh_token = decrypt_token(integration.cal_refresh_token)

        if not refresh_token:
            raise CalRefreshFailed("No refresh token stored for this integration")

        tokens = await self._call_token_endpoint(
            "token refresh",
            f"oauth/{settings.CAL_CLIENT_ID}/refresh",
            user_id,
            body={"refreshToken": refresh_token},
        )
        await self.update_tokens(user_id, tokens)
        logger.info(f"Refreshed Cal.com token for user {user_id}, expires at {tokens.access_token_expires_at.isoformat()}")
        return tokens

    async def force_reauthorize(self, user_id) -> TokenSet:
        """Ask the platform to mint a new pair for the managed user, no refresh token needed."""
        async with self._session_factory() as session:
            integration = await get_active_integration(session, user_id)
            managed_user_id = integration.cal_managed_user_id

        if not managed_user_id:
            raise CalRefreshFailed("Integration has no managed user id to force-refresh")

        tokens = await self._call_token_endpoint(
            "forced token refresh",
            f"oauth-clients/{settings.CAL_CLIENT_ID}/users/{managed_user_id}/force-refresh",
            user_id,
        )
        await self.update_tokens(user_id, tokens)
        logger.info(f"Force-refreshed Cal.com token for user {user_id}")
        return tokens

    async def _refresh_with_fallback(self, user_id) -> TokenSet:
        self.tracker.record(user_id)
        try:
            return await self.refresh_access_token(user_id)
        except CalRefreshFailed as first:
            logger.warning(f"Token refresh failed for user {user_id} ({first.message}), trying force-refresh")
            try:
                return await self.force_reauthorize(user_id)
            except CalRefreshFailed as second:
                self._raise_refresh_failure(user_id, first, second)

    @staticmethod
    def _raise_refresh_failure(user_id, first: CalRefreshFailed, second: CalRefreshFailed):
        attempts = [
            {"step": "refresh", "message": first.message, "status": first.status_code, "body": first.body},
            {"step": "force_refresh", "message": second.message, "status": second.status_code, "body": second.body},
        ]
        if first.transient and second.transient:
            failure = CalFailure(
                error=CalErrorDetail(
                    code="TOKEN_REFRESH_UNAVAILABLE",
                    message="Cal.com could not be reached to refresh the token",
                    details=attempts,
                ),
                http_status=second.status_code or 503,
            )
            logger.error(f"Token refresh unavailable for user {user_id}, both attempts hit transient errors")
            raise CalTransientError(failure.error.message, failure=failure)

        failure = CalFailure(
            error=CalErrorDetail(
                code="TOKEN_REFRESH_FAILED",
                message="Calendar connection expired, please reconnect your calendar",
                details=attempts,
            ),
            http_status=401,
        )
        logger.error(f"Token refresh and force-refresh both failed for user {user_id}, reconnect required")
        raise CalCredentialError(failure.error.message, failure=failure)

    async def ensure_valid_token(self, user_id, force_refresh: bool = False) -> str:
        async with self._session_factory() as session:
            integration = await get_active_integration(session, user_id)
            access_token = decrypt_token(integration.cal_access_token)
            expires_at = integration.cal_access_token_expires_at

        if access_token and not force_refresh and not self.is_token_expired(expires_at):
            return access_token

        logger.info(f"Cal.com token for user {user_id} needs refresh (forced={force_refresh})")
        tokens = await self._refresh_with_fallback(user_id)
        if self.is_token_expired(tokens.access_token_expires_at):
            # Still usable for now, but the next call will refresh again
            logger.warning(
                f"TOKEN_SHORT_LIVED user={user_id} expires_at={tokens.access_token_expires_at.isoformat()} "
                f"margin_minutes={self.margin_minutes}"
            )
        return tokens.access_token

    async def update_tokens(self, user_id, tokens: TokenSet) -> bool:
        """Persist a refreshed pair. Failures are logged, never raised."""
        try:
            async with self._session_factory() as session:
                integration = await get_active_integration(session, user_id)
                integration.cal_access_token = encrypt_token(tokens.access_token)
                # Cal.com may or may not rotate the refresh token
                if tokens.refresh_token:
                    integration.cal_refresh_token = encrypt_token(tokens.refresh_token)
                integration.cal_access_token_expires_at = tokens.access_token_expires_at
                integration.updated_at = datetime.now(timezone.utc)
                await session.commit()
            return True
        except (SQLAlchemyError, IntegrationNotFound) as e:
            logger.error(
                f"TOKEN_PERSIST_FAILED user={user_id}: refreshed Cal.com token could not be stored "
                f"({e.__class__.__name__}); stored pair is now stale"
            )
            return False

    async def get_token_info(self, user_id) -> TokenInfo:
        async with self._session_factory() as session:
            integration = await get_active_integration(session, user_id)
        expires_at = integration.cal_access_token_expires_at
        return TokenInfo(
            has_token=bool(integration.cal_access_token),
            is_expired=self.is_token_expired(expires_at),
            expires_soon=self.is_token_expired(expires_at, IMMINENT_EXPIRY_MINUTES),
            expires_at=_as_utc(expires_at),
            managed_user_id=integration.cal_managed_user_id,
        )


def get_token_service() -> CalTokenService:
    return CalTokenService()
