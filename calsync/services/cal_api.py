"""Single chokepoint for outbound Cal.com v2 calls made on behalf of a user."""
import logging
from typing import Any, Optional

import httpx

from calsync.core.exceptions import (
    CalApiError,
    CalCredentialError,
    CalRateLimitError,
    CalTransientError,
    CalValidationError,
)
from calsync.schemas.cal_api import CalErrorDetail, CalFailure, CalResponse, CalSuccess, parse_cal_response
from calsync.services.cal_tokens import CalTokenService, get_token_service
from calsync.utils.httpx import cal_url, get_cal_headers, get_http_client

logger = logging.getLogger(__name__)

VALIDATION_STATUSES = (400, 404, 409, 422)


def classify_failure(failure: CalFailure, method: str, path: str) -> CalApiError:
    """Map a non-auth failure onto the error taxonomy. Nothing here is retried."""
    message = failure.error.message or failure.error.code
    status = failure.http_status
    if status == 429:
        return CalRateLimitError(f"Cal.com rate limit hit: {message}", failure=failure, method=method, path=path)
    if status >= 500 or status == 0:
        return CalTransientError(f"Cal.com unavailable: {message}", failure=failure, method=method, path=path)
    if status in VALIDATION_STATUSES:
        return CalValidationError(message, failure=failure, method=method, path=path)
    if failure.is_token_expired:
        return CalCredentialError(message, failure=failure, method=method, path=path)
    return CalValidationError(message, failure=failure, method=method, path=path)


class CalApiClient:
    def __init__(self, token_service: CalTokenService, http_client: Optional[httpx.AsyncClient] = None):
        self.token_service = token_service
        self._http_client = http_client

    @property
    def http_client(self) -> httpx.AsyncClient:
        return self._http_client or get_http_client()

    async def _send(
        self,
        method: str,
        path: str,
        access_token: str,
        body: Any,
        params: Any,
        user_id,
        attempt: int,
    ) -> CalResponse:
        try:
            response = await self.http_client.request(
                method,
                cal_url(path),
                json=body,
                params=params,
                headers=get_cal_headers(access_token),
            )
        except httpx.RequestError as e:
            logger.error(f"Cal.com {method} {path} user={user_id} attempt={attempt} network error: {e.__class__.__name__}")
            failure = CalFailure(
                error=CalErrorDetail(code="NETWORK_ERROR", message=f"Could not reach Cal.com ({e.__class__.__name__})"),
                http_status=0,
            )
            raise CalTransientError(failure.error.message, failure=failure, method=method, path=path)

        if response.status_code == 204 or not response.content:
            payload = None
        else:
            try:
                payload = response.json()
            except ValueError:
                payload = {"message": response.text[:500]}

        logger.info(f"Cal.com {method} {path} user={user_id} status={response.status_code} attempt={attempt}")
        return parse_cal_response(response.status_code, payload)

    async def request(
        self,
        path: str,
        method: str = "GET",
        body: Any = None,
        *,
        user_id,
        params: Any = None,
    ) -> CalSuccess:
        """Call Cal.com as ``user_id``.

        An expired-token answer (498, 401 or ``TokenExpiredException``) triggers
        one forced refresh and one retry. A second auth failure raises
        ``CalCredentialError``; every other failure is raised without retrying.
        """
        method = method.upper()
        access_token = await self.token_service.ensure_valid_token(user_id)
        result = await self._send(method, path, access_token, body, params, user_id, attempt=1)

        if isinstance(result, CalFailure) and result.is_token_expired:
            logger.info(f"Cal.com rejected token for user {user_id} on {method} {path}, refreshing and retrying once")
            access_token = await self.token_service.ensure_valid_token(user_id, force_refresh=True)
            result = await self._send(method, path, access_token, body, params, user_id, attempt=2)
            if isinstance(result, CalFailure) and result.is_token_expired:
                logger.error(f"Cal.com still rejects the refreshed token for user {user_id}, reconnect required")
                raise CalCredentialError(
                    "Calendar connection expired, please reconnect your calendar",
                    failure=result,
                    method=method,
                    path=path,
                )

        if isinstance(result, CalFailure):
            logger.warning(
                f"Cal.com {method} {path} user={user_id} failed: "
                f"status={result.http_status} code={result.error.code}"
            )
            raise classify_failure(result, method, path)
        return result

    async def get(self, path: str, *, user_id, params: Any = None) -> CalSuccess:
        return await self.request(path, "GET", user_id=user_id, params=params)

    async def post(self, path: str, body: Any = None, *, user_id) -> CalSuccess:
        return await self.request(path, "POST", body, user_id=user_id)

    async def patch(self, path: str, body: Any = None, *, user_id) -> CalSuccess:
        return await self.request(path, "PATCH", body, user_id=user_id)

    async def delete(self, path: str, *, user_id) -> CalSuccess:
        return await self.request(path, "DELETE", user_id=user_id)


def get_cal_api() -> CalApiClient:
    return CalApiClient(get_token_service())
