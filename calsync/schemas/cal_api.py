"""Validated shapes of Cal.com v2 responses.

Every provider response is parsed into either ``CalSuccess`` or ``CalFailure``
before anything else looks at it, so callers never handle raw envelopes.
"""
from datetime import datetime, timezone
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator

TOKEN_EXPIRED_CODE = "TokenExpiredException"


class CalErrorDetail(BaseModel):
    code: str = "UNKNOWN_ERROR"
    message: str = ""
    details: Any = None


class CalSuccess(BaseModel):
    status: Literal["success"] = "success"
    data: Any = None
    http_status: int = 200


class CalFailure(BaseModel):
    status: Literal["error"] = "error"
    error: CalErrorDetail = Field(default_factory=CalErrorDetail)
    http_status: int = 0

    @property
    def is_token_expired(self) -> bool:
        return self.http_status in (401, 498) or self.error.code == TOKEN_EXPIRED_CODE


CalResponse = Union[CalSuccess, CalFailure]


def parse_cal_response(http_status: int, body: Any) -> CalResponse:
    """Classify a decoded response body into the tagged success/failure types."""
    if not isinstance(body, dict):
        body = {"data": body} if 200 <= http_status < 300 else {"message": str(body or "")}

    if 200 <= http_status < 300 and body.get("status", "success") != "error":
        return CalSuccess(data=body.get("data", body), http_status=http_status)

    raw_error = body.get("error")
    if isinstance(raw_error, dict):
        error = CalErrorDetail(
            code=str(raw_error.get("code") or "UNKNOWN_ERROR"),
            message=str(raw_error.get("message") or ""),
            details=raw_error.get("details"),
        )
    else:
        # Older endpoints answer {"statusCode": 401, "message": "..."} or {"error": "..."}
        error = CalErrorDetail(
            code=str(body.get("code") or raw_error or f"HTTP_{http_status}"),
            message=str(body.get("message") or raw_error or ""),
            details=body.get("details"),
        )
    return CalFailure(error=error, http_status=http_status)


class TokenSet(BaseModel):
    """The access/refresh pair returned by the refresh endpoints."""

    access_token: str = Field(alias="accessToken")
    refresh_token: Optional[str] = Field(default=None, alias="refreshToken")
    access_token_expires_at: datetime = Field(alias="accessTokenExpiresAt")

    model_config = {"populate_by_name": True}

    @field_validator("access_token_expires_at", mode="before")
    @classmethod
    def parse_expiry(cls, v):
        # Cal.com sends epoch milliseconds, some deployments an ISO string
        if isinstance(v, (int, float)) and not isinstance(v, bool):
            return datetime.fromtimestamp(v / 1000, tz=timezone.utc)
        if isinstance(v, str) and v.isdigit():
            return datetime.fromtimestamp(int(v) / 1000, tz=timezone.utc)
        return v

    @field_validator("access_token_expires_at")
    @classmethod
    def ensure_aware(cls, v: datetime) -> datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v


class TokenInfo(BaseModel):
    has_token: bool
    is_expired: bool
    expires_soon: bool
    expires_at: Optional[datetime] = None
    managed_user_id: Optional[int] = None


class TokenRefreshRequest(BaseModel):
    force: bool = False


class TokenStatusResponse(BaseModel):
    success: bool = True
    token: TokenInfo
