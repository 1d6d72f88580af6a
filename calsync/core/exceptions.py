"""Error taxonomy for the Cal.com integration layer.

Credential errors mean the user has to reconnect their calendar, transient
errors may be retried by the caller, validation errors never should be.
Routers translate these into HTTP responses in ``main.py``.
"""
from typing import Any, Optional


class CalSyncError(Exception):
    """Base class for every error raised by the integration layer."""

    code = "INTERNAL_ERROR"

    def __init__(self, message: str, *, detail: Any = None):
        super().__init__(message)
        self.message = message
        self.detail = detail


class NotFoundError(CalSyncError):
    code = "NOT_FOUND"


class IntegrationNotFound(NotFoundError):
    pass


class EventTypeNotFound(NotFoundError):
    pass


class IntegrationStateError(CalSyncError):
    """The integration exists but is missing data needed for the operation."""

    code = "INVALID_STATE"


class CalRefreshFailed(CalSyncError):
    """A token refresh call was rejected or returned an unusable body."""

    code = "REFRESH_FAILED"

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        body: Any = None,
        detail: Any = None,
        transient: Optional[bool] = None,
    ):
        super().__init__(message, detail=detail)
        self.status_code = status_code
        self.body = body
        # Network errors and 5xx answers, worth trying again later
        if transient is None:
            transient = status_code is not None and status_code >= 500
        self.transient = transient


class CalApiError(CalSyncError):
    """A provider call failed. ``failure`` is the validated error envelope."""

    code = "PROVIDER_ERROR"

    def __init__(self, message: str, *, failure=None, method: str = "", path: str = ""):
        super().__init__(message, detail=failure.error.model_dump() if failure is not None else None)
        self.failure = failure
        self.method = method
        self.path = path

    @property
    def status_code(self) -> Optional[int]:
        return self.failure.http_status if self.failure is not None else None


class CalCredentialError(CalApiError):
    code = "RECONNECT_CALENDAR"


class CalendarReconnectRequired(CalCredentialError):
    """Raised to the UI layer when a read path cannot recover its credentials."""


class CalValidationError(CalApiError):
    code = "VALIDATION_ERROR"


class CalRateLimitError(CalApiError):
    code = "RATE_LIMITED"


class CalTransientError(CalApiError):
    code = "PROVIDER_UNAVAILABLE"


class ReconcileError(CalSyncError):
    code = "CREATE_ERROR"


class InvalidTimeSlot(CalSyncError, ValueError):
    code = "INVALID_TIME_SLOT"


class WebhookSignatureError(CalSyncError):
    code = "INVALID_SIGNATURE"
