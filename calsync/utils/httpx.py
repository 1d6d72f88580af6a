import httpx

from calsync.core.config import settings

_shared_http_client: httpx.AsyncClient | None = None


def cal_url(path: str) -> str:
    return f"{settings.CAL_API_BASE_URL.rstrip('/')}/{path.lstrip('/')}"


def get_cal_headers(access_token: str) -> dict[str, str]:
    """Headers for calls made on behalf of a managed user."""
    return {
        "Authorization": f"Bearer {access_token}",
        "cal-api-version": settings.CAL_API_VERSION,
        "Content-Type": "application/json",
    }


def get_cal_client_headers() -> dict[str, str]:
    """Headers for platform calls authenticated with the OAuth client secret."""
    return {
        "x-cal-client-id": settings.CAL_CLIENT_ID,
        "x-cal-secret-key": settings.CAL_CLIENT_SECRET,
        "Content-Type": "application/json",
    }


def get_http_client() -> httpx.AsyncClient:
    global _shared_http_client
    if _shared_http_client is None:
        _shared_http_client = httpx.AsyncClient(timeout=settings.CAL_HTTP_TIMEOUT_SECONDS)
    return _shared_http_client


async def close_http_client():
    global _shared_http_client
    if _shared_http_client is not None:
        await _shared_http_client.aclose()
        _shared_http_client = None
