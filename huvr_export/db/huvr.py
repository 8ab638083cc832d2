"""
HUVR Data API client factory and FastAPI dependency.

Configure via environment or .env:
  - HUVR_CLIENT_ID, HUVR_CLIENT_SECRET (required)
  - HUVR_BASE_URL (optional, default https://api.huvrdata.app)
  - HUVR_TIMEOUT_SECONDS, HUVR_PAGE_SIZE (optional)

One client is shared across requests so its access token and connection
pool are reused; it is rebuilt only when the HUVR settings change.
"""

from functools import lru_cache
from typing import Optional

from fastapi import HTTPException, status

from huvr_export.config import settings
from huvr_export.services.huvr_client import HuvrApiClient


@lru_cache(maxsize=1)
def _shared_client(
    client_id: str,
    client_secret: str,
    base_url: str,
    timeout: int,
    refresh_buffer_minutes: int,
    auto_retry: bool,
    page_size: int,
) -> HuvrApiClient:
    return HuvrApiClient(
        client_id,
        client_secret,
        base_url=base_url,
        timeout=timeout,
        token_refresh_buffer_minutes=refresh_buffer_minutes,
        auto_retry_on_token_expiration=auto_retry,
        page_size=page_size,
    )


def get_huvr_client() -> Optional[HuvrApiClient]:
    """The shared HUVR client for the current settings, or None if credentials are not configured."""
    if not settings.huvr_configured:
        return None
    return _shared_client(
        settings.HUVR_CLIENT_ID,
        settings.HUVR_CLIENT_SECRET,
        settings.HUVR_BASE_URL,
        settings.HUVR_TIMEOUT_SECONDS,
        settings.HUVR_TOKEN_REFRESH_BUFFER_MINUTES,
        settings.HUVR_AUTO_RETRY_ON_TOKEN_EXPIRATION,
        settings.HUVR_PAGE_SIZE,
    )


def reset_huvr_client() -> None:
    """Close and drop the shared client; the next request builds a fresh one."""
    if _shared_client.cache_info().currsize:
        client = get_huvr_client()
        if client is not None:
            client.close()
    _shared_client.cache_clear()


def require_huvr() -> HuvrApiClient:
    """
    FastAPI dependency returning the shared HUVR client.
    Responds 503 if credentials are not configured.
    """
    client = get_huvr_client()
    if client is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="HUVR API is not configured. Set HUVR_CLIENT_ID and HUVR_CLIENT_SECRET.",
        )
    return client
