"""API security and authentication dependencies."""

import secrets

import structlog
from fastapi import Header, HTTPException, status

from libris.config import settings

logger = structlog.get_logger(__name__)


async def verify_api_key(x_api_key: str | None = Header(None, description="API key for authentication")) -> None:
    """
    Verify API key from request header.

    Admin endpoints (ingestion triggers, source configuration, extraction
    jobs) require the key configured in API_KEY. When REQUIRE_API_KEY=false
    the check is bypassed.

    Args:
        x_api_key: API key from X-API-Key header

    Raises:
        HTTPException: 401 if API key is invalid or missing when required,
            500 if the server has no key configured
    """
    if not settings.require_api_key:
        logger.debug("api_key_check_skipped", reason="authentication_disabled")
        return

    if not x_api_key:
        logger.warning("api_key_missing")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="API key is required. Provide it in the X-API-Key header.",
            headers={"WWW-Authenticate": "ApiKey"},
        )

    if not settings.api_key:
        logger.error("api_key_not_configured")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="API authentication is not properly configured",
        )

    # Constant-time comparison
    if not secrets.compare_digest(x_api_key, settings.api_key.get_secret_value()):
        logger.warning(
            "api_key_invalid",
            provided_key_prefix=x_api_key[:8] + "..." if len(x_api_key) > 8 else "***",
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
            headers={"WWW-Authenticate": "ApiKey"},
        )
