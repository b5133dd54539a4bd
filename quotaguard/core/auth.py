"""Admin key authentication for the rate limit management endpoints.

Keys are validated against a comma-separated list from environment variables.
Admission control itself never authenticates callers: the identity it counts
against is whatever the caller presents.
"""

from __future__ import annotations

import hashlib
import logging
from typing import Annotated

from fastapi import Header, HTTPException, status

from quotaguard.core.config import settings
from quotaguard.core.errors import AuthenticationAppError

logger = logging.getLogger(__name__)

ADMIN_KEY_HEADER = "X-Admin-Key"


def parse_api_keys(keys_string: str | None) -> set[str]:
    """Parse comma-separated API keys into a set.

    Args:
        keys_string: Comma-separated string of API keys, or None.

    Returns:
        Set of trimmed, non-empty API keys.

    Examples:
        >>> parse_api_keys("key1, key2 , key3 ")
        {'key1', 'key2', 'key3'}
        >>> parse_api_keys(None)
        set()
    """
    if not keys_string:
        return set()

    return {key.strip() for key in keys_string.split(",") if key.strip()}


def validate_admin_key(provided_key: str) -> None:
    """Validate that the provided admin key matches configured keys.

    Args:
        provided_key: Admin key to validate.

    Raises:
        AuthenticationAppError: If the key is invalid or no keys are configured.
    """
    if not settings.app.admin_auth_required:
        return

    valid_keys = parse_api_keys(settings.app.admin_api_keys)

    if not valid_keys:
        logger.error(
            "admin_key_validation_failed",
            extra={"reason": "admin_keys_not_configured"},
        )
        raise AuthenticationAppError(
            code="admin_keys_not_configured",
            message="Admin authentication is enabled but no valid keys are configured",
            details={"hint": "Set APP_ADMIN_API_KEYS or disable with APP_ADMIN_AUTH_REQUIRED=false"},
        )

    if provided_key not in valid_keys:
        logger.warning(
            "admin_key_validation_failed",
            extra={
                "reason": "invalid_admin_key",
                "admin_key_hash": hashlib.sha256(provided_key.encode()).hexdigest()[:16],
            },
        )
        raise AuthenticationAppError(
            code="invalid_admin_key",
            message="Invalid or missing admin key",
        )


def is_admin_key(provided_key: str | None) -> bool:
    """Whether ``provided_key`` is one of the configured admin keys.

    Unlike ``validate_admin_key`` this never raises and never passes when no
    keys are configured, even if admin authentication is disabled.
    """
    if not provided_key:
        return False
    return provided_key in parse_api_keys(settings.app.admin_api_keys)


async def verify_admin_key(
    x_admin_key: Annotated[str | None, Header(alias=ADMIN_KEY_HEADER)] = None,
) -> None:
    """FastAPI dependency guarding the admin endpoints.

    Raises:
        HTTPException: 403 Forbidden if authentication fails.
    """
    if not settings.app.admin_auth_required:
        logger.debug("admin_auth.skipped", extra={"reason": "auth_required_false"})
        return

    if not x_admin_key:
        logger.warning("admin_auth.missing_key")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Missing admin key. Provide X-Admin-Key header.",
        )

    try:
        validate_admin_key(x_admin_key)
    except AuthenticationAppError as exc:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=exc.message,
        ) from exc
