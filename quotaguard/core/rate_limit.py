"""Rate limiting dependency for FastAPI routes.

This module wires the admission control service into the HTTP layer.

Design goals:
- Minimal coupling: routes depend on a dependency function only.
- The service returns abstract results; translating a denial into a 429
  response with ``Retry-After`` happens here and in the exception handlers.

Identity is taken from the configured client id header (``X-API-Key`` by
default) and falls back to the client IP. Resource is ``METHOD:path`` with a
lowercased path.
"""

from __future__ import annotations

import logging

from fastapi import Request, Response

from quotaguard.core.auth import ADMIN_KEY_HEADER, is_admin_key
from quotaguard.core.config import RateLimitSettings
from quotaguard.core.errors import RateLimitExceededError
from quotaguard.schemas.admission import AdmissionResult
from quotaguard.services.rate_limit_service import RateLimitService
from quotaguard.utils.rate_limit_keys import UNKNOWN_IDENTIFIER, hash_identity

logger = logging.getLogger(__name__)


def get_rate_limit_service(request: Request) -> RateLimitService:
    """Return the service built at startup and stored on ``app.state``."""
    return request.app.state.rate_limit_service


def get_rate_limit_settings(request: Request) -> RateLimitSettings:
    """Return the rate limit settings the app was created with."""
    return request.app.state.settings.rate_limit


def resolve_identity(request: Request, cfg: RateLimitSettings) -> str:
    """Caller identity: client id header, else client address."""
    header_name = cfg.client_id_header
    if header_name:
        value = request.headers.get(header_name)
        if value and value.strip():
            return value.strip()
    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_IDENTIFIER


def resolve_resource(request: Request) -> str:
    """Resource identifier for the request, e.g. ``GET:/v1/casinos``."""
    path = request.url.path.lower() or "/"
    return f"{request.method}:{path}"


def build_rate_limit_headers(result: AdmissionResult, cfg: RateLimitSettings) -> dict[str, str]:
    """Rate limit response headers for an admission result."""
    return {
        cfg.limit_header_name: str(result.limit),
        cfg.remaining_header_name: str(result.remaining),
        cfg.reset_header_name: str(result.reset_after_seconds),
    }


def admit_or_raise(
    result: AdmissionResult,
    *,
    identity: str,
    resource: str,
    response: Response,
    cfg: RateLimitSettings,
    include_headers: bool = True,
) -> AdmissionResult:
    """Translate an admission result into response headers or a 429.

    Raises:
        RateLimitExceededError: When the result is a denial.
    """
    headers = build_rate_limit_headers(result, cfg) if include_headers and cfg.include_headers else {}

    if result.granted:
        response.headers.update(headers)
        return result

    logger.warning(
        "rate_limit.exceeded",
        extra={
            "identity_hash": hash_identity(identity),
            "resource": resource,
            "limit": result.limit,
            "retry_after_s": result.reset_after_seconds,
        },
    )
    headers["Retry-After"] = str(result.reset_after_seconds)
    raise RateLimitExceededError(
        identity=identity,
        resource=resource,
        retry_after=result.reset_after_seconds,
        reset_at=result.reset_at.isoformat(),
        headers=headers,
    )


async def enforce_rate_limit(request: Request, response: Response) -> AdmissionResult:
    """FastAPI dependency enforcing admission control.

    Consumes one permit from the caller's quota for this route. Granted
    requests get ``X-RateLimit-*`` headers; denied requests raise
    ``RateLimitExceededError`` which the exception handlers render as 429.

    Args:
        request: FastAPI request.
        response: Response whose headers are merged into the final response.

    Returns:
        AdmissionResult: The granted result, for handlers that want it.

    Raises:
        RateLimitExceededError: When the quota for this window is exhausted.
    """
    service = get_rate_limit_service(request)
    cfg = get_rate_limit_settings(request)
    identity = resolve_identity(request, cfg)
    resource = resolve_resource(request)

    result = await service.acquire(identity, resource)
    return admit_or_raise(
        result,
        identity=identity,
        resource=resource,
        response=response,
        cfg=cfg,
        include_headers=service.options.enabled,
    )


async def enforce_rate_limit_unless_admin(request: Request, response: Response) -> AdmissionResult | None:
    """Like ``enforce_rate_limit``, but callers presenting a valid admin key are exempt.

    Exempt requests consume nothing and get no rate limit headers.
    """
    if is_admin_key(request.headers.get(ADMIN_KEY_HEADER)):
        logger.debug("rate_limit.exempt", extra={"reason": "admin_key", "resource": resolve_resource(request)})
        return None
    return await enforce_rate_limit(request, response)
