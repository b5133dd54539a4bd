"""Sample login/registration endpoints with tight per-route quotas.

Credentials live in a process-local demo store and tokens are opaque random
strings; the point of these routes is the stricter admission rules.
"""

from __future__ import annotations

import logging
import secrets
from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from quotaguard.core.rate_limit import enforce_rate_limit, enforce_rate_limit_unless_admin
from quotaguard.schemas.rules import ResourceRateLimitRule

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])

ROUTE_RULES: tuple[ResourceRateLimitRule, ...] = (
    ResourceRateLimitRule(endpoint="POST:/v1/auth/login", permit_limit=5, window=timedelta(seconds=60)),
    ResourceRateLimitRule(endpoint="POST:/v1/auth/register", permit_limit=2, window=timedelta(seconds=60)),
)

# username -> password
_USERS: dict[str, str] = {"admin": "admin123", "customer": "customer123"}


class Credentials(BaseModel):
    username: str = Field(..., min_length=1, max_length=64)
    password: str = Field(..., min_length=1, max_length=128)


class TokenResponse(BaseModel):
    token: str


# Operators holding an admin key are not throttled on login.
@router.post(
    "/login",
    response_model=TokenResponse,
    dependencies=[Depends(enforce_rate_limit_unless_admin)],
)
async def login(credentials: Credentials) -> TokenResponse:
    if _USERS.get(credentials.username) != credentials.password:
        logger.info("auth.login_failed")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid username or password")
    return TokenResponse(token=secrets.token_urlsafe(32))


@router.post(
    "/register",
    response_model=TokenResponse,
    dependencies=[Depends(enforce_rate_limit)],
)
async def register(credentials: Credentials) -> TokenResponse:
    if credentials.username in _USERS:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Username is already taken")
    _USERS[credentials.username] = credentials.password
    logger.info("auth.registered", extra={"users": len(_USERS)})
    return TokenResponse(token=secrets.token_urlsafe(32))
