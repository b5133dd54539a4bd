"""Endpoints that drive the rate limit service directly with explicit rules.

Unlike the other sample routes, these do not use the per-route dependency:
each handler picks its own resources and rules at call time.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Annotated

from fastapi import APIRouter, Depends, Request, Response
from pydantic import BaseModel, Field

from quotaguard.core.config import RateLimitSettings
from quotaguard.core.rate_limit import (
    admit_or_raise,
    get_rate_limit_service,
    get_rate_limit_settings,
    resolve_identity,
)
from quotaguard.schemas.rules import RateLimitRule
from quotaguard.services.rate_limit_service import RateLimitService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/integration", tags=["Integration"])

ServiceDep = Annotated[RateLimitService, Depends(get_rate_limit_service)]
SettingsDep = Annotated[RateLimitSettings, Depends(get_rate_limit_settings)]

ONE_MINUTE = timedelta(minutes=1)

OPERATION_LIMITS: dict[str, int] = {"standard": 100, "premium": 500, "basic": 20}
UNKNOWN_OPERATION_LIMIT = 10

AUTH_STAGE_RULE = RateLimitRule(permit_limit=100, window=ONE_MINUTE)
# Permits consumed by the processing stage, per priority.
PRIORITY_COSTS: dict[str, int] = {"high": 1, "medium": 2, "low": 3}
UNKNOWN_PRIORITY_COST = 5


class ProcessRequest(BaseModel):
    operation_type: str = Field("standard", min_length=1, max_length=32)


class ThrottleRequest(BaseModel):
    priority: str = Field("medium", min_length=1, max_length=32)


class RateLimitInfo(BaseModel):
    remaining: int
    limit: int
    reset_after_seconds: int


class ProcessResponse(BaseModel):
    message: str
    rate_limit_info: RateLimitInfo


class ThrottleResponse(BaseModel):
    message: str
    permits_consumed: int


def rule_for_operation(operation_type: str) -> RateLimitRule:
    return RateLimitRule(
        permit_limit=OPERATION_LIMITS.get(operation_type, UNKNOWN_OPERATION_LIMIT),
        window=ONE_MINUTE,
    )


def rule_for_priority(priority: str) -> RateLimitRule:
    return RateLimitRule(permit_limit=50 if priority == "high" else 20, window=ONE_MINUTE)


@router.post("/process", response_model=ProcessResponse)
async def process(
    payload: ProcessRequest,
    request: Request,
    response: Response,
    service: ServiceDep,
    cfg: SettingsDep,
) -> ProcessResponse:
    """Admit one operation against a quota chosen by its type."""
    identity = resolve_identity(request, cfg)
    resource = f"process:{payload.operation_type}"

    result = await service.acquire(identity, resource, rule_for_operation(payload.operation_type))
    admit_or_raise(
        result,
        identity=identity,
        resource=resource,
        response=response,
        cfg=cfg,
        include_headers=service.options.enabled,
    )

    return ProcessResponse(
        message=f"Successfully processed {payload.operation_type} operation",
        rate_limit_info=RateLimitInfo(
            remaining=result.remaining,
            limit=result.limit,
            reset_after_seconds=result.reset_after_seconds,
        ),
    )


@router.post("/custom-throttle", response_model=ThrottleResponse)
async def custom_throttle(
    payload: ThrottleRequest,
    request: Request,
    response: Response,
    service: ServiceDep,
    cfg: SettingsDep,
) -> ThrottleResponse:
    """Two-stage admission: one auth permit, then ``cost`` processing permits.

    If the processing stage runs out part way, its counter is reset before
    the 429 is raised, so a partially admitted request does not keep the
    permits it took.
    """
    identity = resolve_identity(request, cfg)

    auth_resource = "custom-throttle:auth"
    auth_result = await service.acquire(identity, auth_resource, AUTH_STAGE_RULE)
    admit_or_raise(
        auth_result,
        identity=identity,
        resource=auth_resource,
        response=response,
        cfg=cfg,
        include_headers=False,
    )

    cost = PRIORITY_COSTS.get(payload.priority, UNKNOWN_PRIORITY_COST)
    process_resource = f"custom-throttle:process:{payload.priority}"
    rule = rule_for_priority(payload.priority)

    for _ in range(cost):
        result = await service.acquire(identity, process_resource, rule)
        if not result.granted:
            await service.reset(identity, process_resource)
            logger.info(
                "integration.throttle_rolled_back",
                extra={"resource": process_resource, "cost": cost},
            )
        admit_or_raise(
            result,
            identity=identity,
            resource=process_resource,
            response=response,
            cfg=cfg,
            include_headers=False,
        )

    return ThrottleResponse(message="Operation processed successfully", permits_consumed=cost)
