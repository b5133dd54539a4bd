"""Admin endpoints to inspect and reset rate limit counters.

Resources usually contain slashes (``GET:/v1/casinos``), so they are passed
as query parameters rather than path segments.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query

from quotaguard.core.auth import verify_admin_key
from quotaguard.core.rate_limit import get_rate_limit_service
from quotaguard.schemas.admission import AdmissionResultResponse, ResetResponse
from quotaguard.services.rate_limit_service import RateLimitService

router = APIRouter(
    prefix="/rate-limits",
    tags=["Rate limits"],
    dependencies=[Depends(verify_admin_key)],
)

ServiceDep = Annotated[RateLimitService, Depends(get_rate_limit_service)]
IdentityQuery = Annotated[str, Query(min_length=1, description="Caller identity")]
ResourceQuery = Annotated[str, Query(min_length=1, description="Resource, e.g. GET:/v1/casinos")]


@router.get("/inspect", response_model=AdmissionResultResponse)
async def inspect_rate_limit(
    service: ServiceDep,
    identity: IdentityQuery,
    resource: ResourceQuery,
) -> AdmissionResultResponse:
    """Current quota state of an (identity, resource) pair; consumes nothing."""
    result = await service.inspect(identity, resource)
    return AdmissionResultResponse.from_result(result)


@router.delete("", response_model=ResetResponse)
async def reset_rate_limit(
    service: ServiceDep,
    identity: IdentityQuery,
    resource: ResourceQuery,
) -> ResetResponse:
    """Start a fresh window for one (identity, resource) pair."""
    existed = await service.reset(identity, resource)
    return ResetResponse(scope="pair", deleted=int(existed))


@router.delete("/clients/{identity}", response_model=ResetResponse)
async def reset_client_rate_limits(service: ServiceDep, identity: str) -> ResetResponse:
    """Drop every counter of one identity."""
    deleted = await service.reset_client(identity)
    return ResetResponse(scope="client", deleted=deleted)


@router.delete("/resources", response_model=ResetResponse)
async def reset_resource_rate_limits(service: ServiceDep, resource: ResourceQuery) -> ResetResponse:
    """Drop every counter of one resource across identities."""
    deleted = await service.reset_resource(resource)
    return ResetResponse(scope="resource", deleted=deleted)
