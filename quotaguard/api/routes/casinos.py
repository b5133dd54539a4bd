"""Sample catalogue endpoints protected by admission control.

The per-route quotas are declared here as plain rules and merged into the
resource rule list once at startup (see ``app_factory.build_rate_limit_options``).
"""

from __future__ import annotations

from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from quotaguard.core.rate_limit import enforce_rate_limit
from quotaguard.schemas.rules import ResourceRateLimitRule

router = APIRouter(tags=["Casinos"], dependencies=[Depends(enforce_rate_limit)])

# Resources are ``METHOD:path`` with a lowercased path.
ROUTE_RULES: tuple[ResourceRateLimitRule, ...] = (
    ResourceRateLimitRule(endpoint="POST:/v1/casinos", permit_limit=10, window=timedelta(seconds=60)),
    ResourceRateLimitRule(endpoint="PUT:/v1/casinos/*", permit_limit=10, window=timedelta(seconds=60)),
    ResourceRateLimitRule(endpoint="DELETE:/v1/casinos/*", permit_limit=5, window=timedelta(seconds=60)),
    ResourceRateLimitRule(endpoint="GET:/v1/casinos*", permit_limit=50, window=timedelta(seconds=60)),
)


class Casino(BaseModel):
    id: int
    name: str
    rating: float = Field(..., ge=0, le=5)
    description: str = ""


class CasinoPayload(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    rating: float = Field(..., ge=0, le=5)
    description: str = ""


_CASINOS: list[Casino] = [
    Casino(id=1, name="Royal Flush", rating=4.5, description="Classic table games"),
    Casino(id=2, name="Lucky Star", rating=4.1, description="Slots and live dealers"),
    Casino(id=3, name="Golden Palace", rating=3.8, description="Sports betting and poker"),
]


@router.get("/casinos", response_model=list[Casino])
async def list_casinos() -> list[Casino]:
    return list(_CASINOS)


def _index_of(casino_id: int) -> int:
    for index, casino in enumerate(_CASINOS):
        if casino.id == casino_id:
            return index
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Casino not found")


@router.get("/casinos/{casino_id}", response_model=Casino)
async def get_casino(casino_id: int) -> Casino:
    return _CASINOS[_index_of(casino_id)]


@router.post("/casinos", response_model=Casino, status_code=status.HTTP_201_CREATED)
async def create_casino(payload: CasinoPayload) -> Casino:
    casino = Casino(id=max((c.id for c in _CASINOS), default=0) + 1, **payload.model_dump())
    _CASINOS.append(casino)
    return casino


@router.put("/casinos/{casino_id}", status_code=status.HTTP_204_NO_CONTENT, response_model=None)
async def update_casino(casino_id: int, payload: CasinoPayload) -> None:
    index = _index_of(casino_id)
    _CASINOS[index] = Casino(id=casino_id, **payload.model_dump())


@router.delete("/casinos/{casino_id}", status_code=status.HTTP_204_NO_CONTENT, response_model=None)
async def delete_casino(casino_id: int) -> None:
    del _CASINOS[_index_of(casino_id)]
