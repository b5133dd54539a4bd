"""Admission outcome returned by the rate limit engine, plus its API shape."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from pydantic import BaseModel, Field


@dataclass(frozen=True)
class AdmissionResult:
    """Result of an acquire/inspect call.

    Attributes:
        granted: Whether the request may proceed.
        remaining: Permits left in the current window (0 when denied).
        limit: Permits per window for the applied rule.
        reset_after_seconds: Whole seconds until the window resets (rounded up).
        reset_at: UTC snapshot of ``now + reset_after_seconds``.
        degraded: True when the decision was made without the counter store
            (fail-open after a storage failure).
    """

    granted: bool
    remaining: int
    limit: int
    reset_after_seconds: int
    reset_at: datetime
    degraded: bool = False

    @classmethod
    def success(
        cls,
        *,
        remaining: int,
        limit: int,
        reset_after_seconds: int,
        reset_at: datetime,
        degraded: bool = False,
    ) -> "AdmissionResult":
        return cls(
            granted=True,
            remaining=max(0, remaining),
            limit=limit,
            reset_after_seconds=max(0, reset_after_seconds),
            reset_at=reset_at,
            degraded=degraded,
        )

    @classmethod
    def denied(cls, *, limit: int, reset_after_seconds: int, reset_at: datetime) -> "AdmissionResult":
        return cls(
            granted=False,
            remaining=0,
            limit=limit,
            reset_after_seconds=max(0, reset_after_seconds),
            reset_at=reset_at,
        )


class AdmissionResultResponse(BaseModel):
    """Serialized admission result for the admin API."""

    granted: bool = Field(..., description="Whether a request would be admitted")
    remaining: int = Field(..., ge=0, description="Permits left in the current window")
    limit: int = Field(..., description="Permits per window for the applied rule")
    reset_after_seconds: int = Field(..., ge=0, description="Seconds until the window resets")
    reset_at: datetime = Field(..., description="UTC timestamp when the window resets")
    degraded: bool = Field(False, description="True when the counter store was unavailable")

    @classmethod
    def from_result(cls, result: AdmissionResult) -> "AdmissionResultResponse":
        return cls(
            granted=result.granted,
            remaining=result.remaining,
            limit=result.limit,
            reset_after_seconds=result.reset_after_seconds,
            reset_at=result.reset_at,
            degraded=result.degraded,
        )


class ResetResponse(BaseModel):
    """Outcome of an admin reset call."""

    scope: str = Field(..., description="pair, client or resource")
    deleted: int = Field(..., ge=0, description="Number of counters removed")
