"""Application-level exception types.

This module defines domain errors used across services/adapters, enabling
consistent error handling, logging, and API responses.

Admission denial is deliberately absent: a denied request is a regular
``AdmissionResult`` value, not an exception.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, NotRequired, TypedDict


class ErrorDetails(TypedDict, total=False):
    """Structured error context for observability and clients.

    Fields are optional to keep backward compatibility while encouraging
    consistent shapes across the codebase.
    """

    code: str
    message: str
    hint: str
    field: str
    operation: str
    backend: str
    permit_limit: int
    window_seconds: float
    queue_limit: int
    retry_after: int
    reset_at: str
    request_id: str
    context: NotRequired[dict[str, Any]]


@dataclass
class AppError(Exception):
    """Base error for application/domain failures.

    Attributes:
        code: Stable, machine-readable error code.
        message: Human-readable error message.
        details: Optional structured details for debugging/observability.
    """

    code: str
    message: str
    details: ErrorDetails | None = None

    def __post_init__(self) -> None:
        # Populate Exception args so str(error) is useful in logs/tracebacks.
        super().__init__(self.message)


class ValidationAppError(AppError):
    """Raised when input/config validation fails."""


class RuleConfigurationError(ValidationAppError):
    """Raised when a rate limit rule is malformed (non-positive limit/window)."""


class StorageAppError(AppError):
    """Raised when a counter store operation fails."""


class StorageError(StorageAppError):
    """Backend unreachable or command failure while touching counters."""

    @classmethod
    def from_exception(cls, operation: str, backend: str, exc: BaseException) -> "StorageError":
        return cls(
            code="storage_unavailable",
            message=f"Counter store '{backend}' failed during {operation}",
            details={"operation": operation, "backend": backend, "hint": type(exc).__name__},
        )


class AuthenticationAppError(AppError):
    """Raised when authentication/authorization fails."""


class RateLimitExceededError(AppError):
    """Exception form of a denial for callers that prefer raising over branching.

    Attributes:
        identity: Caller identity that exceeded the quota.
        resource: Resource that was rate limited.
        retry_after: Seconds until the window resets.
        headers: Response headers the HTTP layer should attach.
    """

    def __init__(
        self,
        *,
        identity: str,
        resource: str,
        retry_after: int,
        reset_at: str | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        details: ErrorDetails = {"retry_after": retry_after}
        if reset_at is not None:
            details["reset_at"] = reset_at
        super().__init__(
            code="rate_limit_exceeded",
            message=f"Rate limit exceeded. Please try again in {retry_after} seconds.",
            details=details,
        )
        self.identity = identity
        self.resource = resource
        self.retry_after = retry_after
        self.headers = headers or {}
