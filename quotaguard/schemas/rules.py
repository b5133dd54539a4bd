"""Rate limit rule types.

Rules are immutable value objects. Validation is explicit (``validate()``) so
that a malformed rule is rejected deterministically at the point it would be
used, whether it came from configuration or was built in code.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import TYPE_CHECKING

from quotaguard.core.errors import RuleConfigurationError

if TYPE_CHECKING:
    from quotaguard.core.config import RateLimitSettings

WILDCARD = "*"


@dataclass(frozen=True)
class RateLimitRule:
    """Fixed-window quota.

    Attributes:
        permit_limit: Requests permitted per window.
        window: Window length, anchored at the first request.
        queue_limit: Advisory only; never enforced.
    """

    permit_limit: int = 100
    window: timedelta = field(default_factory=lambda: timedelta(minutes=1))
    queue_limit: int = 0

    @property
    def window_seconds(self) -> float:
        return self.window.total_seconds()

    def validate(self) -> None:
        """Raise RuleConfigurationError if the rule cannot be enforced."""
        if self.permit_limit < 1:
            raise RuleConfigurationError(
                code="invalid_permit_limit",
                message="permit_limit must be >= 1",
                details={"field": "permit_limit", "permit_limit": self.permit_limit},
            )
        if self.window <= timedelta(0):
            raise RuleConfigurationError(
                code="invalid_window",
                message="window must be a positive duration",
                details={"field": "window", "window_seconds": self.window_seconds},
            )
        if self.queue_limit < 0:
            raise RuleConfigurationError(
                code="invalid_queue_limit",
                message="queue_limit must be >= 0",
                details={"field": "queue_limit", "queue_limit": self.queue_limit},
            )


@dataclass(frozen=True)
class ClientRateLimitRule(RateLimitRule):
    """Rule applied when the caller identity equals ``client_id`` exactly."""

    client_id: str = ""

    def matches(self, identity: str) -> bool:
        return self.client_id == identity


@dataclass(frozen=True)
class ResourceRateLimitRule(RateLimitRule):
    """Rule applied to a resource, exactly or by ``prefix*`` wildcard."""

    endpoint: str = ""

    def matches(self, resource: str) -> bool:
        if self.endpoint == resource:
            return True
        if self.endpoint.endswith(WILDCARD):
            return resource.startswith(self.endpoint.rstrip(WILDCARD))
        return False


@dataclass(frozen=True)
class RateLimitOptions:
    """Immutable configuration snapshot read once per engine call.

    Attributes:
        enabled: Global kill switch. When False every call is admitted
            without touching the counter store.
        default_rule: Rule used when no client/resource rule matches.
        client_rules: Ordered client rules.
        resource_rules: Ordered resource rules; first match wins.
        fail_open: Admit requests when the counter store fails.
    """

    enabled: bool = True
    default_rule: RateLimitRule = field(default_factory=RateLimitRule)
    client_rules: tuple[ClientRateLimitRule, ...] = ()
    resource_rules: tuple[ResourceRateLimitRule, ...] = ()
    fail_open: bool = True

    @classmethod
    def from_settings(cls, rate_limit_settings: "RateLimitSettings") -> "RateLimitOptions":
        """Build the snapshot from validated rate limit settings."""
        cfg = rate_limit_settings
        return cls(
            enabled=cfg.enabled,
            default_rule=RateLimitRule(
                permit_limit=cfg.default_permit_limit,
                window=timedelta(seconds=cfg.default_window_seconds),
                queue_limit=cfg.default_queue_limit,
            ),
            client_rules=tuple(
                ClientRateLimitRule(
                    client_id=rule.client_id,
                    permit_limit=rule.permit_limit,
                    window=timedelta(seconds=rule.window_seconds),
                    queue_limit=rule.queue_limit,
                )
                for rule in cfg.client_rules
            ),
            resource_rules=tuple(
                ResourceRateLimitRule(
                    endpoint=rule.endpoint,
                    permit_limit=rule.permit_limit,
                    window=timedelta(seconds=rule.window_seconds),
                    queue_limit=rule.queue_limit,
                )
                for rule in cfg.resource_rules
            ),
            fail_open=cfg.fail_open,
        )
