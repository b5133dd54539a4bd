"""Selection of the rate limit rule that applies to a request.

Precedence, first match wins:
1. client rule whose ``client_id`` equals the identity exactly;
2. resource rule whose ``endpoint`` equals the resource, or ends with ``*``
   and is a prefix of the resource, in declaration order;
3. the default rule.

Overlapping resource rules are not reconciled: declaration order decides.
"""

from __future__ import annotations

import logging
from typing import Iterable

from quotaguard.schemas.rules import (
    ClientRateLimitRule,
    RateLimitOptions,
    RateLimitRule,
    ResourceRateLimitRule,
)

logger = logging.getLogger(__name__)


class RuleResolver:
    """Pure, deterministic rule lookup over an ordered rule set."""

    def __init__(
        self,
        default_rule: RateLimitRule,
        client_rules: Iterable[ClientRateLimitRule] = (),
        resource_rules: Iterable[ResourceRateLimitRule] = (),
    ) -> None:
        """Initialize the resolver.

        Args:
            default_rule: Fallback rule; validated eagerly.
            client_rules: Client rules in declaration order.
            resource_rules: Resource rules in declaration order.

        Raises:
            RuleConfigurationError: If the default rule is malformed.
        """
        default_rule.validate()
        self._default_rule = default_rule
        self._client_rules = tuple(client_rules)
        self._resource_rules = tuple(resource_rules)

    @classmethod
    def from_options(cls, options: RateLimitOptions) -> "RuleResolver":
        return cls(options.default_rule, options.client_rules, options.resource_rules)

    @property
    def default_rule(self) -> RateLimitRule:
        return self._default_rule

    def resolve(self, identity: str, resource: str) -> RateLimitRule:
        """Return the rule for ``(identity, resource)``.

        Raises:
            RuleConfigurationError: If the selected rule is malformed. A bad
                rule is never skipped in favour of a later one.
        """
        rule, scope = self._select(identity, resource)
        rule.validate()
        logger.debug(
            "rate_limit.rule_resolved",
            extra={
                "scope": scope,
                "permit_limit": rule.permit_limit,
                "window_s": rule.window_seconds,
            },
        )
        return rule

    def _select(self, identity: str, resource: str) -> tuple[RateLimitRule, str]:
        for client_rule in self._client_rules:
            if client_rule.matches(identity):
                return client_rule, "client"

        for resource_rule in self._resource_rules:
            if resource_rule.matches(resource):
                return resource_rule, "resource"

        return self._default_rule, "default"
