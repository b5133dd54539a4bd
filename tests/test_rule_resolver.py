"""Unit tests for rule resolution and rule validation."""

from datetime import timedelta

import pytest

from quotaguard.core.errors import RuleConfigurationError
from quotaguard.schemas.rules import (
    ClientRateLimitRule,
    RateLimitRule,
    ResourceRateLimitRule,
)
from quotaguard.services.rule_resolver import RuleResolver

DEFAULT = RateLimitRule(permit_limit=100, window=timedelta(seconds=60))


class TestPrecedence:
    """Client rule, then resource rule, then default."""

    def test_default_when_nothing_matches(self) -> None:
        resolver = RuleResolver(DEFAULT)
        assert resolver.resolve("anyone", "GET:/x") is DEFAULT

    def test_client_rule_beats_resource_rule(self) -> None:
        client_rule = ClientRateLimitRule(client_id="vip", permit_limit=1000)
        resource_rule = ResourceRateLimitRule(endpoint="GET:/x", permit_limit=5)
        resolver = RuleResolver(DEFAULT, [client_rule], [resource_rule])

        assert resolver.resolve("vip", "GET:/x") is client_rule
        assert resolver.resolve("regular", "GET:/x") is resource_rule

    def test_client_rule_requires_exact_match(self) -> None:
        client_rule = ClientRateLimitRule(client_id="vip")
        resolver = RuleResolver(DEFAULT, [client_rule])

        assert resolver.resolve("VIP", "r") is DEFAULT
        assert resolver.resolve("vip2", "r") is DEFAULT

    def test_wildcard_resource_rule_matches_prefix(self) -> None:
        rule = ResourceRateLimitRule(endpoint="GET:/v1/casinos*", permit_limit=50)
        resolver = RuleResolver(DEFAULT, resource_rules=[rule])

        assert resolver.resolve("c", "GET:/v1/casinos") is rule
        assert resolver.resolve("c", "GET:/v1/casinos/3") is rule
        assert resolver.resolve("c", "POST:/v1/casinos") is DEFAULT

    def test_resource_rule_without_wildcard_is_exact(self) -> None:
        rule = ResourceRateLimitRule(endpoint="GET:/v1/casinos", permit_limit=50)
        resolver = RuleResolver(DEFAULT, resource_rules=[rule])

        assert resolver.resolve("c", "GET:/v1/casinos/3") is DEFAULT

    def test_first_declared_resource_rule_wins(self) -> None:
        broad = ResourceRateLimitRule(endpoint="GET:*", permit_limit=10)
        narrow = ResourceRateLimitRule(endpoint="GET:/v1/casinos", permit_limit=2)

        assert RuleResolver(DEFAULT, resource_rules=[broad, narrow]).resolve("c", "GET:/v1/casinos") is broad
        assert RuleResolver(DEFAULT, resource_rules=[narrow, broad]).resolve("c", "GET:/v1/casinos") is narrow

    def test_bare_wildcard_matches_everything(self) -> None:
        rule = ResourceRateLimitRule(endpoint="*", permit_limit=7)
        assert RuleResolver(DEFAULT, resource_rules=[rule]).resolve("c", "DELETE:/anything") is rule

    def test_resolution_is_deterministic(self) -> None:
        rules = [ResourceRateLimitRule(endpoint=f"GET:/r{i}*", permit_limit=i + 1) for i in range(5)]
        resolver = RuleResolver(DEFAULT, resource_rules=rules)

        picks = {resolver.resolve("c", "GET:/r3/items").permit_limit for _ in range(50)}
        assert picks == {4}


class TestValidation:
    """Malformed rules are rejected, never silently skipped."""

    @pytest.mark.parametrize(
        ("rule", "code"),
        [
            (RateLimitRule(permit_limit=0), "invalid_permit_limit"),
            (RateLimitRule(permit_limit=-1), "invalid_permit_limit"),
            (RateLimitRule(window=timedelta(0)), "invalid_window"),
            (RateLimitRule(window=timedelta(seconds=-5)), "invalid_window"),
            (RateLimitRule(queue_limit=-1), "invalid_queue_limit"),
        ],
    )
    def test_invalid_rule(self, rule: RateLimitRule, code: str) -> None:
        with pytest.raises(RuleConfigurationError) as exc_info:
            rule.validate()
        assert exc_info.value.code == code

    def test_invalid_default_rule_rejected_at_construction(self) -> None:
        with pytest.raises(RuleConfigurationError):
            RuleResolver(RateLimitRule(permit_limit=0))

    def test_invalid_matching_rule_raises_instead_of_falling_through(self) -> None:
        broken = ResourceRateLimitRule(endpoint="GET:/x", permit_limit=0)
        fallback = ResourceRateLimitRule(endpoint="GET:*", permit_limit=5)
        resolver = RuleResolver(DEFAULT, resource_rules=[broken, fallback])

        with pytest.raises(RuleConfigurationError):
            resolver.resolve("c", "GET:/x")

        # Requests the broken rule does not match are unaffected.
        assert resolver.resolve("c", "GET:/y") is fallback

    def test_queue_limit_is_accepted_but_advisory(self) -> None:
        rule = RateLimitRule(permit_limit=1, queue_limit=10)
        rule.validate()
        assert rule.window_seconds == 60.0
