"""Unit tests for the admission control engine."""

import asyncio
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from quotaguard.adapters.rate_limit.base import AbstractCounterStore
from quotaguard.adapters.rate_limit.in_memory import InMemoryCounterStore
from quotaguard.core.errors import RuleConfigurationError, StorageError
from quotaguard.core.metrics import REGISTRY
from quotaguard.schemas.rules import (
    ClientRateLimitRule,
    RateLimitOptions,
    RateLimitRule,
    ResourceRateLimitRule,
)
from quotaguard.services.rate_limit_service import UNLIMITED, RateLimitService


def _metric(name: str, **labels: str) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


def _failing_store(operation: str = "increment") -> AsyncMock:
    store = AsyncMock(spec=AbstractCounterStore)
    error = StorageError.from_exception(operation, "redis", ConnectionError("refused"))
    getattr(store, operation).side_effect = error
    return store


class TestFixedWindow:
    """Counting, denial and window expiry."""

    @pytest.mark.asyncio
    async def test_three_per_minute_scenario(self, make_service, fake_time) -> None:
        service = make_service(permit_limit=3, window_seconds=60)

        results = [await service.acquire("client-1", "GET:/api") for _ in range(3)]
        assert [r.granted for r in results] == [True, True, True]
        assert [r.remaining for r in results] == [2, 1, 0]
        assert all(r.limit == 3 for r in results)

        denied = await service.acquire("client-1", "GET:/api")
        assert denied.granted is False
        assert denied.remaining == 0
        assert denied.reset_after_seconds == 60
        assert denied.reset_at == datetime.fromtimestamp(1060.0, tz=timezone.utc)

    @pytest.mark.asyncio
    async def test_request_at_exact_limit_is_granted(self, make_service) -> None:
        service = make_service(permit_limit=1)

        first = await service.acquire("c", "r")
        second = await service.acquire("c", "r")

        assert first.granted is True and first.remaining == 0
        assert second.granted is False

    @pytest.mark.asyncio
    async def test_reset_after_counts_down_within_window(self, make_service, fake_time) -> None:
        service = make_service(permit_limit=1, window_seconds=60)
        await service.acquire("c", "r")

        fake_time.advance(30)
        denied = await service.acquire("c", "r")

        assert denied.granted is False
        assert denied.reset_after_seconds == 30

    @pytest.mark.asyncio
    async def test_partial_seconds_round_up(self, make_service, fake_time) -> None:
        service = make_service(permit_limit=5, window_seconds=60)
        await service.acquire("c", "r")

        fake_time.advance(0.5)
        result = await service.acquire("c", "r")

        assert result.reset_after_seconds == 60

    @pytest.mark.asyncio
    async def test_fresh_window_after_expiry(self, make_service, fake_time) -> None:
        service = make_service(permit_limit=3, window_seconds=60)
        for _ in range(4):
            await service.acquire("c", "r")

        fake_time.advance(60)
        result = await service.acquire("c", "r")

        assert result.granted is True
        assert result.remaining == 2
        assert result.reset_after_seconds == 60

    @pytest.mark.asyncio
    async def test_remaining_never_increases_within_window(self, make_service, fake_time) -> None:
        service = make_service(permit_limit=5)
        remaining = []
        for _ in range(8):
            remaining.append((await service.acquire("c", "r")).remaining)
            fake_time.advance(1)

        assert remaining == sorted(remaining, reverse=True)
        assert remaining[-1] == 0

    @pytest.mark.asyncio
    async def test_pairs_are_counted_independently(self, make_service) -> None:
        service = make_service(permit_limit=1)

        assert (await service.acquire("a", "r1")).granted is True
        assert (await service.acquire("a", "r1")).granted is False
        assert (await service.acquire("a", "r2")).granted is True
        assert (await service.acquire("b", "r1")).granted is True


class TestRuleSelection:
    """Rules are resolved per call unless one is passed explicitly."""

    @pytest.mark.asyncio
    async def test_client_and_resource_rules_apply(self, memory_store, fake_time) -> None:
        options = RateLimitOptions(
            default_rule=RateLimitRule(permit_limit=100),
            client_rules=(ClientRateLimitRule(client_id="vip", permit_limit=1000),),
            resource_rules=(ResourceRateLimitRule(endpoint="GET:/v1/casinos*", permit_limit=50),),
        )
        service = RateLimitService(memory_store, options, clock=fake_time.time)

        assert (await service.acquire("vip", "GET:/v1/casinos")).limit == 1000
        assert (await service.acquire("other", "GET:/v1/casinos/1")).limit == 50
        assert (await service.acquire("other", "POST:/v1/other")).limit == 100

    @pytest.mark.asyncio
    async def test_explicit_rule_bypasses_resolution(self, make_service) -> None:
        service = make_service(permit_limit=100)
        rule = RateLimitRule(permit_limit=2, window=timedelta(seconds=10))

        results = [await service.acquire("c", "r", rule) for _ in range(3)]

        assert [r.granted for r in results] == [True, True, False]
        assert results[0].limit == 2
        assert results[-1].reset_after_seconds == 10

    @pytest.mark.asyncio
    async def test_invalid_explicit_rule_raises(self, make_service, memory_store) -> None:
        service = make_service()

        with pytest.raises(RuleConfigurationError):
            await service.acquire("c", "r", RateLimitRule(permit_limit=0))

        assert await memory_store.get_count("rl:c:r") == 0

    @pytest.mark.asyncio
    async def test_invalid_resolved_rule_raises(self, memory_store) -> None:
        options = RateLimitOptions(
            resource_rules=(ResourceRateLimitRule(endpoint="GET:/x", window=timedelta(0)),),
        )
        service = RateLimitService(memory_store, options)

        with pytest.raises(RuleConfigurationError):
            await service.acquire("c", "GET:/x")

    def test_invalid_default_rule_rejected_at_construction(self, memory_store) -> None:
        with pytest.raises(RuleConfigurationError):
            RateLimitService(memory_store, RateLimitOptions(default_rule=RateLimitRule(permit_limit=0)))

    @pytest.mark.asyncio
    async def test_reload_swaps_snapshot(self, make_service) -> None:
        service = make_service(permit_limit=1)
        await service.acquire("c", "r")

        service.reload(RateLimitOptions(default_rule=RateLimitRule(permit_limit=5)))

        result = await service.acquire("c", "r")
        assert result.granted is True
        assert result.limit == 5
        assert result.remaining == 3

    def test_invalid_reload_keeps_previous_snapshot(self, make_service) -> None:
        service = make_service(permit_limit=7)

        with pytest.raises(RuleConfigurationError):
            service.reload(RateLimitOptions(default_rule=RateLimitRule(permit_limit=-1)))

        assert service.options.default_rule.permit_limit == 7


class TestKillSwitch:
    """Disabled rate limiting admits everything without touching storage."""

    @pytest.mark.asyncio
    async def test_disabled_returns_unlimited(self, fake_time) -> None:
        store = AsyncMock(spec=AbstractCounterStore)
        service = RateLimitService(store, RateLimitOptions(enabled=False), clock=fake_time.time)

        for _ in range(10):
            result = await service.acquire("c", "r")
            assert result.granted is True
            assert result.remaining == UNLIMITED
            assert result.limit == UNLIMITED
            assert result.reset_after_seconds == 0

        inspected = await service.inspect("c", "r")
        assert inspected.remaining == UNLIMITED

        store.increment.assert_not_awaited()
        store.get_count.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_disabled_ignores_invalid_rules(self) -> None:
        store = AsyncMock(spec=AbstractCounterStore)
        options = RateLimitOptions(
            enabled=False,
            resource_rules=(ResourceRateLimitRule(endpoint="r", permit_limit=0),),
        )
        service = RateLimitService(store, options)

        assert (await service.acquire("c", "r")).granted is True


class TestFailOpen:
    """Storage failures admit requests unless fail-open is disabled."""

    @pytest.mark.asyncio
    async def test_increment_failure_admits_degraded(self, fake_time) -> None:
        before_admits = _metric("quotaguard_storage_failure_admits_total", operation="increment")
        before_failures = _metric("quotaguard_storage_failures_total", operation="increment")
        options = RateLimitOptions(default_rule=RateLimitRule(permit_limit=10, window=timedelta(seconds=30)))
        service = RateLimitService(_failing_store(), options, clock=fake_time.time)

        result = await service.acquire("c", "r")

        assert result.granted is True
        assert result.degraded is True
        assert result.remaining == 9
        assert result.limit == 10
        assert result.reset_after_seconds == 30
        assert _metric("quotaguard_storage_failure_admits_total", operation="increment") == before_admits + 1
        assert _metric("quotaguard_storage_failures_total", operation="increment") == before_failures + 1

    @pytest.mark.asyncio
    async def test_fail_closed_reraises(self) -> None:
        before_admits = _metric("quotaguard_storage_failure_admits_total", operation="increment")
        service = RateLimitService(_failing_store(), RateLimitOptions(fail_open=False))

        with pytest.raises(StorageError) as exc_info:
            await service.acquire("c", "r")

        assert exc_info.value.code == "storage_unavailable"
        assert _metric("quotaguard_storage_failure_admits_total", operation="increment") == before_admits

    @pytest.mark.asyncio
    async def test_ttl_failure_assumes_full_window(self) -> None:
        store = _failing_store("get_time_to_live")
        store.increment.return_value = 11
        options = RateLimitOptions(default_rule=RateLimitRule(permit_limit=10, window=timedelta(seconds=45)))
        service = RateLimitService(store, options)

        result = await service.acquire("c", "r")

        assert result.granted is False
        assert result.reset_after_seconds == 45
        assert result.degraded is False

    @pytest.mark.asyncio
    async def test_inspect_failure_admits_degraded(self) -> None:
        service = RateLimitService(_failing_store("get_count"), RateLimitOptions())

        result = await service.inspect("c", "r")

        assert result.degraded is True
        assert result.granted is True

    @pytest.mark.asyncio
    async def test_reset_failure_propagates(self) -> None:
        service = RateLimitService(_failing_store("reset"), RateLimitOptions())

        with pytest.raises(StorageError):
            await service.reset("c", "r")


class TestInspectAndReset:
    """Read-only inspection and administrative resets."""

    @pytest.mark.asyncio
    async def test_inspect_does_not_consume(self, make_service) -> None:
        service = make_service(permit_limit=3)
        await service.acquire("c", "r")

        first = await service.inspect("c", "r")
        second = await service.inspect("c", "r")

        assert first.remaining == second.remaining == 2
        assert first.reset_after_seconds == 60

    @pytest.mark.asyncio
    async def test_inspect_unknown_pair_reports_full_quota(self, make_service) -> None:
        result = await make_service(permit_limit=3).inspect("new", "r")

        assert result.remaining == 3
        assert result.reset_after_seconds == 0

    @pytest.mark.asyncio
    async def test_reset_mid_window_starts_fresh(self, make_service, fake_time) -> None:
        service = make_service(permit_limit=2)
        for _ in range(3):
            await service.acquire("c", "r")

        fake_time.advance(20)
        assert await service.reset("c", "r") is True

        result = await service.acquire("c", "r")
        assert result.granted is True
        assert result.remaining == 1
        assert result.reset_after_seconds == 60

    @pytest.mark.asyncio
    async def test_reset_missing_pair(self, make_service) -> None:
        assert await make_service().reset("nobody", "r") is False

    @pytest.mark.asyncio
    async def test_reset_client_leaves_other_clients(self, make_service) -> None:
        service = make_service(permit_limit=1)
        for identity, resource in [("a", "r1"), ("a", "r2"), ("b", "r1")]:
            await service.acquire(identity, resource)

        assert await service.reset_client("a") == 2

        assert (await service.acquire("a", "r1")).granted is True
        assert (await service.acquire("a", "r2")).granted is True
        assert (await service.acquire("b", "r1")).granted is False

    @pytest.mark.asyncio
    async def test_reset_resource_spans_identities(self, make_service) -> None:
        service = make_service(permit_limit=1)
        for identity, resource in [("a", "GET:/x"), ("b", "GET:/x"), ("a", "GET:/y")]:
            await service.acquire(identity, resource)

        assert await service.reset_resource("GET:/x") == 2

        assert (await service.acquire("b", "GET:/x")).granted is True
        assert (await service.acquire("a", "GET:/y")).granted is False


class TestConcurrency:
    """Exactly ``permit_limit`` grants under concurrent load."""

    @pytest.mark.asyncio
    async def test_gathered_acquires(self, make_service) -> None:
        service = make_service(permit_limit=20)

        results = await asyncio.gather(*(service.acquire("c", "r") for _ in range(50)))

        assert sum(r.granted for r in results) == 20
        assert sorted(r.remaining for r in results if r.granted) == list(range(20))

    def test_acquires_from_threads(self) -> None:
        service = RateLimitService(
            InMemoryCounterStore(),
            RateLimitOptions(default_rule=RateLimitRule(permit_limit=25)),
        )

        def attempt() -> bool:
            return asyncio.run(service.acquire("c", "r")).granted

        with ThreadPoolExecutor(max_workers=8) as pool:
            grants = list(pool.map(lambda _: attempt(), range(100)))

        assert sum(grants) == 25

    @pytest.mark.asyncio
    async def test_gathered_acquires_at_exact_limit_all_granted(self, make_service) -> None:
        service = make_service(permit_limit=40)

        results = await asyncio.gather(*(service.acquire("c", "r") for _ in range(40)))

        assert all(r.granted for r in results)
        assert sorted(r.remaining for r in results) == list(range(40))
        assert (await service.acquire("c", "r")).granted is False

    def test_threaded_acquires_at_exact_limit_all_granted(self) -> None:
        service = RateLimitService(
            InMemoryCounterStore(),
            RateLimitOptions(default_rule=RateLimitRule(permit_limit=64)),
        )

        def attempt(_: int) -> bool:
            return asyncio.run(service.acquire("c", "r")).granted

        with ThreadPoolExecutor(max_workers=16) as pool:
            grants = list(pool.map(attempt, range(64)))

        assert grants.count(True) == 64
        assert grants.count(False) == 0
        assert asyncio.run(service.acquire("c", "r")).granted is False
