"""Rate limit service: admission decisions over fixed-window counters.

This service is the core of the application. It ties together:
- Rule resolution (client, resource, default precedence)
- Key construction (normalized, bounded keys)
- Counter storage (in-memory or Redis behind one interface)
- The fail-open policy for counter store failures

Decisions are made per call against shared counter state; there is no queue
or scheduler. An increment that reached the store is never rolled back, even
if the caller is cancelled before the decision is returned.
"""

from __future__ import annotations

import logging
import math
import sys
import time
from datetime import datetime, timedelta, timezone
from typing import Callable

from quotaguard.adapters.rate_limit.base import AbstractCounterStore
from quotaguard.core import metrics
from quotaguard.core.errors import StorageError
from quotaguard.schemas.admission import AdmissionResult
from quotaguard.schemas.rules import RateLimitOptions, RateLimitRule
from quotaguard.services.rule_resolver import RuleResolver
from quotaguard.utils.rate_limit_keys import (
    build_client_prefix,
    build_key,
    build_resource_prefix,
    hash_identity,
)

logger = logging.getLogger(__name__)

# Limit/remaining reported while rate limiting is administratively disabled.
UNLIMITED = sys.maxsize


def _ceil_seconds(ttl: timedelta) -> int:
    """Whole seconds until reset; partial seconds round up, never below 0."""
    return max(0, math.ceil(ttl.total_seconds()))


class RateLimitService:
    """Admission control engine.

    Args:
        store: Counter store shared by all callers.
        options: Immutable configuration snapshot.
        clock: Time source returning UNIX time in seconds; only used to
            compute ``reset_at`` snapshots.
    """

    def __init__(
        self,
        store: AbstractCounterStore,
        options: RateLimitOptions | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._store = store
        self._clock = clock
        options = options or RateLimitOptions()
        self._snapshot: tuple[RateLimitOptions, RuleResolver] = (
            options,
            RuleResolver.from_options(options),
        )

    @property
    def options(self) -> RateLimitOptions:
        return self._snapshot[0]

    @property
    def store(self) -> AbstractCounterStore:
        return self._store

    def reload(self, options: RateLimitOptions) -> None:
        """Swap in a new configuration snapshot.

        Raises:
            RuleConfigurationError: If the new default rule is malformed; the
                previous snapshot stays active.
        """
        self._snapshot = (options, RuleResolver.from_options(options))
        logger.info(
            "rate_limit.options_reloaded",
            extra={
                "enabled": options.enabled,
                "client_rules": len(options.client_rules),
                "resource_rules": len(options.resource_rules),
            },
        )

    async def acquire(
        self,
        identity: str,
        resource: str,
        rule: RateLimitRule | None = None,
    ) -> AdmissionResult:
        """Consume one permit for ``(identity, resource)``.

        Args:
            identity: Caller identity (API key, client address, ...).
            resource: Protected operation, e.g. ``GET:/v1/casinos``.
            rule: Explicit rule; bypasses rule resolution when given.

        Returns:
            Granted result while the post-increment count is within the
            limit, denied result (remaining 0) once it exceeds it.

        Raises:
            RuleConfigurationError: If the applicable rule is malformed.
            StorageError: Only when the fail-open policy is disabled.
        """
        options, resolver = self._snapshot
        if not options.enabled:
            return self._unlimited_result()

        if rule is None:
            rule = resolver.resolve(identity, resource)
        else:
            rule.validate()

        key = build_key(identity, resource)

        try:
            count = await self._store.increment(key, rule.window)
        except StorageError as exc:
            return self._on_storage_failure("increment", rule, exc, options)

        try:
            ttl = await self._store.get_time_to_live(key)
        except StorageError as exc:
            # The increment landed; decide on the count and assume a full window.
            metrics.storage_failures.labels(operation="get_time_to_live").inc()
            logger.warning(
                "rate_limit.ttl_unavailable",
                extra={"error_code": exc.code, "window_s": rule.window_seconds},
            )
            ttl = rule.window

        reset_after = _ceil_seconds(ttl)
        reset_at = self._reset_at(reset_after)

        if count > rule.permit_limit:
            metrics.admission_decisions.labels(outcome="denied").inc()
            logger.warning(
                "rate_limit.denied",
                extra={
                    "identity_hash": hash_identity(identity),
                    "resource": resource,
                    "count": count,
                    "limit": rule.permit_limit,
                    "retry_after_s": reset_after,
                },
            )
            return AdmissionResult.denied(
                limit=rule.permit_limit,
                reset_after_seconds=reset_after,
                reset_at=reset_at,
            )

        remaining = max(0, rule.permit_limit - count)
        metrics.admission_decisions.labels(outcome="granted").inc()
        logger.debug(
            "rate_limit.granted",
            extra={
                "identity_hash": hash_identity(identity),
                "resource": resource,
                "count": count,
                "limit": rule.permit_limit,
                "remaining": remaining,
                "reset_after_s": reset_after,
            },
        )
        return AdmissionResult.success(
            remaining=remaining,
            limit=rule.permit_limit,
            reset_after_seconds=reset_after,
            reset_at=reset_at,
        )

    async def inspect(self, identity: str, resource: str) -> AdmissionResult:
        """Report the current quota state without consuming a permit.

        The result always has the granted shape; ``remaining`` is 0 when the
        window is exhausted.
        """
        options, resolver = self._snapshot
        if not options.enabled:
            return self._unlimited_result()

        rule = resolver.resolve(identity, resource)
        key = build_key(identity, resource)

        try:
            count = await self._store.get_count(key)
            ttl = await self._store.get_time_to_live(key)
        except StorageError as exc:
            return self._on_storage_failure("inspect", rule, exc, options)

        reset_after = _ceil_seconds(ttl)
        return AdmissionResult.success(
            remaining=max(0, rule.permit_limit - count),
            limit=rule.permit_limit,
            reset_after_seconds=reset_after,
            reset_at=self._reset_at(reset_after),
        )

    async def reset(self, identity: str, resource: str) -> bool:
        """Drop the counter of one ``(identity, resource)`` pair."""
        existed = await self._store.reset(build_key(identity, resource))
        logger.info(
            "rate_limit.reset",
            extra={"identity_hash": hash_identity(identity), "resource": resource, "existed": existed},
        )
        return existed

    async def reset_client(self, identity: str) -> int:
        """Drop every counter of one identity; other identities are untouched."""
        deleted = await self._store.reset_by_prefix(build_client_prefix(identity))
        logger.info(
            "rate_limit.reset_client",
            extra={"identity_hash": hash_identity(identity), "deleted": deleted},
        )
        return deleted

    async def reset_resource(self, resource: str) -> int:
        """Drop every counter of one resource across all identities."""
        deleted = await self._store.reset_by_prefix(build_resource_prefix(resource))
        logger.info("rate_limit.reset_resource", extra={"resource": resource, "deleted": deleted})
        return deleted

    def _reset_at(self, reset_after: int) -> datetime:
        return datetime.fromtimestamp(self._clock() + reset_after, tz=timezone.utc)

    def _unlimited_result(self) -> AdmissionResult:
        metrics.admission_decisions.labels(outcome="disabled").inc()
        return AdmissionResult.success(
            remaining=UNLIMITED,
            limit=UNLIMITED,
            reset_after_seconds=0,
            reset_at=self._reset_at(0),
        )

    def _on_storage_failure(
        self,
        operation: str,
        rule: RateLimitRule,
        exc: StorageError,
        options: RateLimitOptions,
    ) -> AdmissionResult:
        metrics.storage_failures.labels(operation=operation).inc()
        if not options.fail_open:
            logger.error(
                "rate_limit.storage_failure",
                extra={"operation": operation, "error_code": exc.code, "fail_open": False},
            )
            raise exc

        metrics.storage_failure_admits.labels(operation=operation).inc()
        metrics.admission_decisions.labels(outcome="fail_open").inc()
        logger.warning(
            "rate_limit.storage_failure_admit",
            extra={
                "operation": operation,
                "error_code": exc.code,
                "error_details": exc.details,
                "fail_open": True,
            },
        )
        reset_after = _ceil_seconds(rule.window)
        return AdmissionResult.success(
            remaining=rule.permit_limit - 1,
            limit=rule.permit_limit,
            reset_after_seconds=reset_after,
            reset_at=self._reset_at(reset_after),
            degraded=True,
        )
