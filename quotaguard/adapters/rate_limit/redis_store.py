"""Redis-backed fixed-window counter store for multi-instance deployments.

Counters are plain integer keys with a millisecond expiry. Increment and
expiry assignment run inside one Lua script, so the first increment of a
window and its expiry are applied atomically on the server and concurrent
first increments from different instances cannot race.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Any

import redis
import redis.asyncio as aioredis

from quotaguard.adapters.rate_limit.base import AbstractCounterStore
from quotaguard.core.errors import StorageError

logger = logging.getLogger(__name__)

# KEYS[1] = counter key
# ARGV[1] = window in milliseconds
# Returns the post-increment count. The expiry is only set when the window
# starts (count == 1) or when a key somehow lost its TTL.
INCREMENT_WITH_EXPIRY_LUA = """
local count = redis.call('INCR', KEYS[1])
if count == 1 or redis.call('PTTL', KEYS[1]) < 0 then
    redis.call('PEXPIRE', KEYS[1], ARGV[1])
end
return count
"""

SCAN_BATCH_SIZE = 500


def _window_ms(window: timedelta) -> int:
    return max(1, int(window.total_seconds() * 1000))


class RedisCounterStore(AbstractCounterStore):
    """Counter store backed by a shared Redis instance.

    Every ``redis.RedisError`` (connection refused, timeout, command error) is
    re-raised as ``StorageError`` so the service can apply its fail-open
    policy.
    """

    backend_name = "redis"

    def __init__(self, client: Any) -> None:
        """Initialize the store.

        Args:
            client: ``redis.asyncio.Redis`` (or compatible) client.
        """
        self._redis = client
        self._increment_script = client.register_script(INCREMENT_WITH_EXPIRY_LUA)

    @classmethod
    def from_url(cls, url: str, *, socket_timeout: float | None = None) -> "RedisCounterStore":
        """Build a store from a Redis connection URL."""
        client = aioredis.from_url(
            url,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        return cls(client)

    def _failure(self, operation: str, exc: redis.RedisError) -> StorageError:
        logger.error(
            "counter_store.redis_error",
            extra={"operation": operation, "error_type": type(exc).__name__, "error_msg": str(exc)},
        )
        return StorageError.from_exception(operation, self.backend_name, exc)

    async def increment(self, key: str, window: timedelta) -> int:
        try:
            count = await self._increment_script(keys=[key], args=[_window_ms(window)])
        except redis.RedisError as exc:
            raise self._failure("increment", exc) from exc
        return int(count)

    async def get_count(self, key: str) -> int:
        try:
            value = await self._redis.get(key)
        except redis.RedisError as exc:
            raise self._failure("get_count", exc) from exc
        if value is None:
            return 0
        try:
            return int(value)
        except (TypeError, ValueError):
            logger.warning("counter_store.non_integer_value", extra={"operation": "get_count"})
            return 0

    async def get_time_to_live(self, key: str) -> timedelta:
        try:
            ttl_ms = await self._redis.pttl(key)
        except redis.RedisError as exc:
            raise self._failure("get_time_to_live", exc) from exc
        # -2: missing key, -1: key without expiry
        if ttl_ms is None or int(ttl_ms) < 0:
            return timedelta(0)
        return timedelta(milliseconds=int(ttl_ms))

    async def reset(self, key: str) -> bool:
        try:
            deleted = await self._redis.delete(key)
        except redis.RedisError as exc:
            raise self._failure("reset", exc) from exc
        return int(deleted) > 0

    async def reset_by_prefix(self, pattern: str) -> int:
        deleted = 0
        batch: list[Any] = []
        try:
            async for key in self._redis.scan_iter(match=pattern, count=SCAN_BATCH_SIZE):
                batch.append(key)
                if len(batch) >= SCAN_BATCH_SIZE:
                    deleted += int(await self._redis.delete(*batch))
                    batch.clear()
            if batch:
                deleted += int(await self._redis.delete(*batch))
        except redis.RedisError as exc:
            raise self._failure("reset_by_prefix", exc) from exc

        logger.debug(
            "counter.reset_by_prefix",
            extra={"store": self.backend_name, "pattern": pattern, "deleted": deleted},
        )
        return deleted

    async def ping(self) -> bool:
        """Check connectivity; raises StorageError when unreachable."""
        try:
            return bool(await self._redis.ping())
        except redis.RedisError as exc:
            raise self._failure("ping", exc) from exc

    async def close(self) -> None:
        await self._redis.aclose()
