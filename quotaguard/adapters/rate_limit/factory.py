"""Factory for creating counter store instances."""

from __future__ import annotations

from quotaguard.adapters.rate_limit.base import AbstractCounterStore
from quotaguard.adapters.rate_limit.in_memory import InMemoryCounterStore
from quotaguard.adapters.rate_limit.redis_store import RedisCounterStore
from quotaguard.core.config import Settings, settings as default_settings
from quotaguard.core.errors import ValidationAppError


def create_counter_store(cfg: Settings | None = None) -> AbstractCounterStore:
    """Instantiate the counter store selected by configuration.

    Args:
        cfg: Settings to read; defaults to the global settings.

    Returns:
        AbstractCounterStore: Configured store instance.

    Raises:
        ValidationAppError: If the backend name is unknown.
    """
    cfg = cfg or default_settings
    backend = cfg.rate_limit.backend.lower()

    if backend == "memory":
        return InMemoryCounterStore(max_entries=cfg.rate_limit.max_local_entries)

    if backend == "redis":
        return RedisCounterStore.from_url(
            cfg.redis.url,
            socket_timeout=cfg.redis.socket_timeout_seconds,
        )

    raise ValidationAppError(
        code="rate_limit_unknown_backend",
        message=f"Unknown counter store backend: '{backend}'. Supported backends: memory, redis",
        details={"field": "RATE_LIMIT_BACKEND"},
    )
