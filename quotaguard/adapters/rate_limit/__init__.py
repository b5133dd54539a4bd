"""Counter store adapters.

This package provides a small abstraction layer so admission control can run
against a process-local store or a shared Redis store without changing the
service or API layer.
"""

from quotaguard.adapters.rate_limit.base import AbstractCounterStore, StorageError
from quotaguard.adapters.rate_limit.factory import create_counter_store
from quotaguard.adapters.rate_limit.in_memory import InMemoryCounterStore
from quotaguard.adapters.rate_limit.redis_store import RedisCounterStore

__all__ = [
    "AbstractCounterStore",
    "InMemoryCounterStore",
    "RedisCounterStore",
    "StorageError",
    "create_counter_store",
]
