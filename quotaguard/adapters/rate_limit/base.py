"""Counter store interface.

The rate limit service depends on this abstraction (not the concrete
implementation) so the in-process store and the shared Redis store are
interchangeable.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import timedelta

from quotaguard.core.errors import StorageError

__all__ = ["AbstractCounterStore", "StorageError"]


class AbstractCounterStore(ABC):
    """Fixed-window counters with absolute expiry.

    Implementations must make ``increment`` atomic per key: concurrent callers
    never lose an increment, and a key that is absent or expired is
    initialized exactly once with a single expiry of ``now + window``.
    Increments inside a live window never move the expiry.

    Backend failures are raised as ``StorageError``.
    """

    backend_name: str = "abstract"

    @abstractmethod
    async def increment(self, key: str, window: timedelta) -> int:
        """Increment the counter for ``key`` and return the new count.

        Args:
            key: Counter key.
            window: Expiry applied when the key starts a new window.

        Returns:
            Post-increment count (1 for a fresh window).
        """
        raise NotImplementedError

    @abstractmethod
    async def get_count(self, key: str) -> int:
        """Return the current count, or 0 when absent/expired."""
        raise NotImplementedError

    @abstractmethod
    async def get_time_to_live(self, key: str) -> timedelta:
        """Return the time until expiry, or zero when absent/expired."""
        raise NotImplementedError

    @abstractmethod
    async def reset(self, key: str) -> bool:
        """Delete ``key``; return whether it existed."""
        raise NotImplementedError

    @abstractmethod
    async def reset_by_prefix(self, pattern: str) -> int:
        """Delete every key matching the glob ``pattern``; return how many."""
        raise NotImplementedError

    async def ping(self) -> bool:
        """Check the backend is reachable; raises StorageError when it is not."""
        return True

    async def close(self) -> None:
        """Release backend resources."""
        return None
