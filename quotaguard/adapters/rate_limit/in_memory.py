"""In-memory fixed-window counter store.

Notes:
- Per-process only: running multiple workers multiplies the effective limit.
- Thread-safe: each key's read-modify-write runs under that key's own lock,
  so unrelated keys never contend with each other. Key locks live only while
  some caller holds or waits for them.
"""

from __future__ import annotations

import logging
import re
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Callable, Iterator

from quotaguard.adapters.rate_limit.base import AbstractCounterStore

logger = logging.getLogger(__name__)


@dataclass
class _CounterEntry:
    count: int
    expires_at: float


@dataclass
class _KeyLock:
    lock: threading.Lock = field(default_factory=threading.Lock)
    users: int = 0


def _compile_pattern(pattern: str) -> re.Pattern[str]:
    """Compile a glob where ``*`` is the only wildcard."""
    return re.compile("^" + ".*".join(re.escape(part) for part in pattern.split("*")) + "$")


class InMemoryCounterStore(AbstractCounterStore):
    """Counter store backed by a process-local dict.

    Important:
        Entries expire lazily: an expired entry is dropped the next time its
        key is touched, or by the sweep that runs when ``max_entries`` is
        exceeded.
    """

    backend_name = "memory"

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.time,
        max_entries: int | None = 100_000,
    ) -> None:
        """Initialize the in-memory store.

        Args:
            clock: Time source returning UNIX time in seconds.
            max_entries: Soft bound on stored keys; exceeding it triggers a
                sweep of expired entries. While live keys keep the store
                above the bound, the next sweep waits until the store has
                doubled. ``None`` disables the sweep.

        Raises:
            ValueError: If max_entries is not positive.
        """
        if max_entries is not None and max_entries < 1:
            raise ValueError("max_entries must be >= 1")

        self._clock = clock
        self._max_entries = max_entries
        self._entries: dict[str, _CounterEntry] = {}
        # Size that triggers the next sweep; raised when a sweep frees too little.
        self._sweep_threshold = max_entries
        self._sweeps = 0
        self._key_locks: dict[str, _KeyLock] = {}
        self._registry_lock = threading.Lock()

    def __repr__(self) -> str:  # pragma: no cover - representation only
        return f"InMemoryCounterStore(entries={len(self._entries)}, max_entries={self._max_entries})"

    @contextmanager
    def _locked(self, key: str) -> Iterator[None]:
        """Hold the exclusion lock of ``key``.

        The registry lock only guards lock lookup/refcounting; it is never
        held while a key's critical section runs.
        """
        with self._registry_lock:
            key_lock = self._key_locks.get(key)
            if key_lock is None:
                key_lock = self._key_locks[key] = _KeyLock()
            key_lock.users += 1

        key_lock.lock.acquire()
        try:
            yield
        finally:
            key_lock.lock.release()
            with self._registry_lock:
                key_lock.users -= 1
                if key_lock.users == 0:
                    self._key_locks.pop(key, None)

    def _live_entry(self, key: str, now: float) -> _CounterEntry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at <= now:
            self._entries.pop(key, None)
            return None
        return entry

    async def increment(self, key: str, window: timedelta) -> int:
        with self._locked(key):
            now = self._clock()
            entry = self._live_entry(key, now)
            if entry is None:
                entry = _CounterEntry(count=0, expires_at=now + window.total_seconds())
                self._entries[key] = entry
            entry.count += 1
            count = entry.count

        if self._sweep_threshold is not None and len(self._entries) > self._sweep_threshold:
            self._sweep_expired()

        logger.debug("counter.incremented", extra={"store": self.backend_name, "count": count})
        return count

    async def get_count(self, key: str) -> int:
        with self._locked(key):
            entry = self._live_entry(key, self._clock())
            return entry.count if entry else 0

    async def get_time_to_live(self, key: str) -> timedelta:
        with self._locked(key):
            now = self._clock()
            entry = self._live_entry(key, now)
            if entry is None:
                return timedelta(0)
            return timedelta(seconds=max(0.0, entry.expires_at - now))

    async def reset(self, key: str) -> bool:
        with self._locked(key):
            existed = self._live_entry(key, self._clock()) is not None
            self._entries.pop(key, None)
        logger.debug("counter.reset", extra={"store": self.backend_name, "existed": existed})
        return existed

    async def reset_by_prefix(self, pattern: str) -> int:
        matcher = _compile_pattern(pattern)
        deleted = 0
        # Snapshot the key set; keys created after the scan are left alone.
        for key in [k for k in list(self._entries) if matcher.match(k)]:
            with self._locked(key):
                if self._live_entry(key, self._clock()) is not None:
                    deleted += 1
                self._entries.pop(key, None)

        logger.debug(
            "counter.reset_by_prefix",
            extra={"store": self.backend_name, "pattern": pattern, "deleted": deleted},
        )
        return deleted

    def _sweep_expired(self) -> None:
        now = self._clock()
        expired = [k for k, entry in list(self._entries.items()) if entry.expires_at <= now]
        for key in expired:
            with self._locked(key):
                self._live_entry(key, now)
        self._sweeps += 1
        self._sweep_threshold = max(self._max_entries or 0, 2 * len(self._entries))
        if expired:
            logger.debug(
                "counter.swept",
                extra={"store": self.backend_name, "evicted": len(expired), "entries": len(self._entries)},
            )

    def stats(self) -> dict[str, int | None]:
        """Return lightweight store metrics without exposing keys."""
        return {
            "entries": len(self._entries),
            "max_entries": self._max_entries,
            "sweeps": self._sweeps,
        }
