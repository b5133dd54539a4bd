"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
Environment variables are set before any quotaguard import so the global
settings object is built from them instead of a local .env file.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["TESTING"] = "true"
os.environ.setdefault("APP_ENV", "testing")
os.environ.setdefault("RATE_LIMIT_BACKEND", "memory")
os.environ.setdefault("APP_ADMIN_AUTH_REQUIRED", "true")
os.environ.setdefault("APP_ADMIN_API_KEYS", "test-admin-key,other-admin-key")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from datetime import timedelta  # noqa: E402

import pytest  # noqa: E402

from quotaguard.adapters.rate_limit.in_memory import InMemoryCounterStore  # noqa: E402
from quotaguard.schemas.rules import RateLimitOptions, RateLimitRule  # noqa: E402
from quotaguard.services.rate_limit_service import RateLimitService  # noqa: E402


class FakeTime:
    """Deterministic clock used to test window expiry."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.current = start

    def time(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


@pytest.fixture
def fake_time() -> FakeTime:
    return FakeTime()


@pytest.fixture
def memory_store(fake_time: FakeTime) -> InMemoryCounterStore:
    return InMemoryCounterStore(clock=fake_time.time)


@pytest.fixture
def make_service(memory_store: InMemoryCounterStore, fake_time: FakeTime):
    """Build a service over the in-memory store with the shared fake clock."""

    def _make(
        permit_limit: int = 3,
        window_seconds: float = 60,
        **option_overrides,
    ) -> RateLimitService:
        options = RateLimitOptions(
            default_rule=RateLimitRule(
                permit_limit=permit_limit,
                window=timedelta(seconds=window_seconds),
            ),
            **option_overrides,
        )
        return RateLimitService(memory_store, options, clock=fake_time.time)

    return _make
