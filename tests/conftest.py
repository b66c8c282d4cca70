"""Pytest configuration and fixtures for the SLA console engine.

Everything runs in memory: a CacheStore with a controllable clock, the
default invalidation rules and a scripted change channel standing in for
Redis.
"""

from collections.abc import AsyncIterator
from datetime import UTC, datetime, timedelta

import pytest

from sla_console.application.services.invalidation_resolver import InvalidationResolver
from sla_console.application.services.mutation_executor import MutationExecutor
from sla_console.application.services.origin_registry import OriginRegistry
from sla_console.core.config import Settings
from sla_console.infrastructure.cache.store import CacheStore


class FakeClock:
    """Callable clock returning a fixed UTC time until advanced."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeChannel:
    """ChangeChannel double.

    connect_errors: exceptions raised by successive connect() calls (None = succeed).
    batches: messages yielded by successive listen() calls; an exception
    instance in a batch is raised at that point in the stream.
    """

    def __init__(
        self,
        connect_errors: list[BaseException | None] | None = None,
        batches: list[list] | None = None,
    ) -> None:
        self.connect_errors = list(connect_errors or [])
        self.batches = list(batches or [])
        self.connects = 0
        self.closes = 0
        self.tenants: list = []

    async def connect(self) -> None:
        self.connects += 1
        if self.connect_errors:
            error = self.connect_errors.pop(0)
            if error is not None:
                raise error

    async def listen(self) -> AsyncIterator:
        batch = self.batches.pop(0) if self.batches else []
        for item in batch:
            if isinstance(item, BaseException):
                raise item
            yield item

    async def retarget(self, tenant_id) -> None:
        self.tenants.append(tenant_id)

    async def close(self) -> None:
        self.closes += 1


@pytest.fixture
def settings() -> Settings:
    """Settings with defaults only (no .env)."""
    return Settings(_env_file=None)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> CacheStore:
    return CacheStore(clock=clock)


@pytest.fixture
def resolver(store: CacheStore) -> InvalidationResolver:
    return InvalidationResolver(store)


@pytest.fixture
def origins() -> OriginRegistry:
    return OriginRegistry(retention=8)


@pytest.fixture
def executor(
    store: CacheStore, resolver: InvalidationResolver, origins: OriginRegistry
) -> MutationExecutor:
    return MutationExecutor(store, resolver, origins)
