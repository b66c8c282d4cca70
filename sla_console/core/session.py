"""Console session: composition root of the cache consistency engine.

A session owns one CacheStore and wires the staleness policy, reader,
invalidation resolver, mutation executor, admin operations and (when
enabled) real-time sync around it. open_session() handles startup and
shutdown.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any

from sla_console.application.services.invalidation_resolver import InvalidationResolver
from sla_console.application.services.mutation_executor import MutationExecutor
from sla_console.application.services.origin_registry import OriginRegistry
from sla_console.application.services.realtime_sync import RealtimeSync
from sla_console.application.use_cases.admin_operations import AdminOperations
from sla_console.core.config import Settings, get_settings
from sla_console.core.constants import (
    KEY_CONFLICTS,
    KEY_NOTIFICATION_CHANNELS,
    KEY_PERMISSIONS,
    KEY_ROLES,
    KEY_TEAM_MEMBERS,
    KEY_TEAMS,
    KEY_TENANTS,
    PATH_CONFLICTS,
    PATH_NOTIFICATION_CHANNELS,
    PATH_PERMISSIONS,
    PATH_ROLES,
    PATH_TEAM_MEMBERS,
    PATH_TEAMS,
    PATH_TENANTS,
)
from sla_console.domain.mutations import Mutation, MutationResult
from sla_console.domain.value_objects import CacheKey, ViewContext
from sla_console.infrastructure.cache.reader import QueryReader
from sla_console.infrastructure.cache.staleness import StalenessPolicy
from sla_console.infrastructure.cache.store import CacheStore, Subscriber
from sla_console.infrastructure.messaging.channel_protocol import ChangeChannel
from sla_console.infrastructure.remote.api_client import AdminApiClient
from sla_console.shared.telemetry.logging import setup_logging
from sla_console.shared.telemetry.telemetry import TelemetryConfig, set_telemetry

logger = logging.getLogger(__name__)

# Key roots with a plain list endpoint.
_LIST_PATHS = {
    KEY_TENANTS: PATH_TENANTS,
    KEY_TEAMS: PATH_TEAMS,
    KEY_ROLES: PATH_ROLES,
    KEY_PERMISSIONS: PATH_PERMISSIONS,
    KEY_CONFLICTS: PATH_CONFLICTS,
}


class ConsoleSession:
    """One console user's view of the admin data.

    UI bindings use get/subscribe for rendering, read to load a view and
    execute (or the admin operations) to change data.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        store: CacheStore | None = None,
        api: AdminApiClient | None = None,
        channel: ChangeChannel | None = None,
        context: ViewContext | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.store = store or CacheStore()
        self.policy = StalenessPolicy.from_settings(self.store, self.settings)
        self.reader = QueryReader(self.store, self.policy)
        self.resolver = InvalidationResolver.from_settings(self.store, self.settings)
        self.origins = OriginRegistry(self.settings.origin_retention)
        self.executor = MutationExecutor(self.store, self.resolver, self.origins)
        self.api = api or AdminApiClient.from_settings(self.settings)
        self.admin = AdminOperations(self.executor, self.api)
        self.channel = channel
        self.realtime: RealtimeSync | None = None
        if channel is not None:
            self.realtime = RealtimeSync.from_settings(
                self.store,
                self.resolver,
                channel,
                self.origins,
                self.settings,
                context=context,
            )
        self._context = context or ViewContext()
        self._realtime_task: asyncio.Task[None] | None = None

    # ---- UI bindings ----

    def get(self, key: CacheKey) -> Any:
        """Current cached value for key (None if absent)."""
        entry = self.store.get(key)
        return entry.value if entry is not None else None

    def subscribe(self, key: CacheKey, callback: Subscriber) -> Callable[[], None]:
        """Be told about every change to key or keys below it."""
        return self.store.subscribe(key, callback)

    async def read(
        self,
        key: CacheKey,
        loader: Callable[[], Awaitable[Any]] | None = None,
        force: bool = False,
    ) -> Any:
        """Read key through the cache, loading it when stale or missing.

        Without a loader the admin API endpoint for the key is used.
        """
        return await self.reader.read(key, loader or self.default_loader(key), force=force)

    async def execute(self, mutation: Mutation) -> MutationResult:
        return await self.executor.execute(mutation)

    @property
    def context(self) -> ViewContext:
        return self._context

    async def set_context(self, context: ViewContext) -> None:
        """Switch the displayed tenant/team; real-time sync follows the new tenant."""
        self._context = context
        if self.realtime is not None:
            await self.realtime.set_context(context)

    def default_loader(self, key: CacheKey) -> Callable[[], Awaitable[Any]]:
        """Return a loader fetching key from the admin API.

        Raises:
            ValueError: If key has no matching endpoint.
        """
        root = key[0] if key else None
        if root in _LIST_PATHS and len(key) == 1:
            path = _LIST_PATHS[root]
        elif root == KEY_TEAMS and len(key) == 2:
            path = f"{PATH_TEAMS}/{key[1]}"
        elif root == KEY_TEAM_MEMBERS and len(key) == 3:
            path = PATH_TEAM_MEMBERS.format(team_id=key[2])
        elif root == KEY_NOTIFICATION_CHANNELS and len(key) == 2:
            path = PATH_NOTIFICATION_CHANNELS.format(team_id=key[1])
        else:
            raise ValueError(f"No default loader for cache key {key!r}")

        async def load() -> Any:
            return await self.api.get(path)

        return load

    # ---- Lifecycle ----

    def start_realtime(self) -> asyncio.Task[None] | None:
        """Start the real-time loop in the background (no-op without a channel)."""
        if self.realtime is None:
            return None
        if self._realtime_task is None or self._realtime_task.done():
            self._realtime_task = asyncio.create_task(self.realtime.run())
        return self._realtime_task

    async def close(self) -> None:
        """Stop real-time sync and release the HTTP client."""
        task, self._realtime_task = self._realtime_task, None
        if self.realtime is not None:
            await self.realtime.stop()
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            logger.info("Real-time task stopped")
        await self.api.aclose()


@asynccontextmanager
async def open_session(
    settings: Settings | None = None,
    *,
    api: AdminApiClient | None = None,
    channel: ChangeChannel | None = None,
    context: ViewContext | None = None,
) -> AsyncIterator[ConsoleSession]:
    """Build a session, start it, and shut it down on exit.

    Startup order: logging, telemetry (if enabled), real-time channel (if enabled).
    Shutdown order: real-time task, channel, HTTP client, telemetry.
    """
    settings = settings or get_settings()
    context = context or ViewContext()

    # ---- Startup ----
    setup_logging(settings)

    telemetry: TelemetryConfig | None = None
    if settings.telemetry_enabled:
        telemetry = TelemetryConfig.from_settings(settings)
        telemetry.setup_telemetry(
            exporter_type=settings.telemetry_exporter,
            otlp_endpoint=settings.telemetry_otlp_endpoint,
            sample_rate=settings.telemetry_sample_rate,
        )
        set_telemetry(telemetry)
        telemetry.instrument_redis()
        telemetry.instrument_logging()
        logger.info("Telemetry initialized")

    if channel is None and settings.realtime_enabled:
        from sla_console.infrastructure.messaging.redis_pubsub import RedisChangeChannel

        channel = RedisChangeChannel(settings=settings, tenant_id=context.tenant_id)

    session = ConsoleSession(settings, api=api, channel=channel, context=context)
    session.start_realtime()
    try:
        yield session
    finally:
        # ---- Shutdown ----
        await session.close()
        disconnect = getattr(channel, "disconnect", None)
        if disconnect is not None:
            await disconnect()
        if telemetry is not None:
            telemetry.shutdown()
            set_telemetry(None)
