"""Real-time sync: apply other sessions' changes to the local cache.

Consumes change notifications from a ChangeChannel and routes each one
through the same InvalidationResolver that local mutations use. A
notification is dropped when it is this session's own echo, when it is
not newer than the last version applied for the same entity, or when it
is outside the view context the session displays.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from sla_console.application.services.invalidation_resolver import InvalidationResolver
from sla_console.application.services.origin_registry import OriginRegistry
from sla_console.domain.enums import ConnectionState, SyncOutcome
from sla_console.domain.exceptions import (
    MalformedNotification,
    ScopeMismatch,
    StaleNotification,
)
from sla_console.domain.value_objects import ViewContext
from sla_console.infrastructure.cache.store import CacheStore
from sla_console.infrastructure.messaging.channel_protocol import ChangeChannel
from sla_console.schemas.notification import ChangeNotification

if TYPE_CHECKING:
    from sla_console.core.config import Settings

logger = logging.getLogger(__name__)


class RealtimeSync:
    """Connection state machine plus per-notification filtering.

    run() keeps the channel connected: after a failure it waits
    interval * 2**(failures - 1) seconds (capped at max_backoff) measured
    from the previous attempt, and gives up after max_attempts consecutive
    failures. Losing the connection never touches cached values; after
    every reconnect on_reconnect runs (by default all visible keys are
    marked stale, since broadcasts may have been missed).
    """

    def __init__(
        self,
        store: CacheStore,
        resolver: InvalidationResolver,
        channel: ChangeChannel,
        origins: OriginRegistry,
        context: ViewContext | None = None,
        reconnect_interval: float = 1.0,
        max_backoff: float = 30.0,
        max_attempts: int | None = 5,
        echo_suppression: bool = True,
        versioning: bool = True,
        on_reconnect: Callable[[], Any] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if reconnect_interval <= 0:
            raise ValueError("reconnect_interval must be greater than 0")
        self._store = store
        self._resolver = resolver
        self._channel = channel
        self._origins = origins
        self._context = context or ViewContext()
        self._interval = reconnect_interval
        self._max_backoff = max(max_backoff, reconnect_interval)
        self._max_attempts = max_attempts
        self._echo_suppression = echo_suppression
        self._versioning = versioning
        self._on_reconnect = on_reconnect or self._invalidate_visible
        self._sleep = sleep
        self._clock = clock
        self._state = ConnectionState.DISCONNECTED
        self._versions: dict[tuple[Any, ...], int] = {}
        self._stopping = False
        self._failures = 0
        self._last_attempt: float | None = None
        self._has_connected = False

    @classmethod
    def from_settings(
        cls,
        store: CacheStore,
        resolver: InvalidationResolver,
        channel: ChangeChannel,
        origins: OriginRegistry,
        settings: Settings,
        context: ViewContext | None = None,
    ) -> RealtimeSync:
        return cls(
            store,
            resolver,
            channel,
            origins,
            context=context,
            reconnect_interval=settings.realtime_reconnect_interval_seconds,
            max_backoff=settings.realtime_max_backoff_seconds,
            max_attempts=settings.realtime_max_reconnect_attempts,
            echo_suppression=settings.realtime_echo_suppression,
            versioning=settings.realtime_event_versioning,
        )

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def context(self) -> ViewContext:
        return self._context

    @property
    def failures(self) -> int:
        """Consecutive failed connection attempts."""
        return self._failures

    async def set_context(self, context: ViewContext) -> None:
        """Change the tenant/team the session displays.

        A tenant switch moves the channel to the new tenant and marks every
        visible key stale, since the new tenant's changes were not being
        received. A failed resubscribe is logged; the run loop reconnects
        with the new tenant once the channel reports the failure.
        """
        previous, self._context = self._context, context
        if context == previous:
            return
        logger.debug("View context changed: %s -> %s", previous, context)
        if context.tenant_id == previous.tenant_id:
            return
        try:
            await self._channel.retarget(context.tenant_id)
        except (ConnectionError, TimeoutError) as e:
            logger.warning("Resubscribe for tenant %s failed: %s", context.tenant_id, e)
        self._invalidate_visible()

    def last_version(self, notification: ChangeNotification) -> int | None:
        """Highest version applied (or echoed) for the notification's entity."""
        return self._versions.get(notification.version_key())

    # ---- Notification handling ----

    def handle(self, raw: bytes | str | dict[str, Any]) -> SyncOutcome:
        """Process one raw notification. Never raises for bad input."""
        try:
            notification = ChangeNotification.parse(raw)
        except MalformedNotification as e:
            logger.warning("Dropping notification: %s", e.message)
            return SyncOutcome.MALFORMED

        if self._echo_suppression and self._origins.is_own(notification.correlation_id):
            self._record_version(notification)
            logger.debug("Dropping self-echo %s", notification.correlation_id)
            return SyncOutcome.SELF_ECHO

        try:
            self._check_version(notification)
            self._check_scope(notification)
        except StaleNotification as e:
            logger.debug(e.message)
            return SyncOutcome.STALE
        except ScopeMismatch as e:
            logger.debug("%s: %s", e.message, e.details)
            return SyncOutcome.SCOPE_MISMATCH

        self._record_version(notification)
        invalidated = self._resolver.apply(
            notification.entity_type,
            notification.operation,
            notification.scope.to_mutation_scope(),
        )
        logger.debug(
            "Applied %s/%s from %s (%s key(s))",
            notification.entity_type.value,
            notification.operation.value,
            notification.correlation_id or "server",
            len(invalidated),
        )
        return SyncOutcome.APPLIED

    def _check_version(self, notification: ChangeNotification) -> None:
        if not self._versioning or notification.version is None:
            return
        last = self.last_version(notification)
        if last is not None and notification.version <= last:
            raise StaleNotification(
                "/".join(str(part) for part in notification.version_key()),
                notification.version,
                last,
            )

    def _check_scope(self, notification: ChangeNotification) -> None:
        scope = notification.scope.to_mutation_scope()
        if not self._context.matches(scope):
            raise ScopeMismatch(scope.as_dict(), self._context.as_dict())

    def _record_version(self, notification: ChangeNotification) -> None:
        if not self._versioning or notification.version is None:
            return
        last = self.last_version(notification)
        if last is None or notification.version > last:
            self._versions[notification.version_key()] = notification.version

    # ---- Connection loop ----

    async def run(self) -> None:
        """Connect, consume notifications and reconnect until stopped.

        Returns when stop() is called or after max_attempts consecutive
        connection failures.
        """
        self._stopping = False
        while not self._stopping:
            if self._max_attempts is not None and self._failures >= self._max_attempts:
                logger.error(
                    "Giving up on real-time channel after %s failed attempts", self._failures
                )
                break
            await self._throttle()
            if self._stopping:
                break
            try:
                await self._connect()
                async for raw in self._channel.listen():
                    self.handle(raw)
                    if self._stopping:
                        break
                if not self._stopping:
                    logger.info("Real-time stream ended")
            except (ConnectionError, TimeoutError) as e:
                self._failures += 1
                logger.warning(
                    "Real-time channel error (attempt %s): %s", self._failures, e
                )
            finally:
                await self._disconnect()

    async def stop(self) -> None:
        """Ask run() to return and close the channel."""
        self._stopping = True
        await self._disconnect()

    async def _connect(self) -> None:
        self._set_state(ConnectionState.CONNECTING)
        self._last_attempt = self._clock()
        await self._channel.connect()
        self._set_state(ConnectionState.CONNECTED)
        self._failures = 0
        if self._has_connected:
            result = self._on_reconnect()
            if asyncio.iscoroutine(result):
                await result
        self._has_connected = True

    async def _disconnect(self) -> None:
        if self._state == ConnectionState.DISCONNECTED:
            return
        try:
            await self._channel.close()
        finally:
            self._set_state(ConnectionState.DISCONNECTED)

    async def _throttle(self) -> None:
        if self._last_attempt is None:
            return
        delay = self.backoff_delay(self._failures)
        remaining = delay - (self._clock() - self._last_attempt)
        if remaining > 0:
            logger.debug("Reconnecting in %.2fs", remaining)
            await self._sleep(remaining)

    def backoff_delay(self, failures: int) -> float:
        """Minimum spacing between connection attempts after failures."""
        if failures <= 1:
            return self._interval
        return min(self._interval * 2 ** (failures - 1), self._max_backoff)

    def _set_state(self, state: ConnectionState) -> None:
        if state != self._state:
            logger.info("Real-time connection %s -> %s", self._state.value, state.value)
            self._state = state

    def _invalidate_visible(self) -> list:
        invalidated = self._store.invalidate(self._store.has_subscribers)
        logger.info("Marked %s visible key(s) stale", len(invalidated))
        return invalidated
