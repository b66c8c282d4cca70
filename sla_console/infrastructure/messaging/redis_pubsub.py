"""Redis pub/sub transport for change notifications.

Each tenant has its own channel ("{prefix}:{tenant_id}"); changes with no
tenant go to "{prefix}:global". A console watching every tenant uses a
pattern subscription on "{prefix}:*".
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator

import redis.asyncio as redis
from redis.asyncio.client import PubSub

from sla_console.core.config import Settings, get_settings
from sla_console.core.constants import GLOBAL_CHANNEL_SUFFIX
from sla_console.domain.value_objects import ScopeValue
from sla_console.schemas.notification import ChangeNotification

logger = logging.getLogger(__name__)

_MESSAGE_TYPES = frozenset({"message", "pmessage"})


class _RedisPubSubBase:
    """Shared Redis connection and channel naming for change notifications."""

    def __init__(
        self,
        redis_client: redis.Redis | None = None,
        settings: Settings | None = None,
    ) -> None:
        """Initialize. Pass redis_client for DI/testing."""
        self.redis = redis_client
        self.settings = settings or get_settings()
        self.channel_prefix = self.settings.realtime_channel_prefix
        self._connected = False
        self._owns_client = redis_client is None

    async def _ensure_connected(self) -> redis.Redis:
        """Create the client if needed and ping it.

        Raises:
            ConnectionError: If Redis cannot be reached.
            TimeoutError: If the ping times out.
        """
        if self.redis is None:
            password = self.settings.redis_password
            self.redis = redis.Redis(
                host=self.settings.redis_host,
                port=self.settings.redis_port,
                db=self.settings.redis_db,
                password=password.get_secret_value() if password else None,
                decode_responses=True,
                socket_connect_timeout=5,
            )
        try:
            await self.redis.ping()
        except redis.TimeoutError as e:
            self._connected = False
            raise TimeoutError(f"Redis ping timed out: {e}") from e
        except redis.ConnectionError as e:
            self._connected = False
            raise ConnectionError(f"Redis unavailable: {e}") from e
        self._connected = True
        return self.redis

    async def disconnect(self) -> None:
        """Close the Redis client if this object created it."""
        if self.redis is not None and self._owns_client:
            await self.redis.aclose()
            self.redis = None
            logger.info("Redis pub/sub disconnected")
        self._connected = False

    def is_available(self) -> bool:
        """Return True if Redis is connected."""
        return self._connected and self.redis is not None

    def _get_channel(self, tenant_id: ScopeValue) -> str:
        """Channel name for tenant (the global channel when tenant_id is None)."""
        suffix = GLOBAL_CHANNEL_SUFFIX if tenant_id is None else tenant_id
        return f"{self.channel_prefix}:{suffix}"


class ChangeNotificationPublisher(_RedisPubSubBase):
    """Publishes change notifications to the tenant's channel."""

    async def connect(self) -> bool:
        """Connect to Redis. Returns False (and logs) when unavailable."""
        try:
            await self._ensure_connected()
        except (ConnectionError, TimeoutError) as e:
            logger.warning("Redis publisher connection failed: %s", e)
            return False
        logger.info("Redis publisher connected")
        return True

    async def publish(self, notification: ChangeNotification) -> bool:
        """Publish notification.

        Returns:
            True if published, False if Redis is unavailable or the publish failed.
        """
        if not self.is_available() or self.redis is None:
            logger.debug("Redis not available, skipping publish")
            return False
        channel = self._get_channel(notification.scope.tenant_id)
        try:
            await self.redis.publish(channel, notification.to_wire())
        except redis.RedisError:
            logger.exception("Failed to publish change notification to %s", channel)
            return False
        logger.debug(
            "Published %s/%s to %s",
            notification.entity_type.value,
            notification.operation.value,
            channel,
        )
        return True


class RedisChangeChannel(_RedisPubSubBase):
    """ChangeChannel over Redis pub/sub.

    With tenant_id set, subscribes to that tenant's channel plus the global
    one; otherwise pattern-subscribes to every tenant.
    """

    def __init__(
        self,
        redis_client: redis.Redis | None = None,
        settings: Settings | None = None,
        tenant_id: ScopeValue = None,
    ) -> None:
        super().__init__(redis_client, settings)
        self.tenant_id = tenant_id
        self._pubsub: PubSub | None = None

    @property
    def pattern(self) -> str:
        return f"{self.channel_prefix}:*"

    def channels(self) -> list[str]:
        """Channels subscribed when a tenant is set."""
        return [self._get_channel(self.tenant_id), self._get_channel(None)]

    async def connect(self) -> None:
        """Connect and subscribe.

        Raises:
            ConnectionError: If Redis cannot be reached.
            TimeoutError: If Redis does not answer in time.
        """
        await self.close()
        client = await self._ensure_connected()
        pubsub = client.pubsub()
        try:
            await self._subscribe(pubsub)
        except redis.TimeoutError as e:
            await pubsub.aclose()
            raise TimeoutError(f"Redis subscribe timed out: {e}") from e
        except redis.ConnectionError as e:
            await pubsub.aclose()
            raise ConnectionError(f"Redis subscribe failed: {e}") from e
        self._pubsub = pubsub
        logger.info("Subscribed to change notifications (tenant=%s)", self.tenant_id or "*")

    async def listen(self) -> AsyncIterator[bytes | str]:
        """Yield message payloads; subscription confirmations are skipped."""
        if self._pubsub is None:
            raise ConnectionError("Channel is not connected")
        try:
            async for message in self._pubsub.listen():
                if message.get("type") in _MESSAGE_TYPES:
                    yield message["data"]
        except redis.TimeoutError as e:
            raise TimeoutError(f"Redis read timed out: {e}") from e
        except redis.ConnectionError as e:
            raise ConnectionError(f"Redis connection lost: {e}") from e

    async def close(self) -> None:
        """Unsubscribe and close the pub/sub connection."""
        pubsub, self._pubsub = self._pubsub, None
        if pubsub is None:
            return
        try:
            await self._unsubscribe(pubsub, self.tenant_id)
        except redis.RedisError as e:
            logger.debug("Ignoring unsubscribe error on close: %s", e)
        finally:
            await pubsub.aclose()
        logger.info("Unsubscribed from change notifications")

    async def retarget(self, tenant_id: ScopeValue) -> None:
        """Switch to another tenant's channel.

        When connected the subscription is swapped on the live pub/sub
        connection, so listen() keeps running; otherwise the next connect()
        uses the new tenant.

        Raises:
            ConnectionError: If Redis drops the resubscribe.
            TimeoutError: If Redis does not answer in time.
        """
        previous, self.tenant_id = self.tenant_id, tenant_id
        pubsub = self._pubsub
        if pubsub is None or previous == tenant_id:
            return
        try:
            await self._unsubscribe(pubsub, previous)
            await self._subscribe(pubsub)
        except redis.TimeoutError as e:
            raise TimeoutError(f"Redis resubscribe timed out: {e}") from e
        except redis.ConnectionError as e:
            raise ConnectionError(f"Redis resubscribe failed: {e}") from e
        logger.info(
            "Resubscribed change notifications: tenant %s -> %s",
            previous or "*",
            tenant_id or "*",
        )

    async def _subscribe(self, pubsub: PubSub) -> None:
        if self.tenant_id is None:
            await pubsub.psubscribe(self.pattern)
        else:
            await pubsub.subscribe(*self.channels())

    @staticmethod
    async def _unsubscribe(pubsub: PubSub, tenant_id: ScopeValue) -> None:
        if tenant_id is None:
            await pubsub.punsubscribe()
        else:
            await pubsub.unsubscribe()
