"""Real-time messaging: change channel protocol and Redis pub/sub transport."""

from sla_console.infrastructure.messaging.channel_protocol import ChangeChannel
from sla_console.infrastructure.messaging.redis_pubsub import (
    ChangeNotificationPublisher,
    RedisChangeChannel,
)

__all__ = ["ChangeChannel", "ChangeNotificationPublisher", "RedisChangeChannel"]
