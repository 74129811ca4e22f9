"""
Cross-process event publishing.

Scheduler workers have no WebSocket connections of their own; they publish
events to Redis and the API's BroadcastHub relays them to its clients.
"""
from __future__ import annotations

from typing import Protocol

from shared.models.domain import BroadcastEvent
from shared.utils.logging import get_logger
from shared.utils.metrics import BROADCAST_EVENTS
from shared.utils.redis_manager import FANOUT_CHANNEL, RedisManager

logger = get_logger(__name__)


class Broadcaster(Protocol):
    async def publish(self, event: BroadcastEvent) -> None: ...


class RedisEventPublisher:
    def __init__(self, redis: RedisManager, channel: str = FANOUT_CHANNEL) -> None:
        self._redis = redis
        self._channel = channel

    async def publish(self, event: BroadcastEvent) -> None:
        receivers = await self._redis.publish(self._channel, event.model_dump_json(by_alias=True))
        BROADCAST_EVENTS.labels(type=event.type.value).inc()
        logger.debug("event_published", type=event.type.value, channel=self._channel, receivers=receivers)
