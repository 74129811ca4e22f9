"""
Redis connection manager for scorewire.
Provides async connection pool, pub/sub helpers, and key namespace utilities.
"""
from __future__ import annotations

from typing import Any, Optional

import redis.asyncio as aioredis
from redis.asyncio import Redis
from redis.asyncio.client import PubSub

from shared.config import Settings, get_settings
from shared.utils.logging import get_logger

logger = get_logger(__name__)

# ── Key namespaces ──────────────────────────────────────────────────────
SCORES_SPORT_KEY = "scores:sport:{sport}:{mode}"
SCORES_TEAMS_KEY = "scores:teams:{team_ids}"
SCORES_TEAMS_PATTERN = "scores:teams:*"
SCORES_FEATURED_PATTERN = "scores:sport:*:featured"
FANOUT_CHANNEL = "fanout:scores"


def fmt_key(template: str, **kwargs: Any) -> str:
    return template.format(**kwargs)


class RedisManager:
    """Manages async Redis connection pool and provides typed helpers."""

    def __init__(self, settings: Settings | None = None) -> None:
        self._settings = settings or get_settings()
        self._pool: Optional[Redis] = None

    async def connect(self) -> None:
        """Initialize the connection pool."""
        self._pool = aioredis.from_url(
            self._settings.redis_url_str,
            max_connections=self._settings.redis_max_connections,
            decode_responses=True,
            socket_connect_timeout=5,
            socket_keepalive=True,
            retry_on_timeout=True,
        )
        await self._pool.ping()
        logger.info("redis_connected", url=self._settings.redis_url_str)

    async def disconnect(self) -> None:
        if self._pool:
            await self._pool.aclose()
            logger.info("redis_disconnected")

    @property
    def client(self) -> Redis:
        if self._pool is None:
            raise RuntimeError("RedisManager not connected. Call connect() first.")
        return self._pool

    # ── Snapshot helpers ────────────────────────────────────────────────
    async def set_snapshot(self, key: str, data: str, ttl_s: int = 300) -> None:
        """Store a JSON snapshot with TTL in one SET ... EX call."""
        await self.client.set(key, data, ex=ttl_s)

    async def get_snapshot(self, key: str) -> Optional[str]:
        return await self.client.get(key)

    async def delete_pattern(self, pattern: str, batch: int = 500) -> int:
        """Delete every key matching ``pattern`` using SCAN, never KEYS."""
        deleted = 0
        pending: list[str] = []
        async for key in self.client.scan_iter(match=pattern, count=batch):
            pending.append(key)
            if len(pending) >= batch:
                deleted += await self.client.delete(*pending)
                pending.clear()
        if pending:
            deleted += await self.client.delete(*pending)
        return deleted

    # ── Pub/Sub ─────────────────────────────────────────────────────────
    async def publish(self, channel: str, payload: str) -> int:
        return await self.client.publish(channel, payload)

    async def subscribe_channel(self, channel: str) -> PubSub:
        pubsub = self.client.pubsub()
        await pubsub.subscribe(channel)
        return pubsub
