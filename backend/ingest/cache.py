"""
Short-TTL scores cache on top of RedisManager.
Values are JSON arrays of wire-form GameScore objects.
"""
from __future__ import annotations

import json
from typing import Iterable, Optional

from shared.config import Settings, get_settings
from shared.models.domain import GameScore
from shared.utils.logging import get_logger
from shared.utils.redis_manager import (
    SCORES_FEATURED_PATTERN,
    SCORES_SPORT_KEY,
    SCORES_TEAMS_KEY,
    SCORES_TEAMS_PATTERN,
    RedisManager,
    fmt_key,
)

logger = get_logger(__name__)


class ScoresCache:
    def __init__(self, redis: RedisManager, settings: Settings | None = None) -> None:
        self._redis = redis
        self._settings = settings or get_settings()

    @staticmethod
    def key_for(sport: str, mode: str) -> str:
        return fmt_key(SCORES_SPORT_KEY, sport=sport.upper(), mode=mode)

    @staticmethod
    def teams_key(team_ids: Iterable[str]) -> str:
        ids = sorted({t.upper() for t in team_ids if t})
        return fmt_key(SCORES_TEAMS_KEY, team_ids=",".join(ids))

    async def write(self, key: str, games: list[GameScore], ttl_s: Optional[int] = None) -> None:
        payload = json.dumps([g.to_wire() for g in games])
        await self._redis.set_snapshot(key, payload, ttl_s=ttl_s or self._settings.scores_featured_ttl_s)
        logger.debug("scores_cache_written", key=key, count=len(games))

    async def read(self, key: str) -> Optional[list[GameScore]]:
        raw = await self._redis.get_snapshot(key)
        if raw is None:
            return None
        return [GameScore.model_validate(item) for item in json.loads(raw)]

    async def clear(self) -> int:
        """Drop team-scoped and featured entries; returns the number of keys deleted."""
        deleted = 0
        for pattern in (SCORES_TEAMS_PATTERN, SCORES_FEATURED_PATTERN):
            deleted += await self._redis.delete_pattern(pattern)
        logger.info("scores_cache_cleared", deleted=deleted)
        return deleted
