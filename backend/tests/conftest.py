"""Shared fixtures: fast settings, an in-memory Redis stand-in, memory storage."""
from __future__ import annotations

import fnmatch
from datetime import datetime, timezone
from typing import Optional

import pytest

from shared.config import Settings
from shared.models.domain import GameScore, Team
from shared.models.enums import GameStatus
from shared.storage import MemoryScoreStorage

FIXED_NOW = datetime(2024, 11, 5, 19, 30, tzinfo=timezone.utc)


class FakeRedisManager:
    """Records what the pipeline writes; mirrors the RedisManager helpers it uses."""

    def __init__(self) -> None:
        self.values: dict[str, str] = {}
        self.ttls: dict[str, int] = {}
        self.published: list[tuple[str, str]] = []

    async def set_snapshot(self, key: str, data: str, ttl_s: int = 300) -> None:
        self.values[key] = data
        self.ttls[key] = ttl_s

    async def get_snapshot(self, key: str) -> Optional[str]:
        return self.values.get(key)

    async def delete_pattern(self, pattern: str, batch: int = 500) -> int:
        doomed = [k for k in self.values if fnmatch.fnmatchcase(k, pattern)]
        for key in doomed:
            self.values.pop(key)
            self.ttls.pop(key, None)
        return len(doomed)

    async def publish(self, channel: str, payload: str) -> int:
        self.published.append((channel, payload))
        return 1


@pytest.fixture
def settings() -> Settings:
    return Settings(
        scraper_rate_limit_ms=0,
        scraper_retry_backoff_s=0,
        scraper_max_retries=3,
        metrics_enabled=False,
        use_dummy_adapter=False,
    )


@pytest.fixture
def fake_redis() -> FakeRedisManager:
    return FakeRedisManager()


@pytest.fixture
def storage() -> MemoryScoreStorage:
    teams = [
        Team(id="NBA_LAL", league="NBA", code="LAL", name="Lakers"),
        Team(id="NBA_BOS", league="NBA", code="BOS", name="Celtics"),
        Team(id="NHL_BOS", league="NHL", code="BOS", name="Bruins"),
    ]
    return MemoryScoreStorage(teams=teams, favorites={"u1": ["NBA_LAL", "NBA_BOS"]})


def make_score(
    game_id: str = "NBA_ESPN_401584893",
    home: str = "NBA_LAL",
    away: str = "NBA_BOS",
    home_pts: int = 0,
    away_pts: int = 0,
    status: GameStatus = GameStatus.SCHEDULED,
    source: str = "ESPN API",
    cached_at: Optional[datetime] = None,
) -> GameScore:
    return GameScore(
        id=game_id,
        league=home.split("_", 1)[0],
        home_team_id=home,
        away_team_id=away,
        home_pts=home_pts,
        away_pts=away_pts,
        status=status,
        start_time=FIXED_NOW,
        source=source,
        cached_at=cached_at,
    )
