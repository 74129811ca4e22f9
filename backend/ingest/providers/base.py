"""
Abstract base class for all league score adapters.
Defines the contract that every adapter must implement.

Public ``fetch_*`` methods never raise: any failure is logged with sport,
adapter and operation and turned into an empty result, so one broken
upstream cannot stop an orchestration loop.
"""
from __future__ import annotations

import abc
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Optional, TypeVar

from shared.models.domain import BoxScore, GameScore
from shared.models.enums import GameStatus
from shared.utils.logging import get_logger
from shared.utils.metrics import ADAPTER_ERRORS

from ingest.scraping.fetcher import EthicalFetcher
from ingest.scraping.team_mapper import TeamMapper

logger = get_logger(__name__)

T = TypeVar("T")
Clock = Callable[[], datetime]


def utc_clock() -> datetime:
    return datetime.now(timezone.utc)


class ScoreAdapter(abc.ABC):
    """
    Uniform capability contract over one league's upstream sources.

    Subclasses implement ``_fetch_live`` and may override the other
    ``_fetch_*`` hooks; the defaults derive schedules, recent and featured
    games from the live scoreboard.
    """

    sport: str = ""
    name: str = "base"

    def __init__(self, fetcher: Optional[EthicalFetcher], clock: Optional[Clock] = None) -> None:
        self._fetcher = fetcher
        self._clock = clock or utc_clock

    @property
    def fetcher(self) -> EthicalFetcher:
        if self._fetcher is None:
            raise RuntimeError(f"{self.name} adapter was built without a fetcher")
        return self._fetcher

    def now(self) -> datetime:
        return self._clock()

    # ── Public, never-raising operations ────────────────────────────────
    async def fetch_recent_games(
        self, team_ids: Optional[list[str]] = None, limit: int = 5
    ) -> list[GameScore]:
        """Games involving ``team_ids``, most recent first."""
        return await self._guard(
            "fetch_recent_games", lambda: self._fetch_recent_games(team_ids or [], limit), []
        )

    async def fetch_live(self, team_codes: Optional[list[str]] = None) -> list[GameScore]:
        """Current scoreboard, filtered to ``team_codes`` when non-empty."""
        return await self._guard("fetch_live", lambda: self._fetch_live(team_codes or []), [])

    async def fetch_schedule(
        self, team_ids: Optional[list[str]], start: datetime, end: datetime
    ) -> list[GameScore]:
        async def scheduled() -> list[GameScore]:
            if end < start:
                logger.warning("adapter_schedule_invalid_window", sport=self.sport, start=str(start), end=str(end))
                return []
            return await self._fetch_schedule(team_ids or [], start, end)

        return await self._guard("fetch_schedule", scheduled, [])

    async def fetch_box_score(self, event_id: str) -> BoxScore:
        return await self._guard(
            "fetch_box_score",
            lambda: self._fetch_box_score(event_id),
            BoxScore.unavailable(event_id),
        )

    async def fetch_featured_games(self, limit: int = 5) -> list[GameScore]:
        """League overview without any team filter."""
        return await self._guard("fetch_featured_games", lambda: self._fetch_featured_games(limit), [])

    async def _guard(
        self, operation: str, call: Callable[[], Awaitable[T]], default: T
    ) -> T:
        try:
            return await call()
        except Exception as exc:
            ADAPTER_ERRORS.labels(sport=self.sport, operation=operation).inc()
            logger.error(
                "adapter_operation_error",
                sport=self.sport,
                adapter=self.name,
                operation=operation,
                error=str(exc),
                error_type=exc.__class__.__name__,
            )
            return default

    # ── Hooks ───────────────────────────────────────────────────────────
    @abc.abstractmethod
    async def _fetch_live(self, team_codes: list[str]) -> list[GameScore]:
        ...

    async def _fetch_recent_games(self, team_ids: list[str], limit: int) -> list[GameScore]:
        codes = [TeamMapper.code_from_id(t) for t in team_ids if t]
        games = await self._fetch_live(codes)
        games.sort(key=lambda g: g.start_time, reverse=True)
        return games[: max(0, limit)]

    async def _fetch_schedule(
        self, team_ids: list[str], start: datetime, end: datetime
    ) -> list[GameScore]:
        codes = [TeamMapper.code_from_id(t) for t in team_ids if t]
        games = await self._fetch_live(codes)
        return [
            g for g in games
            if g.status == GameStatus.SCHEDULED and start <= g.start_time <= end
        ]

    async def _fetch_box_score(self, event_id: str) -> BoxScore:
        logger.info("adapter_box_score_unsupported", sport=self.sport, adapter=self.name, event_id=event_id)
        return BoxScore.unavailable(event_id)

    async def _fetch_featured_games(self, limit: int) -> list[GameScore]:
        games = await self._fetch_live([])
        return games[: max(0, limit)]

    # ── Helpers shared by concrete adapters ─────────────────────────────
    @staticmethod
    def matches_codes(home_id: str, away_id: str, team_codes: list[str]) -> bool:
        if not team_codes:
            return True
        wanted = {c.upper() for c in team_codes}
        return (
            TeamMapper.code_from_id(home_id) in wanted
            or TeamMapper.code_from_id(away_id) in wanted
        )

    def make_game(self, **fields: Any) -> GameScore:
        fields.setdefault("league", self.sport)
        fields.setdefault("cached_at", self.now())
        return GameScore(**fields)


def day_range(start: datetime, end: datetime) -> list[datetime]:
    """Calendar days touched by ``[start, end]``, one datetime per day."""
    days: list[datetime] = []
    current = start.replace(hour=0, minute=0, second=0, microsecond=0)
    while current <= end:
        days.append(current)
        current += timedelta(days=1)
    return days
