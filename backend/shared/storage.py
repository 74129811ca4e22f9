"""
Storage collaborator for the pipeline.

The core only writes games and articles and reads team / favorite lookups;
``SqlScoreStorage`` backs that with PostgreSQL, ``MemoryScoreStorage`` with
dicts for tests and local runs.
"""
from __future__ import annotations

import abc
import asyncio
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError

from shared.errors import PersistenceError
from shared.models.domain import GameScore, NewsArticle, Team
from shared.models.orm import GameORM, NewsArticleORM, TeamORM, UserTeamORM
from shared.utils.database import DatabaseManager
from shared.utils.logging import get_logger

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ScoreStorage(abc.ABC):
    @abc.abstractmethod
    async def create_game(self, game: GameScore) -> GameScore:
        """Insert or update ``game`` by id; raises PersistenceError on failure."""

    @abc.abstractmethod
    async def get_game(self, game_id: str) -> Optional[GameScore]: ...

    @abc.abstractmethod
    async def get_teams_by_league(self, league: str) -> list[Team]: ...

    @abc.abstractmethod
    async def get_user_team_ids(self, user_id: str) -> list[str]: ...

    @abc.abstractmethod
    async def create_article(self, article: NewsArticle) -> Optional[NewsArticle]:
        """Insert ``article``; returns None when its URL is already stored."""

    @abc.abstractmethod
    async def get_recent_articles(
        self, team_id: Optional[str] = None, days: int = 7
    ) -> list[NewsArticle]: ...

    @abc.abstractmethod
    async def delete_old_games(self, older_than: datetime) -> int: ...


class SqlScoreStorage(ScoreStorage):
    def __init__(self, db: DatabaseManager) -> None:
        self._db = db

    async def create_game(self, game: GameScore) -> GameScore:
        values = {
            "id": game.id,
            "league": game.league,
            "home_team_id": game.home_team_id,
            "away_team_id": game.away_team_id,
            "home_pts": game.home_pts,
            "away_pts": game.away_pts,
            "status": game.status.value,
            "period": game.period,
            "time_remaining": game.time_remaining,
            "start_time": game.start_time,
            "source": game.source,
            "cached_at": game.cached_at or _utcnow(),
        }
        stmt = pg_insert(GameORM).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[GameORM.id],
            set_={k: stmt.excluded[k] for k in values if k != "id"},
        ).returning(GameORM)
        try:
            async with self._db.write_session() as session:
                row = (await session.execute(stmt)).scalar_one()
                return GameScore.model_validate(row)
        except SQLAlchemyError as exc:
            raise PersistenceError(game.id, str(exc)) from exc

    async def get_game(self, game_id: str) -> Optional[GameScore]:
        async with self._db.read_session() as session:
            row = await session.get(GameORM, game_id)
            return GameScore.model_validate(row) if row else None

    async def get_teams_by_league(self, league: str) -> list[Team]:
        async with self._db.read_session() as session:
            result = await session.execute(
                select(TeamORM).where(TeamORM.league == league.upper()).order_by(TeamORM.id)
            )
            return [Team.model_validate(row) for row in result.scalars()]

    async def get_user_team_ids(self, user_id: str) -> list[str]:
        async with self._db.read_session() as session:
            result = await session.execute(
                select(UserTeamORM.team_id).where(UserTeamORM.user_id == user_id)
            )
            return list(result.scalars())

    async def create_article(self, article: NewsArticle) -> Optional[NewsArticle]:
        stmt = (
            pg_insert(NewsArticleORM)
            .values(
                id=article.id,
                title=article.title,
                summary=article.summary,
                category=article.category.value,
                url=article.url,
                team_id=article.team_id,
                source=article.source,
                min_hash=article.min_hash,
                published_at=article.published_at,
            )
            .on_conflict_do_nothing(index_elements=[NewsArticleORM.url])
            .returning(NewsArticleORM)
        )
        try:
            async with self._db.write_session() as session:
                row = (await session.execute(stmt)).scalar_one_or_none()
                return NewsArticle.model_validate(row) if row else None
        except SQLAlchemyError as exc:
            raise PersistenceError(article.id, str(exc)) from exc

    async def get_recent_articles(
        self, team_id: Optional[str] = None, days: int = 7
    ) -> list[NewsArticle]:
        cutoff = _utcnow() - timedelta(days=days)
        query = select(NewsArticleORM).where(NewsArticleORM.published_at >= cutoff)
        if team_id:
            query = query.where(NewsArticleORM.team_id == team_id)
        async with self._db.read_session() as session:
            result = await session.execute(query.order_by(NewsArticleORM.published_at.desc()))
            return [NewsArticle.model_validate(row) for row in result.scalars()]

    async def delete_old_games(self, older_than: datetime) -> int:
        try:
            async with self._db.write_session() as session:
                result = await session.execute(delete(GameORM).where(GameORM.start_time < older_than))
                return result.rowcount or 0
        except SQLAlchemyError as exc:
            raise PersistenceError("games", str(exc)) from exc


class MemoryScoreStorage(ScoreStorage):
    """Dict-backed storage with the same contract as the SQL one."""

    def __init__(
        self,
        teams: Optional[list[Team]] = None,
        favorites: Optional[dict[str, list[str]]] = None,
    ) -> None:
        self.games: dict[str, GameScore] = {}
        self.articles: dict[str, NewsArticle] = {}
        self.teams: list[Team] = list(teams or [])
        self.favorites: dict[str, list[str]] = dict(favorites or {})
        self._lock = asyncio.Lock()

    async def create_game(self, game: GameScore) -> GameScore:
        async with self._lock:
            stored = game.model_copy(update={"cached_at": game.cached_at or _utcnow()})
            self.games[game.id] = stored
            return stored

    async def get_game(self, game_id: str) -> Optional[GameScore]:
        return self.games.get(game_id)

    async def get_teams_by_league(self, league: str) -> list[Team]:
        return [t for t in self.teams if t.league == league.upper()]

    async def get_user_team_ids(self, user_id: str) -> list[str]:
        return list(self.favorites.get(user_id, []))

    async def create_article(self, article: NewsArticle) -> Optional[NewsArticle]:
        async with self._lock:
            if any(a.url == article.url for a in self.articles.values()):
                return None
            self.articles[article.id] = article
            return article

    async def get_recent_articles(
        self, team_id: Optional[str] = None, days: int = 7
    ) -> list[NewsArticle]:
        cutoff = _utcnow() - timedelta(days=days)
        return sorted(
            (
                a for a in self.articles.values()
                if a.published_at >= cutoff and (team_id is None or a.team_id == team_id)
            ),
            key=lambda a: a.published_at,
            reverse=True,
        )

    async def delete_old_games(self, older_than: datetime) -> int:
        async with self._lock:
            stale = [gid for gid, g in self.games.items() if g.start_time < older_than]
            for gid in stale:
                del self.games[gid]
            return len(stale)
