"""
Job handlers run by the scheduler.

Each handler performs one unit of recurring work (a scores cycle, a news
pass, the nightly maintenance) and returns a summary; exception handling
and health bookkeeping live in the scheduler's guarded runner.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Optional

from shared.config import Settings, get_settings
from shared.models.domain import ScoresRunResult
from shared.models.enums import ScoresMode
from shared.storage import ScoreStorage
from shared.utils.logging import get_logger

from ingest.cache import ScoresCache
from ingest.dedup.deduplicator import DedupRecord, Deduplicator
from ingest.dedup.minhash import MinHash
from ingest.news_fetcher import NewsIngestor, NewsRunResult
from ingest.scores_agent import ScoresAgent, detect_sport_from_team_ids

logger = get_logger(__name__)


@dataclass
class JobHealth:
    runs: int = 0
    failures: int = 0
    last_job_id: Optional[str] = None
    last_error: Optional[str] = None
    last_run_at: Optional[datetime] = None

    def record_success(self, job_id: str) -> None:
        self.runs += 1
        self.last_job_id = job_id
        self.last_run_at = datetime.now(timezone.utc)

    def record_failure(self, job_id: str, exc: BaseException) -> None:
        self.runs += 1
        self.failures += 1
        self.last_job_id = job_id
        self.last_error = f"{type(exc).__name__}: {exc}"
        self.last_run_at = datetime.now(timezone.utc)

    def snapshot(self) -> dict[str, Any]:
        data = asdict(self)
        if self.last_run_at is not None:
            data["last_run_at"] = self.last_run_at.isoformat()
        return data


@dataclass
class MaintenanceReport:
    dedup_purged: int = 0
    games_deleted: int = 0
    agent_states_pruned: int = 0
    jobs_removed: int = 0
    cache_keys_deleted: int = 0
    failed_steps: list[str] = field(default_factory=list)


class JobHandlers:
    def __init__(
        self,
        agent: ScoresAgent,
        storage: ScoreStorage,
        deduplicator: Deduplicator,
        cache: Optional[ScoresCache] = None,
        news: Optional[NewsIngestor] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._agent = agent
        self._storage = storage
        self._dedup = deduplicator
        self._cache = cache
        self._news = news
        self._settings = settings or get_settings()

    async def ingest_featured(self, sport: str) -> ScoresRunResult:
        return await self._agent.run_once(
            sport=sport, mode=ScoresMode.FEATURED.value, limit=self._settings.featured_limit
        )

    async def ingest_team(self, team_id: str) -> ScoresRunResult:
        return await self._agent.run_once(
            sport=detect_sport_from_team_ids([team_id]),
            mode=ScoresMode.LIVE.value,
            team_ids=[team_id],
        )

    async def ingest_news(self) -> Optional[NewsRunResult]:
        if self._news is None:
            logger.debug("news_ingest_disabled")
            return None
        return await self._news.run_once(self._settings.tracked_sports)

    async def warm_dedup_index(self) -> int:
        """Seed the dedup index with signatures of recently stored articles."""
        articles = await self._storage.get_recent_articles(
            days=self._dedup.config.check_window_days
        )
        records: list[DedupRecord] = []
        for article in articles:
            if not article.min_hash:
                continue
            try:
                signature = MinHash.deserialize(article.min_hash)
            except ValueError:
                logger.warning("dedup_signature_unreadable", article_id=article.id)
                continue
            records.append(DedupRecord(article.id, signature, article.published_at, article.team_id))
        loaded = await self._dedup.load_records(records)
        logger.info("dedup_index_warmed", loaded=loaded)
        return loaded

    async def perform_maintenance(
        self, reconcile_jobs: Optional[Callable[[], Awaitable[int]]] = None
    ) -> MaintenanceReport:
        """
        Nightly cleanup. Steps are independent: a failing step is logged and
        recorded in ``failed_steps`` while the remaining steps still run.
        """
        report = MaintenanceReport()

        try:
            report.dedup_purged = await self._dedup.purge_expired()
        except Exception as exc:
            report.failed_steps.append("dedup")
            logger.error("maintenance_dedup_failed", error=str(exc))

        cutoff = datetime.now(timezone.utc) - timedelta(days=self._settings.job_retention_days)
        try:
            report.games_deleted = await self._storage.delete_old_games(cutoff)
        except Exception as exc:
            report.failed_steps.append("games")
            logger.error("maintenance_games_failed", error=str(exc))

        try:
            report.agent_states_pruned = self._agent.prune_last_known(cutoff)
        except Exception as exc:
            report.failed_steps.append("agent")
            logger.error("maintenance_agent_failed", error=str(exc))

        if reconcile_jobs is not None:
            try:
                report.jobs_removed = await reconcile_jobs()
            except Exception as exc:
                report.failed_steps.append("jobs")
                logger.error("maintenance_jobs_failed", error=str(exc))

        if self._cache is not None:
            try:
                report.cache_keys_deleted = await self._cache.clear()
            except Exception as exc:
                report.failed_steps.append("cache")
                logger.error("maintenance_cache_failed", error=str(exc))

        logger.info("maintenance_complete", **asdict(report))
        return report
