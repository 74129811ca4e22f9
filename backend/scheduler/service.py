"""
Scheduler service for scorewire.
Registers recurring ingest and maintenance jobs on an APScheduler
AsyncIOScheduler and runs them with bounded concurrency.

Job identity is the APScheduler job id; every registration is an upsert so
repeated bootstrap calls (or restarts) never stack duplicate schedules.
"""
from __future__ import annotations

import asyncio
import signal
from typing import Any, Awaitable, Callable, Optional

from apscheduler.job import Job
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from shared.config import Settings, get_settings
from shared.storage import ScoreStorage, SqlScoreStorage
from shared.utils.database import DatabaseManager
from shared.utils.logging import get_logger, log_context, setup_logging
from shared.utils.metrics import JOB_RUNS, SCHEDULED_JOBS, start_metrics_server
from shared.utils.redis_manager import RedisManager

from ingest.cache import ScoresCache
from ingest.dedup.deduplicator import Deduplicator
from ingest.news_fetcher import NewsIngestor
from ingest.providers.registry import AdapterRegistry
from ingest.publisher import RedisEventPublisher
from ingest.scores_agent import ScoresAgent
from ingest.scraping.fetcher import EthicalFetcher
from ingest.scraping.rate_limiter import HostRateLimiter
from ingest.scraping.robots import RobotsChecker
from scheduler.jobs import JobHandlers, JobHealth

logger = get_logger(__name__)

MAINTENANCE_JOB_ID = "maintenance:cleanup"
NEWS_JOB_ID = "news_ingest"
SCORES_JOB_PREFIX = "scores_ingest:"
FEATURED_JOB_PREFIX = "scores_ingest:featured:"


def job_kind(job_id: str) -> str:
    """Low-cardinality metric label for a job id."""
    if job_id.startswith(FEATURED_JOB_PREFIX):
        return "scores_featured"
    if job_id.startswith(SCORES_JOB_PREFIX):
        return "scores_team"
    return job_id.split(":", 1)[0]


class JobScheduler:
    def __init__(
        self,
        handlers: JobHandlers,
        storage: ScoreStorage,
        settings: Settings | None = None,
        scheduler: Optional[AsyncIOScheduler] = None,
    ) -> None:
        self._handlers = handlers
        self._storage = storage
        self._settings = settings or get_settings()
        self._scheduler = scheduler or AsyncIOScheduler(timezone="UTC")
        self._semaphore = asyncio.Semaphore(self._settings.scores_worker_concurrency)
        self._patterns: dict[str, str] = {}
        self.health = JobHealth()

    @property
    def scheduler(self) -> AsyncIOScheduler:
        return self._scheduler

    # ── Registration ────────────────────────────────────────────────────

    def upsert_job(
        self,
        job_id: str,
        func: Callable[..., Awaitable[Any]],
        trigger: BaseTrigger,
        args: tuple[Any, ...] = (),
        name: Optional[str] = None,
        pattern: Optional[str] = None,
    ) -> Job:
        """Register ``func`` under ``job_id``, replacing any job with that id."""
        if self._scheduler.get_job(job_id) is not None:
            self._scheduler.remove_job(job_id)
            logger.debug("job_replaced", job_id=job_id)

        job = self._scheduler.add_job(
            self._run_guarded,
            trigger=trigger,
            args=[job_id, func, *args],
            id=job_id,
            name=name or job_id,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        if pattern is not None:
            self._patterns[job_id] = pattern
        SCHEDULED_JOBS.set(len(self._scheduler.get_jobs()))
        return job

    def remove_job(self, job_id: str) -> bool:
        if self._scheduler.get_job(job_id) is None:
            return False
        self._scheduler.remove_job(job_id)
        self._patterns.pop(job_id, None)
        SCHEDULED_JOBS.set(len(self._scheduler.get_jobs()))
        logger.info("job_removed", job_id=job_id)
        return True

    def schedule_maintenance_job(self, cron: Optional[str] = None) -> Job:
        pattern = cron or self._settings.cleanup_cron
        job = self.upsert_job(
            MAINTENANCE_JOB_ID,
            self._maintenance,
            CronTrigger.from_crontab(pattern, timezone="UTC"),
            name="Nightly maintenance",
            pattern=pattern,
        )
        logger.info("maintenance_job_scheduled", job_id=MAINTENANCE_JOB_ID, cron=pattern)
        return job

    def schedule_featured_jobs(self) -> list[str]:
        interval_s = self._settings.nonlive_scores_interval_ms / 1000.0
        ids: list[str] = []
        for sport in self._tracked_sports():
            job_id = f"{FEATURED_JOB_PREFIX}{sport}"
            self.upsert_job(
                job_id,
                self._handlers.ingest_featured,
                IntervalTrigger(seconds=interval_s),
                args=(sport,),
                name=f"Featured scores {sport}",
            )
            ids.append(job_id)
        logger.info("featured_jobs_scheduled", count=len(ids), interval_s=interval_s)
        return ids

    async def schedule_team_jobs(self) -> list[str]:
        interval_s = self._settings.live_scores_interval_ms / 1000.0
        ids: list[str] = []
        for team_id in await self._tracked_team_ids():
            job_id = f"{SCORES_JOB_PREFIX}{team_id}"
            self.upsert_job(
                job_id,
                self._handlers.ingest_team,
                IntervalTrigger(seconds=interval_s),
                args=(team_id,),
                name=f"Live scores {team_id}",
            )
            ids.append(job_id)
        logger.info("team_jobs_scheduled", count=len(ids), interval_s=interval_s)
        return ids

    def schedule_news_job(self) -> Job:
        return self.upsert_job(
            NEWS_JOB_ID,
            self._handlers.ingest_news,
            IntervalTrigger(seconds=self._settings.news_interval_s),
            name="News ingest",
        )

    async def bootstrap(self) -> None:
        self.schedule_maintenance_job()
        self.schedule_featured_jobs()
        await self.schedule_team_jobs()
        self.schedule_news_job()

    async def reconcile(self) -> int:
        """Remove ``scores_ingest:*`` jobs whose league or team is no longer tracked."""
        sports = set(self._tracked_sports())
        teams = set(await self._tracked_team_ids())
        removed = 0
        for job in list(self._scheduler.get_jobs()):
            if job.id.startswith(FEATURED_JOB_PREFIX):
                keep = job.id[len(FEATURED_JOB_PREFIX):] in sports
            elif job.id.startswith(SCORES_JOB_PREFIX):
                keep = job.id[len(SCORES_JOB_PREFIX):] in teams
            else:
                continue
            if not keep and self.remove_job(job.id):
                removed += 1
        if removed:
            logger.info("jobs_reconciled", removed=removed)
        return removed

    def describe_jobs(self) -> list[dict[str, Any]]:
        jobs = []
        for job in self._scheduler.get_jobs():
            next_run = getattr(job, "next_run_time", None)
            jobs.append({
                "id": job.id,
                "name": job.name,
                "pattern": self._patterns.get(job.id),
                "trigger": str(job.trigger),
                "next_run": next_run.isoformat() if next_run else None,
            })
        return jobs

    # ── Execution ───────────────────────────────────────────────────────

    async def _run_guarded(self, job_id: str, func: Callable[..., Awaitable[Any]], *args: Any) -> Any:
        """Run one job; failures are recorded and wait for the next scheduled tick."""
        async with self._semaphore:
            try:
                with log_context(job_id=job_id):
                    result = await func(*args)
            except Exception as exc:
                self.health.record_failure(job_id, exc)
                JOB_RUNS.labels(job=job_kind(job_id), outcome="error").inc()
                logger.error("job_failed", job_id=job_id, error=str(exc), exc_info=True)
                return None
        self.health.record_success(job_id)
        JOB_RUNS.labels(job=job_kind(job_id), outcome="ok").inc()
        logger.debug("job_completed", job_id=job_id)
        return result

    async def run_now(self, job_id: str) -> Any:
        """Execute a registered job immediately through the guarded runner."""
        job = self._scheduler.get_job(job_id)
        if job is None:
            raise KeyError(job_id)
        return await job.func(*job.args)

    async def _maintenance(self) -> Any:
        return await self._handlers.perform_maintenance(self.reconcile)

    def _tracked_sports(self) -> list[str]:
        return sorted({s.strip().upper() for s in self._settings.tracked_sports if s.strip()})

    async def _tracked_team_ids(self) -> list[str]:
        team_ids: list[str] = []
        for sport in self._tracked_sports():
            try:
                teams = await self._storage.get_teams_by_league(sport)
            except Exception as exc:
                logger.warning("team_lookup_failed", sport=sport, error=str(exc))
                continue
            team_ids.extend(t.id for t in teams)
        return sorted(set(team_ids))

    # ── Lifecycle ───────────────────────────────────────────────────────

    def start(self) -> None:
        if not self._scheduler.running:
            self._scheduler.start()
            logger.info("scheduler_started", jobs=len(self._scheduler.get_jobs()))

    def shutdown(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("scheduler_stopped")


async def main() -> None:
    """Scheduler service entrypoint."""
    settings = get_settings()
    setup_logging("scheduler")
    start_metrics_server()

    redis = RedisManager(settings)
    db = DatabaseManager(settings)
    await redis.connect()
    await db.connect()

    storage = SqlScoreStorage(db)
    fetcher = EthicalFetcher(RobotsChecker(settings=settings), HostRateLimiter(settings=settings), settings)
    await fetcher.start()
    publisher = RedisEventPublisher(redis)
    cache = ScoresCache(redis, settings)
    deduplicator = Deduplicator(settings=settings)
    agent = ScoresAgent(AdapterRegistry(fetcher, settings), storage, cache, publisher, settings)
    news = NewsIngestor(fetcher, storage, deduplicator, publisher)
    handlers = JobHandlers(agent, storage, deduplicator, cache, news, settings)

    service = JobScheduler(handlers, storage, settings)
    try:
        await handlers.warm_dedup_index()
    except Exception as exc:
        logger.warning("dedup_warmup_failed", error=str(exc))
    await service.bootstrap()
    service.start()

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    logger.info("scheduler_service_started", instance_id=settings.instance_id)

    try:
        await stop.wait()
    finally:
        service.shutdown()
        await fetcher.close()
        await db.disconnect()
        await redis.disconnect()
        logger.info("scheduler_service_stopped")


if __name__ == "__main__":
    asyncio.run(main())
