"""Tests for job registration, guarded execution and maintenance."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from shared.config import Settings
from shared.models.domain import Team
from shared.storage import MemoryScoreStorage
from ingest.cache import ScoresCache
from ingest.dedup.deduplicator import Deduplicator
from ingest.dedup.minhash import MinHash
from ingest.providers.registry import AdapterRegistry
from ingest.scores_agent import ScoresAgent
from scheduler.jobs import JobHandlers, JobHealth
from scheduler.service import (
    FEATURED_JOB_PREFIX,
    MAINTENANCE_JOB_ID,
    NEWS_JOB_ID,
    SCORES_JOB_PREFIX,
    JobScheduler,
    job_kind,
)

from conftest import FakeRedisManager, make_score


@pytest.fixture
def handlers(settings, storage) -> JobHandlers:
    agent = ScoresAgent(AdapterRegistry(None, settings=settings), storage, settings=settings)
    return JobHandlers(agent, storage, Deduplicator(settings=settings), settings=settings)


@pytest.fixture
def service(handlers, storage, settings) -> JobScheduler:
    return JobScheduler(handlers, storage, settings)


def _ids(service: JobScheduler) -> list[str]:
    return sorted(job.id for job in service.scheduler.get_jobs())


# ── Registration ─────────────────────────────────────────────────────────


class TestRegistration:
    def test_maintenance_job_is_upserted(self, service: JobScheduler) -> None:
        service.schedule_maintenance_job()
        service.schedule_maintenance_job()
        jobs = service.describe_jobs()
        assert [j["id"] for j in jobs] == [MAINTENANCE_JOB_ID]
        assert jobs[0]["pattern"] == "0 3 * * *"

    def test_maintenance_cron_override(self, service: JobScheduler) -> None:
        service.schedule_maintenance_job("*/5 * * * *")
        assert service.describe_jobs()[0]["pattern"] == "*/5 * * * *"

    def test_invalid_cron_rejected(self, service: JobScheduler) -> None:
        with pytest.raises(ValueError):
            service.schedule_maintenance_job("not a cron")

    def test_featured_jobs_per_tracked_sport(self, service: JobScheduler) -> None:
        ids = service.schedule_featured_jobs()
        assert ids == [f"{FEATURED_JOB_PREFIX}{s}" for s in ["MLB", "NBA", "NFL", "NHL"]]
        service.schedule_featured_jobs()
        assert len(service.scheduler.get_jobs()) == 4

    @pytest.mark.asyncio
    async def test_bootstrap_registers_everything_once(self, service: JobScheduler) -> None:
        await service.bootstrap()
        await service.bootstrap()
        ids = _ids(service)
        assert MAINTENANCE_JOB_ID in ids
        assert NEWS_JOB_ID in ids
        assert f"{SCORES_JOB_PREFIX}NBA_LAL" in ids
        assert f"{SCORES_JOB_PREFIX}NHL_BOS" in ids
        assert len(ids) == len(set(ids)) == 1 + 4 + 3 + 1

    def test_remove_job(self, service: JobScheduler) -> None:
        service.schedule_news_job()
        assert service.remove_job(NEWS_JOB_ID)
        assert not service.remove_job(NEWS_JOB_ID)

    def test_job_kind(self) -> None:
        assert job_kind("scores_ingest:featured:NBA") == "scores_featured"
        assert job_kind("scores_ingest:NBA_LAL") == "scores_team"
        assert job_kind(MAINTENANCE_JOB_ID) == "maintenance"


class TestReconcile:
    @pytest.mark.asyncio
    async def test_untracked_jobs_are_removed(self, handlers, settings) -> None:
        storage = MemoryScoreStorage(teams=[Team(id="NBA_LAL", league="NBA", code="LAL", name="Lakers")])
        service = JobScheduler(handlers, storage, settings)
        await service.bootstrap()

        storage.teams.clear()
        settings.tracked_sports = ["NBA"]
        removed = await service.reconcile()

        assert removed == 1 + 3
        ids = _ids(service)
        assert f"{FEATURED_JOB_PREFIX}NBA" in ids
        assert f"{SCORES_JOB_PREFIX}NBA_LAL" not in ids
        assert MAINTENANCE_JOB_ID in ids


# ── Execution ────────────────────────────────────────────────────────────


class TestGuardedRunner:
    @pytest.mark.asyncio
    async def test_failure_is_recorded_not_raised(self, service: JobScheduler) -> None:
        boom = AsyncMock(side_effect=RuntimeError("upstream down"))
        assert await service._run_guarded("scores_ingest:NBA_LAL", boom, "NBA_LAL") is None
        boom.assert_awaited_once_with("NBA_LAL")
        assert service.health.failures == 1
        assert service.health.last_error == "RuntimeError: upstream down"

    @pytest.mark.asyncio
    async def test_success_updates_health(self, service: JobScheduler) -> None:
        ok = AsyncMock(return_value=3)
        assert await service._run_guarded("news_ingest", ok) == 3
        assert service.health.runs == 1
        assert service.health.failures == 0
        assert service.health.snapshot()["last_job_id"] == "news_ingest"

    @pytest.mark.asyncio
    async def test_run_now_uses_registered_args(self, service: JobScheduler, storage) -> None:
        service.schedule_featured_jobs()
        result = await service.run_now(f"{FEATURED_JOB_PREFIX}NBA")
        assert result.sport == "NBA"
        assert result.mode == "featured"
        assert result.persisted > 0
        assert service.health.runs == 1

    @pytest.mark.asyncio
    async def test_run_now_unknown_job(self, service: JobScheduler) -> None:
        with pytest.raises(KeyError):
            await service.run_now("missing")


class TestJobHealth:
    def test_snapshot_serializes_timestamp(self) -> None:
        health = JobHealth()
        health.record_failure("x", ValueError("bad"))
        snap = health.snapshot()
        assert snap["failures"] == 1
        assert isinstance(snap["last_run_at"], str)


# ── Handlers ─────────────────────────────────────────────────────────────


class TestHandlers:
    @pytest.mark.asyncio
    async def test_ingest_team_detects_sport(self, settings, storage) -> None:
        agent = MagicMock()
        agent.run_once = AsyncMock()
        handlers = JobHandlers(agent, storage, Deduplicator(settings=settings), settings=settings)
        await handlers.ingest_team("NHL_BOS")
        agent.run_once.assert_awaited_once_with(sport="NHL", mode="live", team_ids=["NHL_BOS"])

    @pytest.mark.asyncio
    async def test_ingest_news_disabled(self, handlers: JobHandlers) -> None:
        assert await handlers.ingest_news() is None

    @pytest.mark.asyncio
    async def test_maintenance_counts(self, settings, storage) -> None:
        old = make_score(game_id="old").model_copy(
            update={"start_time": datetime.now(timezone.utc) - timedelta(days=30)}
        )
        await storage.create_game(old)
        await storage.create_game(make_score(game_id="fresh").model_copy(
            update={"start_time": datetime.now(timezone.utc)}
        ))
        redis = FakeRedisManager()
        redis.values = {"scores:teams:NBA_LAL": "[]", "scores:sport:NBA:featured": "[]", "other": "x"}

        agent = ScoresAgent(AdapterRegistry(None, settings=settings), storage, settings=settings)
        agent._last_known = {"old": old}
        handlers = JobHandlers(
            agent, storage, Deduplicator(settings=settings), cache=ScoresCache(redis, settings), settings=settings
        )
        report = await handlers.perform_maintenance(AsyncMock(return_value=2))

        assert report.games_deleted == 1
        assert report.agent_states_pruned == 1
        assert report.jobs_removed == 2
        assert report.cache_keys_deleted == 2
        assert report.failed_steps == []
        assert list(storage.games) == ["fresh"]
        assert list(redis.values) == ["other"]

    @pytest.mark.asyncio
    async def test_maintenance_steps_are_independent(self, settings) -> None:
        storage = MagicMock()
        storage.delete_old_games = AsyncMock(side_effect=RuntimeError("db down"))
        agent = MagicMock()
        handlers = JobHandlers(agent, storage, Deduplicator(settings=settings), settings=settings)
        report = await handlers.perform_maintenance(AsyncMock(side_effect=RuntimeError("boom")))
        assert report.failed_steps == ["games", "jobs"]

    @pytest.mark.asyncio
    async def test_warm_dedup_index(self, settings) -> None:
        from shared.models.domain import NewsArticle

        dedup = Deduplicator(settings=settings)
        signature = MinHash.serialize(dedup.generate_signature("Lakers sign guard"))
        storage = MemoryScoreStorage()
        now = datetime.now(timezone.utc)
        for i, min_hash in enumerate([signature, None, "not json-ish"]):
            await storage.create_article(NewsArticle(
                id=f"a{i}", title="t", url=f"https://x/{i}", published_at=now, min_hash=min_hash,
            ))
        handlers = JobHandlers(MagicMock(), storage, dedup, settings=Settings())
        assert await handlers.warm_dedup_index() == 1
        assert len(dedup) == 1
