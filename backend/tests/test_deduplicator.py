"""Tests for the rolling near-duplicate index."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from ingest.dedup.deduplicator import DedupConfig, DedupRecord, DedupSkip, Deduplicator

HEADLINE = "Lakers star LeBron James listed as questionable with ankle soreness"


class _Clock:
    def __init__(self) -> None:
        self.now = datetime(2024, 11, 5, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock() -> _Clock:
    return _Clock()


@pytest.fixture
def dedup(settings, clock) -> Deduplicator:
    return Deduplicator(settings=settings, clock=clock)


class TestCheckAndRecord:
    @pytest.mark.asyncio
    async def test_first_sighting_is_recorded(self, dedup: Deduplicator) -> None:
        result = await dedup.check_and_record("a1", HEADLINE)
        assert isinstance(result, DedupRecord)
        assert len(dedup) == 1

    @pytest.mark.asyncio
    async def test_near_duplicate_is_skipped(self, dedup: Deduplicator) -> None:
        await dedup.check_and_record("a1", HEADLINE)
        result = await dedup.check_and_record("a2", HEADLINE + ".")
        assert isinstance(result, DedupSkip)
        assert result.duplicate_of == "a1"
        assert result.similarity >= dedup.config.similarity_threshold
        assert len(dedup) == 1

    @pytest.mark.asyncio
    async def test_different_story_is_kept(self, dedup: Deduplicator) -> None:
        await dedup.check_and_record("a1", HEADLINE)
        result = await dedup.check_and_record("a2", "Chiefs sign veteran wide receiver to one-year deal")
        assert isinstance(result, DedupRecord)
        assert len(dedup) == 2

    @pytest.mark.asyncio
    async def test_forgotten_content_is_unique_again(self, dedup: Deduplicator) -> None:
        await dedup.check_and_record("a1", HEADLINE)
        assert await dedup.forget("a1") is True
        assert await dedup.forget("a1") is False
        assert isinstance(await dedup.check_and_record("a1", HEADLINE), DedupRecord)

    @pytest.mark.asyncio
    async def test_other_team_scope_is_not_compared(self, dedup: Deduplicator) -> None:
        await dedup.check_and_record("a1", HEADLINE, team_id="NBA_LAL")
        result = await dedup.check_and_record("a2", HEADLINE, team_id="NBA_BOS")
        assert isinstance(result, DedupRecord)

    @pytest.mark.asyncio
    async def test_records_outside_window_are_ignored(self, dedup: Deduplicator, clock: _Clock) -> None:
        await dedup.check_and_record("a1", HEADLINE)
        clock.now += timedelta(days=8)
        result = await dedup.check_and_record("a2", HEADLINE)
        assert isinstance(result, DedupRecord)


class TestMaintenance:
    @pytest.mark.asyncio
    async def test_purge_drops_expired_records(self, dedup: Deduplicator, clock: _Clock) -> None:
        await dedup.check_and_record("old", HEADLINE)
        clock.now += timedelta(days=8)
        await dedup.check_and_record("new", "Bruins recall goaltender from Providence")
        assert await dedup.purge_expired() == 1
        assert len(dedup) == 1

    @pytest.mark.asyncio
    async def test_load_records_skips_stale_and_known(self, dedup: Deduplicator, clock: _Clock) -> None:
        sig = dedup.generate_signature(HEADLINE)
        fresh = DedupRecord("a1", sig, clock.now - timedelta(days=1))
        stale = DedupRecord("a0", sig, clock.now - timedelta(days=30))
        assert await dedup.load_records([fresh, stale]) == 1
        await dedup.load_records([fresh])
        assert len(dedup) == 1


class TestConfiguration:
    def test_defaults_follow_settings(self, dedup: Deduplicator) -> None:
        assert dedup.config == DedupConfig(0.85, 7, 3, 128)

    def test_threshold_bounds(self, dedup: Deduplicator) -> None:
        dedup.set_similarity_threshold(0.5)
        assert dedup.config.similarity_threshold == 0.5
        with pytest.raises(ValueError):
            dedup.set_similarity_threshold(1.5)

    def test_window_must_be_positive(self, dedup: Deduplicator) -> None:
        dedup.set_check_window_days(3)
        assert dedup.config.check_window_days == 3
        with pytest.raises(ValueError):
            dedup.set_check_window_days(0)
