"""
Near-duplicate detection for ingested articles.

Keeps a rolling in-memory index of MinHash signatures for the last
``check_window_days``; new content whose similarity to any record in the
window reaches the threshold is classified as a ``DedupSkip``.
"""
from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Optional, Union

from shared.config import Settings, get_settings
from shared.utils.logging import get_logger
from shared.utils.metrics import DEDUP_DECISIONS, DEDUP_RECORDS

from ingest.dedup.minhash import MinHash, MinHashSignature

logger = get_logger(__name__)


@dataclass(frozen=True)
class DedupConfig:
    similarity_threshold: float = 0.85
    check_window_days: int = 7
    shingle_size: int = 3
    num_hashes: int = 128

    @classmethod
    def from_settings(cls, settings: Settings) -> "DedupConfig":
        return cls(
            similarity_threshold=settings.dedup_similarity_threshold,
            check_window_days=settings.dedup_check_window_days,
            shingle_size=settings.dedup_shingle_size,
            num_hashes=settings.dedup_num_hashes,
        )


@dataclass
class DedupRecord:
    content_id: str
    signature: MinHashSignature
    ingested_at: datetime
    team_id: Optional[str] = None


@dataclass(frozen=True)
class DuplicateCheck:
    is_duplicate: bool
    signature: MinHashSignature
    duplicate_of: Optional[str] = None
    similarity: Optional[float] = None


@dataclass(frozen=True)
class DedupSkip:
    """Classification result for content that duplicates a recent record."""

    content_id: str
    duplicate_of: str
    similarity: float
    reason: str = field(default="near_duplicate")


class Deduplicator:
    def __init__(
        self,
        config: Optional[DedupConfig] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        settings = settings or get_settings()
        self._config = config or DedupConfig.from_settings(settings)
        self._minhash = MinHash(
            shingle_size=self._config.shingle_size,
            num_hashes=self._config.num_hashes,
            seed=settings.dedup_seed,
        )
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._records: list[DedupRecord] = []
        self._lock = asyncio.Lock()

    # ── Configuration ───────────────────────────────────────────────────
    @property
    def config(self) -> DedupConfig:
        return self._config

    @property
    def minhash(self) -> MinHash:
        return self._minhash

    def set_similarity_threshold(self, threshold: float) -> None:
        if not 0.0 <= threshold <= 1.0:
            raise ValueError("similarity threshold must be between 0 and 1")
        self._config = DedupConfig(
            similarity_threshold=threshold,
            check_window_days=self._config.check_window_days,
            shingle_size=self._config.shingle_size,
            num_hashes=self._config.num_hashes,
        )
        logger.info("dedup_threshold_updated", threshold=threshold)

    def set_check_window_days(self, days: int) -> None:
        if days < 1:
            raise ValueError("check window must be at least 1 day")
        self._config = DedupConfig(
            similarity_threshold=self._config.similarity_threshold,
            check_window_days=days,
            shingle_size=self._config.shingle_size,
            num_hashes=self._config.num_hashes,
        )
        logger.info("dedup_window_updated", days=days)

    # ── Core ────────────────────────────────────────────────────────────
    def generate_signature(self, content: str) -> MinHashSignature:
        return self._minhash.signature(content)

    def _window_start(self) -> datetime:
        return self._clock() - timedelta(days=self._config.check_window_days)

    def _candidates(self, team_id: Optional[str]) -> list[DedupRecord]:
        cutoff = self._window_start()
        return [
            r for r in self._records
            if r.ingested_at >= cutoff and (team_id is None or r.team_id in (None, team_id))
        ]

    def check_duplicate(self, content: str, team_id: Optional[str] = None) -> DuplicateCheck:
        """
        Compare ``content`` against records inside the window.

        Records with a mismatched signature shape are skipped; an unexpected
        error is logged and reported as "not a duplicate".
        """
        signature = self.generate_signature(content)
        try:
            for record in self._candidates(team_id):
                try:
                    score = self._minhash.similarity(signature, record.signature)
                except ValueError:
                    logger.warning("dedup_signature_mismatch", content_id=record.content_id)
                    continue
                if score >= self._config.similarity_threshold:
                    logger.info(
                        "dedup_match",
                        duplicate_of=record.content_id,
                        similarity=round(score, 4),
                        threshold=self._config.similarity_threshold,
                        preview=content[:100],
                    )
                    return DuplicateCheck(True, signature, record.content_id, score)
        except Exception as exc:
            logger.error("dedup_check_failed", team_id=team_id, error=str(exc))
        return DuplicateCheck(False, signature)

    async def record(
        self,
        content_id: str,
        signature: MinHashSignature,
        team_id: Optional[str] = None,
        ingested_at: Optional[datetime] = None,
    ) -> DedupRecord:
        entry = DedupRecord(content_id, signature, ingested_at or self._clock(), team_id)
        async with self._lock:
            self._records.append(entry)
            DEDUP_RECORDS.set(len(self._records))
        return entry

    async def check_and_record(
        self, content_id: str, content: str, team_id: Optional[str] = None
    ) -> Union[DedupSkip, DedupRecord]:
        """Classify ``content``; unique content is added to the index and returned as its record."""
        async with self._lock:
            result = self.check_duplicate(content, team_id)
            if result.is_duplicate:
                DEDUP_DECISIONS.labels(verdict="duplicate").inc()
                return DedupSkip(
                    content_id=content_id,
                    duplicate_of=result.duplicate_of or "",
                    similarity=result.similarity or 0.0,
                )
            entry = DedupRecord(content_id, result.signature, self._clock(), team_id)
            self._records.append(entry)
            DEDUP_RECORDS.set(len(self._records))
        DEDUP_DECISIONS.labels(verdict="unique").inc()
        return entry

    async def forget(self, content_id: str) -> bool:
        """Remove ``content_id`` from the index, e.g. after its write failed."""
        async with self._lock:
            before = len(self._records)
            self._records = [r for r in self._records if r.content_id != content_id]
            DEDUP_RECORDS.set(len(self._records))
            return len(self._records) != before

    async def purge_expired(self) -> int:
        """Drop records older than the window; returns how many were removed."""
        cutoff = self._window_start()
        async with self._lock:
            before = len(self._records)
            self._records = [r for r in self._records if r.ingested_at >= cutoff]
            removed = before - len(self._records)
            DEDUP_RECORDS.set(len(self._records))
        if removed:
            logger.info("dedup_records_purged", removed=removed)
        return removed

    async def load_records(self, records: Iterable[DedupRecord]) -> int:
        """Seed the index, e.g. from persisted articles at startup."""
        cutoff = self._window_start()
        fresh = [r for r in records if r.ingested_at >= cutoff]
        async with self._lock:
            known = {r.content_id for r in self._records}
            self._records.extend(r for r in fresh if r.content_id not in known)
            DEDUP_RECORDS.set(len(self._records))
        return len(fresh)

    def __len__(self) -> int:
        return len(self._records)
