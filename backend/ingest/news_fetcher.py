"""
RSS news ingestion for scorewire.
Fetches per-league feeds through the ethical fetcher, normalizes articles,
categorizes and team-tags them, drops near-duplicates via MinHash, stores
the rest and announces each new article as a news-update event.
"""
from __future__ import annotations

import asyncio
import calendar
import hashlib
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from html import unescape
from typing import Any, Optional

import feedparser

from shared.errors import PipelineError
from shared.models.domain import BroadcastEvent, NewsArticle
from shared.models.enums import NewsCategory, WSServerMsgType
from shared.storage import ScoreStorage
from shared.utils.logging import get_logger

from ingest.dedup.deduplicator import DedupSkip, Deduplicator
from ingest.dedup.minhash import MinHash
from ingest.publisher import Broadcaster
from ingest.scraping.fetcher import EthicalFetcher
from ingest.scraping.team_mapper import TeamMapper

logger = get_logger(__name__)

NEWS_FEEDS: dict[str, tuple[str, str]] = {
    "NBA": ("ESPN NBA", "https://www.espn.com/espn/rss/nba/news"),
    "NFL": ("ESPN NFL", "https://www.espn.com/espn/rss/nfl/news"),
    "MLB": ("ESPN MLB", "https://www.espn.com/espn/rss/mlb/news"),
    "NHL": ("ESPN NHL", "https://www.espn.com/espn/rss/nhl/news"),
}

# Checked in order; the first category with a keyword hit wins.
CATEGORY_KEYWORDS: list[tuple[NewsCategory, tuple[str, ...]]] = [
    (
        NewsCategory.INJURIES,
        (
            "injury", "injured", "hurt", "sidelined", "out for", "acl", "hamstring",
            "ankle", "knee", "concussion", "injured list", "day-to-day",
        ),
    ),
    (NewsCategory.TRADE, ("trade", "traded", "swap", "acquire", "acquired", "deadline deal")),
    (
        NewsCategory.ROSTER,
        (
            "sign", "signs", "signed", "signing", "waive", "waived", "release", "released",
            "roster", "call up", "called up", "contract", "extension", "draft",
        ),
    ),
]

TAG_STRIP_RE = re.compile(r"<[^>]+>")


def _strip_html(raw: str) -> str:
    if not raw:
        return ""
    text = TAG_STRIP_RE.sub(" ", raw)
    text = unescape(text)
    return " ".join(text.split()).strip()[:2000]


def categorize(text_block: str) -> NewsCategory:
    combined = f" {(text_block or '').lower()} "
    for category, keywords in CATEGORY_KEYWORDS:
        if any(re.search(rf"\b{re.escape(k)}\b", combined) for k in keywords):
            return category
    return NewsCategory.GENERAL


def _parse_published(entry: Any) -> datetime:
    published = getattr(entry, "published_parsed", None) or getattr(entry, "updated_parsed", None)
    if published:
        try:
            return datetime.fromtimestamp(calendar.timegm(published), tz=timezone.utc)
        except (TypeError, ValueError, OSError, OverflowError):
            pass
    return datetime.now(timezone.utc)


def article_id(url: str) -> str:
    return "news_" + hashlib.sha1(url.encode("utf-8")).hexdigest()[:16]


def parse_feed(body: str, sport: str, source: str) -> list[NewsArticle]:
    """Normalize one RSS/Atom document into articles; entries without a link or title are dropped."""
    parsed = feedparser.parse(body)
    articles: list[NewsArticle] = []
    for entry in getattr(parsed, "entries", []) or []:
        link = getattr(entry, "link", "") or ""
        if not link.startswith("http"):
            continue
        title = _strip_html(getattr(entry, "title", "") or "")
        if not title:
            continue
        summary = _strip_html(getattr(entry, "summary", "") or getattr(entry, "description", "") or "")
        articles.append(
            NewsArticle(
                id=article_id(link),
                title=title[:500],
                summary=summary or None,
                category=categorize(f"{title} {summary}"),
                published_at=_parse_published(entry),
                url=link[:1000],
                team_id=TeamMapper.find_team_in_text(title, sport),
                source=source,
            )
        )
    return articles


@dataclass
class NewsRunResult:
    fetched: int = 0
    stored: int = 0
    duplicates: int = 0
    errors: int = 0


class NewsIngestor:
    def __init__(
        self,
        fetcher: EthicalFetcher,
        storage: ScoreStorage,
        deduplicator: Deduplicator,
        broadcaster: Optional[Broadcaster] = None,
        feeds: Optional[dict[str, tuple[str, str]]] = None,
    ) -> None:
        self._fetcher = fetcher
        self._storage = storage
        self._dedup = deduplicator
        self._broadcaster = broadcaster
        self._feeds = feeds if feeds is not None else NEWS_FEEDS

    async def _fetch_feed(self, sport: str) -> list[NewsArticle]:
        source, url = self._feeds[sport]
        body = await self._fetcher.fetch(url)
        return parse_feed(body, sport, source)

    async def run_once(self, sports: Optional[list[str]] = None) -> NewsRunResult:
        result = NewsRunResult()
        wanted = [s.upper() for s in (sports or list(self._feeds))]
        wanted = [s for s in wanted if s in self._feeds]

        fetched = await asyncio.gather(
            *(self._fetch_feed(sport) for sport in wanted), return_exceptions=True
        )
        for sport, outcome in zip(wanted, fetched):
            if isinstance(outcome, BaseException):
                result.errors += 1
                logger.warning("news_feed_failed", sport=sport, error=str(outcome))
                continue
            result.fetched += len(outcome)
            for article in outcome:
                await self._ingest(article, sport, result)

        logger.info(
            "news_fetch_completed",
            sports=wanted,
            fetched=result.fetched,
            stored=result.stored,
            duplicates=result.duplicates,
            errors=result.errors,
        )
        return result

    async def _ingest(self, article: NewsArticle, sport: str, result: NewsRunResult) -> None:
        verdict = await self._dedup.check_and_record(article.id, article.dedup_text, article.team_id)
        if isinstance(verdict, DedupSkip):
            result.duplicates += 1
            logger.debug(
                "news_duplicate_skipped",
                article_id=article.id,
                duplicate_of=verdict.duplicate_of,
                similarity=round(verdict.similarity, 4),
            )
            return

        stamped = article.model_copy(update={"min_hash": MinHash.serialize(verdict.signature)})
        try:
            saved = await self._storage.create_article(stamped)
        except PipelineError as exc:
            result.errors += 1
            await self._dedup.forget(article.id)
            logger.error("news_persist_failed", article_id=article.id, error=str(exc))
            return
        if saved is None:
            result.duplicates += 1
            return

        result.stored += 1
        if self._broadcaster is None:
            return
        event = BroadcastEvent(
            type=WSServerMsgType.NEWS_UPDATE,
            sport=sport,
            team_ids=[saved.team_id] if saved.team_id else [],
            payload={"article": saved.to_wire()},
        )
        try:
            await self._broadcaster.publish(event)
        except Exception as exc:
            logger.warning("news_broadcast_failed", article_id=saved.id, error=str(exc))
