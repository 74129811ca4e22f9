"""Tests for RSS parsing, categorization and the news ingest pass."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

import pytest

from shared.errors import FetchError, PersistenceError
from shared.models.domain import BroadcastEvent, NewsArticle
from shared.models.enums import NewsCategory, WSServerMsgType
from shared.storage import MemoryScoreStorage
from ingest.dedup.deduplicator import Deduplicator
from ingest.news_fetcher import NewsIngestor, article_id, categorize, parse_feed

NBA_FEED_URL = "https://feeds.example.com/nba.xml"
NFL_FEED_URL = "https://feeds.example.com/nfl.xml"

NBA_RSS = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0"><channel><title>ESPN NBA</title>
<item>
  <title>Lakers' LeBron James out with ankle injury</title>
  <link>https://www.espn.com/nba/story/1</link>
  <description>&lt;p&gt;James will miss &amp;amp; rest at least a week.&lt;/p&gt;</description>
  <pubDate>Tue, 05 Nov 2024 18:00:00 GMT</pubDate>
</item>
<item>
  <title>Celtics acquire veteran guard in deadline move</title>
  <link>https://www.espn.com/nba/story/2</link>
  <description>Boston adds depth.</description>
</item>
<item>
  <title>Entry without a link</title>
</item>
<item>
  <title>Lakers' LeBron James out with ankle injury.</title>
  <link>https://www.espn.com/nba/story/3</link>
  <description>&lt;p&gt;James will miss &amp;amp; rest at least a week.&lt;/p&gt;</description>
</item>
</channel></rss>
"""


class FeedFetcher:
    def __init__(self, bodies: dict[str, str]) -> None:
        self.bodies = bodies

    async def fetch(self, url: str, bypass_robots: bool = False) -> str:
        if url not in self.bodies:
            raise FetchError(url, 3, status=503)
        return self.bodies[url]


class FlakyStorage(MemoryScoreStorage):
    """Fails the first ``failures`` article writes."""

    def __init__(self, failures: int) -> None:
        super().__init__()
        self.failures = failures

    async def create_article(self, article: NewsArticle) -> Optional[NewsArticle]:
        if self.failures:
            self.failures -= 1
            raise PersistenceError(article.id, "connection reset")
        return await super().create_article(article)


class RecordingBroadcaster:
    def __init__(self) -> None:
        self.events: list[BroadcastEvent] = []

    async def publish(self, event: BroadcastEvent) -> None:
        self.events.append(event)


# ── Parsing ──────────────────────────────────────────────────────────────


class TestParseFeed:
    def test_entries_are_normalized(self) -> None:
        articles = parse_feed(NBA_RSS, "NBA", "ESPN NBA")
        assert len(articles) == 3

        first = articles[0]
        assert first.id == article_id("https://www.espn.com/nba/story/1")
        assert first.team_id == "NBA_LAL"
        assert first.category == NewsCategory.INJURIES
        assert first.source == "ESPN NBA"
        assert "<p>" not in (first.summary or "")
        assert first.published_at == datetime(2024, 11, 5, 18, 0, tzinfo=timezone.utc)

        assert articles[1].team_id == "NBA_BOS"
        assert articles[1].category == NewsCategory.TRADE

    def test_garbage_body_yields_nothing(self) -> None:
        assert parse_feed("not xml at all", "NBA", "ESPN NBA") == []


class TestCategorize:
    @pytest.mark.parametrize(
        "text, expected",
        [
            ("Star guard sidelined with hamstring strain", NewsCategory.INJURIES),
            ("Rams traded for a first-round pick", NewsCategory.TRADE),
            ("Yankees sign reliever to one-year contract", NewsCategory.ROSTER),
            ("Power rankings after week 9", NewsCategory.GENERAL),
            ("Designer outlines new logo", NewsCategory.GENERAL),
        ],
    )
    def test_keywords(self, text: str, expected: NewsCategory) -> None:
        assert categorize(text) == expected

    def test_injury_wins_over_roster(self) -> None:
        assert categorize("Team signs replacement after knee injury") == NewsCategory.INJURIES


# ── Ingest pass ──────────────────────────────────────────────────────────


class TestNewsIngestor:
    @pytest.fixture
    def ingestor_parts(self, settings):
        storage = MemoryScoreStorage()
        broadcaster = RecordingBroadcaster()
        ingestor = NewsIngestor(
            FeedFetcher({NBA_FEED_URL: NBA_RSS}),
            storage,
            Deduplicator(settings=settings),
            broadcaster,
            feeds={"NBA": ("ESPN NBA", NBA_FEED_URL), "NFL": ("ESPN NFL", NFL_FEED_URL)},
        )
        return ingestor, storage, broadcaster

    @pytest.mark.asyncio
    async def test_run_stores_unique_articles(self, ingestor_parts) -> None:
        ingestor, storage, broadcaster = ingestor_parts
        result = await ingestor.run_once()

        assert result.fetched == 3
        assert result.stored == 2
        assert result.duplicates == 1
        assert result.errors == 1
        assert len(storage.articles) == 2
        assert all(a.min_hash for a in storage.articles.values())

    @pytest.mark.asyncio
    async def test_new_articles_are_announced(self, ingestor_parts) -> None:
        ingestor, _, broadcaster = ingestor_parts
        await ingestor.run_once(["nba"])

        assert [e.type for e in broadcaster.events] == [WSServerMsgType.NEWS_UPDATE] * 2
        first = broadcaster.events[0]
        assert first.sport == "NBA"
        assert first.team_ids == ["NBA_LAL"]
        assert first.payload["article"]["url"] == "https://www.espn.com/nba/story/1"
        assert "minHash" in first.payload["article"]

    @pytest.mark.asyncio
    async def test_second_pass_stores_nothing(self, ingestor_parts) -> None:
        ingestor, storage, broadcaster = ingestor_parts
        await ingestor.run_once(["NBA"])
        broadcaster.events.clear()

        result = await ingestor.run_once(["NBA"])
        assert result.stored == 0
        assert result.duplicates == 3
        assert broadcaster.events == []
        assert len(storage.articles) == 2

    @pytest.mark.asyncio
    async def test_unknown_sports_are_ignored(self, ingestor_parts) -> None:
        ingestor, _, _ = ingestor_parts
        result = await ingestor.run_once(["CRICKET"])
        assert result.fetched == 0
        assert result.errors == 0

    @pytest.mark.asyncio
    async def test_failed_write_is_retried_next_pass(self, settings) -> None:
        single = (
            '<?xml version="1.0"?><rss version="2.0"><channel><title>ESPN NBA</title><item>'
            "<title>Warriors extend coach through 2027</title>"
            "<link>https://www.espn.com/nba/story/9</link></item></channel></rss>"
        )
        storage = FlakyStorage(failures=1)
        ingestor = NewsIngestor(
            FeedFetcher({NBA_FEED_URL: single}),
            storage,
            Deduplicator(settings=settings),
            feeds={"NBA": ("ESPN NBA", NBA_FEED_URL)},
        )

        first = await ingestor.run_once()
        assert (first.stored, first.errors, first.duplicates) == (0, 1, 0)

        second = await ingestor.run_once()
        assert (second.stored, second.errors, second.duplicates) == (1, 0, 0)
        assert [a.url for a in storage.articles.values()] == ["https://www.espn.com/nba/story/9"]
