"""
robots.txt compliance: fetch, parse and cache crawl rules per host.
"""
from __future__ import annotations

import asyncio
import time
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import urlparse
from urllib.robotparser import RobotFileParser

import httpx

from shared.config import Settings, get_settings
from shared.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class RobotsCacheEntry:
    parser: RobotFileParser
    ttl_s: float
    fetched_at: float = field(default_factory=time.monotonic)
    permissive: bool = False

    def is_stale(self, now: Optional[float] = None) -> bool:
        return ((now or time.monotonic()) - self.fetched_at) >= self.ttl_s


def _allow_all() -> RobotFileParser:
    parser = RobotFileParser()
    parser.parse([])
    return parser


class RobotsChecker:
    """
    Answers whether a URL may be crawled by our robots user agent.

    A host whose robots.txt cannot be retrieved is treated as allowed for
    ``robots_failure_ttl_s`` so a flaky origin never starves every adapter.
    """

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._client = client
        self._owns_client = client is None
        self._cache: dict[str, RobotsCacheEntry] = {}
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    @property
    def user_agent(self) -> str:
        return self._settings.robots_user_agent

    async def close(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._settings.scraper_timeout_s, connect=5.0),
                follow_redirects=True,
                headers={"User-Agent": self.user_agent},
            )
        return self._client

    async def can_fetch(self, url: str) -> bool:
        entry = await self._entry_for(url)
        return entry.parser.can_fetch(self.user_agent, url)

    async def crawl_delay(self, url: str) -> Optional[float]:
        entry = await self._entry_for(url)
        delay = entry.parser.crawl_delay(self.user_agent)
        return float(delay) if delay is not None else None

    def clear_cache(self, host: Optional[str] = None) -> None:
        if host is None:
            self._cache.clear()
        else:
            self._cache.pop(host.lower(), None)

    async def _entry_for(self, url: str) -> RobotsCacheEntry:
        parsed = urlparse(url)
        host = parsed.netloc.lower()
        entry = self._cache.get(host)
        if entry is not None and not entry.is_stale():
            return entry

        async with self._locks[host]:
            # Another waiter may have refreshed it while we queued.
            entry = self._cache.get(host)
            if entry is not None and not entry.is_stale():
                return entry
            entry = await self._load(parsed.scheme or "https", host)
            self._cache[host] = entry
            return entry

    async def _load(self, scheme: str, host: str) -> RobotsCacheEntry:
        robots_url = f"{scheme}://{host}/robots.txt"
        try:
            resp = await self._http().get(robots_url)
        except httpx.HTTPError as exc:
            logger.warning("robots_fetch_failed", host=host, url=robots_url, error=str(exc))
            return RobotsCacheEntry(
                parser=_allow_all(),
                ttl_s=self._settings.robots_failure_ttl_s,
                permissive=True,
            )

        if not resp.is_success:
            logger.info("robots_missing", host=host, status=resp.status_code)
            return RobotsCacheEntry(parser=_allow_all(), ttl_s=self._settings.robots_cache_ttl_s)

        parser = RobotFileParser(robots_url)
        parser.parse(resp.text.splitlines())
        logger.debug("robots_loaded", host=host)
        return RobotsCacheEntry(parser=parser, ttl_s=self._settings.robots_cache_ttl_s)
