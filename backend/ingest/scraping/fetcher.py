"""
The single network egress point for every source adapter.

Each request asks the robots checker first, then waits on the per-host
rate limiter, then goes out under a bounded timeout with retries.
"""
from __future__ import annotations

import asyncio
import json
import time
from typing import Any, Optional

import httpx

from shared.config import Settings, get_settings
from shared.errors import FetchError, ParseError, RobotsDisallowedError
from shared.utils.logging import get_logger
from shared.utils.metrics import FETCH_LATENCY, FETCH_REQUESTS, ROBOTS_DENIALS

from ingest.scraping.rate_limiter import HostRateLimiter, host_of
from ingest.scraping.robots import RobotsChecker

logger = get_logger(__name__)

_RETRYABLE_4XX = {408, 429}


class EthicalFetcher:
    """Polite HTTP GET with robots gating, per-host spacing and retry."""

    def __init__(
        self,
        robots: RobotsChecker,
        rate_limiter: HostRateLimiter,
        settings: Optional[Settings] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._robots = robots
        self._rate_limiter = rate_limiter
        self._client = client
        self._owns_client = client is None
        self._max_retries = self._settings.scraper_max_retries
        self._backoff_s = self._settings.scraper_retry_backoff_s

    @property
    def default_headers(self) -> dict[str, str]:
        return {
            "User-Agent": self._settings.scraper_user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,application/json;q=0.8,*/*;q=0.7",
            "Accept-Language": "en-US,en;q=0.9",
        }

    async def start(self) -> None:
        if self._client is None:
            self._client = httpx.AsyncClient(
                headers=self.default_headers,
                timeout=httpx.Timeout(self._settings.scraper_timeout_s, connect=5.0),
                follow_redirects=True,
                limits=httpx.Limits(max_connections=20, max_keepalive_connections=10),
            )

    async def close(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def fetch(self, url: str, bypass_robots: bool = False) -> str:
        """
        Return the response body for ``url``.

        Raises:
            RobotsDisallowedError: robots.txt forbids the URL; nothing was sent.
            FetchError: every attempt failed, or a non-retryable 4xx came back.
        """
        host = host_of(url)
        if not bypass_robots and not await self._robots.can_fetch(url):
            ROBOTS_DENIALS.labels(host=host).inc()
            logger.info("fetch_blocked_by_robots", url=url, host=host)
            raise RobotsDisallowedError(url)

        if self._client is None:
            await self.start()
        assert self._client is not None

        last_status: Optional[int] = None
        last_reason = ""
        for attempt in range(1, self._max_retries + 1):
            await self._rate_limiter.wait_if_needed(host)
            start_time = time.perf_counter()
            status_label = "error"
            try:
                resp = await self._client.get(url, headers=self.default_headers)
                status_label = str(resp.status_code)
                if resp.is_success:
                    logger.debug(
                        "fetch_success",
                        url=url,
                        status=resp.status_code,
                        latency_ms=round((time.perf_counter() - start_time) * 1000, 2),
                    )
                    return resp.text

                last_status = resp.status_code
                last_reason = resp.reason_phrase
                if 400 <= resp.status_code < 500 and resp.status_code not in _RETRYABLE_4XX:
                    logger.warning("fetch_client_error", url=url, status=resp.status_code)
                    raise FetchError(url, attempt, status=resp.status_code, reason=last_reason)
                logger.warning("fetch_retryable_status", url=url, status=resp.status_code, attempt=attempt)

            except httpx.TimeoutException as exc:
                status_label = "timeout"
                last_reason = f"timeout: {exc}"
                logger.warning("fetch_timeout", url=url, attempt=attempt)

            except httpx.HTTPError as exc:
                last_reason = str(exc) or exc.__class__.__name__
                logger.warning("fetch_transport_error", url=url, attempt=attempt, error=last_reason)

            finally:
                FETCH_REQUESTS.labels(host=host, status=status_label).inc()
                FETCH_LATENCY.labels(host=host).observe(time.perf_counter() - start_time)

            if attempt < self._max_retries:
                await asyncio.sleep(self._backoff_s * 2 ** (attempt - 1))

        logger.error("fetch_exhausted", url=url, attempts=self._max_retries, status=last_status)
        raise FetchError(url, self._max_retries, status=last_status, reason=last_reason)

    async def fetch_json(self, url: str, bypass_robots: bool = False) -> Any:
        body = await self.fetch(url, bypass_robots=bypass_robots)
        try:
            return json.loads(body)
        except ValueError as exc:
            raise ParseError(url, f"invalid JSON: {exc}") from exc

    async def fetch_many(self, urls: list[str]) -> dict[str, str | Exception]:
        """Fetch URLs concurrently; each value is the body or the error raised."""
        results = await asyncio.gather(*(self.fetch(u) for u in urls), return_exceptions=True)
        return dict(zip(urls, results))
