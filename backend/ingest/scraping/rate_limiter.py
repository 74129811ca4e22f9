"""
Per-host minimum-interval rate limiting for outbound scraping.
Safe for asyncio: calls for one host are serialized, different hosts run freely.
"""
from __future__ import annotations

import asyncio
import time
from collections import defaultdict
from typing import Optional
from urllib.parse import urlparse

from shared.config import Settings, get_settings
from shared.utils.logging import get_logger

logger = get_logger(__name__)


def host_of(url: str) -> str:
    """Lower-cased netloc of a URL, used as the rate limiting key."""
    return (urlparse(url).netloc or "unknown").lower()


class HostRateLimiter:
    """
    Enforces ``min_interval_ms`` between granted requests to the same host.

    State lives on the instance so tests can build their own limiter
    instead of sharing a module-level one.
    """

    def __init__(
        self,
        min_interval_ms: Optional[int] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        settings = settings or get_settings()
        interval_ms = settings.scraper_rate_limit_ms if min_interval_ms is None else min_interval_ms
        self._interval_s = max(0, interval_ms) / 1000.0
        self._last_request: dict[str, float] = {}
        self._locks: dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    @property
    def min_interval_ms(self) -> int:
        return int(self._interval_s * 1000)

    async def wait_if_needed(self, host: str) -> None:
        """Sleep until the host's interval has elapsed, then record the grant."""
        async with self._locks[host]:
            last = self._last_request.get(host)
            if last is not None:
                remaining = self._interval_s - (time.monotonic() - last)
                if remaining > 0:
                    logger.debug("rate_limit_wait", host=host, wait_ms=round(remaining * 1000, 1))
                    await asyncio.sleep(remaining)
            self._last_request[host] = time.monotonic()

    def time_until_next_request(self, host: str) -> int:
        """Milliseconds until ``host`` may be called again; 0 when free."""
        last = self._last_request.get(host)
        if last is None:
            return 0
        remaining = self._interval_s - (time.monotonic() - last)
        return max(0, int(remaining * 1000))

    def reset(self, host: Optional[str] = None) -> None:
        if host is None:
            self._last_request.clear()
        else:
            self._last_request.pop(host, None)
