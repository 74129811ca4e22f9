"""
Sport-keyed adapter registry.
Callers ask for a league by name; aliases resolve and unknown sports get the
deterministic adapter instead of an error.
"""
from __future__ import annotations

from typing import Optional

from shared.config import Settings, get_settings
from shared.models.enums import Sport
from shared.utils.logging import get_logger

from ingest.providers.base import Clock, ScoreAdapter
from ingest.providers.dummy import DummyAdapter
from ingest.providers.mlb import MLBAdapter
from ingest.providers.nba import NBAAdapter
from ingest.providers.nfl import NFLAdapter
from ingest.providers.nhl import NHLAdapter
from ingest.scraping.fetcher import EthicalFetcher

logger = get_logger(__name__)

ADAPTER_CLASSES: dict[Sport, type[ScoreAdapter]] = {
    Sport.NBA: NBAAdapter,
    Sport.NFL: NFLAdapter,
    Sport.MLB: MLBAdapter,
    Sport.NHL: NHLAdapter,
}


class AdapterRegistry:
    """One adapter instance per league, all sharing the injected fetcher."""

    def __init__(
        self,
        fetcher: Optional[EthicalFetcher],
        settings: Settings | None = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self._fetcher = fetcher
        self._settings = settings or get_settings()
        self._clock = clock
        self._adapters: dict[str, ScoreAdapter] = {}

    @staticmethod
    def supported_sports() -> list[str]:
        return [sport.value for sport in ADAPTER_CLASSES]

    @staticmethod
    def is_supported(name: str | None) -> bool:
        return Sport.resolve(name) is not None

    def get_adapter(self, name: str | None) -> ScoreAdapter:
        sport = Sport.resolve(name)
        key = sport.value if sport else (name or "").strip().upper() or "NBA"
        adapter = self._adapters.get(key)
        if adapter is not None:
            return adapter

        if sport is None or self._settings.use_dummy_adapter or self._fetcher is None:
            if sport is None:
                logger.warning("adapter_unknown_sport", sport=name, fallback="dummy")
            adapter = DummyAdapter(sport=key, clock=self._clock)
        else:
            adapter = ADAPTER_CLASSES[sport](self._fetcher, clock=self._clock)

        self._adapters[key] = adapter
        logger.debug("adapter_created", sport=key, adapter=adapter.name)
        return adapter

    def register(self, sport: str, adapter: ScoreAdapter) -> None:
        """Install a specific adapter, e.g. a fixture-backed one in tests."""
        self._adapters[sport.strip().upper()] = adapter
