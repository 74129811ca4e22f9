"""
Scores Agent: one fetch -> persist -> cache -> broadcast cycle per sport and mode.

Failures are contained at the smallest unit: a failing adapter call yields
an empty cycle, a failing game write is counted and skipped, and cache or
broadcast failures are logged without affecting the returned result.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Iterable, Optional

from shared.config import Settings, get_settings
from shared.errors import PersistenceError
from shared.models.domain import BroadcastEvent, GameScore, ScoresRunResult
from shared.models.enums import GameStatus, ScoresMode, Sport, WSServerMsgType
from shared.storage import ScoreStorage
from shared.utils.logging import get_logger
from shared.utils.metrics import AGENT_CYCLE, AGENT_ITEMS, AGENT_RUNS, atrack_latency

from ingest.cache import ScoresCache
from ingest.providers.base import ScoreAdapter
from ingest.providers.registry import AdapterRegistry
from ingest.publisher import Broadcaster
from ingest.scraping.team_mapper import TEAM_ID_RE, TeamMapper
from ingest.validation import ValidationService

logger = get_logger(__name__)


def sanitize_team_ids(team_ids: Optional[Iterable[str]]) -> list[str]:
    """Upper-case, validate, de-duplicate and sort team ids."""
    clean: set[str] = set()
    for raw in team_ids or []:
        if not raw:
            continue
        candidate = raw.strip().upper()
        if TEAM_ID_RE.match(candidate):
            clean.add(candidate)
        else:
            logger.warning("team_id_rejected", team_id=raw)
    return sorted(clean)


def detect_sport_from_team_ids(team_ids: Optional[Iterable[str]]) -> str:
    """League prefix of the first well-formed team id; NBA when none qualifies."""
    for team_id in team_ids or []:
        candidate = (team_id or "").strip().upper()
        if not TEAM_ID_RE.match(candidate):
            continue
        sport = Sport.resolve(TeamMapper.league_from_id(candidate))
        if sport is not None:
            return sport.value
    return Sport.NBA.value


class ScoresAgent:
    def __init__(
        self,
        registry: AdapterRegistry,
        storage: ScoreStorage,
        cache: Optional[ScoresCache] = None,
        broadcaster: Optional[Broadcaster] = None,
        settings: Optional[Settings] = None,
        validator: Optional[ValidationService] = None,
    ) -> None:
        self._registry = registry
        self._storage = storage
        self._cache = cache
        self._broadcaster = broadcaster
        self._settings = settings or get_settings()
        self._validator = validator or ValidationService()
        self._last_known: dict[str, GameScore] = {}

    async def run_once(
        self,
        sport: str = "NBA",
        mode: Optional[str] = None,
        limit: int = 5,
        team_ids: Optional[list[str]] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        prefer_cache: bool = False,
    ) -> ScoresRunResult:
        sport = (sport or "NBA").strip().upper()
        teams = sanitize_team_ids(team_ids)
        run_mode = ScoresMode(mode) if mode else (ScoresMode.LIVE if teams else ScoresMode.FEATURED)
        result = ScoresRunResult(sport=sport, mode=run_mode.value)
        AGENT_RUNS.labels(sport=sport, mode=run_mode.value).inc()

        log = logger.bind(sport=sport, mode=run_mode.value, teams=teams, limit=limit)
        log.info("scores_run_started")

        async with atrack_latency(AGENT_CYCLE, sport=sport, mode=run_mode.value):
            if run_mode == ScoresMode.LIVE and not teams:
                # A live run is always team-scoped; never widen it to the whole league.
                log.warning("scores_live_without_teams", requested=team_ids)
                return result

            cache_key, ttl = self._cache_target(sport, run_mode, teams)
            if prefer_cache and self._cache is not None:
                cached = await self._read_cache(cache_key)
                if cached is not None:
                    result.items = cached
                    result.skipped = len(cached)
                    log.info("scores_cache_hit", key=cache_key, count=len(cached))
                    return result

            adapter = self._registry.get_adapter(sport)
            games = await self._collect(adapter, run_mode, teams, limit, start, end)

            seen: set[str] = set()
            for game in games:
                if game.id in seen:
                    result.skipped += 1
                    continue
                seen.add(game.id)
                await self._process_game(game, result)

            if self._cache is not None and result.items:
                try:
                    await self._cache.write(cache_key, result.items, ttl_s=ttl)
                except Exception as exc:
                    log.warning("scores_cache_write_failed", key=cache_key, error=str(exc))

            log.info(
                "scores_run_complete",
                persisted=result.persisted,
                skipped=result.skipped,
                errors=result.errors,
                changed=result.changed,
            )
            return result

    def prune_last_known(self, older_than: datetime) -> int:
        """Forget games that started before ``older_than``; returns how many were dropped."""
        stale = [gid for gid, g in self._last_known.items() if g.start_time < older_than]
        for gid in stale:
            del self._last_known[gid]
        if stale:
            logger.info("scores_last_known_pruned", removed=len(stale), remaining=len(self._last_known))
        return len(stale)

    # ── Steps ───────────────────────────────────────────────────────────
    def _cache_target(self, sport: str, mode: ScoresMode, teams: list[str]) -> tuple[str, int]:
        if teams:
            return ScoresCache.teams_key(teams), self._settings.scores_teams_ttl_s
        return ScoresCache.key_for(sport, mode.value), self._settings.scores_featured_ttl_s

    async def _read_cache(self, key: str) -> Optional[list[GameScore]]:
        assert self._cache is not None
        try:
            return await self._cache.read(key)
        except Exception as exc:
            logger.warning("scores_cache_read_failed", key=key, error=str(exc))
            return None

    async def _collect(
        self,
        adapter: ScoreAdapter,
        mode: ScoresMode,
        teams: list[str],
        limit: int,
        start: Optional[datetime],
        end: Optional[datetime],
    ) -> list[GameScore]:
        if mode == ScoresMode.SCHEDULE:
            window_start = start or adapter.now()
            window_end = end or window_start + timedelta(hours=24)
            games = await adapter.fetch_schedule(teams, window_start, window_end)
            return games[: max(0, limit)]

        if mode == ScoresMode.FEATURED and not teams:
            return await adapter.fetch_featured_games(limit)

        codes = sorted({TeamMapper.code_from_id(t) for t in teams})
        live = await adapter.fetch_live(codes)
        if not live and mode == ScoresMode.FEATURED:
            return await adapter.fetch_recent_games(teams, limit)
        return self._validator.validate_for_teams(live, teams).items

    async def _process_game(self, game: GameScore, result: ScoresRunResult) -> None:
        try:
            previous = self._last_known.get(game.id) or await self._storage.get_game(game.id)
        except Exception as exc:
            logger.warning("scores_previous_lookup_failed", game_id=game.id, error=str(exc))
            previous = None

        if previous is not None and game.status.rank < previous.status.rank:
            logger.info(
                "scores_status_regression_ignored",
                game_id=game.id,
                previous=previous.status.value,
                incoming=game.status.value,
            )
            game = game.model_copy(update={"status": previous.status})

        try:
            saved = await self._storage.create_game(game)
        except PersistenceError as exc:
            result.errors += 1
            AGENT_ITEMS.labels(sport=result.sport, outcome="error").inc()
            logger.error("scores_persist_failed", game_id=game.id, error=str(exc))
            return
        except Exception as exc:
            result.errors += 1
            AGENT_ITEMS.labels(sport=result.sport, outcome="error").inc()
            logger.error("scores_persist_unexpected_error", game_id=game.id, error=str(exc))
            return

        result.persisted += 1
        result.items.append(saved)
        self._last_known[saved.id] = saved
        AGENT_ITEMS.labels(sport=result.sport, outcome="persisted").inc()

        events = self._change_events(previous, saved)
        if events:
            result.changed += 1
        for event in events:
            await self._publish(event)

    def _change_events(self, previous: Optional[GameScore], current: GameScore) -> list[BroadcastEvent]:
        events: list[BroadcastEvent] = []
        wire = current.to_wire()
        base = {
            "gameId": current.id,
            "homeTeamId": current.home_team_id,
            "awayTeamId": current.away_team_id,
            "game": wire,
        }

        if previous is None or previous.status != current.status:
            events.append(
                BroadcastEvent(
                    type=WSServerMsgType.STATUS_CHANGE,
                    sport=current.league,
                    team_ids=current.team_ids,
                    payload={
                        **base,
                        "previousStatus": previous.status.value if previous else "unknown",
                        "status": current.status.value,
                    },
                )
            )

        scored = current.home_pts or current.away_pts
        if (previous is None and scored) or (previous is not None and current.score_differs(previous)):
            events.append(
                BroadcastEvent(
                    type=WSServerMsgType.SCORE_UPDATE,
                    sport=current.league,
                    team_ids=current.team_ids,
                    payload={
                        **base,
                        "previousScore": (
                            {"home": previous.home_pts, "away": previous.away_pts} if previous else None
                        ),
                        "score": {"home": current.home_pts, "away": current.away_pts},
                        "isLive": current.status == GameStatus.IN_PROGRESS,
                    },
                )
            )
        return events

    async def _publish(self, event: BroadcastEvent) -> None:
        if self._broadcaster is None:
            return
        try:
            await self._broadcaster.publish(event)
        except Exception as exc:
            logger.warning("scores_broadcast_failed", type=event.type.value, error=str(exc))
