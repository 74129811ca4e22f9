"""
Scores REST endpoint.

GET /v1/scores?sport=&mode=&teamIds= returns cached games for the caller's
authorized teams, or the league's ``scores:sport:<SPORT>:<mode>`` entry
(featured by default) when no teams are requested and the user has no favorites.
Served from cache only: a miss or cache failure yields an empty list.
"""
from __future__ import annotations

from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from shared.models.domain import GameScore
from shared.models.enums import AccessMode, ScoresMode, Sport
from shared.utils.logging import get_logger

from api.access import TeamAccess, require_team_access
from api.dependencies import get_cache
from ingest.cache import ScoresCache
from ingest.scores_agent import detect_sport_from_team_ids

logger = get_logger(__name__)

router = APIRouter(prefix="/v1", tags=["scores"])


class ScoresResponse(BaseModel):
    sport: str
    mode: str
    teamIds: list[str]
    items: list[dict[str, Any]]
    cached: bool


def _involves(game: GameScore, team_ids: set[str]) -> bool:
    return game.home_team_id.upper() in team_ids or game.away_team_id.upper() in team_ids


async def _read(cache: ScoresCache, key: str) -> Optional[list[GameScore]]:
    try:
        return await cache.read(key)
    except Exception as exc:
        logger.warning("scores_cache_unavailable", key=key, error=str(exc))
        return None


async def _read_for_teams(
    cache: ScoresCache, team_ids: list[str], overview_key: str
) -> Optional[list[GameScore]]:
    """
    Games for ``team_ids`` from the team-scoped entries.

    A combined entry for exactly these teams wins. Otherwise each team's own
    entry is read, and teams with no entry are looked up in the league
    overview. ``None`` means no entry was found at all.
    """
    wanted = {t.upper() for t in team_ids}
    combined = await _read(cache, ScoresCache.teams_key(wanted))
    if combined is not None:
        return [g for g in combined if _involves(g, wanted)]

    games: list[GameScore] = []
    missing: set[str] = set()
    hit = False
    if len(wanted) == 1:
        # The combined entry was this team's own.
        missing = set(wanted)
    else:
        for team_id in sorted(wanted):
            cached = await _read(cache, ScoresCache.teams_key([team_id]))
            if cached is None:
                missing.add(team_id)
                continue
            hit = True
            games.extend(g for g in cached if _involves(g, {team_id}))

    if missing:
        overview = await _read(cache, overview_key)
        if overview is not None:
            hit = True
            games.extend(g for g in overview if _involves(g, missing))

    if not hit:
        return None
    unique: dict[str, GameScore] = {}
    for game in games:
        unique.setdefault(game.id, game)
    return list(unique.values())


@router.get("/scores", response_model=ScoresResponse)
async def get_scores(
    sport: Optional[str] = Query(default=None),
    mode: ScoresMode = Query(default=ScoresMode.FEATURED),
    access: TeamAccess = Depends(require_team_access),
    cache: ScoresCache = Depends(get_cache),
) -> ScoresResponse:
    resolved = Sport.resolve(sport)
    league = resolved.value if resolved else detect_sport_from_team_ids(access.authorized_team_ids)
    overview_key = ScoresCache.key_for(league, mode.value)

    items: Optional[list[GameScore]]
    if access.mode == AccessMode.OVERVIEW:
        items = await _read(cache, overview_key)
    else:
        items = await _read_for_teams(cache, access.authorized_team_ids, overview_key)

    return ScoresResponse(
        sport=league,
        mode=access.mode.value,
        teamIds=access.authorized_team_ids,
        items=[g.to_wire() for g in items or []],
        cached=items is not None,
    )
