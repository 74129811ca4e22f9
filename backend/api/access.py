"""
Team access guard.

Decides which teams a request may read scores for, given the teams it asked
for and the user's favorite teams.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional

from fastapi import Depends, Header, Query

from shared.models.enums import AccessMode
from shared.storage import ScoreStorage
from shared.utils.logging import get_logger

from api.dependencies import get_storage

logger = get_logger(__name__)


class TeamAccessDenied(Exception):
    def __init__(self, unauthorized_teams: list[str]) -> None:
        super().__init__(f"access denied for teams: {', '.join(unauthorized_teams)}")
        self.unauthorized_teams = unauthorized_teams


@dataclass(frozen=True)
class TeamAccess:
    mode: AccessMode
    authorized_team_ids: list[str] = field(default_factory=list)


def _clean(team_ids: Optional[Iterable[str]]) -> list[str]:
    seen: dict[str, str] = {}
    for raw in team_ids or []:
        value = (raw or "").strip()
        if value and value.upper() not in seen:
            seen[value.upper()] = value
    return list(seen.values())


def resolve_team_access(
    requested: Optional[Iterable[str]], favorites: Optional[Iterable[str]]
) -> TeamAccess:
    """
    - requested teams, all among favorites -> ``requested``, authorized = requested
    - any requested team not a favorite -> ``TeamAccessDenied`` listing those teams
    - nothing requested, favorites present -> ``favorites``, authorized = favorites
    - nothing requested, no favorites -> ``overview``, authorized = []

    Comparisons are case-insensitive.
    """
    wanted = _clean(requested)
    allowed = _clean(favorites)
    allowed_upper = {t.upper() for t in allowed}

    if wanted:
        unauthorized = [t for t in wanted if t.upper() not in allowed_upper]
        if unauthorized:
            raise TeamAccessDenied(unauthorized)
        return TeamAccess(AccessMode.REQUESTED, wanted)
    if allowed:
        return TeamAccess(AccessMode.FAVORITES, allowed)
    return TeamAccess(AccessMode.OVERVIEW, [])


def parse_team_ids(raw: Optional[str]) -> list[str]:
    """``"NBA_LAL,NBA_BOS"`` -> ``["NBA_LAL", "NBA_BOS"]``."""
    if not raw:
        return []
    return [part.strip() for part in raw.split(",") if part.strip()]


async def require_team_access(
    team_ids: Optional[str] = Query(default=None, alias="teamIds"),
    user_id: Optional[str] = Header(default=None, alias="X-User-Id"),
    storage: ScoreStorage = Depends(get_storage),
) -> TeamAccess:
    """FastAPI dependency: resolve access for the calling user (anonymous users have no favorites)."""
    favorites: list[str] = []
    if user_id:
        try:
            favorites = await storage.get_user_team_ids(user_id)
        except Exception as exc:
            logger.warning("favorites_lookup_failed", user_id=user_id, error=str(exc))
    access = resolve_team_access(parse_team_ids(team_ids), favorites)
    logger.debug("team_access_resolved", user_id=user_id, mode=access.mode.value)
    return access
