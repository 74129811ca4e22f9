"""
Multi-source consolidation of game records for a set of teams.
"""
from __future__ import annotations

from collections import Counter
from datetime import datetime, timezone
from typing import Iterable, Optional

from shared.models.domain import GameScore, ValidatedScores
from shared.models.enums import GameStatus

# Ties in the status vote go to the state that is most informative for clients.
_TIE_PREFERENCE = {
    GameStatus.IN_PROGRESS: 2,
    GameStatus.FINAL: 1,
    GameStatus.SCHEDULED: 0,
}
_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _freshness(game: GameScore) -> tuple[datetime, datetime]:
    return (game.cached_at or _EPOCH, game.start_time)


class ValidationService:
    def validate_for_teams(
        self, scores: Iterable[GameScore], team_ids: Optional[Iterable[str]] = None
    ) -> ValidatedScores:
        """
        Filter ``scores`` to games involving ``team_ids`` (all when empty),
        merge records sharing a game id, and report how often sources agreed.

        The merged record is the freshest one, carrying the majority status.
        ``accuracy`` is the share of games whose sources were unanimous.
        """
        wanted = {t.upper() for t in (team_ids or []) if t}
        groups: dict[str, list[GameScore]] = {}
        for game in scores:
            if wanted and not (
                game.home_team_id.upper() in wanted or game.away_team_id.upper() in wanted
            ):
                continue
            groups.setdefault(game.id, []).append(game)

        items: list[GameScore] = []
        sources: list[str] = []
        unanimous = 0
        for group in groups.values():
            sources.extend(g.source for g in group if g.source)
            votes = Counter(g.status for g in group)
            if len(votes) == 1:
                unanimous += 1
            majority = max(votes, key=lambda s: (votes[s], _TIE_PREFERENCE[s]))
            chosen = max(group, key=_freshness)
            items.append(chosen.model_copy(update={"status": majority}))

        accuracy = unanimous / len(groups) if groups else None
        return ValidatedScores(items=items, sources_checked=sources, accuracy=accuracy)
