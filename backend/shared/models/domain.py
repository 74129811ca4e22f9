"""
Pydantic v2 domain models shared across all scorewire services.
These are the canonical wire/internal representations, NOT ORM models.

Wire form is camelCase (``homeTeamId``); Python code uses snake_case.
"""
from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from shared.models.enums import GameStatus, NewsCategory, WSServerMsgType


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ── Base ────────────────────────────────────────────────────────────────
class DomainModel(BaseModel):
    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_wire(self) -> dict[str, Any]:
        """JSON-safe camelCase dict for caches and broadcast payloads."""
        return self.model_dump(mode="json", by_alias=True)


# ── Reference entities ──────────────────────────────────────────────────
class Team(DomainModel):
    """Immutable reference data owned by storage."""

    model_config = ConfigDict(frozen=True)

    id: str
    league: str
    code: str
    name: str


# ── Scores ──────────────────────────────────────────────────────────────
class GameScore(DomainModel):
    """Normalized game state produced by every adapter."""

    id: str
    league: str
    home_team_id: str
    away_team_id: str
    home_pts: int = 0
    away_pts: int = 0
    status: GameStatus = GameStatus.SCHEDULED
    period: Optional[str] = None
    time_remaining: Optional[str] = None
    start_time: datetime
    source: str
    cached_at: Optional[datetime] = None

    @property
    def team_ids(self) -> list[str]:
        return [self.home_team_id, self.away_team_id]

    def score_differs(self, other: "GameScore") -> bool:
        return (self.home_pts, self.away_pts) != (other.home_pts, other.away_pts)


class TeamBoxLine(DomainModel):
    pts: int = 0


class BoxScore(DomainModel):
    game_id: str
    home: TeamBoxLine = Field(default_factory=TeamBoxLine)
    away: TeamBoxLine = Field(default_factory=TeamBoxLine)
    updated_at: datetime = Field(default_factory=utcnow)
    source: str

    @classmethod
    def unavailable(cls, game_id: str) -> "BoxScore":
        """Zeroed box score used when no source can provide one."""
        return cls(game_id=game_id, source="unavailable")

    @property
    def is_available(self) -> bool:
        return self.source != "unavailable"


# ── News ────────────────────────────────────────────────────────────────
class NewsArticle(DomainModel):
    id: str
    title: str
    summary: Optional[str] = None
    category: NewsCategory = NewsCategory.GENERAL
    published_at: datetime
    url: str
    team_id: Optional[str] = None
    source: Optional[str] = None
    min_hash: Optional[str] = None

    @property
    def dedup_text(self) -> str:
        return f"{self.title} {self.summary or ''}".strip()


# ── Broadcast ───────────────────────────────────────────────────────────
class BroadcastEvent(DomainModel):
    """
    One fan-out event. Routing uses ``sport`` and ``team_ids``; an event
    carrying neither is delivered to every connection.
    """

    type: WSServerMsgType
    payload: dict[str, Any] = Field(default_factory=dict)
    sport: Optional[str] = None
    team_ids: list[str] = Field(default_factory=list)
    timestamp: float = Field(default_factory=time.time)

    def client_message(self) -> dict[str, Any]:
        return {"type": self.type.value, "payload": self.payload, "timestamp": self.timestamp}


# ── Agent results ───────────────────────────────────────────────────────
class ScoresRunResult(DomainModel):
    sport: str
    mode: str
    persisted: int = 0
    skipped: int = 0
    errors: int = 0
    changed: int = 0
    items: list[GameScore] = Field(default_factory=list)


class ValidatedScores(DomainModel):
    items: list[GameScore] = Field(default_factory=list)
    sources_checked: list[str] = Field(default_factory=list)
    accuracy: Optional[float] = None
