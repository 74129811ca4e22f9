"""Domain enumerations for the scorewire pipeline."""
from __future__ import annotations

from enum import Enum
from typing import Optional


class Sport(str, Enum):
    """Leagues with a dedicated source adapter."""

    NBA = "NBA"
    NFL = "NFL"
    MLB = "MLB"
    NHL = "NHL"

    @classmethod
    def resolve(cls, name: str | None) -> Optional["Sport"]:
        """Map a league name or generic sport alias to a Sport, or None."""
        if not name:
            return None
        upper = name.strip().upper()
        upper = SPORT_ALIASES.get(upper, upper)
        try:
            return cls(upper)
        except ValueError:
            return None


SPORT_ALIASES: dict[str, str] = {
    "BASKETBALL": "NBA",
    "FOOTBALL": "NFL",
    "BASEBALL": "MLB",
    "HOCKEY": "NHL",
}


class GameStatus(str, Enum):
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    FINAL = "final"

    @property
    def rank(self) -> int:
        """Position in the one-way lifecycle scheduled -> in_progress -> final."""
        return _STATUS_RANK[self]


_STATUS_RANK = {
    GameStatus.SCHEDULED: 0,
    GameStatus.IN_PROGRESS: 1,
    GameStatus.FINAL: 2,
}


class ScoresMode(str, Enum):
    LIVE = "live"
    SCHEDULE = "schedule"
    FEATURED = "featured"


class NewsCategory(str, Enum):
    INJURIES = "injuries"
    ROSTER = "roster"
    TRADE = "trade"
    GENERAL = "general"


class AccessMode(str, Enum):
    REQUESTED = "requested"
    FAVORITES = "favorites"
    OVERVIEW = "overview"


class WSClientOp(str, Enum):
    SUBSCRIBE = "subscribe"
    UNSUBSCRIBE = "unsubscribe"
    SUBSCRIBE_USER_TEAMS = "subscribe-user-teams"
    UNSUBSCRIBE_USER_TEAMS = "unsubscribe-user-teams"
    PING = "ping"


class WSServerMsgType(str, Enum):
    SCORE_UPDATE = "score-update"
    STATUS_CHANGE = "status-change"
    NEWS_UPDATE = "news-update"
    SUBSCRIPTION_CONFIRMATION = "subscription-confirmation"
    CONNECTION_STATUS = "connection-status"
    TEAMS_LOADED = "teams-loaded"
    PONG = "pong"
    ERROR = "error"
