"""
ESPN public JSON scoreboard and summary feeds.

Leagues on this feed read ``events[].competitions[0].competitors[]`` and map
``status.type.state`` (pre/in/post) onto GameStatus. When the JSON feed is
unavailable the HTML scoreboard parser is used instead.
"""
from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Optional

from shared.errors import FetchError, ParseError, RobotsDisallowedError
from shared.models.domain import BoxScore, GameScore, TeamBoxLine
from shared.models.enums import GameStatus
from shared.utils.logging import get_logger

from ingest.providers.base import day_range
from ingest.providers.scoreboard_html import HtmlScoreboardAdapter
from ingest.scraping.parser import extract_number, load_html, safe_select
from ingest.scraping.team_mapper import TeamMapper, build_stable_game_id

logger = get_logger(__name__)

ESPN_API = "https://site.api.espn.com/apis/site/v2/sports"
EVENT_ID_RE = re.compile(r"(\d{9})")

_STATE_MAP = {
    "pre": GameStatus.SCHEDULED,
    "in": GameStatus.IN_PROGRESS,
    "post": GameStatus.FINAL,
}


def _parse_iso(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        # ESPN emits "2024-10-08T23:00Z"
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None


def _score(raw: Any) -> int:
    if isinstance(raw, dict):
        raw = raw.get("value", raw.get("displayValue"))
    try:
        return int(float(raw))
    except (TypeError, ValueError):
        return 0


class EspnJsonAdapter(HtmlScoreboardAdapter):
    api_path: str = ""  # e.g. "baseball/mlb"
    game_page_url: str = ""  # DOM fallback for box scores; empty disables it

    def scoreboard_url(self, day: datetime) -> str:
        return f"{ESPN_API}/{self.api_path}/scoreboard?dates={day:%Y%m%d}"

    def summary_url(self, event_id: str) -> str:
        return f"{ESPN_API}/{self.api_path}/summary?event={event_id}"

    # ── Live ────────────────────────────────────────────────────────────
    async def _fetch_live(self, team_codes: list[str]) -> list[GameScore]:
        try:
            return await self._scoreboard_for_day(self.now(), team_codes)
        except (FetchError, ParseError, RobotsDisallowedError) as exc:
            logger.warning("espn_json_scoreboard_failed", sport=self.sport, error=str(exc))
        return await super()._fetch_live(team_codes)

    async def _scoreboard_for_day(self, day: datetime, team_codes: list[str]) -> list[GameScore]:
        data = await self.fetcher.fetch_json(self.scoreboard_url(day))
        if not isinstance(data, dict):
            raise ParseError(self.scoreboard_url(day), "scoreboard is not an object")
        games: list[GameScore] = []
        for event in data.get("events") or []:
            try:
                game = self.parse_event(event, team_codes)
            except (KeyError, TypeError, ValueError) as exc:
                logger.warning("espn_event_skipped", sport=self.sport, event_id=event.get("id"), error=str(exc))
                continue
            if game is not None:
                games.append(game)
        return games

    def parse_event(self, event: dict[str, Any], team_codes: list[str]) -> Optional[GameScore]:
        competition = (event.get("competitions") or [{}])[0]
        competitors = competition.get("competitors") or []
        home = next((c for c in competitors if c.get("homeAway") == "home"), None)
        away = next((c for c in competitors if c.get("homeAway") == "away"), None)
        if home is None or away is None:
            return None

        home_id = self._team_id(home.get("team") or {})
        away_id = self._team_id(away.get("team") or {})
        if not (TeamMapper.is_valid_team_id(home_id) and TeamMapper.is_valid_team_id(away_id)):
            logger.warning("espn_event_unmapped_teams", sport=self.sport, event_id=event.get("id"))
            return None
        if not self.matches_codes(home_id, away_id, team_codes):
            return None

        status_type = (competition.get("status") or event.get("status") or {}).get("type") or {}
        detail = status_type.get("detail") or status_type.get("shortDetail") or ""
        state = (status_type.get("state") or "").lower()
        status = self.map_json_state(state, detail)

        start = _parse_iso(event.get("date") or competition.get("date"))
        event_id = event.get("id")
        game_id = (
            f"{self.sport}_ESPN_{event_id}"
            if event_id
            else build_stable_game_id(self.sport, away_id, home_id, start or self.now())
        )
        return self.make_game(
            id=game_id,
            home_team_id=home_id,
            away_team_id=away_id,
            home_pts=_score(home.get("score")),
            away_pts=_score(away.get("score")),
            status=status,
            period=self.extract_period(detail),
            time_remaining=self.extract_time_remaining(detail),
            start_time=start or self.now(),
            source="ESPN API",
        )

    def map_json_state(self, state: str, detail: str) -> GameStatus:
        if state in _STATE_MAP:
            return _STATE_MAP[state]
        return self.map_status(detail)

    def _team_id(self, team: dict[str, Any]) -> str:
        for key in ("displayName", "shortDisplayName", "name"):
            name = team.get(key)
            if name:
                team_id = TeamMapper.map_team(name, self.sport)
                if TeamMapper.is_valid_team_id(team_id) and TeamMapper.team_name(team_id):
                    return team_id
        abbreviation = team.get("abbreviation")
        if abbreviation:
            return TeamMapper.map_team(abbreviation, self.sport)
        return TeamMapper.map_team(team.get("displayName") or "", self.sport)

    # ── Schedule ────────────────────────────────────────────────────────
    async def _fetch_schedule(
        self, team_ids: list[str], start: datetime, end: datetime
    ) -> list[GameScore]:
        codes = [TeamMapper.code_from_id(t) for t in team_ids if t]
        by_id: dict[str, GameScore] = {}
        for day in day_range(start, end):
            try:
                games = await self._scoreboard_for_day(day, codes)
            except (FetchError, ParseError, RobotsDisallowedError) as exc:
                logger.warning("espn_schedule_day_failed", sport=self.sport, day=f"{day:%Y-%m-%d}", error=str(exc))
                continue
            for game in games:
                if start <= game.start_time <= end:
                    by_id.setdefault(game.id, game)
        return sorted(by_id.values(), key=lambda g: g.start_time)

    # ── Box score ───────────────────────────────────────────────────────
    async def _fetch_box_score(self, event_id: str) -> BoxScore:
        match = EVENT_ID_RE.search(event_id)
        if not match:
            raise ParseError(event_id, "box score needs a 9-digit ESPN event id")
        espn_id = match.group(1)
        game_id = f"{self.sport}_ESPN_{espn_id}"

        try:
            data = await self.fetcher.fetch_json(self.summary_url(espn_id))
            return self._box_from_summary(game_id, data)
        except (FetchError, ParseError, RobotsDisallowedError) as exc:
            if not self.game_page_url:
                raise
            logger.warning("espn_summary_failed", sport=self.sport, event_id=espn_id, error=str(exc))

        html = await self.fetcher.fetch(self.game_page_url.format(event_id=espn_id))
        soup = load_html(html)
        scores = safe_select(soup, ".ScoreboardScoreCell__Score, .ScoreCell__Score, .score")
        if len(scores) < 2:
            scores = safe_select(soup, ".Competitors .ScoreboardScoreCell__Score, .competitors .score")
        return BoxScore(
            game_id=game_id,
            away=TeamBoxLine(pts=extract_number(scores[0]) if len(scores) > 0 else 0),
            home=TeamBoxLine(pts=extract_number(scores[1]) if len(scores) > 1 else 0),
            updated_at=self.now(),
            source="ESPN.com",
        )

    def _box_from_summary(self, game_id: str, data: Any) -> BoxScore:
        competitions = []
        if isinstance(data, dict):
            competitions = (data.get("header") or {}).get("competitions") or data.get("competitions") or []
        competitors = (competitions[0].get("competitors") if competitions else None) or []
        if len(competitors) < 2:
            raise ParseError(game_id, "summary missing competitors")
        away = next((c for c in competitors if c.get("homeAway") == "away"), competitors[0])
        home = next((c for c in competitors if c.get("homeAway") == "home"), competitors[1])
        return BoxScore(
            game_id=game_id,
            home=TeamBoxLine(pts=_score(home.get("score"))),
            away=TeamBoxLine(pts=_score(away.get("score"))),
            updated_at=self.now(),
            source="ESPN API",
        )
