"""
Scraped HTML scoreboards: ESPN first, CBS Sports as fallback.
Used by leagues whose scores come from rendered pages rather than a JSON feed.
"""
from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone
from typing import Optional

from shared.errors import FetchError, RobotsDisallowedError
from shared.models.domain import GameScore
from shared.models.enums import GameStatus
from shared.utils.logging import get_logger

from ingest.providers.base import ScoreAdapter
from ingest.scraping.parser import extract_number, extract_text, load_html, safe_select
from ingest.scraping.team_mapper import LEAGUE_TZ, TeamMapper, build_stable_game_id

logger = get_logger(__name__)

CLOCK_RE = re.compile(r"\b(\d{1,2}:\d{2})\b(?!\s*(?:am|pm))", re.IGNORECASE)
TIME_OF_DAY_RE = re.compile(r"\b(\d{1,2}):(\d{2})\s*(AM|PM)\b", re.IGNORECASE)
ORDINAL_PERIOD_RE = re.compile(r"Q(\d)|(\d)(?:st|nd|rd|th)", re.IGNORECASE)


def extract_clock(text: str) -> Optional[str]:
    match = CLOCK_RE.search(text or "")
    return match.group(1) if match else None


def extract_scheduled_start(text: str, base: datetime) -> Optional[datetime]:
    """Start time from "7:30 PM" or "Tomorrow 7:30 PM", read as league-local time on ``base``'s day."""
    match = TIME_OF_DAY_RE.search(text or "")
    if not match:
        return None
    hour, minute, meridiem = int(match.group(1)), int(match.group(2)), match.group(3).upper()
    if hour > 12 or minute > 59:
        return None
    if meridiem == "PM" and hour != 12:
        hour += 12
    if meridiem == "AM" and hour == 12:
        hour = 0
    local = base.astimezone(LEAGUE_TZ)
    start = local.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if re.search(r"\btomorrow\b", text, re.IGNORECASE):
        start += timedelta(days=1)
    return start.astimezone(timezone.utc)


class HtmlScoreboardAdapter(ScoreAdapter):
    """Parses ESPN scoreboard cards, falling back to CBS Sports markup."""

    espn_url: str = ""
    cbs_url: str = ""

    ESPN_CARD = '.ScoreCell, .gameModules, [data-module="game"]'
    ESPN_TEAM = ".ScoreCell__TeamName, .team-name, .Gamestrip__Team"
    ESPN_SCORE = ".ScoreCell__Score, .score, .Gamestrip__Score"
    ESPN_STATUS = ".ScoreCell__Status, .game-status, .Gamestrip__Time"
    CBS_CARD = ".live-update, .game-item, .scoreboard-item"

    # ── Status vocabulary, overridden per league ───────────────────────
    def map_status(self, text: str) -> GameStatus:
        if re.search(r"\bfinal\b|\bf/\d?ot\b", text, re.IGNORECASE):
            return GameStatus.FINAL
        in_progress = (
            re.search(r"\bq\d\b|\b(?:1st|2nd|3rd|4th)\b", text, re.IGNORECASE)
            or re.search(r"\bhalf(?:time)?\b", text, re.IGNORECASE)
            or re.search(r"\blive\b", text, re.IGNORECASE)
            or CLOCK_RE.search(text)
        )
        return GameStatus.IN_PROGRESS if in_progress else GameStatus.SCHEDULED

    def extract_period(self, text: str) -> Optional[str]:
        match = ORDINAL_PERIOD_RE.search(text or "")
        return (match.group(1) or match.group(2)) if match else None

    def extract_time_remaining(self, text: str) -> Optional[str]:
        return extract_clock(text)

    # ── Fetch ───────────────────────────────────────────────────────────
    async def _fetch_live(self, team_codes: list[str]) -> list[GameScore]:
        for source, url, parse in (
            ("ESPN", self.espn_url, self.parse_espn),
            ("CBS", self.cbs_url, self.parse_cbs),
        ):
            try:
                html = await self.fetcher.fetch(url)
            except RobotsDisallowedError:
                logger.info("scoreboard_source_disallowed", sport=self.sport, source=source)
                continue
            except FetchError as exc:
                logger.warning("scoreboard_source_failed", sport=self.sport, source=source, error=str(exc))
                continue
            games = parse(html, team_codes)
            if games:
                logger.info("scoreboard_fetched", sport=self.sport, source=source, count=len(games))
                return games
        return []

    def parse_espn(self, html: str, team_codes: list[str]) -> list[GameScore]:
        soup = load_html(html)
        games: list[GameScore] = []
        seen: set[str] = set()
        for index, card in enumerate(safe_select(soup, self.ESPN_CARD)):
            teams = safe_select(card, self.ESPN_TEAM)
            if len(teams) < 2:
                continue
            scores = safe_select(card, self.ESPN_SCORE)
            status_text = extract_text(card.select_one(self.ESPN_STATUS))
            game = self._build_game(
                source="ESPN",
                source_label="ESPN.com",
                away_name=extract_text(teams[0]),
                home_name=extract_text(teams[1]),
                away_pts=extract_number(scores[0]) if len(scores) > 0 else 0,
                home_pts=extract_number(scores[1]) if len(scores) > 1 else 0,
                status_text=status_text,
                team_codes=team_codes,
                index=index,
            )
            # Nested card selectors can match the same game twice.
            if game is not None and game.id not in seen:
                seen.add(game.id)
                games.append(game)
        return games

    def parse_cbs(self, html: str, team_codes: list[str]) -> list[GameScore]:
        soup = load_html(html)
        games: list[GameScore] = []
        for index, card in enumerate(safe_select(soup, self.CBS_CARD)):
            game = self._build_game(
                source="CBS",
                source_label="CBS Sports",
                away_name=extract_text(card.select_one(".away-team .team-name-link")),
                home_name=extract_text(card.select_one(".home-team .team-name-link")),
                away_pts=extract_number(card.select_one(".away-team .score")),
                home_pts=extract_number(card.select_one(".home-team .score")),
                status_text=extract_text(card.select_one(".game-status")),
                team_codes=team_codes,
                index=index,
            )
            if game is not None:
                games.append(game)
        return games

    def _build_game(
        self,
        *,
        source: str,
        source_label: str,
        away_name: str,
        home_name: str,
        away_pts: int,
        home_pts: int,
        status_text: str,
        team_codes: list[str],
        index: int,
    ) -> Optional[GameScore]:
        if not away_name or not home_name:
            return None
        try:
            away_id = TeamMapper.map_team(away_name, self.sport)
            home_id = TeamMapper.map_team(home_name, self.sport)
            if not self.matches_codes(home_id, away_id, team_codes):
                return None
            now = self.now()
            scheduled = extract_scheduled_start(status_text, now)
            return self.make_game(
                id=build_stable_game_id(self.sport, away_id, home_id, scheduled or now),
                home_team_id=home_id,
                away_team_id=away_id,
                home_pts=home_pts,
                away_pts=away_pts,
                status=self.map_status(status_text),
                period=self.extract_period(status_text),
                time_remaining=self.extract_time_remaining(status_text),
                start_time=scheduled or now,
                source=source_label,
            )
        except ValueError as exc:
            logger.warning("scoreboard_card_skipped", sport=self.sport, source=source, index=index, error=str(exc))
            return None
