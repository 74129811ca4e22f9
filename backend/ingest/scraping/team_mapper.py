"""
Team name normalization to league-namespaced ids (``NBA_LAL``, ``NFL_NE``).
"""
from __future__ import annotations

import re
from datetime import date, datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo

from shared.models.enums import SPORT_ALIASES

# code -> nickname, per league
_TEAMS: dict[str, dict[str, str]] = {
    "NBA": {
        "BOS": "Celtics", "BKN": "Nets", "NYK": "Knicks", "PHI": "76ers", "TOR": "Raptors",
        "CHI": "Bulls", "CLE": "Cavaliers", "DET": "Pistons", "IND": "Pacers", "MIL": "Bucks",
        "ATL": "Hawks", "CHA": "Hornets", "MIA": "Heat", "ORL": "Magic", "WAS": "Wizards",
        "DEN": "Nuggets", "MIN": "Timberwolves", "OKC": "Thunder", "POR": "Trail Blazers",
        "UTA": "Jazz", "GSW": "Warriors", "LAC": "Clippers", "LAL": "Lakers", "PHX": "Suns",
        "SAC": "Kings", "DAL": "Mavericks", "HOU": "Rockets", "MEM": "Grizzlies",
        "NOP": "Pelicans", "SAS": "Spurs",
    },
    "NFL": {
        "BUF": "Bills", "MIA": "Dolphins", "NE": "Patriots", "NYJ": "Jets", "BAL": "Ravens",
        "CIN": "Bengals", "CLE": "Browns", "PIT": "Steelers", "HOU": "Texans", "IND": "Colts",
        "JAX": "Jaguars", "TEN": "Titans", "DEN": "Broncos", "KC": "Chiefs", "LV": "Raiders",
        "LAC": "Chargers", "DAL": "Cowboys", "NYG": "Giants", "PHI": "Eagles",
        "WAS": "Commanders", "CHI": "Bears", "DET": "Lions", "GB": "Packers", "MIN": "Vikings",
        "ATL": "Falcons", "CAR": "Panthers", "NO": "Saints", "TB": "Buccaneers",
        "ARI": "Cardinals", "LAR": "Rams", "SF": "49ers", "SEA": "Seahawks",
    },
    "MLB": {
        "BAL": "Orioles", "BOS": "Red Sox", "NYY": "Yankees", "TB": "Rays", "TOR": "Blue Jays",
        "CWS": "White Sox", "CLE": "Guardians", "DET": "Tigers", "KC": "Royals", "MIN": "Twins",
        "HOU": "Astros", "LAA": "Angels", "OAK": "Athletics", "SEA": "Mariners",
        "TEX": "Rangers", "ATL": "Braves", "MIA": "Marlins", "NYM": "Mets", "PHI": "Phillies",
        "WSH": "Nationals", "CHC": "Cubs", "CIN": "Reds", "MIL": "Brewers", "PIT": "Pirates",
        "STL": "Cardinals", "ARI": "Diamondbacks", "COL": "Rockies", "LAD": "Dodgers",
        "SD": "Padres", "SF": "Giants",
    },
    "NHL": {
        "BOS": "Bruins", "BUF": "Sabres", "DET": "Red Wings", "FLA": "Panthers",
        "MTL": "Canadiens", "OTT": "Senators", "TB": "Lightning", "TOR": "Maple Leafs",
        "CAR": "Hurricanes", "CBJ": "Blue Jackets", "NJD": "Devils", "NYI": "Islanders",
        "NYR": "Rangers", "PHI": "Flyers", "PIT": "Penguins", "WSH": "Capitals",
        "CHI": "Blackhawks", "COL": "Avalanche", "DAL": "Stars", "MIN": "Wild",
        "NSH": "Predators", "STL": "Blues", "WPG": "Jets", "ANA": "Ducks", "ARI": "Coyotes",
        "CGY": "Flames", "EDM": "Oilers", "LAK": "Kings", "SJS": "Sharks", "SEA": "Kraken",
        "VAN": "Canucks", "VGK": "Golden Knights",
    },
}

TEAM_ID_RE = re.compile(r"^[A-Z]{2,4}_[A-Z0-9]+$")
_WS_RE = re.compile(r"\s+")


def _build_lookup() -> dict[str, dict[str, str]]:
    lookup: dict[str, dict[str, str]] = {}
    for league, teams in _TEAMS.items():
        table: dict[str, str] = {}
        for code, nickname in teams.items():
            team_id = f"{league}_{code}"
            table[code.lower()] = team_id
            table[nickname.lower()] = team_id
        lookup[league] = table
    return lookup


class TeamMapper:
    """Maps nicknames, abbreviations and full names onto team ids."""

    _lookup = _build_lookup()

    @classmethod
    def league_key(cls, sport: str) -> str:
        upper = sport.strip().upper()
        return SPORT_ALIASES.get(upper, upper)

    @classmethod
    def map_team(cls, team_name: str, sport: str) -> str:
        league = cls.league_key(sport)
        table = cls._lookup.get(league)
        if table is None:
            return f"{league}_UNKNOWN"

        name = _WS_RE.sub(" ", team_name.strip())
        lowered = name.lower()
        if lowered in table:
            return table[lowered]

        # "Los Angeles Lakers" style: match the longest known nickname suffix
        for nickname in sorted(table, key=len, reverse=True):
            if len(nickname) > 3 and lowered.endswith(" " + nickname):
                return table[nickname]

        return f"{league}_{name.upper().replace(' ', '_')}"

    @classmethod
    def find_team_in_text(cls, text: str, sport: str) -> Optional[str]:
        """First team whose nickname appears as a whole word in ``text``."""
        table = cls._lookup.get(cls.league_key(sport))
        if not table or not text:
            return None
        lowered = f" {_WS_RE.sub(' ', text.lower())} "
        for nickname in sorted(table, key=len, reverse=True):
            if len(nickname) <= 3:
                continue
            if re.search(rf"\b{re.escape(nickname)}\b", lowered):
                return table[nickname]
        return None

    @classmethod
    def team_name(cls, team_id: str) -> Optional[str]:
        league, _, code = team_id.partition("_")
        return _TEAMS.get(league, {}).get(code)

    @staticmethod
    def code_from_id(team_id: str) -> str:
        parts = team_id.split("_", 1)
        return parts[1] if len(parts) > 1 else team_id

    @staticmethod
    def league_from_id(team_id: str) -> str:
        return team_id.split("_", 1)[0] if team_id else "UNKNOWN"

    @staticmethod
    def is_valid_team_id(team_id: str) -> bool:
        parts = team_id.split("_")
        return len(parts) == 2 and all(parts)


# Scoreboards follow Eastern time and roll over in the early morning.
LEAGUE_TZ = ZoneInfo("America/New_York")
SCOREBOARD_ROLLOVER = timedelta(hours=6)


def scoreboard_date(moment: datetime) -> date:
    """League-local scoreboard day ``moment`` belongs to."""
    return (moment.astimezone(LEAGUE_TZ) - SCOREBOARD_ROLLOVER).date()


def build_stable_game_id(
    league: str,
    away_team_id: str,
    home_team_id: str,
    moment: datetime,
) -> str:
    """
    ``{LEAGUE}_{YYYYMMDD}_{AWAY}_{HOME}``.

    ``moment`` is the scheduled start when known, otherwise the poll time;
    both land on the same scoreboard day, so a game keeps its id from
    pre-game through final whichever scoreboard reported it.
    """
    away = TeamMapper.code_from_id(away_team_id)
    home = TeamMapper.code_from_id(home_team_id)
    return f"{league.upper()}_{scoreboard_date(moment):%Y%m%d}_{away}_{home}"
