"""NBA scores from the ESPN scoreboard page, with CBS Sports as fallback."""
from __future__ import annotations

from ingest.providers.scoreboard_html import HtmlScoreboardAdapter


class NBAAdapter(HtmlScoreboardAdapter):
    sport = "NBA"
    name = "nba_scoreboard"
    espn_url = "https://www.espn.com/nba/scoreboard"
    cbs_url = "https://www.cbssports.com/nba/scoreboard/"
