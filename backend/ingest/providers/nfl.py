"""NFL scores from the ESPN scoreboard page, with CBS Sports as fallback."""
from __future__ import annotations

import re
from typing import Optional

from shared.models.enums import GameStatus

from ingest.providers.scoreboard_html import ORDINAL_PERIOD_RE, HtmlScoreboardAdapter

_OT_RE = re.compile(r"(\d+)?\s*OT\b|overtime", re.IGNORECASE)


class NFLAdapter(HtmlScoreboardAdapter):
    sport = "NFL"
    name = "nfl_scoreboard"
    espn_url = "https://www.espn.com/nfl/scoreboard"
    cbs_url = "https://www.cbssports.com/nfl/scoreboard/"

    def map_status(self, text: str) -> GameStatus:
        status = super().map_status(text)
        if status == GameStatus.SCHEDULED and _OT_RE.search(text or ""):
            return GameStatus.IN_PROGRESS
        return status

    def extract_period(self, text: str) -> Optional[str]:
        ot = _OT_RE.search(text or "")
        if ot:
            return f"{ot.group(1)}OT" if ot.group(1) else "OT"
        if re.search(r"\bhalf", text or "", re.IGNORECASE):
            return "HALF"
        match = ORDINAL_PERIOD_RE.search(text or "")
        return (match.group(1) or match.group(2)) if match else None
