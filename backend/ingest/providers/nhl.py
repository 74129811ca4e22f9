"""
NHL scores from the ESPN JSON feed.
Box scores fall back to the ESPN game page when the summary feed fails.
"""
from __future__ import annotations

import re
from typing import Optional

from shared.models.enums import GameStatus

from ingest.providers.espn_json import EspnJsonAdapter
from ingest.providers.scoreboard_html import CLOCK_RE, extract_clock

_IN_PROGRESS_RE = re.compile(
    r"\b(?:1st|2nd|3rd|ot|overtime|so|shootout|period)\b|intermission|\bend\s+(?:1st|2nd|3rd)|\blive\b",
    re.IGNORECASE,
)


class NHLAdapter(EspnJsonAdapter):
    sport = "NHL"
    name = "nhl_espn"
    api_path = "hockey/nhl"
    espn_url = "https://www.espn.com/nhl/scoreboard"
    cbs_url = "https://www.cbssports.com/nhl/scoreboard/"
    game_page_url = "https://www.espn.com/nhl/game?gameId={event_id}"

    def map_status(self, text: str) -> GameStatus:
        if re.search(r"\bfinal\b|\bf/(?:ot|so)\b", text or "", re.IGNORECASE):
            return GameStatus.FINAL
        if _IN_PROGRESS_RE.search(text or "") or CLOCK_RE.search(text or ""):
            return GameStatus.IN_PROGRESS
        return GameStatus.SCHEDULED

    def extract_period(self, text: str) -> Optional[str]:
        text = text or ""
        if re.search(r"\bSO\b|shootout", text, re.IGNORECASE):
            return "SO"
        if re.search(r"\bOT\b|overtime", text, re.IGNORECASE):
            return "OT"
        if re.search(r"intermission", text, re.IGNORECASE):
            nth = re.search(r"(\d)(?:st|nd|rd)", text, re.IGNORECASE)
            return f"INT{nth.group(1)}" if nth else "INT"
        period = re.search(r"(\d)(?:st|nd|rd)", text, re.IGNORECASE)
        return period.group(1) if period else None

    def extract_time_remaining(self, text: str) -> Optional[str]:
        return extract_clock(text)
