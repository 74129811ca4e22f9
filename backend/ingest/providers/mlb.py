"""
MLB scores from the ESPN JSON feed.
Innings stand in for periods and the half-inning or outs for the clock.
"""
from __future__ import annotations

import re
from typing import Optional

from shared.models.enums import GameStatus

from ingest.providers.espn_json import EspnJsonAdapter

_HALF_RE = re.compile(r"\b(Top|Bot|Bottom|Mid|Middle|End)\s*(\d+)(?:st|nd|rd|th)?", re.IGNORECASE)
_ORDINAL_RE = re.compile(r"\b(\d+)(?:st|nd|rd|th)\b", re.IGNORECASE)
_OUTS_RE = re.compile(r"(\d)\s*Outs?\b", re.IGNORECASE)

_HALF_LABELS = {"top": "Top", "bot": "Bot", "bottom": "Bot", "mid": "Mid", "middle": "Mid", "end": "End"}


class MLBAdapter(EspnJsonAdapter):
    sport = "MLB"
    name = "mlb_espn"
    api_path = "baseball/mlb"
    espn_url = "https://www.espn.com/mlb/scoreboard"
    cbs_url = "https://www.cbssports.com/mlb/scoreboard/"

    def map_json_state(self, state: str, detail: str) -> GameStatus:
        # ESPN reports postponements as "post"; they have not been played.
        if re.search(r"postponed|\bppd\b", detail, re.IGNORECASE):
            return GameStatus.SCHEDULED
        return super().map_json_state(state, detail)

    def map_status(self, text: str) -> GameStatus:
        lower = (text or "").lower()
        if "postponed" in lower or "ppd" in lower:
            return GameStatus.SCHEDULED
        if "final" in lower or "f/" in lower:
            return GameStatus.FINAL
        if "delay" in lower:
            return GameStatus.IN_PROGRESS
        if _HALF_RE.search(text) or _ORDINAL_RE.search(text) or re.search(r"inning|\bouts?\b|\blive\b", lower):
            return GameStatus.IN_PROGRESS
        return GameStatus.SCHEDULED

    def extract_period(self, text: str) -> Optional[str]:
        half = _HALF_RE.search(text or "")
        if half:
            return half.group(2)
        ordinal = _ORDINAL_RE.search(text or "")
        if ordinal:
            return ordinal.group(1)
        inning = re.search(r"inning\s*(\d+)", text or "", re.IGNORECASE)
        return inning.group(1) if inning else None

    def extract_time_remaining(self, text: str) -> Optional[str]:
        half = _HALF_RE.search(text or "")
        if half:
            return f"{_HALF_LABELS[half.group(1).lower()]} {half.group(2)}"
        outs = _OUTS_RE.search(text or "")
        if outs:
            count = int(outs.group(1))
            return "1 Out" if count == 1 else f"{count} Outs"
        return None
