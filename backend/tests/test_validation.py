"""Tests for multi-source game consolidation."""
from __future__ import annotations

from datetime import timedelta

from shared.models.enums import GameStatus
from ingest.validation import ValidationService

from conftest import FIXED_NOW, make_score


class TestValidateForTeams:
    def test_filters_to_requested_teams(self) -> None:
        games = [
            make_score(game_id="g1", home="NBA_LAL", away="NBA_BOS"),
            make_score(game_id="g2", home="NBA_NYK", away="NBA_MIA"),
        ]
        result = ValidationService().validate_for_teams(games, ["nba_bos"])
        assert [g.id for g in result.items] == ["g1"]

    def test_no_teams_keeps_everything(self) -> None:
        games = [make_score(game_id="g1"), make_score(game_id="g2")]
        assert len(ValidationService().validate_for_teams(games).items) == 2

    def test_merges_sources_by_majority_and_freshness(self) -> None:
        older = make_score(
            game_id="g1", status=GameStatus.IN_PROGRESS, home_pts=50, source="ESPN.com",
            cached_at=FIXED_NOW,
        )
        agree = make_score(
            game_id="g1", status=GameStatus.IN_PROGRESS, home_pts=52, source="CBS Sports",
            cached_at=FIXED_NOW + timedelta(seconds=5),
        )
        newest = make_score(
            game_id="g1", status=GameStatus.FINAL, home_pts=54, source="ESPN API",
            cached_at=FIXED_NOW + timedelta(seconds=10),
        )
        result = ValidationService().validate_for_teams([older, agree, newest], ["NBA_LAL"])

        assert len(result.items) == 1
        merged = result.items[0]
        assert merged.status == GameStatus.IN_PROGRESS
        assert merged.home_pts == 54
        assert result.sources_checked == ["ESPN.com", "CBS Sports", "ESPN API"]
        assert result.accuracy == 0.0

    def test_unanimous_sources_give_full_accuracy(self) -> None:
        games = [make_score(game_id="g1", source="ESPN.com"), make_score(game_id="g1", source="CBS Sports")]
        assert ValidationService().validate_for_teams(games).accuracy == 1.0

    def test_empty_input(self) -> None:
        result = ValidationService().validate_for_teams([], ["NBA_LAL"])
        assert result.items == []
        assert result.accuracy is None
