"""Tests for team access resolution."""
from __future__ import annotations

import pytest

from shared.models.enums import AccessMode
from api.access import TeamAccessDenied, parse_team_ids, resolve_team_access


class TestResolveTeamAccess:
    def test_requested_teams_among_favorites(self) -> None:
        access = resolve_team_access(["nba_lal"], ["NBA_LAL", "NBA_BOS"])
        assert access.mode == AccessMode.REQUESTED
        assert access.authorized_team_ids == ["nba_lal"]

    def test_unauthorized_teams_are_listed(self) -> None:
        with pytest.raises(TeamAccessDenied) as info:
            resolve_team_access(["NBA_LAL", "NFL_KC", "NHL_BOS"], ["NBA_LAL"])
        assert info.value.unauthorized_teams == ["NFL_KC", "NHL_BOS"]

    def test_anonymous_request_for_teams_is_denied(self) -> None:
        with pytest.raises(TeamAccessDenied):
            resolve_team_access(["NBA_LAL"], [])

    def test_favorites_when_nothing_requested(self) -> None:
        access = resolve_team_access(None, ["NBA_LAL", "nba_lal", "NBA_BOS"])
        assert access.mode == AccessMode.FAVORITES
        assert access.authorized_team_ids == ["NBA_LAL", "NBA_BOS"]

    def test_overview_without_favorites(self) -> None:
        access = resolve_team_access([], [])
        assert access.mode == AccessMode.OVERVIEW
        assert access.authorized_team_ids == []

    def test_blank_entries_ignored(self) -> None:
        assert resolve_team_access(["", "  "], None).mode == AccessMode.OVERVIEW


class TestParseTeamIds:
    def test_csv(self) -> None:
        assert parse_team_ids("NBA_LAL, NBA_BOS,,") == ["NBA_LAL", "NBA_BOS"]

    def test_empty(self) -> None:
        assert parse_team_ids(None) == []
        assert parse_team_ids("") == []
