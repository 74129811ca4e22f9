"""API route tests. Run without DB/Redis: dependencies are wired to in-memory collaborators."""
from __future__ import annotations

import asyncio

import pytest
from fastapi.testclient import TestClient

from shared.models.enums import GameStatus
from api import dependencies
from api.app import create_app
from api.ws.hub import BroadcastHub
from ingest.cache import ScoresCache

from conftest import FakeRedisManager, make_score


@pytest.fixture
def fake_cache(settings, fake_redis: FakeRedisManager) -> ScoresCache:
    return ScoresCache(fake_redis, settings)


@pytest.fixture
def client(settings, storage, fake_cache) -> TestClient:
    """Test client with lifespan disabled and in-memory dependencies."""
    dependencies.init_dependencies(storage, fake_cache, BroadcastHub(storage=storage, settings=settings))
    app = create_app(use_lifespan=False)
    with TestClient(app) as c:
        yield c


def _seed(cache: ScoresCache, key: str, *games) -> None:
    asyncio.run(cache.write(key, list(games), ttl_s=60))


LAKERS_GAME = make_score(game_id="NBA_ESPN_1", home="NBA_LAL", away="NBA_BOS", status=GameStatus.IN_PROGRESS)
KNICKS_GAME = make_score(game_id="NBA_ESPN_2", home="NBA_NYK", away="NBA_MIA")
CELTICS_GAME = make_score(game_id="NBA_ESPN_3", home="NBA_BOS", away="NBA_NYK")


# ── System ───────────────────────────────────────────────────────────────


def test_health_returns_ok(client: TestClient) -> None:
    """GET /health returns 200 and status ok."""
    r = client.get("/health")
    assert r.status_code == 200
    data = r.json()
    assert data.get("status") == "ok"
    assert data.get("service") == "api"


def test_health_returns_json(client: TestClient) -> None:
    r = client.get("/health")
    assert r.headers.get("content-type", "").startswith("application/json")


def test_request_id_echoed(client: TestClient) -> None:
    r = client.get("/health", headers={"X-Request-ID": "abc123"})
    assert r.headers["X-Request-ID"] == "abc123"


def test_ready_is_degraded_without_backends(client: TestClient) -> None:
    data = client.get("/ready").json()
    assert data == {"status": "degraded", "redis": False, "database": False}


# ── Scores ───────────────────────────────────────────────────────────────


class TestScoresEndpoint:
    def test_overview_reads_featured_key(self, client: TestClient, fake_cache: ScoresCache) -> None:
        _seed(fake_cache, "scores:sport:NBA:featured", LAKERS_GAME, KNICKS_GAME)
        data = client.get("/v1/scores").json()
        assert data["mode"] == "overview"
        assert data["sport"] == "NBA"
        assert data["cached"] is True
        assert [g["id"] for g in data["items"]] == ["NBA_ESPN_1", "NBA_ESPN_2"]

    def test_requested_team_without_favorite_is_forbidden(self, client: TestClient) -> None:
        r = client.get("/v1/scores", params={"teamIds": "NBA_LAL,NFL_KC"}, headers={"X-User-Id": "u1"})
        assert r.status_code == 403
        assert r.json() == {"error": "Access denied", "unauthorizedTeams": ["NFL_KC"]}

    def test_anonymous_team_request_is_forbidden(self, client: TestClient) -> None:
        r = client.get("/v1/scores", params={"teamIds": "NBA_LAL"})
        assert r.status_code == 403

    def test_favorites_read_team_key(self, client: TestClient, fake_cache: ScoresCache) -> None:
        _seed(fake_cache, "scores:teams:NBA_BOS,NBA_LAL", LAKERS_GAME)
        data = client.get("/v1/scores", headers={"X-User-Id": "u1"}).json()
        assert data["mode"] == "favorites"
        assert data["teamIds"] == ["NBA_LAL", "NBA_BOS"]
        assert data["items"][0]["homeTeamId"] == "NBA_LAL"
        assert data["items"][0]["status"] == "in_progress"

    def test_requested_team_falls_back_to_featured(self, client: TestClient, fake_cache: ScoresCache) -> None:
        _seed(fake_cache, "scores:sport:NBA:featured", LAKERS_GAME, KNICKS_GAME)
        data = client.get(
            "/v1/scores", params={"teamIds": "nba_lal"}, headers={"X-User-Id": "u1"}
        ).json()
        assert data["mode"] == "requested"
        assert data["cached"] is True
        assert [g["id"] for g in data["items"]] == ["NBA_ESPN_1"]

    def test_favorites_merge_per_team_entries(self, client: TestClient, fake_cache: ScoresCache) -> None:
        # What the per-team scheduler jobs write.
        _seed(fake_cache, "scores:teams:NBA_LAL", LAKERS_GAME)
        _seed(fake_cache, "scores:teams:NBA_BOS", LAKERS_GAME, CELTICS_GAME)
        data = client.get("/v1/scores", headers={"X-User-Id": "u1"}).json()
        assert data["mode"] == "favorites"
        assert data["cached"] is True
        assert [g["id"] for g in data["items"]] == ["NBA_ESPN_1", "NBA_ESPN_3"]

    def test_team_without_entry_uses_overview(self, client: TestClient, fake_cache: ScoresCache) -> None:
        _seed(fake_cache, "scores:teams:NBA_LAL", LAKERS_GAME)
        _seed(fake_cache, "scores:sport:NBA:featured", KNICKS_GAME, CELTICS_GAME)
        data = client.get("/v1/scores", headers={"X-User-Id": "u1"}).json()
        assert sorted(g["id"] for g in data["items"]) == ["NBA_ESPN_1", "NBA_ESPN_3"]

    def test_mode_selects_league_entry(self, client: TestClient, fake_cache: ScoresCache) -> None:
        _seed(fake_cache, "scores:sport:NBA:featured", KNICKS_GAME)
        _seed(fake_cache, "scores:sport:NBA:live", LAKERS_GAME)
        data = client.get("/v1/scores", params={"mode": "live"}).json()
        assert [g["id"] for g in data["items"]] == ["NBA_ESPN_1"]

    def test_unknown_mode_is_rejected(self, client: TestClient) -> None:
        assert client.get("/v1/scores", params={"mode": "weekly"}).status_code == 422

    def test_cache_miss_is_empty(self, client: TestClient) -> None:
        data = client.get("/v1/scores", params={"sport": "hockey"}).json()
        assert data == {"sport": "NHL", "mode": "overview", "teamIds": [], "items": [], "cached": False}


# ── WebSocket ────────────────────────────────────────────────────────────


class TestWebSocket:
    def test_connect_ping_subscribe(self, client: TestClient) -> None:
        with client.websocket_connect("/v1/ws?userId=u1") as ws:
            hello = ws.receive_json()
            assert hello["type"] == "connection-status"
            assert hello["payload"]["status"] == "connected"

            ws.send_json({"type": "ping"})
            assert ws.receive_json()["type"] == "pong"

            ws.send_json({"type": "subscribe", "teamId": "NBA_LAL"})
            confirmation = ws.receive_json()
            assert confirmation["type"] == "subscription-confirmation"
            assert confirmation["payload"]["keys"] == ["team:NBA_LAL"]
