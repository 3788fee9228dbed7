"""
HTTP tests for the API surface, backed by the in-memory database.
"""
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from courtside.config.game_config import SeasonConfig, TokenConfig, TournamentConfig
from courtside.database import get_db
from courtside.main import app


@pytest_asyncio.fixture
async def client(session_factory, monkeypatch):
    monkeypatch.setattr(SeasonConfig, "NPC_POPULATION_FLOOR", 4)
    monkeypatch.delenv("CRON_SECRET", raising=False)

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def _register(client, user_id="user_1", nickname="Ace", position="PG"):
    return await client.post("/api/agents", json={
        "user_id": user_id,
        "nickname": nickname,
        "position": position,
        "cognitive_score": 70,
        "luck_value": 60,
    })


@pytest.mark.asyncio
class TestHealth:

    async def test_health(self, client):
        response = await client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.json()["world_model_configured"] is False


@pytest.mark.asyncio
class TestAgentRoutes:

    async def test_register_and_fetch(self, client):
        response = await _register(client)
        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        agent = body["data"]
        assert agent["nickname"] == "Ace"
        assert agent["token_balance"] == TokenConfig.INITIAL_BALANCE
        assert agent["team_name"] in SeasonConfig.TEAMS

        fetched = await client.get(f"/api/agents/{agent['id']}")
        assert fetched.status_code == 200
        assert fetched.json()["data"]["id"] == agent["id"]

        activity = await client.get(f"/api/agents/{agent['id']}/activity")
        assert activity.status_code == 200
        assert len(activity.json()["data"]) == 1

        ledger = await client.get(f"/api/agents/{agent['id']}/transactions")
        assert ledger.json()["data"] == {
            "balance": TokenConfig.INITIAL_BALANCE, "total": 0, "transactions": [],
        }

    async def test_duplicate_user_conflicts(self, client):
        assert (await _register(client)).status_code == 201
        response = await _register(client, nickname="Ace Again")
        assert response.status_code == 409
        assert response.json()["code"] == "DUPLICATE_AGENT"

    async def test_unknown_agent_404(self, client):
        response = await client.get("/api/agents/9999")
        assert response.status_code == 404
        assert response.json()["code"] == "AGENT_NOT_FOUND"

    async def test_invalid_position_rejected(self, client):
        response = await _register(client, position="GOALIE")
        assert response.status_code == 422
        assert response.json()["code"] == "VALIDATION_ERROR"

    async def test_reflection_applies_boost(self, client):
        agent = (await _register(client)).json()["data"]
        response = await client.post(f"/api/agents/{agent['id']}/reflect", json={
            "content": "I keep missing open threes late in games.",
            "focus_attribute": "shooting",
        })
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["reflection"]["primary_attribute"] == "shooting"
        assert 1 <= data["reflection"]["primary_amount"] <= 4

    async def test_reflection_accepts_camel_case_focus(self, client):
        agent = (await _register(client)).json()["data"]
        response = await client.post(f"/api/agents/{agent['id']}/reflect", json={
            "content": "Reading the defense before the catch.",
            "focus_attribute": "basketballIQ",
        })
        assert response.status_code == 200
        assert response.json()["data"]["reflection"]["primary_attribute"] == "basketball_iq"


@pytest.mark.asyncio
class TestSeasonRoutes:

    async def test_simulate_opens_season_and_plays_batch(self, client):
        await _register(client, "user_1", "Ace", "PG")
        await _register(client, "user_2", "Bolt", "C")

        response = await client.post("/api/nba/simulate")
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["simulated"] == SeasonConfig.GAMES_PER_SIMULATION
        assert data["season"]["games_played"] == SeasonConfig.GAMES_PER_SIMULATION
        assert data["season_completed"] is False
        assert len(data["games"]) == SeasonConfig.GAMES_PER_SIMULATION

        season = await client.get("/api/nba/season")
        assert season.status_code == 200
        assert season.json()["data"]["standings"]

        game_id = data["games"][0]["id"]
        game = await client.get(f"/api/nba/games/{game_id}")
        assert game.status_code == 200
        assert len(game.json()["data"]["stats"]) == 2

    async def test_no_season_yet(self, client):
        response = await client.get("/api/nba/season")
        assert response.status_code == 404
        assert response.json()["code"] == "SEASON_NOT_FOUND"

    async def test_unknown_game(self, client):
        response = await client.get("/api/nba/games/12345")
        assert response.status_code == 404


@pytest.mark.asyncio
class TestTournamentRoutes:

    async def test_no_current_tournament(self, client):
        response = await client.get("/api/tournaments/current")
        assert response.status_code == 200
        assert response.json()["data"] is None

    async def test_tick_requires_secret_when_set(self, client, monkeypatch):
        monkeypatch.setenv("CRON_SECRET", "s3cret")

        denied = await client.post("/api/cron/tournament")
        assert denied.status_code == 401
        assert denied.json()["code"] == "AUTH_INVALID"

        wrong = await client.post("/api/cron/tournament", headers={"Authorization": "Bearer nope"})
        assert wrong.status_code == 401

        allowed = await client.post("/api/cron/tournament", headers={"Authorization": "Bearer s3cret"})
        assert allowed.status_code == 200
        assert allowed.json()["data"]["action"] == "created"

    async def test_tick_then_view_current(self, client):
        for i in range(4):
            await _register(client, f"user_{i}", f"Ace {i}")

        tick = await client.post("/api/cron/tournament")
        assert tick.status_code == 200
        tournament_id = tick.json()["data"]["tournament_id"]

        current = await client.get("/api/tournaments/current")
        data = current.json()["data"]
        assert data["id"] == tournament_id
        assert data["status"] == "registering"
        assert len(data["participants"]) == 4

        advance = await client.post(f"/api/tournaments/{tournament_id}/advance")
        assert advance.status_code == 200
        assert advance.json()["data"]["action"] == "waiting"
        assert advance.json()["data"]["progressed"] is False

    async def test_unknown_tournament(self, client):
        assert (await client.get("/api/tournaments/777")).status_code == 404
        assert (await client.post("/api/tournaments/777/advance")).status_code == 404

    async def test_history_lists_cancelled_tournament(self, client, monkeypatch):
        monkeypatch.setattr(TournamentConfig, "REGISTRATION_MINUTES", 0)
        empty = await client.get("/api/tournaments/history")
        assert empty.status_code == 200
        assert empty.json()["data"] == {
            "tournaments": [], "pagination": {"limit": 10, "offset": 0, "total": 0},
        }

        tick = await client.post("/api/cron/tournament")
        tournament_id = tick.json()["data"]["tournament_id"]
        cancel = await client.post(f"/api/tournaments/{tournament_id}/advance")
        assert cancel.json()["data"]["action"] == "cancelled"

        response = await client.get("/api/tournaments/history", params={"limit": 5})
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["pagination"] == {"limit": 5, "offset": 0, "total": 1}
        assert data["tournaments"][0]["id"] == tournament_id
        assert data["tournaments"][0]["status"] == "cancelled"
        assert data["tournaments"][0]["champion"] is None

    async def test_history_rejects_bad_paging(self, client):
        response = await client.get("/api/tournaments/history", params={"limit": 0})
        assert response.status_code == 422


@pytest.mark.asyncio
class TestWorldRoutes:

    async def test_status_before_anything_happens(self, client):
        response = await client.get("/api/world/status")
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["world_model_active"] is False
        assert data["world_model_engine"] == "local"
        assert data["active_season"] is None
        assert data["current_tournament"] is None
        assert data["human_agents"] == 0
        assert data["token_stats"] is None

    async def test_status_reflects_season_tournament_and_agent(self, client):
        agent = (await _register(client)).json()["data"]
        await _register(client, "user_2", "Bolt", "C")
        await client.post("/api/nba/simulate")
        await client.post("/api/cron/tournament")

        response = await client.get("/api/world/status", params={"agent_id": agent["id"]})
        data = response.json()["data"]
        assert data["human_agents"] == 2
        assert data["total_agents"] >= 2
        assert data["active_season"]["season_num"] == 1
        assert data["active_season"]["games_played"] == SeasonConfig.GAMES_PER_SIMULATION
        assert data["current_tournament"]["status"] == "registering"

        token_stats = data["token_stats"]
        assert token_stats["balance"] == token_stats["total_earned"] - token_stats["total_spent"] + TokenConfig.INITIAL_BALANCE


@pytest.mark.asyncio
class TestUnexpectedErrors:

    async def test_unhandled_exception_returns_log_id(self):
        async def broken_get_db():
            raise RuntimeError("database unreachable")
            yield

        app.dependency_overrides[get_db] = broken_get_db
        try:
            transport = ASGITransport(app=app, raise_app_exceptions=False)
            async with AsyncClient(transport=transport, base_url="http://test") as ac:
                response = await ac.get("/api/nba/season")
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 500
        body = response.json()
        assert body["success"] is False
        assert body["code"] == "INTERNAL_ERROR"
        assert len(body["details"]["log_id"]) == 8
