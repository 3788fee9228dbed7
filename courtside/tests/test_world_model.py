"""
Tests for the world model adapter: schema clamping, validate-then-default
merging, fallback ranges and the generative path with a mocked client.
"""
import asyncio
import random
from unittest.mock import AsyncMock

import httpx
import pytest

from courtside.config.feature_flags import FeatureFlags
from courtside.orm.agent import Agent, AgentStatus, Position, SKILL_ATTRIBUTES
from courtside.orm.season import GameEventType, SeasonStats
from courtside.schemas.world_model import GameVerdict, TokenAdjust, ReflectionAnalysis
from courtside.services.llm_client import LLMClient, LLMMalformedError, extract_json
from courtside.services.world_model_service import GameContext, WorldModel
from courtside.services.world_model_validator import merge_with_fallback


def _agent(agent_id=1, nickname="Ace", skill=60, **overrides):
    data = dict(
        id=agent_id,
        nickname=nickname,
        is_npc=False,
        status=AgentStatus.ACTIVE,
        position=Position.PG,
        team_name="Storm Eagles",
        luck_value=50,
        cognitive_score=50,
        level=1,
        experience=0,
        wins=0,
        losses=0,
        token_balance=1000,
        life_vision=None,
        **{name: skill for name in SKILL_ATTRIBUTES},
    )
    data.update(overrides)
    return Agent(**data)


def _season_stats(games_played, games_won, salary=120):
    return SeasonStats(
        games_played=games_played, games_won=games_won, total_points=games_played * 20,
        total_rebounds=games_played * 5, total_assists=games_played * 4,
        avg_rating=60.0, salary_current=salary,
    )


@pytest.fixture
def enable_world_model(monkeypatch):
    monkeypatch.setattr(FeatureFlags, "FEATURE_WORLD_MODEL", True)


def _mocked_world_model(response):
    client = LLMClient(api_key="test-key")
    client.chat_json = AsyncMock(return_value=response)
    client.chat = AsyncMock(return_value=None)
    return WorldModel(llm_client=client, rng=random.Random(5)), client


CONTEXT = GameContext(season_num=1, game_num=3, total_games=30)


class TestExtractJson:

    def test_fenced_block(self):
        assert extract_json('Sure!\n```json\n{"mvp": "home"}\n```') == {"mvp": "home"}

    def test_bare_object(self):
        assert extract_json('verdict: {"a": 1, "b": {"c": 2}} done') == {"a": 1, "b": {"c": 2}}

    @pytest.mark.parametrize("text", ["", "no json here", "{not valid}", "[1, 2]"])
    def test_malformed(self, text):
        with pytest.raises(LLMMalformedError):
            extract_json(text)


class TestSchemaClamping:

    def test_verdict_values_clamped(self):
        verdict = GameVerdict.model_validate({
            "homeScoreAdjust": 40,
            "awayScoreAdjust": -99.6,
            "homeStatBonus": {"attr": "basketballIQ", "amount": 9},
            "narrative": "Wild game",
            "mvp": "away",
            "eventType": "upset",
            "tokenAdjust": {"home": 100, "away": -50},
        })
        assert verdict.home_score_adjust == 15
        assert verdict.away_score_adjust == -15
        assert verdict.home_stat_bonus.attr == "basketball_iq"
        assert verdict.home_stat_bonus.amount == 3
        assert verdict.token_adjust.home == 20
        assert verdict.token_adjust.away == -10
        assert verdict.event_type == GameEventType.UPSET

    def test_reflection_boosts_clamped(self):
        analysis = ReflectionAnalysis.model_validate({
            "primaryBoost": {"attr": "shooting", "amount": 0},
            "secondaryBoost": {"attr": "defense", "amount": 7},
            "cognitiveBoost": 12,
            "summary": "ok",
            "advice": "more",
        })
        assert analysis.primary_boost.amount == 1
        assert analysis.secondary_boost.amount == 2
        assert analysis.cognitive_boost == 3


class TestMergeWithFallback:

    FALLBACK = GameVerdict(
        home_score_adjust=2,
        away_score_adjust=-2,
        narrative="Fallback story.",
        mvp="home",
        event_type=GameEventType.NORMAL,
        token_adjust=TokenAdjust(home=7, away=-4),
    )

    def test_no_output_returns_fallback(self):
        result = merge_with_fallback(GameVerdict, None, self.FALLBACK)
        assert result.value == self.FALLBACK
        assert not result.is_clean

    def test_invalid_fields_replaced_valid_fields_kept(self):
        raw = {
            "homeScoreAdjust": "lots",
            "awayScoreAdjust": 4,
            "narrative": "",
            "mvp": "referee",
            "eventType": "alien_invasion",
            "tokenAdjust": {"home": 3, "away": 12},
        }
        result = merge_with_fallback(GameVerdict, raw, self.FALLBACK)
        verdict = result.value
        assert verdict.home_score_adjust == 2
        assert verdict.away_score_adjust == 4
        assert verdict.narrative == "Fallback story."
        assert verdict.mvp == "home"
        assert verdict.event_type == GameEventType.NORMAL
        assert verdict.token_adjust == TokenAdjust(home=3, away=12)
        assert set(result.accepted_fields) == {"away_score_adjust", "token_adjust"}

    def test_missing_required_field_uses_fallback(self):
        result = merge_with_fallback(GameVerdict, {"narrative": "Short story."}, self.FALLBACK)
        assert result.value.narrative == "Short story."
        assert result.value.token_adjust == self.FALLBACK.token_adjust
        assert any("tokenAdjust" in error for error in result.errors)


class TestFallbackRanges:

    def test_game_verdict_ranges_without_llm(self, world_model):
        rng = random.Random(21)
        for _ in range(200):
            home = _agent(1, "Ace", skill=rng.randint(1, 99))
            away = _agent(2, "Bolt", skill=rng.randint(1, 99))
            verdict = world_model.fallback_game_verdict(home, away)
            assert -15 <= verdict.home_score_adjust <= 15
            assert -15 <= verdict.away_score_adjust <= 15
            assert -10 <= verdict.token_adjust.home <= 20
            assert -10 <= verdict.token_adjust.away <= 20
            winner_side = "home" if verdict.home_score_adjust > verdict.away_score_adjust else "away"
            assert verdict.mvp == winner_side
            loser_tokens = verdict.token_adjust.away if winner_side == "home" else verdict.token_adjust.home
            assert -5 <= loser_tokens <= -3

    @pytest.mark.asyncio
    async def test_judge_game_uses_fallback_when_unconfigured(self, world_model):
        verdict = await world_model.judge_game(_agent(1, "Ace", 80), _agent(2, "Bolt", 40), CONTEXT)
        assert isinstance(verdict, GameVerdict)
        assert -15 <= verdict.home_score_adjust <= 15
        assert verdict.narrative

    @pytest.mark.parametrize("games,won,multiplier", [(10, 7, 1.3), (10, 5, 1.0), (10, 2, 0.8), (0, 0, 0.8)])
    def test_season_settlement_steps(self, world_model, games, won, multiplier):
        settlement = world_model.fallback_season_settlement(_agent(), _season_stats(games, won))
        assert settlement.salary_multiplier == multiplier
        assert 0 <= settlement.bonus_tokens <= 200
        if multiplier == 1.3:
            assert settlement.bonus_tokens == round(120 * 0.3)

    def test_reflection_honours_valid_focus(self, world_model):
        for _ in range(50):
            analysis = world_model.fallback_reflection_analysis("passing")
            assert analysis.primary_boost.attr == "passing"
            assert 1 <= analysis.primary_boost.amount <= 4
            assert 0 <= analysis.cognitive_boost <= 3
            if analysis.secondary_boost is not None:
                assert analysis.secondary_boost.attr != "passing"

    def test_reflection_invalid_focus_picks_a_skill(self, world_model):
        analysis = world_model.fallback_reflection_analysis("juggling")
        assert analysis.primary_boost.attr in SKILL_ATTRIBUTES

    @pytest.mark.asyncio
    async def test_world_event_fallback(self, world_model):
        text = await world_model.generate_world_event(_agent(nickname="Ace"))
        assert "Ace" in text


@pytest.mark.asyncio
class TestGenerativePath:

    async def test_llm_verdict_is_clamped(self, enable_world_model):
        world, client = _mocked_world_model({
            "homeScoreAdjust": 30,
            "awayScoreAdjust": -30,
            "narrative": "A statement win.",
            "mvp": "home",
            "eventType": "blowout",
            "tokenAdjust": {"home": 55, "away": -55},
        })
        verdict = await world.judge_game(_agent(1, "Ace"), _agent(2, "Bolt"), CONTEXT)
        client.chat_json.assert_awaited_once()
        assert verdict.home_score_adjust == 15
        assert verdict.away_score_adjust == -15
        assert verdict.token_adjust == TokenAdjust(home=20, away=-10)
        assert verdict.narrative == "A statement win."
        assert verdict.event_type == GameEventType.BLOWOUT

    async def test_llm_exception_falls_back(self, enable_world_model):
        world, client = _mocked_world_model(None)
        client.chat_json.side_effect = RuntimeError("connection reset")
        verdict = await world.judge_game(_agent(1, "Ace"), _agent(2, "Bolt"), CONTEXT)
        assert isinstance(verdict, GameVerdict)
        assert -10 <= verdict.token_adjust.home <= 20

    async def test_flag_off_skips_llm(self, monkeypatch):
        monkeypatch.setattr(FeatureFlags, "FEATURE_WORLD_MODEL", False)
        world, client = _mocked_world_model({"narrative": "unused"})
        await world.judge_game(_agent(1, "Ace"), _agent(2, "Bolt"), CONTEXT)
        client.chat_json.assert_not_awaited()

    async def test_client_timeout_returns_none(self):
        client = LLMClient(api_key="test-key", timeout_seconds=0.01, max_retries=0)

        async def slow_post(payload):
            await asyncio.sleep(1)

        client._post = slow_post
        assert await client.chat_json("system", "user") is None

    async def test_client_parses_completion(self):
        client = LLMClient(api_key="test-key", max_retries=0)
        client._post = AsyncMock(return_value={
            "choices": [{"message": {"content": '```json\n{"mvp": "away"}\n```'}}],
            "usage": {"total_tokens": 42},
        })
        assert await client.chat_json("system", "user") == {"mvp": "away"}
        assert client.total_tokens_used == 42

    async def test_http_client_uses_configured_timeout(self):
        seen = {}

        async def handler(request):
            seen["timeout"] = request.extensions["timeout"]
            seen["auth"] = request.headers["Authorization"]
            return httpx.Response(200, json={
                "choices": [{"message": {"content": '{"mvp": "home"}'}}],
                "usage": {"total_tokens": 7},
            })

        client = LLMClient(
            api_key="test-key", timeout_seconds=20, max_retries=0,
            transport=httpx.MockTransport(handler),
        )
        assert await client.chat_json("system", "user") == {"mvp": "home"}
        assert seen["auth"] == "Bearer test-key"
        assert seen["timeout"]["read"] == 20
        assert seen["timeout"]["connect"] == 20

    async def test_http_error_status_returns_none(self):
        client = LLMClient(
            api_key="test-key", max_retries=0,
            transport=httpx.MockTransport(lambda request: httpx.Response(503)),
        )
        response = await client.call([{"role": "user", "content": "hi"}])
        assert response.success is False
        assert "503" in response.error
