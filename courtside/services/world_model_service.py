"""
World Model Service

Adjudicates games, season salaries and training reflections.

Features:
- Generative judge through LLMClient when enabled and configured
- Deterministic local fallback for every call
- Per-field validate-then-default merge of generative output
- Identical result shape and ranges from either path

Callers cannot tell which path produced a result; external failures are
logged here and never propagate.
"""
import logging
import random
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from courtside.config.feature_flags import feature_flags
from courtside.orm.agent import Agent, SKILL_ATTRIBUTES
from courtside.orm.season import GameEventType
from courtside.schemas.world_model import (
    GameVerdict, TokenAdjust, SeasonSettlement, ReflectionAnalysis,
    PrimaryBoost, SecondaryBoost
)
from courtside.services.llm_client import LLMClient, get_llm_client
from courtside.services.stat_generator import average_skill
from courtside.services.world_model_validator import merge_with_fallback

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = (
    "You are the world model of a basketball career simulation. You judge games, "
    "review seasons and coach players. Be fair: stronger players win more often, "
    "but upsets happen. Always answer with a single JSON object and nothing else."
)

SKILL_LABELS = {
    "shooting": "shooting",
    "defense": "defense",
    "speed": "speed",
    "stamina": "stamina",
    "basketball_iq": "basketball IQ",
    "passing": "passing",
    "rebound": "rebounding",
}


@dataclass
class GameContext:
    season_num: int
    game_num: int
    total_games: int


@dataclass
class RecentGame:
    won: bool
    points: int
    rebounds: int
    assists: int


def _describe_agent(agent: Agent) -> str:
    attrs = " ".join(f"{SKILL_LABELS[name]} {value}" for name, value in agent.attributes().items())
    position = agent.position.value if agent.position else "?"
    lines = [
        f"- Nickname: {agent.nickname}",
        f"- Team: {agent.team_name}",
        f"- Position: {position}",
        f"- Skills: {attrs}",
        f"- Luck: {agent.luck_value} Cognition: {agent.cognitive_score}",
        f"- Record: {agent.wins}W {agent.losses}L",
        f"- Tokens: {agent.token_balance}",
    ]
    if agent.life_vision:
        lines.append(f"- Life vision: {agent.life_vision}")
    return "\n".join(lines)


class WorldModel:
    """
    Judge adapter with a generative path and a local fallback.

    Usage:
        world = WorldModel()
        verdict = await world.judge_game(home, away, GameContext(1, 5, 30))
    """

    def __init__(self, llm_client: Optional[LLMClient] = None, rng: Optional[random.Random] = None):
        self.llm_client = llm_client or get_llm_client()
        self.rng = rng or random.Random()

    def is_available(self) -> bool:
        return feature_flags.FEATURE_WORLD_MODEL and self.llm_client.is_configured()

    async def _ask_json(self, prompt: str, temperature: float) -> Optional[Dict[str, Any]]:
        if not self.is_available():
            return None
        try:
            return await self.llm_client.chat_json(SYSTEM_PROMPT, prompt, temperature=temperature)
        except Exception as e:
            logger.warning(f"World model call failed, using fallback: {type(e).__name__}: {e}")
            return None

    # =========================================================================
    # Game verdict
    # =========================================================================

    async def judge_game(self, home: Agent, away: Agent, context: GameContext) -> GameVerdict:
        fallback = self.fallback_game_verdict(home, away)
        prompt = (
            "Judge the following game and return JSON.\n\n"
            f"## Home player\n{_describe_agent(home)}\n\n"
            f"## Away player\n{_describe_agent(away)}\n\n"
            f"## Season\nSeason {context.season_num}, game {context.game_num}/{context.total_games}\n\n"
            "Each side pays 3-5 tokens to play; the winner earns 5-15 tokens.\n"
            "Return exactly:\n"
            '{"homeScoreAdjust": 0, "awayScoreAdjust": 0, "homeStatBonus": null, '
            '"awayStatBonus": null, "narrative": "2-4 sentences", "mvp": "home", '
            '"eventType": "normal", "tokenAdjust": {"home": -3, "away": -3}}\n'
            'Stat bonus format: {"attr": "shooting", "amount": 1} or null. '
            "eventType: normal | upset | blowout | buzzer_beater | injury_minor."
        )
        raw = await self._ask_json(prompt, temperature=0.9)
        return merge_with_fallback(GameVerdict, raw, fallback).value

    def fallback_game_verdict(self, home: Agent, away: Agent) -> GameVerdict:
        """Skill differential plus a bounded luck swing; only the winner is rewarded."""
        diff = average_skill(home.attributes()) - average_skill(away.attributes())
        luck_swing = (self.rng.random() - 0.5) * 10
        home_adj = round(diff / 3 + luck_swing)
        away_adj = round(-diff / 3 - luck_swing)

        home_wins = home_adj > away_adj
        action_cost = round(3 + self.rng.random() * 2)
        win_reward = round(5 + self.rng.random() * 10)

        if home_wins:
            narrative = f"{home.nickname} and the {home.team_name} showed who was stronger."
        else:
            narrative = f"{away.nickname} led the {away.team_name} to a road win."

        return GameVerdict(
            home_score_adjust=home_adj,
            away_score_adjust=away_adj,
            narrative=narrative,
            mvp="home" if home_wins else "away",
            event_type=GameEventType.BLOWOUT if abs(home_adj - away_adj) > 8 else GameEventType.NORMAL,
            token_adjust=TokenAdjust(
                home=win_reward - action_cost if home_wins else -action_cost,
                away=-action_cost if home_wins else win_reward - action_cost,
            ),
        )

    # =========================================================================
    # Season settlement
    # =========================================================================

    async def settle_season(self, agent: Agent, season_stats, season_num: int) -> SeasonSettlement:
        fallback = self.fallback_season_settlement(agent, season_stats)
        averages = season_stats.averages()
        prompt = (
            "Review this player's season and return JSON.\n\n"
            f"## Player\n{_describe_agent(agent)}\n"
            f"- Current salary: {season_stats.salary_current}\n\n"
            f"## Season {season_num}\n"
            f"- Games: {season_stats.games_played}, wins: {season_stats.games_won}\n"
            f"- Win rate: {season_stats.win_rate * 100:.1f}%\n"
            f"- Per game: {averages['ppg']} pts {averages['rpg']} reb {averages['apg']} ast\n"
            f"- Rating: {season_stats.avg_rating:.1f}\n\n"
            "Return exactly:\n"
            '{"salaryMultiplier": 1.0, "bonusTokens": 0, "narrative": "3-5 sentences", '
            '"mvpCandidate": false, "tradeRumor": null, "nextSeasonOutlook": "1-2 sentences"}\n'
            "salaryMultiplier ranges 0.5-2.0; bonusTokens ranges 0-200."
        )
        raw = await self._ask_json(prompt, temperature=0.7)
        return merge_with_fallback(SeasonSettlement, raw, fallback).value

    def fallback_season_settlement(self, agent: Agent, season_stats) -> SeasonSettlement:
        win_rate = season_stats.win_rate
        if win_rate > 0.6:
            multiplier, verdict = 1.3, "an outstanding"
        elif win_rate > 0.4:
            multiplier, verdict = 1.0, "a steady"
        else:
            multiplier, verdict = 0.8, "a difficult"

        return SeasonSettlement(
            salary_multiplier=multiplier,
            bonus_tokens=round(season_stats.salary_current * 0.3) if win_rate > 0.6 else 0,
            narrative=f"{agent.nickname} wrapped up {verdict} season.",
            mvp_candidate=win_rate > 0.7,
            trade_rumor=None,
            outlook="A new season is about to tip off. Anything can happen.",
        )

    # =========================================================================
    # Reflection analysis
    # =========================================================================

    async def analyze_reflection(
        self,
        agent: Agent,
        content: str,
        focus_attribute: Optional[str],
        recent_games: List[RecentGame]
    ) -> ReflectionAnalysis:
        fallback = self.fallback_reflection_analysis(focus_attribute)
        if recent_games:
            recent = ", ".join(
                f"game {i + 1}: {'W' if g.won else 'L'} {g.points}pts {g.rebounds}reb {g.assists}ast"
                for i, g in enumerate(recent_games)
            )
        else:
            recent = "no recent games"
        prompt = (
            "Analyze this player's training reflection and return JSON.\n\n"
            f"## Player\n{_describe_agent(agent)}\n\n"
            f"## Recent games\n{recent}\n\n"
            f'## Reflection\n"{content}"\n'
            + (f"\nRequested focus: {focus_attribute}\n" if focus_attribute else "")
            + "\nReturn exactly:\n"
            '{"summary": "2-3 sentences", "primaryBoost": {"attr": "shooting", "amount": 2}, '
            '"secondaryBoost": {"attr": "defense", "amount": 1}, "cognitiveBoost": 1, '
            '"advice": "1-2 sentences"}\n'
            f"attr is one of: {', '.join(SKILL_ATTRIBUTES)}. primaryBoost.amount 1-4, "
            "secondaryBoost.amount 0-2 or null, cognitiveBoost 0-3."
        )
        raw = await self._ask_json(prompt, temperature=0.7)
        return merge_with_fallback(ReflectionAnalysis, raw, fallback).value

    def fallback_reflection_analysis(self, focus_attribute: Optional[str]) -> ReflectionAnalysis:
        if focus_attribute in SKILL_ATTRIBUTES:
            primary = focus_attribute
        else:
            primary = self.rng.choice(SKILL_ATTRIBUTES)

        secondary = None
        if self.rng.random() > 0.5:
            others = [name for name in SKILL_ATTRIBUTES if name != primary]
            secondary = SecondaryBoost(attr=self.rng.choice(others), amount=1)

        return ReflectionAnalysis(
            summary=f"Focused reflection and training improved {SKILL_LABELS[primary]}.",
            primary_boost=PrimaryBoost(attr=primary, amount=round(1 + self.rng.random() * 3)),
            secondary_boost=secondary,
            cognitive_boost=round(self.rng.random() * 2),
            advice="Keep a steady training rhythm and watch the small details in games.",
        )

    # =========================================================================
    # World events
    # =========================================================================

    async def generate_world_event(self, agent: Agent) -> str:
        if self.is_available():
            position = agent.position.value if agent.position else "?"
            prompt = (
                f"Write a short world event notice (1-2 sentences) for {agent.nickname} "
                f"({agent.team_name}, {position}, {agent.token_balance} tokens). It can be "
                "about training, media coverage, fans or trade rumors. Plain text only."
            )
            try:
                text = await self.llm_client.chat(SYSTEM_PROMPT, prompt, temperature=1.0, max_tokens=200)
            except Exception as e:
                logger.warning(f"World event generation failed: {type(e).__name__}: {e}")
                text = None
            if text:
                return text
        return self.fallback_world_event(agent)

    def fallback_world_event(self, agent: Agent) -> str:
        events = (
            f"{agent.nickname} put in an intense off-season training block.",
            f"The {agent.team_name} front office expressed its trust in {agent.nickname}.",
            f"Fans can't wait to see what {agent.nickname} does next season.",
        )
        return self.rng.choice(events)


_world_model: Optional[WorldModel] = None


def get_world_model() -> WorldModel:
    global _world_model
    if _world_model is None:
        _world_model = WorldModel()
    return _world_model
