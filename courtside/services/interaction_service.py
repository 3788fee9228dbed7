"""
Game Interaction Service

Pre-game trash talk, in-game chatter and post-game remarks for a played
game. Each side gets one line per phase.

The game result is already committed when this runs; callers treat any
exception from here as non-fatal.
"""
import logging
import random
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.config.feature_flags import feature_flags
from courtside.orm.agent import Agent
from courtside.orm.season import Game, GameInteraction, InteractionPhase
from courtside.services.llm_client import LLMClient, get_llm_client

logger = logging.getLogger(__name__)

PHASES = (InteractionPhase.PRE_GAME, InteractionPhase.IN_GAME, InteractionPhase.POST_GAME)


# =============================================================================
# Templates
# =============================================================================

PRE_GAME_TEMPLATES = (
    "{me}: {opp}? Never heard of them. Tonight I show you what control looks like.",
    "{me}: {opp_team}, get ready to go home early.",
    "{me}: Doesn't matter who shows up. One word: win.",
    "{me}: {opp} has been talking a lot lately. Tonight they go quiet.",
    "{me}: I'm ready. See you on the court.",
)

IN_GAME_LEADING_TEMPLATES = (
    "{me}: That's all you got, {opp}? I haven't even warmed up.",
    "{me}: This court belongs to me tonight!",
    "{me}: {opp}, your defense is made of paper.",
)

IN_GAME_TRAILING_TEMPLATES = (
    "{me}: Don't celebrate yet, this isn't over!",
    "{me}: Being down doesn't scare me. I'll turn it around.",
    "{me}: What are you smiling at, {opp}? Whoever laughs last wins.",
)

POST_GAME_WIN_TEMPLATES = (
    "{me}: {opp} played well, but there's only one winner. Keep working.",
    "{me}: This is just the start. I'm going all the way to the top.",
    "{me}: Winning feels good! I'll be even better next game.",
    "{me}: Thanks for the game, {opp}. Come back anytime!",
)

POST_GAME_LOSS_TEMPLATES = (
    "{me}: You got this one, {opp}, but I'll be back.",
    "{me}: It's one loss. Giving up isn't in my vocabulary.",
    "{me}: This loss showed me the gap. I'll get stronger.",
    "{me}: Remember this, {opp}. Next time it'll be different.",
)


def _persona_prompt(agent: Agent) -> str:
    position = agent.position.value if agent.position else "SF"
    prompt = (
        f"You are {agent.nickname}, a virtual pro basketball player.\n"
        f"Team: {agent.team_name}, position: {position}\n"
        f"Record: {agent.wins}W {agent.losses}L, tokens: {agent.token_balance}\n"
    )
    if agent.life_vision:
        prompt += f"Life vision: {agent.life_vision}\n"
    return prompt + (
        "Talk like a confident, even cocky, professional athlete. "
        "Reply with one or two short sentences, no quotation marks."
    )


def _phase_prompt(phase: InteractionPhase, opponent: Agent, my_score: int, opp_score: int, points: int) -> str:
    if phase == InteractionPhase.PRE_GAME:
        return (
            f"Your next game is against {opponent.nickname} ({opponent.team_name}, "
            f"{opponent.wins}W {opponent.losses}L). Talk some trash before tip-off!"
        )
    if phase == InteractionPhase.IN_GAME:
        leading = my_score > opp_score
        return (
            f"Mid-game, the score is {my_score}:{opp_score} and you are "
            f"{'leading' if leading else 'trailing'} with {points} points. "
            + ("Trash talk your opponent!" if leading else "Fire yourself up!")
        )
    won = my_score > opp_score
    return (
        f"Final score {my_score}:{opp_score}, you {'won' if won else 'lost'} against "
        f"{opponent.nickname}. "
        + ("Give your victory speech." if won else "Say how you'll get revenge next time.")
    )


def template_message(
    phase: InteractionPhase,
    me: Agent,
    opponent: Agent,
    my_score: int,
    opp_score: int,
    rng: Optional[random.Random] = None
) -> str:
    rng = rng or random
    if phase == InteractionPhase.PRE_GAME:
        templates = PRE_GAME_TEMPLATES
    elif phase == InteractionPhase.IN_GAME:
        templates = IN_GAME_LEADING_TEMPLATES if my_score > opp_score else IN_GAME_TRAILING_TEMPLATES
    else:
        templates = POST_GAME_WIN_TEMPLATES if my_score > opp_score else POST_GAME_LOSS_TEMPLATES
    return rng.choice(templates).format(
        me=me.nickname, opp=opponent.nickname, opp_team=opponent.team_name
    )


# =============================================================================
# Generation
# =============================================================================

async def _generate_message(
    llm: LLMClient,
    phase: InteractionPhase,
    me: Agent,
    opponent: Agent,
    my_score: int,
    opp_score: int,
    points: int,
    rng: Optional[random.Random]
):
    if llm.is_configured():
        try:
            text = await llm.chat(
                _persona_prompt(me),
                _phase_prompt(phase, opponent, my_score, opp_score, points),
                temperature=1.0,
                max_tokens=150,
            )
            if text:
                return text.strip(), "llm"
        except Exception as e:
            logger.warning(f"Interaction generation failed for agent {me.id}: {type(e).__name__}: {e}")
    return template_message(phase, me, opponent, my_score, opp_score, rng), "template"


async def generate_game_interactions(
    db: AsyncSession,
    game: Game,
    home: Agent,
    away: Agent,
    home_points: int = 0,
    away_points: int = 0,
    llm_client: Optional[LLMClient] = None,
    rng: Optional[random.Random] = None
) -> List[GameInteraction]:
    """
    Write the dialogue lines of one game and commit them.

    Games between two NPCs get no dialogue.
    """
    if not feature_flags.FEATURE_GAME_INTERACTIONS:
        return []
    if home.is_npc and away.is_npc:
        return []

    llm = llm_client or get_llm_client()
    sides = (
        (home, away, game.home_score, game.away_score, home_points),
        (away, home, game.away_score, game.home_score, away_points),
    )

    created = []
    for phase in PHASES:
        for me, opponent, my_score, opp_score, points in sides:
            message, source = await _generate_message(
                llm, phase, me, opponent, my_score, opp_score, points, rng
            )
            interaction = GameInteraction(
                game_id=game.id,
                agent_id=me.id,
                phase=phase,
                message=message,
                source=source,
            )
            db.add(interaction)
            created.append(interaction)

    await db.commit()
    logger.info(f"Game {game.id}: {len(created)} interactions generated")
    return created


async def get_game_interactions(db: AsyncSession, game_id: int) -> List[GameInteraction]:
    result = await db.execute(
        select(GameInteraction)
        .where(GameInteraction.game_id == game_id)
        .order_by(GameInteraction.id.asc())
    )
    return list(result.scalars().all())
