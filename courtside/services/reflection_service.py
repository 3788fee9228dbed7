"""
Reflection Service

Players write a short training reflection; the world model turns it into
skill boosts. Skills stay capped at 99 and cognition at 100.
"""
import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.orm.agent import Agent, SKILL_ATTRIBUTES
from courtside.orm.economy import ActivityType, Reflection
from courtside.orm.season import Game, GameStats
from courtside.services.activity_logger import log_activity
from courtside.services.world_model_service import WorldModel, RecentGame, get_world_model

logger = logging.getLogger(__name__)

MIN_CONTENT_LENGTH = 5
MAX_CONTENT_LENGTH = 1000
RECENT_GAME_COUNT = 5


class ReflectionError(Exception):
    """Base exception for reflection errors."""
    pass


class ReflectionValidationError(ReflectionError):
    pass


class NPCReflectionError(ReflectionError):
    """NPCs do not train."""
    pass


async def get_recent_games(db: AsyncSession, agent_id: int, limit: int = RECENT_GAME_COUNT) -> List[RecentGame]:
    result = await db.execute(
        select(GameStats, Game)
        .join(Game, Game.id == GameStats.game_id)
        .where(GameStats.agent_id == agent_id)
        .order_by(GameStats.id.desc())
        .limit(limit)
    )
    recent = []
    for stats, game in result.all():
        if game.home_agent_id == agent_id:
            won = game.home_score > game.away_score
        else:
            won = game.away_score > game.home_score
        recent.append(RecentGame(won=won, points=stats.points, rebounds=stats.rebounds, assists=stats.assists))
    return recent


def _boost(agent: Agent, attr: str, amount: int) -> int:
    """Raise one skill, capped at 99. Returns the points actually gained."""
    current = getattr(agent, attr) or 50
    new_value = min(99, current + amount)
    setattr(agent, attr, new_value)
    return new_value - current


async def submit_reflection(
    db: AsyncSession,
    agent: Agent,
    content: str,
    focus_attribute: Optional[str] = None,
    world_model: Optional[WorldModel] = None
) -> Reflection:
    """
    Analyze a reflection and apply its boosts.

    Raises:
        ReflectionValidationError: Content length or focus attribute invalid
        NPCReflectionError: Agent is an NPC
    """
    if agent.is_npc:
        raise NPCReflectionError(f"Agent {agent.id} is an NPC")
    content = (content or "").strip()
    if not MIN_CONTENT_LENGTH <= len(content) <= MAX_CONTENT_LENGTH:
        raise ReflectionValidationError(
            f"Reflection must be {MIN_CONTENT_LENGTH}-{MAX_CONTENT_LENGTH} characters"
        )
    if focus_attribute is not None and focus_attribute not in SKILL_ATTRIBUTES:
        raise ReflectionValidationError(f"Unknown attribute: {focus_attribute}")

    world_model = world_model or get_world_model()
    recent = await get_recent_games(db, agent.id)
    analysis = await world_model.analyze_reflection(agent, content, focus_attribute, recent)

    primary = analysis.primary_boost
    primary_gain = _boost(agent, primary.attr, primary.amount)

    secondary_attr = None
    secondary_gain = 0
    if analysis.secondary_boost is not None and analysis.secondary_boost.amount > 0:
        secondary_attr = analysis.secondary_boost.attr
        secondary_gain = _boost(agent, secondary_attr, analysis.secondary_boost.amount)

    old_cognitive = agent.cognitive_score or 0
    agent.cognitive_score = min(100, old_cognitive + analysis.cognitive_boost)
    cognitive_gain = agent.cognitive_score - old_cognitive

    reflection = Reflection(
        agent_id=agent.id,
        content=content,
        focus_attribute=focus_attribute,
        primary_attribute=primary.attr,
        primary_amount=primary_gain,
        secondary_attribute=secondary_attr,
        secondary_amount=secondary_gain,
        cognitive_boost=cognitive_gain,
        summary=analysis.summary,
        advice=analysis.advice,
    )
    db.add(reflection)

    gains = [f"{primary.attr} +{primary_gain}"]
    if secondary_attr:
        gains.append(f"{secondary_attr} +{secondary_gain}")
    if cognitive_gain:
        gains.append(f"cognition +{cognitive_gain}")
    await log_activity(
        db, agent.id, ActivityType.REFLECTION,
        "Reflection and training",
        f"{content}\n\n{analysis.summary}\nGains: {', '.join(gains)}\nAdvice: {analysis.advice}",
    )

    await db.commit()
    logger.info(f"Reflection applied for agent {agent.id}: {', '.join(gains)}")
    return reflection


async def list_reflections(db: AsyncSession, agent_id: int, limit: int = 20) -> List[Reflection]:
    result = await db.execute(
        select(Reflection)
        .where(Reflection.agent_id == agent_id)
        .order_by(Reflection.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())
