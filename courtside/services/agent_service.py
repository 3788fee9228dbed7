"""
Agent Service

Registration and lookups for league agents.
"""
import logging
import random
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.config.game_config import TokenConfig
from courtside.orm.agent import Agent, AgentStatus, Position
from courtside.orm.economy import ActivityLog, ActivityType
from courtside.services.activity_logger import log_activity
from courtside.services.season_simulator_service import least_populated_team
from courtside.services.stat_generator import (
    calculate_ovr, calculate_salary, generate_attributes
)

logger = logging.getLogger(__name__)


# =============================================================================
# Custom Exceptions
# =============================================================================

class AgentError(Exception):
    """Base exception for agent errors."""
    pass


class AgentValidationError(AgentError):
    """Raised when registration input is out of range."""
    pass


class DuplicateAgentError(AgentError):
    """Raised when the account already owns an agent."""
    pass


# =============================================================================
# Registration
# =============================================================================

async def create_agent(
    db: AsyncSession,
    user_id: str,
    nickname: str,
    position: str,
    cognitive_score: int = 50,
    luck_value: int = 50,
    life_vision: Optional[str] = None,
    bio: Optional[str] = None,
    rng: Optional[random.Random] = None
) -> Agent:
    """
    Register a real agent.

    The agent starts with the initial stake (no ledger entry, the stake is
    the ledger's starting point), generated attributes and a salary derived
    from its overall rating, on the least populated team.

    Raises:
        AgentValidationError: Bad nickname, position or score
        DuplicateAgentError: user_id already has an agent
    """
    nickname = (nickname or "").strip()
    if not nickname:
        raise AgentValidationError("Nickname is required")
    try:
        position = Position(getattr(position, "value", position))
    except ValueError:
        raise AgentValidationError(f"Unknown position: {position}")
    for name, value in (("cognitive_score", cognitive_score), ("luck_value", luck_value)):
        if not 0 <= value <= 100:
            raise AgentValidationError(f"{name} must be between 0 and 100")

    existing = await db.execute(select(Agent.id).where(Agent.user_id == user_id))
    if existing.scalar_one_or_none() is not None:
        raise DuplicateAgentError(f"User {user_id} already has an agent")

    attributes = generate_attributes(cognitive_score, luck_value, position.value, rng)
    ovr = calculate_ovr(attributes, position.value)
    salary = calculate_salary(ovr)
    team_name = await least_populated_team(db)

    agent = Agent(
        user_id=user_id,
        nickname=nickname,
        bio=bio,
        life_vision=life_vision,
        is_npc=False,
        status=AgentStatus.ACTIVE,
        position=position,
        team_name=team_name,
        luck_value=luck_value,
        cognitive_score=cognitive_score,
        token_balance=TokenConfig.INITIAL_BALANCE,
        initial_balance=TokenConfig.INITIAL_BALANCE,
        total_earned=0,
        total_spent=0,
        salary=salary,
    )
    agent.set_attributes(attributes)
    db.add(agent)
    await db.flush()

    await log_activity(
        db, agent.id, ActivityType.SYSTEM,
        "Agent created",
        f"{nickname} begins a pro career with the {team_name}! Position: {position.value}, "
        f"overall rating: {ovr}, salary: {salary} tokens.",
    )
    await db.commit()

    logger.info(f"Agent created: id={agent.id} nickname={nickname!r} team={team_name} ovr={ovr}")
    return agent


# =============================================================================
# Lookups
# =============================================================================

async def get_agent(db: AsyncSession, agent_id: int) -> Optional[Agent]:
    result = await db.execute(select(Agent).where(Agent.id == agent_id))
    return result.scalar_one_or_none()


def agent_profile(agent: Agent) -> Dict[str, Any]:
    """Agent dict with its overall rating."""
    return {
        **agent.to_dict(),
        "ovr": calculate_ovr(agent.attributes(), agent.position),
        "win_rate": round(agent.win_rate, 3),
    }


async def get_activity(db: AsyncSession, agent_id: int, limit: int = 50) -> List[ActivityLog]:
    """Career feed, newest first."""
    result = await db.execute(
        select(ActivityLog)
        .where(ActivityLog.agent_id == agent_id)
        .order_by(ActivityLog.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())
