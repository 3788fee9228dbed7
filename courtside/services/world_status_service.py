"""
courtside/services/world_status_service.py
League-wide status snapshot for dashboards
"""
import logging
from typing import Any, Dict, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.orm.agent import Agent, AgentStatus
from courtside.services.season_simulator_service import get_active_season
from courtside.services.tournament_engine_service import get_active_tournament
from courtside.services.world_model_service import get_world_model

logger = logging.getLogger(__name__)


async def get_world_status(db: AsyncSession, agent_id: Optional[int] = None) -> Dict[str, Any]:
    """
    Counts and the current season/tournament, plus token totals for one
    agent when agent_id is given and exists.
    """
    world_model = get_world_model()
    generative = world_model.is_available()

    active_agents = (await db.execute(
        select(func.count(Agent.id)).where(Agent.status == AgentStatus.ACTIVE)
    )).scalar_one()
    human_agents = (await db.execute(
        select(func.count(Agent.id)).where(Agent.is_npc.is_(False))
    )).scalar_one()

    season = await get_active_season(db)
    tournament = await get_active_tournament(db)

    token_stats = None
    if agent_id is not None:
        agent = await db.get(Agent, agent_id)
        if agent is not None:
            token_stats = {
                "balance": agent.token_balance,
                "total_earned": agent.total_earned,
                "total_spent": agent.total_spent,
            }

    return {
        "world_model_active": generative,
        "world_model_engine": world_model.llm_client.model if generative else "local",
        "active_season": {
            "season_num": season.season_num,
            "games_played": season.games_played,
            "total_games": season.total_games,
            "status": season.status.value,
        } if season else None,
        "current_tournament": {
            "id": tournament.id,
            "name": tournament.name,
            "status": tournament.status.value,
            "current_round": tournament.current_round,
            "total_rounds": tournament.total_rounds,
        } if tournament else None,
        "total_agents": active_agents,
        "human_agents": human_agents,
        "token_stats": token_stats,
    }
