"""
courtside/routes/season.py
Season simulation and game lookups
"""
import logging

from fastapi import APIRouter, Depends, Request
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from courtside.config.game_config import SeasonConfig
from courtside.database import get_db
from courtside.errors import ErrorCode, NotFoundError, safe_get_or_404
from courtside.orm.season import Game, SeasonStatus
from courtside.services import season_simulator_service
from courtside.services.interaction_service import get_game_interactions

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/nba", tags=["Season"])
limiter = Limiter(key_func=get_remote_address)


@router.post("/simulate")
@limiter.limit("20/minute")
async def simulate(request: Request, db: AsyncSession = Depends(get_db)):
    """Play the next batch of games in the active season, opening one if needed."""
    season = await season_simulator_service.get_or_create_active_season(db)
    simulated = await season_simulator_service.simulate_next_games(
        db, season.id, SeasonConfig.GAMES_PER_SIMULATION
    )
    await db.refresh(season)
    recent = await season_simulator_service.get_recent_games(db, season.id, limit=simulated or 1)

    logger.info(f"Simulated {simulated} games in season {season.season_num}")
    return {
        "success": True,
        "data": {
            "simulated": simulated,
            "season": season.to_dict(),
            "season_completed": season.status == SeasonStatus.COMPLETED,
            "games": [game.to_dict() for game in recent],
        },
    }


@router.get("/season")
async def get_season(db: AsyncSession = Depends(get_db)):
    """Active season, or the latest one if none is active."""
    season = await season_simulator_service.get_active_season(db)
    if season is None:
        season = await season_simulator_service.get_latest_season(db)
    if season is None:
        raise NotFoundError("Season", code=ErrorCode.SEASON_NOT_FOUND)

    standings = await season_simulator_service.get_season_standings(db, season.id)
    recent = await season_simulator_service.get_recent_games(db, season.id)
    return {
        "success": True,
        "data": {
            "season": season.to_dict(),
            "standings": standings,
            "recent_games": [game.to_dict() for game in recent],
        },
    }


@router.get("/games/{game_id}")
async def get_game(game_id: int, db: AsyncSession = Depends(get_db)):
    result = await db.execute(
        select(Game).options(selectinload(Game.stats)).where(Game.id == game_id)
    )
    game = safe_get_or_404(result.scalar_one_or_none(), "Game", game_id, ErrorCode.GAME_NOT_FOUND)
    interactions = await get_game_interactions(db, game.id)
    return {
        "success": True,
        "data": {
            **game.to_dict(include_stats=True),
            "interactions": [i.to_dict() for i in interactions],
        },
    }
