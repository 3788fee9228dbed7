"""
courtside/routes/__init__.py
Route registration
"""
from fastapi import APIRouter
from courtside.routes import agents, season, tournament, world

router = APIRouter()

router.include_router(agents.router)
router.include_router(season.router)
router.include_router(tournament.router)
router.include_router(tournament.cron_router)
router.include_router(world.router)
