"""
courtside/routes/tournament.py
Tournament views, manual advance and the scheduler tick

Mutating endpoints require `Authorization: Bearer $CRON_SECRET` when
CRON_SECRET is set.
"""
import os
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Query
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.database import get_db
from courtside.errors import ErrorCode, UnauthorizedError, NotFoundError
from courtside.services import tournament_engine_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tournaments", tags=["Tournaments"])
cron_router = APIRouter(prefix="/cron", tags=["Scheduler"])


async def verify_cron_secret(authorization: Optional[str] = Header(None)):
    secret = os.getenv("CRON_SECRET")
    if not secret:
        return
    if authorization != f"Bearer {secret}":
        logger.warning("Rejected scheduler call with a missing or wrong secret")
        raise UnauthorizedError("Invalid scheduler credentials", code=ErrorCode.AUTH_INVALID)


@router.get("/current")
async def get_current_tournament(db: AsyncSession = Depends(get_db)):
    tournament = await tournament_engine_service.get_active_tournament(db)
    if tournament is None:
        return {"success": True, "data": None}
    detail = await tournament_engine_service.get_tournament_detail(db, tournament.id)
    return {"success": True, "data": detail}


@router.get("/history")
async def get_tournament_history(
    limit: int = Query(10, ge=1, le=50),
    offset: int = Query(0, ge=0),
    db: AsyncSession = Depends(get_db)
):
    """Completed and cancelled tournaments, newest first, with champions."""
    tournaments, total = await tournament_engine_service.list_tournament_history(db, limit, offset)
    return {
        "success": True,
        "data": {
            "tournaments": tournaments,
            "pagination": {"limit": limit, "offset": offset, "total": total},
        },
    }


@router.get("/{tournament_id}")
async def get_tournament(tournament_id: int, db: AsyncSession = Depends(get_db)):
    detail = await tournament_engine_service.get_tournament_detail(db, tournament_id)
    if detail is None:
        raise NotFoundError("Tournament", tournament_id, ErrorCode.TOURNAMENT_NOT_FOUND)
    return {"success": True, "data": detail}


@router.post("/{tournament_id}/advance", dependencies=[Depends(verify_cron_secret)])
async def advance_tournament(tournament_id: int, db: AsyncSession = Depends(get_db)):
    """One lifecycle step. progressed=false means nothing was left to do."""
    result = await tournament_engine_service.advance_tournament(db, tournament_id)
    if result.action == tournament_engine_service.AdvanceAction.ERROR:
        raise NotFoundError("Tournament", tournament_id, ErrorCode.TOURNAMENT_NOT_FOUND)
    return {"success": True, "data": result.to_dict()}


@cron_router.post("/tournament", dependencies=[Depends(verify_cron_secret)])
async def tournament_tick(db: AsyncSession = Depends(get_db)):
    data = await tournament_engine_service.run_tournament_tick(db)
    logger.info(f"Tournament tick: {data['action']} ({data['detail']})")
    return {"success": True, "data": data}
