"""
courtside/routes/world.py
League-wide status
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.database import get_db
from courtside.services.world_status_service import get_world_status

router = APIRouter(prefix="/world", tags=["World"])


@router.get("/status")
async def world_status(
    agent_id: Optional[int] = Query(None, description="Include token totals for this agent"),
    db: AsyncSession = Depends(get_db)
):
    return {"success": True, "data": await get_world_status(db, agent_id)}
