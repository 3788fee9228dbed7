"""
courtside/routes/agents.py
Agent registration, profile, ledger, activity feed and reflections
"""
import logging

from fastapi import APIRouter, Depends, Query, Request
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.database import get_db
from courtside.errors import (
    ErrorCode, BadRequestError, ConflictError, safe_get_or_404
)
from courtside.schemas.agent import AgentCreateRequest, ReflectionRequest
from courtside.services import agent_service, reflection_service, token_ledger_service
from courtside.services.agent_service import (
    AgentValidationError, DuplicateAgentError, agent_profile
)
from courtside.services.reflection_service import (
    ReflectionValidationError, NPCReflectionError
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/agents", tags=["Agents"])
limiter = Limiter(key_func=get_remote_address)


async def _get_agent_or_404(db: AsyncSession, agent_id: int):
    agent = await agent_service.get_agent(db, agent_id)
    return safe_get_or_404(agent, "Agent", agent_id, ErrorCode.AGENT_NOT_FOUND)


@router.post("", status_code=201)
@limiter.limit("30/minute")
async def create_agent(
    request: Request,  # Required by slowapi
    payload: AgentCreateRequest,
    db: AsyncSession = Depends(get_db)
):
    try:
        agent = await agent_service.create_agent(
            db,
            user_id=payload.user_id,
            nickname=payload.nickname,
            position=payload.position,
            cognitive_score=payload.cognitive_score,
            luck_value=payload.luck_value,
            life_vision=payload.life_vision,
            bio=payload.bio,
        )
    except DuplicateAgentError as e:
        raise ConflictError(str(e), code=ErrorCode.DUPLICATE_AGENT)
    except AgentValidationError as e:
        raise BadRequestError(str(e))

    return {"success": True, "data": agent_profile(agent)}


@router.get("/{agent_id}")
async def get_agent(agent_id: int, db: AsyncSession = Depends(get_db)):
    agent = await _get_agent_or_404(db, agent_id)
    return {"success": True, "data": agent_profile(agent)}


@router.get("/{agent_id}/transactions")
async def get_transactions(
    agent_id: int,
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db)
):
    """Ledger entries, newest first."""
    agent = await _get_agent_or_404(db, agent_id)
    transactions = await token_ledger_service.get_transactions(db, agent.id, limit)
    total = await token_ledger_service.count_transactions(db, agent.id)
    return {
        "success": True,
        "data": {
            "balance": agent.token_balance,
            "total": total,
            "transactions": [tx.to_dict() for tx in transactions],
        },
    }


@router.get("/{agent_id}/activity")
async def get_activity(
    agent_id: int,
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db)
):
    agent = await _get_agent_or_404(db, agent_id)
    entries = await agent_service.get_activity(db, agent.id, limit)
    return {"success": True, "data": [entry.to_dict() for entry in entries]}


@router.post("/{agent_id}/reflect")
@limiter.limit("10/minute")
async def reflect(
    request: Request,  # Required by slowapi
    agent_id: int,
    payload: ReflectionRequest,
    db: AsyncSession = Depends(get_db)
):
    agent = await _get_agent_or_404(db, agent_id)
    try:
        reflection = await reflection_service.submit_reflection(
            db, agent, payload.content, payload.focus_attribute
        )
    except NPCReflectionError as e:
        raise ConflictError(str(e), code=ErrorCode.NPC_NOT_ALLOWED)
    except ReflectionValidationError as e:
        raise BadRequestError(str(e))

    return {
        "success": True,
        "data": {
            "reflection": reflection.to_dict(),
            "agent": agent_profile(agent),
        },
    }
