"""
courtside/services/activity_logger.py
Centralized career activity logging

Single helper `log_activity()` used by every flow that writes to an
agent's career feed. Logs are append-only.

Logging is best-effort: a failure here is reported and never breaks the
game, tournament or settlement step that triggered it.
"""
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from courtside.orm.economy import ActivityLog, ActivityType

logger = logging.getLogger(__name__)


async def log_activity(
    db: AsyncSession,
    agent_id: int,
    activity_type: ActivityType,
    title: str,
    content: str,
    token_change: int = 0
) -> Optional[ActivityLog]:
    """
    Append one entry to an agent's activity feed.

    Call this AFTER the action it describes has been applied.
    The entry joins the caller's transaction; nothing is committed here.

    Returns:
        Created ActivityLog entry, or None if logging failed
    """
    try:
        entry = ActivityLog(
            agent_id=agent_id,
            type=activity_type,
            title=title[:200],
            content=content,
            token_change=token_change,
        )
        db.add(entry)
        logger.debug(f"Activity logged: agent={agent_id} type={activity_type.value} title={title!r}")
        return entry
    except Exception as e:
        logger.error(f"Failed to log activity for agent {agent_id}: {str(e)}")
        return None
