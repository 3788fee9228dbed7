"""
Tournament State Machine

State Flow:
registering → in_progress → settling → completed
registering → cancelled

Transitions are strictly forward. Every transition is claimed with a
compare-and-set UPDATE on the current status (and round), so when two
scheduler invocations overlap only one of them wins the claim and
applies the side effects; the other sees zero affected rows.
"""
from typing import Any, Dict, List

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from courtside.orm.tournament import Tournament, TournamentStatus


class TournamentStateError(Exception):
    """Base exception for tournament state errors."""
    pass


class InvalidTransitionError(TournamentStateError):
    """Raised when a transition is not allowed from the current status."""
    def __init__(self, current: TournamentStatus, target: TournamentStatus):
        self.current = current
        self.target = target
        super().__init__(f"Cannot transition tournament from {current.value} to {target.value}")


TRANSITIONS: Dict[TournamentStatus, List[TournamentStatus]] = {
    TournamentStatus.REGISTERING: [TournamentStatus.IN_PROGRESS, TournamentStatus.CANCELLED],
    TournamentStatus.IN_PROGRESS: [TournamentStatus.SETTLING],
    TournamentStatus.SETTLING: [TournamentStatus.COMPLETED],
    TournamentStatus.COMPLETED: [],
    TournamentStatus.CANCELLED: [],
}


def can_transition(current: TournamentStatus, target: TournamentStatus) -> bool:
    return target in TRANSITIONS.get(current, [])


def is_terminal(status: TournamentStatus) -> bool:
    return not TRANSITIONS.get(status)


def ensure_transition(current: TournamentStatus, target: TournamentStatus) -> None:
    if not can_transition(current, target):
        raise InvalidTransitionError(current, target)


async def claim_transition(
    db: AsyncSession,
    tournament: Tournament,
    target: TournamentStatus,
    **values: Any
) -> bool:
    """
    Move a tournament to target if it is still in the status we read.

    Extra column values are written in the same UPDATE. Returns True when
    this caller won the claim; the in-memory object is updated to match.

    Raises:
        InvalidTransitionError: target is not reachable from the read status
    """
    current = TournamentStatus(tournament.status)
    ensure_transition(current, target)

    result = await db.execute(
        update(Tournament)
        .where(Tournament.id == tournament.id, Tournament.status == current)
        .values(status=target, **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return False

    set_committed_value(tournament, "status", target)
    for key, value in values.items():
        set_committed_value(tournament, key, value)
    return True


async def claim_round(db: AsyncSession, tournament: Tournament, next_round: int) -> bool:
    """Advance current_round by one if nobody else did already."""
    if next_round > tournament.total_rounds:
        return False
    result = await db.execute(
        update(Tournament)
        .where(
            Tournament.id == tournament.id,
            Tournament.status == TournamentStatus.IN_PROGRESS,
            Tournament.current_round == next_round - 1,
        )
        .values(current_round=next_round)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        return False
    set_committed_value(tournament, "current_round", next_round)
    return True
