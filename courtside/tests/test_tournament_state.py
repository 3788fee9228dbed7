"""
Tests for the tournament state machine and its compare-and-set claims.
"""
from datetime import datetime

import pytest
from sqlalchemy.orm.attributes import set_committed_value

from courtside.orm.tournament import Tournament, TournamentStatus
from courtside.state_machines.tournament_state import (
    InvalidTransitionError, can_transition, claim_round, claim_transition,
    ensure_transition, is_terminal
)


async def _tournament(db, status=TournamentStatus.REGISTERING, current_round=0, total_rounds=3):
    tournament = Tournament(
        name="#1 Rookie Rumble",
        status=status,
        total_rounds=total_rounds,
        current_round=current_round,
        registration_end=datetime(2026, 3, 1, 12, 0, 0),
    )
    db.add(tournament)
    await db.commit()
    return tournament


class TestTransitions:

    @pytest.mark.parametrize("current,target", [
        (TournamentStatus.REGISTERING, TournamentStatus.IN_PROGRESS),
        (TournamentStatus.REGISTERING, TournamentStatus.CANCELLED),
        (TournamentStatus.IN_PROGRESS, TournamentStatus.SETTLING),
        (TournamentStatus.SETTLING, TournamentStatus.COMPLETED),
    ])
    def test_forward_transitions_allowed(self, current, target):
        assert can_transition(current, target)
        ensure_transition(current, target)

    @pytest.mark.parametrize("current,target", [
        (TournamentStatus.IN_PROGRESS, TournamentStatus.REGISTERING),
        (TournamentStatus.IN_PROGRESS, TournamentStatus.CANCELLED),
        (TournamentStatus.SETTLING, TournamentStatus.IN_PROGRESS),
        (TournamentStatus.REGISTERING, TournamentStatus.COMPLETED),
        (TournamentStatus.COMPLETED, TournamentStatus.SETTLING),
        (TournamentStatus.CANCELLED, TournamentStatus.IN_PROGRESS),
    ])
    def test_other_transitions_rejected(self, current, target):
        assert not can_transition(current, target)
        with pytest.raises(InvalidTransitionError):
            ensure_transition(current, target)

    def test_terminal_states(self):
        assert is_terminal(TournamentStatus.COMPLETED)
        assert is_terminal(TournamentStatus.CANCELLED)
        assert not is_terminal(TournamentStatus.SETTLING)


@pytest.mark.asyncio
class TestClaims:

    async def test_claim_updates_row_and_object(self, db):
        tournament = await _tournament(db)
        started = datetime(2026, 3, 1, 12, 30, 0)

        assert await claim_transition(db, tournament, TournamentStatus.IN_PROGRESS,
                                      current_round=1, started_at=started)
        await db.commit()
        assert tournament.status == TournamentStatus.IN_PROGRESS
        assert tournament.current_round == 1

        await db.refresh(tournament)
        assert tournament.status == TournamentStatus.IN_PROGRESS
        assert tournament.started_at == started

    async def test_stale_reader_loses_claim(self, db):
        tournament = await _tournament(db)
        assert await claim_transition(db, tournament, TournamentStatus.IN_PROGRESS)
        await db.commit()

        # A second invocation that read the row before the first claim
        set_committed_value(tournament, "status", TournamentStatus.REGISTERING)
        assert not await claim_transition(db, tournament, TournamentStatus.CANCELLED)
        await db.commit()

        await db.refresh(tournament)
        assert tournament.status == TournamentStatus.IN_PROGRESS

    async def test_invalid_claim_raises_before_writing(self, db):
        tournament = await _tournament(db, status=TournamentStatus.COMPLETED)
        with pytest.raises(InvalidTransitionError):
            await claim_transition(db, tournament, TournamentStatus.IN_PROGRESS)

    async def test_round_claimed_once(self, db):
        tournament = await _tournament(db, status=TournamentStatus.IN_PROGRESS, current_round=1)

        assert await claim_round(db, tournament, 2)
        await db.commit()
        assert tournament.current_round == 2

        set_committed_value(tournament, "current_round", 1)
        assert not await claim_round(db, tournament, 2)

    async def test_round_never_exceeds_total(self, db):
        tournament = await _tournament(db, status=TournamentStatus.IN_PROGRESS, current_round=3)
        assert not await claim_round(db, tournament, 4)
