"""
Tournament Engine Service

Periodic Swiss tournaments driven by an external scheduler.

Features:
- Auto-creation with entry fees, system subsidy and NPC filler
- Single idempotent advance_tournament() driving every transition
- Compare-and-set claims on status, round and match rows
- Atomic SQL increments for standings
- Prize distribution through the token ledger

Rules:
- Safe under at-least-once, possibly overlapping invocation
- NPC participants never pay and never receive prizes
- Per-match and per-participant failures are logged and skipped
"""
import logging
import random
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.config.feature_flags import feature_flags
from courtside.config.game_config import TournamentConfig
from courtside.orm.agent import Agent, AgentStatus
from courtside.orm.economy import ActivityType, TransactionType, ReferenceType
from courtside.orm.tournament import (
    Tournament, TournamentStatus, TournamentParticipant, TournamentMatch,
    MatchStatus, ACTIVE_TOURNAMENT_STATUSES
)
from courtside.services.activity_logger import log_activity
from courtside.services.swiss_pairing import SwissEntry, PairingResult, swiss_pairing
from courtside.services.token_ledger_service import apply_token_change
from courtside.services.tournament_match import simulate_tournament_match
from courtside.state_machines.tournament_state import claim_transition, claim_round

logger = logging.getLogger(__name__)


# =============================================================================
# Advance result
# =============================================================================

class AdvanceAction:
    WAITING = "waiting"
    STARTED = "started"
    CANCELLED = "cancelled"
    ROUND_EXECUTED = "round_executed"
    ROUND_GENERATED = "round_generated"
    SETTLING = "settling"
    COMPLETED = "completed"
    NO_ACTION = "no_action"
    ERROR = "error"


NO_PROGRESS_ACTIONS = (AdvanceAction.WAITING, AdvanceAction.NO_ACTION, AdvanceAction.ERROR)


@dataclass
class AdvanceResult:
    action: str
    detail: str

    @property
    def progressed(self) -> bool:
        return self.action not in NO_PROGRESS_ACTIONS

    def to_dict(self) -> Dict[str, Any]:
        return {"action": self.action, "detail": self.detail, "progressed": self.progressed}


# =============================================================================
# Lookups
# =============================================================================

async def get_active_tournament(db: AsyncSession) -> Optional[Tournament]:
    """Oldest tournament that has not reached a terminal status."""
    result = await db.execute(
        select(Tournament)
        .where(Tournament.status.in_(ACTIVE_TOURNAMENT_STATUSES))
        .order_by(Tournament.id.asc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def _load_tournament(db: AsyncSession, tournament_id: int) -> Optional[Tournament]:
    result = await db.execute(
        select(Tournament)
        .where(Tournament.id == tournament_id)
        .execution_options(populate_existing=True)
    )
    return result.scalar_one_or_none()


async def _load_participants(db: AsyncSession, tournament_id: int) -> List[TournamentParticipant]:
    result = await db.execute(
        select(TournamentParticipant)
        .where(TournamentParticipant.tournament_id == tournament_id)
        .order_by(TournamentParticipant.id.asc())
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def _load_agents(db: AsyncSession, agent_ids: List[int]) -> Dict[int, Agent]:
    if not agent_ids:
        return {}
    result = await db.execute(select(Agent).where(Agent.id.in_(agent_ids)))
    return {agent.id: agent for agent in result.scalars().all()}


async def _load_matches(
    db: AsyncSession,
    tournament_id: int,
    round_num: Optional[int] = None,
    status: Optional[MatchStatus] = None
) -> List[TournamentMatch]:
    query = select(TournamentMatch).where(TournamentMatch.tournament_id == tournament_id)
    if round_num is not None:
        query = query.where(TournamentMatch.round_num == round_num)
    if status is not None:
        query = query.where(TournamentMatch.status == status)
    result = await db.execute(
        query.order_by(TournamentMatch.id.asc()).execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


# =============================================================================
# Creation
# =============================================================================

async def should_create_tournament(db: AsyncSession, now: Optional[datetime] = None) -> bool:
    """
    True when no tournament is active and the interval since the last
    finished one has elapsed (or there has never been one).
    """
    now = now or datetime.utcnow()
    if await get_active_tournament(db) is not None:
        return False

    result = await db.execute(
        select(Tournament)
        .where(Tournament.status.in_([TournamentStatus.COMPLETED, TournamentStatus.CANCELLED]))
        .order_by(Tournament.completed_at.desc(), Tournament.id.desc())
        .limit(1)
    )
    last = result.scalar_one_or_none()
    if last is None or last.completed_at is None:
        return True
    return now - last.completed_at >= timedelta(hours=TournamentConfig.INTERVAL_HOURS)


async def create_auto_tournament(
    db: AsyncSession,
    now: Optional[datetime] = None,
    entry_fee: Optional[int] = None,
    total_rounds: Optional[int] = None,
    min_participants: Optional[int] = None,
    max_participants: Optional[int] = None,
    registration_minutes: Optional[int] = None,
    rng: Optional[random.Random] = None
) -> Optional[Tournament]:
    """
    Open a tournament and enroll every eligible real agent.

    Eligible agents are charged the entry fee immediately. If enrollment
    falls short of the minimum, active NPCs are added as non-paying filler.

    Returns:
        The new tournament, or None if one is already active
    """
    now = now or datetime.utcnow()
    rng = rng or random
    if await get_active_tournament(db) is not None:
        logger.info("Tournament creation skipped: a tournament is already active")
        return None

    fee = TournamentConfig.ENTRY_FEE if entry_fee is None else entry_fee
    rounds = total_rounds or TournamentConfig.DEFAULT_ROUNDS
    min_count = min_participants or TournamentConfig.MIN_PARTICIPANTS
    max_count = max_participants or TournamentConfig.MAX_PARTICIPANTS
    minutes = registration_minutes if registration_minutes is not None else TournamentConfig.REGISTRATION_MINUTES

    existing = (await db.execute(select(func.count(Tournament.id)))).scalar_one()
    template = TournamentConfig.NAME_TEMPLATES[existing % len(TournamentConfig.NAME_TEMPLATES)]

    tournament = Tournament(
        name=f"#{existing + 1} {template}",
        format="swiss",
        status=TournamentStatus.REGISTERING,
        entry_fee=fee,
        prize_pool=TournamentConfig.SYSTEM_SUBSIDY,
        system_subsidy=TournamentConfig.SYSTEM_SUBSIDY,
        total_rounds=rounds,
        current_round=0,
        min_participants=min_count,
        max_participants=max_count,
        registration_end=now + timedelta(minutes=minutes),
    )
    db.add(tournament)
    await db.flush()

    result = await db.execute(
        select(Agent)
        .where(
            Agent.status == AgentStatus.ACTIVE,
            Agent.is_npc.is_(False),
            Agent.token_balance >= max(fee, TournamentConfig.MIN_TOKEN_TO_ENTER),
        )
        .order_by(Agent.id.asc())
        .limit(max_count)
    )
    eligible = list(result.scalars().all())

    enrolled = 0
    for agent in eligible:
        if fee > 0:
            await apply_token_change(
                db, agent, -fee, TransactionType.SPEND,
                f"Entry fee: {tournament.name}",
                ReferenceType.TOURNAMENT, tournament.id
            )
        db.add(TournamentParticipant(
            tournament_id=tournament.id,
            agent_id=agent.id,
            is_npc=False,
            entry_fee_paid=fee,
        ))
        await log_activity(
            db, agent.id, ActivityType.TOURNAMENT,
            f"Entered {tournament.name}",
            f"{agent.nickname} paid {fee} tokens to enter {tournament.name}. "
            f"Registration closes at {tournament.registration_end:%H:%M} UTC.",
            token_change=-fee,
        )
        enrolled += 1

    tournament.prize_pool = tournament.system_subsidy + fee * enrolled

    if enrolled < min_count:
        result = await db.execute(
            select(Agent)
            .where(Agent.status == AgentStatus.ACTIVE, Agent.is_npc.is_(True))
            .order_by(Agent.id.asc())
        )
        npcs = list(result.scalars().all())
        needed = min(min_count - enrolled, len(npcs))
        for npc in rng.sample(npcs, needed):
            db.add(TournamentParticipant(
                tournament_id=tournament.id,
                agent_id=npc.id,
                is_npc=True,
                entry_fee_paid=0,
            ))
        logger.info(f"Tournament {tournament.id}: added {needed} NPC fillers")

    await db.commit()
    logger.info(
        f"Tournament created: id={tournament.id} name={tournament.name!r} "
        f"paid={enrolled} prize_pool={tournament.prize_pool}"
    )
    return tournament


# =============================================================================
# Pairing
# =============================================================================

async def _standings(db: AsyncSession, tournament_id: int) -> List[SwissEntry]:
    participants = await _load_participants(db, tournament_id)
    opponents: Dict[int, set] = {p.agent_id: set() for p in participants}
    for match in await _load_matches(db, tournament_id):
        opponents.setdefault(match.agent1_id, set()).add(match.agent2_id)
        opponents.setdefault(match.agent2_id, set()).add(match.agent1_id)
    return [
        SwissEntry(
            agent_id=p.agent_id,
            score=p.total_score,
            previous_opponents=frozenset(opponents[p.agent_id]),
        )
        for p in participants
    ]


async def generate_round_pairings(
    db: AsyncSession,
    tournament: Tournament,
    round_num: int
) -> PairingResult:
    """
    Create pending matches for round_num and credit byes.

    Must only be called by the invocation that claimed the round.
    """
    entries = await _standings(db, tournament.id)
    pairing = swiss_pairing(entries)

    for agent1_id, agent2_id in pairing.pairs:
        db.add(TournamentMatch(
            tournament_id=tournament.id,
            round_num=round_num,
            agent1_id=agent1_id,
            agent2_id=agent2_id,
            status=MatchStatus.PENDING,
        ))

    for agent_id in pairing.byes:
        await db.execute(
            update(TournamentParticipant)
            .where(
                TournamentParticipant.tournament_id == tournament.id,
                TournamentParticipant.agent_id == agent_id,
            )
            .values(
                wins=TournamentParticipant.wins + 1,
                byes=TournamentParticipant.byes + 1,
                total_score=TournamentParticipant.total_score + TournamentConfig.WIN_POINTS,
            )
            .execution_options(synchronize_session=False)
        )

    if pairing.rematches:
        logger.info(f"Tournament {tournament.id} round {round_num}: rematch fallback used for {pairing.rematches}")

    await db.flush()
    logger.info(
        f"Tournament {tournament.id} round {round_num}: "
        f"{len(pairing.pairs)} matches, byes={pairing.byes}"
    )
    return pairing


# =============================================================================
# Round execution
# =============================================================================

async def _record_result(
    db: AsyncSession,
    tournament_id: int,
    agent_id: int,
    outcome: str
) -> None:
    points = {
        "win": TournamentConfig.WIN_POINTS,
        "draw": TournamentConfig.DRAW_POINTS,
        "loss": TournamentConfig.LOSS_POINTS,
    }[outcome]
    column = {"win": "wins", "draw": "draws", "loss": "losses"}[outcome]
    await db.execute(
        update(TournamentParticipant)
        .where(
            TournamentParticipant.tournament_id == tournament_id,
            TournamentParticipant.agent_id == agent_id,
        )
        .values({
            column: getattr(TournamentParticipant, column) + 1,
            "total_score": TournamentParticipant.total_score + points,
        })
        .execution_options(synchronize_session=False)
    )


async def execute_current_round(
    db: AsyncSession,
    tournament: Tournament,
    rng: Optional[random.Random] = None
) -> int:
    """
    Play every pending match of the current round.

    Each match is claimed pending -> completed before standings move, so a
    match is never counted twice. The claim and the standings update share
    a savepoint: a failure leaves the match pending for the next call.

    Returns:
        Number of matches this invocation completed
    """
    pending = await _load_matches(db, tournament.id, tournament.current_round, MatchStatus.PENDING)
    agents = await _load_agents(db, [m.agent1_id for m in pending] + [m.agent2_id for m in pending])

    executed = 0
    for match in pending:
        try:
            agent_a = agents[match.agent1_id]
            agent_b = agents[match.agent2_id]
            outcome = simulate_tournament_match(
                agent_a, agent_b, tournament.name, match.round_num, rng
            )

            async with db.begin_nested():
                claimed = await db.execute(
                    update(TournamentMatch)
                    .where(TournamentMatch.id == match.id, TournamentMatch.status == MatchStatus.PENDING)
                    .values(
                        status=MatchStatus.COMPLETED,
                        winner_id=outcome.winner_id,
                        agent1_score=outcome.score_a,
                        agent2_score=outcome.score_b,
                        narrative=outcome.narrative,
                    )
                    .execution_options(synchronize_session=False)
                )
                if claimed.rowcount != 1:
                    continue

                if outcome.is_draw:
                    await _record_result(db, tournament.id, agent_a.id, "draw")
                    await _record_result(db, tournament.id, agent_b.id, "draw")
                else:
                    loser_id = agent_b.id if outcome.winner_id == agent_a.id else agent_a.id
                    await _record_result(db, tournament.id, outcome.winner_id, "win")
                    await _record_result(db, tournament.id, loser_id, "loss")
            executed += 1
        except Exception as e:
            logger.error(f"Tournament {tournament.id}: match {match.id} failed: {type(e).__name__}: {e}")

    logger.info(f"Tournament {tournament.id} round {tournament.current_round}: executed {executed} matches")
    return executed


# =============================================================================
# Settlement
# =============================================================================

def rank_participants(participants: List[TournamentParticipant]) -> List[TournamentParticipant]:
    """Score descending; equal scores keep enrollment order."""
    return sorted(participants, key=lambda p: (-p.total_score, p.id))


def compute_prize(prize_pool: int, index: int, is_npc: bool) -> int:
    distribution = TournamentConfig.PRIZE_DISTRIBUTION
    if is_npc or index >= len(distribution):
        return 0
    return int(prize_pool * distribution[index])


async def settle_tournament(db: AsyncSession, tournament: Tournament) -> List[TournamentParticipant]:
    """
    Assign placements, pay prizes and write the tournament narrative.

    Must only be called by the invocation that claimed the settlement.
    """
    participants = rank_participants(await _load_participants(db, tournament.id))
    agents = await _load_agents(db, [p.agent_id for p in participants])

    for index, participant in enumerate(participants):
        try:
            placement = index + 1
            prize = compute_prize(tournament.prize_pool, index, participant.is_npc)
            participant.placement = placement
            participant.tokens_won = prize

            agent = agents[participant.agent_id]
            if participant.is_npc or agent.is_npc:
                continue

            if prize > 0:
                await apply_token_change(
                    db, agent, prize, TransactionType.REWARD,
                    f"{tournament.name}: prize for place {placement}",
                    ReferenceType.TOURNAMENT, tournament.id
                )
                content = (
                    f"{agent.nickname} finished #{placement} in {tournament.name} "
                    f"({participant.wins}W {participant.draws}D {participant.losses}L, "
                    f"{participant.total_score} pts) and won {prize} tokens."
                )
            else:
                content = (
                    f"{agent.nickname} finished #{placement} in {tournament.name} "
                    f"({participant.wins}W {participant.draws}D {participant.losses}L, "
                    f"{participant.total_score} pts)."
                )
            await log_activity(
                db, agent.id, ActivityType.TOURNAMENT,
                f"{tournament.name}: place {placement}", content, token_change=prize
            )
        except Exception as e:
            logger.error(
                f"Tournament {tournament.id}: settlement failed for participant "
                f"{participant.id}: {type(e).__name__}: {e}"
            )

    if participants:
        champion = participants[0]
        name = agents[champion.agent_id].nickname if champion.agent_id in agents else f"Agent {champion.agent_id}"
        narrative = f"{name} won {tournament.name} with {champion.total_score} points"
        if champion.tokens_won:
            narrative += f" and took home {champion.tokens_won} tokens"
        tournament.narrative = narrative + "."
    else:
        tournament.narrative = f"{tournament.name} ended without participants."

    await db.flush()
    return participants


# =============================================================================
# Transitions
# =============================================================================

async def _advance_registering(
    db: AsyncSession,
    tournament: Tournament,
    now: datetime
) -> AdvanceResult:
    if now < tournament.registration_end:
        return AdvanceResult(AdvanceAction.WAITING, f"Registration open until {tournament.registration_end.isoformat()}")

    participants = await _load_participants(db, tournament.id)

    if len(participants) < tournament.min_participants:
        if not await claim_transition(db, tournament, TournamentStatus.CANCELLED, completed_at=now):
            return AdvanceResult(AdvanceAction.NO_ACTION, "Tournament already left registration")

        agents = await _load_agents(db, [p.agent_id for p in participants])
        refunded = 0
        for participant in participants:
            agent = agents.get(participant.agent_id)
            if participant.is_npc or agent is None or agent.is_npc or participant.entry_fee_paid <= 0:
                continue
            try:
                await apply_token_change(
                    db, agent, participant.entry_fee_paid, TransactionType.EARN,
                    f"Refund: {tournament.name} cancelled",
                    ReferenceType.TOURNAMENT, tournament.id,
                    refund=True
                )
                await log_activity(
                    db, agent.id, ActivityType.TOURNAMENT,
                    f"{tournament.name} cancelled",
                    f"{tournament.name} did not reach {tournament.min_participants} participants. "
                    f"Your {participant.entry_fee_paid} token entry fee was refunded.",
                    token_change=participant.entry_fee_paid,
                )
                refunded += 1
            except Exception as e:
                logger.error(f"Tournament {tournament.id}: refund failed for agent {participant.agent_id}: {e}")

        await db.commit()
        logger.info(f"Tournament {tournament.id} cancelled: {len(participants)} participants, {refunded} refunds")
        return AdvanceResult(
            AdvanceAction.CANCELLED,
            f"Only {len(participants)} of {tournament.min_participants} participants; {refunded} refunds issued"
        )

    if not await claim_transition(
        db, tournament, TournamentStatus.IN_PROGRESS, current_round=1, started_at=now
    ):
        return AdvanceResult(AdvanceAction.NO_ACTION, "Tournament already started")

    pairing = await generate_round_pairings(db, tournament, 1)
    await db.commit()
    logger.info(f"Tournament {tournament.id} started with {len(participants)} participants")
    return AdvanceResult(
        AdvanceAction.STARTED,
        f"{len(participants)} participants, round 1: {len(pairing.pairs)} matches"
    )


async def _advance_in_progress(
    db: AsyncSession,
    tournament: Tournament,
    now: datetime,
    rng: Optional[random.Random]
) -> AdvanceResult:
    pending = await _load_matches(db, tournament.id, tournament.current_round, MatchStatus.PENDING)
    if pending:
        executed = await execute_current_round(db, tournament, rng)
        await db.commit()
        if executed == 0:
            return AdvanceResult(AdvanceAction.NO_ACTION, f"Round {tournament.current_round} already being played")
        return AdvanceResult(
            AdvanceAction.ROUND_EXECUTED,
            f"Round {tournament.current_round}: {executed} matches played"
        )

    if tournament.current_round < tournament.total_rounds:
        next_round = tournament.current_round + 1
        if not await claim_round(db, tournament, next_round):
            return AdvanceResult(AdvanceAction.NO_ACTION, f"Round {next_round} already generated")
        pairing = await generate_round_pairings(db, tournament, next_round)
        await db.commit()
        return AdvanceResult(
            AdvanceAction.ROUND_GENERATED,
            f"Round {next_round}: {len(pairing.pairs)} matches"
        )

    if not await claim_transition(db, tournament, TournamentStatus.SETTLING):
        return AdvanceResult(AdvanceAction.NO_ACTION, "Tournament already settling")
    await db.commit()
    return AdvanceResult(AdvanceAction.SETTLING, f"All {tournament.total_rounds} rounds complete")


async def _advance_settling(db: AsyncSession, tournament: Tournament, now: datetime) -> AdvanceResult:
    if not await claim_transition(db, tournament, TournamentStatus.COMPLETED, completed_at=now):
        return AdvanceResult(AdvanceAction.NO_ACTION, "Tournament already settled")
    await settle_tournament(db, tournament)
    await db.commit()
    logger.info(f"Tournament {tournament.id} completed: {tournament.narrative}")
    return AdvanceResult(AdvanceAction.COMPLETED, tournament.narrative or "")


async def advance_tournament(
    db: AsyncSession,
    tournament_id: int,
    now: Optional[datetime] = None,
    rng: Optional[random.Random] = None
) -> AdvanceResult:
    """
    Drive one step of a tournament's lifecycle.

    Safe to call repeatedly: a step whose precondition no longer holds
    returns a non-progressing result instead of applying twice.
    """
    now = now or datetime.utcnow()
    tournament = await _load_tournament(db, tournament_id)
    if tournament is None:
        return AdvanceResult(AdvanceAction.ERROR, f"Tournament {tournament_id} not found")

    status = TournamentStatus(tournament.status)
    if status == TournamentStatus.REGISTERING:
        return await _advance_registering(db, tournament, now)
    if status == TournamentStatus.IN_PROGRESS:
        return await _advance_in_progress(db, tournament, now, rng)
    if status == TournamentStatus.SETTLING:
        return await _advance_settling(db, tournament, now)
    return AdvanceResult(AdvanceAction.NO_ACTION, f"Tournament is {status.value}")


# =============================================================================
# Scheduler entry point
# =============================================================================

async def run_tournament_tick(db: AsyncSession, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Advance the active tournament, or open a new one when due."""
    now = now or datetime.utcnow()
    active = await get_active_tournament(db)
    if active is not None:
        result = await advance_tournament(db, active.id, now)
        return {"tournament_id": active.id, **result.to_dict()}

    if feature_flags.FEATURE_TOURNAMENT_AUTO_CREATE and await should_create_tournament(db, now):
        tournament = await create_auto_tournament(db, now)
        if tournament is not None:
            return {
                "tournament_id": tournament.id,
                "action": "created",
                "detail": tournament.name,
                "progressed": True,
            }

    return {"tournament_id": None, **AdvanceResult(AdvanceAction.NO_ACTION, "No tournament due").to_dict()}


# =============================================================================
# Read models
# =============================================================================

async def get_tournament_detail(db: AsyncSession, tournament_id: int) -> Optional[Dict[str, Any]]:
    tournament = await _load_tournament(db, tournament_id)
    if tournament is None:
        return None

    participants = await _load_participants(db, tournament.id)
    matches = await _load_matches(db, tournament.id)
    agents = await _load_agents(db, [p.agent_id for p in participants])

    def nickname(agent_id: int) -> Optional[str]:
        agent = agents.get(agent_id)
        return agent.nickname if agent else None

    standings = sorted(
        participants,
        key=lambda p: (p.placement is None, p.placement or 0, -p.total_score, p.id)
    )

    rounds: Dict[int, List[Dict[str, Any]]] = {}
    for match in matches:
        data = match.to_dict()
        data["agent1_nickname"] = nickname(match.agent1_id)
        data["agent2_nickname"] = nickname(match.agent2_id)
        rounds.setdefault(match.round_num, []).append(data)

    return {
        **tournament.to_dict(),
        "participants": [
            {**p.to_dict(), "nickname": nickname(p.agent_id)} for p in standings
        ],
        "rounds": [
            {"round": round_num, "matches": rounds[round_num]} for round_num in sorted(rounds)
        ],
    }


async def list_tournament_history(
    db: AsyncSession,
    limit: int = 10,
    offset: int = 0
) -> Tuple[List[Dict[str, Any]], int]:
    """
    Finished tournaments, most recently finished first.

    Returns:
        (page of tournaments with champion and counts, total finished)
    """
    finished = Tournament.status.in_([TournamentStatus.COMPLETED, TournamentStatus.CANCELLED])
    total = (await db.execute(select(func.count(Tournament.id)).where(finished))).scalar_one()

    result = await db.execute(
        select(Tournament)
        .where(finished)
        .order_by(Tournament.completed_at.desc(), Tournament.id.desc())
        .offset(offset)
        .limit(limit)
    )
    tournaments = list(result.scalars().all())
    if not tournaments:
        return [], total

    ids = [t.id for t in tournaments]
    participant_counts = dict((await db.execute(
        select(TournamentParticipant.tournament_id, func.count(TournamentParticipant.id))
        .where(TournamentParticipant.tournament_id.in_(ids))
        .group_by(TournamentParticipant.tournament_id)
    )).all())
    match_counts = dict((await db.execute(
        select(TournamentMatch.tournament_id, func.count(TournamentMatch.id))
        .where(TournamentMatch.tournament_id.in_(ids))
        .group_by(TournamentMatch.tournament_id)
    )).all())
    champions = {
        p.tournament_id: p for p in (await db.execute(
            select(TournamentParticipant).where(
                TournamentParticipant.tournament_id.in_(ids),
                TournamentParticipant.placement == 1,
            )
        )).scalars().all()
    }
    agents = await _load_agents(db, [p.agent_id for p in champions.values()])

    page = []
    for tournament in tournaments:
        champion = champions.get(tournament.id)
        champion_data = None
        if champion is not None:
            agent = agents.get(champion.agent_id)
            champion_data = {
                "agent_id": champion.agent_id,
                "nickname": agent.nickname if agent else None,
                "team_name": agent.team_name if agent else None,
                "total_score": champion.total_score,
                "tokens_won": champion.tokens_won,
            }
        page.append({
            **tournament.to_dict(),
            "champion": champion_data,
            "participant_count": participant_counts.get(tournament.id, 0),
            "match_count": match_counts.get(tournament.id, 0),
        })
    return page, total
