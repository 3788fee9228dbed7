"""
Tournament ORM models.

Swiss-format tournaments with a forward-only lifecycle:
REGISTERING -> IN_PROGRESS -> SETTLING -> COMPLETED, or REGISTERING -> CANCELLED.
A tournament owns its participants and matches.
"""
from enum import Enum as PyEnum

from sqlalchemy import (
    Column, Integer, String, Text, Boolean, DateTime, ForeignKey, Enum,
    Index, UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import relationship

from courtside.orm.base import BaseModel, iso


class TournamentStatus(str, PyEnum):
    REGISTERING = "registering"
    IN_PROGRESS = "in_progress"
    SETTLING = "settling"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


ACTIVE_TOURNAMENT_STATUSES = (
    TournamentStatus.REGISTERING,
    TournamentStatus.IN_PROGRESS,
    TournamentStatus.SETTLING,
)


class MatchStatus(str, PyEnum):
    PENDING = "pending"
    COMPLETED = "completed"


class Tournament(BaseModel):
    """
    A bounded multi-round competition.

    current_round never exceeds total_rounds.
    """
    __tablename__ = "tournaments"

    name = Column(String(100), nullable=False)
    format = Column(String(20), nullable=False, default="swiss")
    status = Column(
        Enum(TournamentStatus, create_constraint=True),
        nullable=False,
        default=TournamentStatus.REGISTERING
    )
    entry_fee = Column(Integer, nullable=False, default=0)
    prize_pool = Column(Integer, nullable=False, default=0)
    system_subsidy = Column(Integer, nullable=False, default=0)
    total_rounds = Column(Integer, nullable=False, default=3)
    current_round = Column(Integer, nullable=False, default=0)
    min_participants = Column(Integer, nullable=False, default=4)
    max_participants = Column(Integer, nullable=False, default=16)
    registration_end = Column(DateTime, nullable=False)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    narrative = Column(Text, nullable=True)

    participants = relationship(
        "TournamentParticipant",
        back_populates="tournament",
        order_by="TournamentParticipant.id"
    )
    matches = relationship(
        "TournamentMatch",
        back_populates="tournament",
        order_by="TournamentMatch.id"
    )

    __table_args__ = (
        CheckConstraint("current_round <= total_rounds", name="ck_tournament_round_bounded"),
        Index("idx_tournament_status", "status"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "format": self.format,
            "status": self.status.value if self.status else None,
            "entry_fee": self.entry_fee,
            "prize_pool": self.prize_pool,
            "system_subsidy": self.system_subsidy,
            "total_rounds": self.total_rounds,
            "current_round": self.current_round,
            "min_participants": self.min_participants,
            "max_participants": self.max_participants,
            "registration_end": iso(self.registration_end),
            "started_at": iso(self.started_at),
            "completed_at": iso(self.completed_at),
            "narrative": self.narrative,
        }


class TournamentParticipant(BaseModel):
    """One agent's enrollment in one tournament."""
    __tablename__ = "tournament_participants"

    tournament_id = Column(Integer, ForeignKey("tournaments.id"), nullable=False, index=True)
    agent_id = Column(Integer, ForeignKey("agents.id"), nullable=False)
    is_npc = Column(Boolean, nullable=False, default=False)
    entry_fee_paid = Column(Integer, nullable=False, default=0)
    wins = Column(Integer, nullable=False, default=0)
    losses = Column(Integer, nullable=False, default=0)
    draws = Column(Integer, nullable=False, default=0)
    byes = Column(Integer, nullable=False, default=0)
    total_score = Column(Integer, nullable=False, default=0)
    placement = Column(Integer, nullable=True)
    tokens_won = Column(Integer, nullable=False, default=0)

    tournament = relationship("Tournament", back_populates="participants")

    __table_args__ = (
        UniqueConstraint("tournament_id", "agent_id", name="uq_tournament_participant"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "tournament_id": self.tournament_id,
            "agent_id": self.agent_id,
            "is_npc": self.is_npc,
            "wins": self.wins,
            "losses": self.losses,
            "draws": self.draws,
            "byes": self.byes,
            "total_score": self.total_score,
            "placement": self.placement,
            "tokens_won": self.tokens_won,
        }


class TournamentMatch(BaseModel):
    """One paired encounter within one round. Immutable once COMPLETED."""
    __tablename__ = "tournament_matches"

    tournament_id = Column(Integer, ForeignKey("tournaments.id"), nullable=False, index=True)
    round_num = Column(Integer, nullable=False)
    agent1_id = Column(Integer, ForeignKey("agents.id"), nullable=False)
    agent2_id = Column(Integer, ForeignKey("agents.id"), nullable=False)
    winner_id = Column(Integer, ForeignKey("agents.id"), nullable=True)
    agent1_score = Column(Integer, nullable=False, default=0)
    agent2_score = Column(Integer, nullable=False, default=0)
    narrative = Column(Text, nullable=True)
    status = Column(Enum(MatchStatus, create_constraint=True), nullable=False, default=MatchStatus.PENDING)

    tournament = relationship("Tournament", back_populates="matches")

    __table_args__ = (
        UniqueConstraint("tournament_id", "round_num", "agent1_id", name="uq_match_round_agent1"),
        UniqueConstraint("tournament_id", "round_num", "agent2_id", name="uq_match_round_agent2"),
        Index("idx_match_round_status", "tournament_id", "round_num", "status"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "tournament_id": self.tournament_id,
            "round_num": self.round_num,
            "agent1_id": self.agent1_id,
            "agent2_id": self.agent2_id,
            "winner_id": self.winner_id,
            "agent1_score": self.agent1_score,
            "agent2_score": self.agent2_score,
            "narrative": self.narrative,
            "status": self.status.value if self.status else None,
        }
