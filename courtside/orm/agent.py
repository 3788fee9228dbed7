"""
Agent ORM model.

An agent is a competitor in the league, either linked to a human player or
a synthetic NPC used to fill rosters and brackets. Agents are never deleted,
only moved out of the ACTIVE status.
"""
from enum import Enum as PyEnum

from sqlalchemy import (
    Column, Integer, String, Boolean, Text, Enum, Index, CheckConstraint
)

from courtside.orm.base import BaseModel, iso


class AgentStatus(str, PyEnum):
    ACTIVE = "active"
    DORMANT = "dormant"
    INACTIVE = "inactive"


class Position(str, PyEnum):
    PG = "PG"
    SG = "SG"
    SF = "SF"
    PF = "PF"
    C = "C"


# Order matters: it is the order of every position weight vector.
SKILL_ATTRIBUTES = (
    "shooting",
    "defense",
    "speed",
    "stamina",
    "basketball_iq",
    "passing",
    "rebound",
)


class Agent(BaseModel):
    """
    A league competitor.

    Attributes:
        user_id: External account reference (None for NPCs)
        nickname: Display name
        is_npc: Synthetic agent flag; NPCs have no economic stake
        status: ACTIVE agents play games and enter tournaments
        position / team_name: Roster assignment
        shooting..rebound: The seven skill ratings, always in [1, 99]
        luck_value / cognitive_score: Generation inputs in [0, 100]
        token_balance, total_earned, total_spent: Economy state
        initial_balance: Stake the agent started with, for ledger audits
        salary: Base salary carried into the next season
    """
    __tablename__ = "agents"

    user_id = Column(String(100), nullable=True, index=True)
    nickname = Column(String(50), nullable=False)
    bio = Column(Text, nullable=True)
    life_vision = Column(Text, nullable=True)
    is_npc = Column(Boolean, default=False, nullable=False)
    status = Column(Enum(AgentStatus, create_constraint=True), nullable=False, default=AgentStatus.ACTIVE)

    position = Column(Enum(Position, create_constraint=True), nullable=True)
    team_name = Column(String(50), nullable=True)

    shooting = Column(Integer, nullable=False, default=50)
    defense = Column(Integer, nullable=False, default=50)
    speed = Column(Integer, nullable=False, default=50)
    stamina = Column(Integer, nullable=False, default=50)
    basketball_iq = Column(Integer, nullable=False, default=50)
    passing = Column(Integer, nullable=False, default=50)
    rebound = Column(Integer, nullable=False, default=50)

    luck_value = Column(Integer, nullable=False, default=50)
    cognitive_score = Column(Integer, nullable=False, default=50)
    level = Column(Integer, nullable=False, default=1)
    experience = Column(Integer, nullable=False, default=0)

    wins = Column(Integer, nullable=False, default=0)
    losses = Column(Integer, nullable=False, default=0)

    token_balance = Column(Integer, nullable=False, default=0)
    initial_balance = Column(Integer, nullable=False, default=0)
    total_earned = Column(Integer, nullable=False, default=0)
    total_spent = Column(Integer, nullable=False, default=0)
    salary = Column(Integer, nullable=False, default=30)

    __table_args__ = (
        CheckConstraint("shooting BETWEEN 1 AND 99", name="ck_agent_shooting_range"),
        CheckConstraint("defense BETWEEN 1 AND 99", name="ck_agent_defense_range"),
        CheckConstraint("speed BETWEEN 1 AND 99", name="ck_agent_speed_range"),
        CheckConstraint("stamina BETWEEN 1 AND 99", name="ck_agent_stamina_range"),
        CheckConstraint("basketball_iq BETWEEN 1 AND 99", name="ck_agent_iq_range"),
        CheckConstraint("passing BETWEEN 1 AND 99", name="ck_agent_passing_range"),
        CheckConstraint("rebound BETWEEN 1 AND 99", name="ck_agent_rebound_range"),
        Index("idx_agent_status_npc", "status", "is_npc"),
        Index("idx_agent_team", "team_name"),
    )

    def attributes(self) -> dict:
        """The seven skill ratings keyed by attribute name."""
        return {name: getattr(self, name) for name in SKILL_ATTRIBUTES}

    def set_attributes(self, values: dict) -> None:
        for name in SKILL_ATTRIBUTES:
            if name in values:
                setattr(self, name, values[name])

    @property
    def win_rate(self) -> float:
        games = (self.wins or 0) + (self.losses or 0)
        return (self.wins or 0) / games if games else 0.0

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "nickname": self.nickname,
            "bio": self.bio,
            "is_npc": self.is_npc,
            "status": self.status.value if self.status else None,
            "position": self.position.value if self.position else None,
            "team_name": self.team_name,
            "attributes": self.attributes(),
            "luck_value": self.luck_value,
            "cognitive_score": self.cognitive_score,
            "level": self.level,
            "experience": self.experience,
            "wins": self.wins,
            "losses": self.losses,
            "token_balance": self.token_balance,
            "total_earned": self.total_earned,
            "total_spent": self.total_spent,
            "salary": self.salary,
            "created_at": iso(self.created_at),
        }
