"""
courtside/orm/__init__.py
Import every model so the metadata registry is complete.
"""
from courtside.orm.base import Base, BaseModel
from courtside.orm.agent import Agent, AgentStatus, Position, SKILL_ATTRIBUTES
from courtside.orm.season import (
    Season, SeasonStatus, Game, GameStats, SeasonStats, GameInteraction,
    GameEventType, InteractionPhase
)
from courtside.orm.tournament import (
    Tournament, TournamentStatus, TournamentParticipant, TournamentMatch,
    MatchStatus, ACTIVE_TOURNAMENT_STATUSES
)
from courtside.orm.economy import (
    TokenTransaction, TransactionType, ReferenceType, ActivityLog, ActivityType,
    Reflection
)

__all__ = [
    "Base",
    "BaseModel",
    "Agent",
    "AgentStatus",
    "Position",
    "SKILL_ATTRIBUTES",
    "Season",
    "SeasonStatus",
    "Game",
    "GameStats",
    "SeasonStats",
    "GameInteraction",
    "GameEventType",
    "InteractionPhase",
    "Tournament",
    "TournamentStatus",
    "TournamentParticipant",
    "TournamentMatch",
    "MatchStatus",
    "ACTIVE_TOURNAMENT_STATUSES",
    "TokenTransaction",
    "TransactionType",
    "ReferenceType",
    "ActivityLog",
    "ActivityType",
    "Reflection",
]
