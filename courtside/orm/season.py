"""
Season ORM models.

A season owns its games. Games and their box scores are append-only;
season stats are per-agent running aggregates keyed by (season, agent).
"""
from enum import Enum as PyEnum

from sqlalchemy import (
    Column, Integer, String, Text, Boolean, Float, DateTime, ForeignKey,
    Enum, Index, UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import relationship

from courtside.orm.base import BaseModel, iso


class SeasonStatus(str, PyEnum):
    ACTIVE = "active"
    COMPLETED = "completed"


class GameEventType(str, PyEnum):
    NORMAL = "normal"
    UPSET = "upset"
    BLOWOUT = "blowout"
    BUZZER_BEATER = "buzzer_beater"
    INJURY_MINOR = "injury_minor"


class InteractionPhase(str, PyEnum):
    PRE_GAME = "pre_game"
    IN_GAME = "in_game"
    POST_GAME = "post_game"


class Season(BaseModel):
    """
    One competitive cycle.

    games_played never exceeds total_games; the status flips to COMPLETED
    exactly once, by the invocation that plays the final game.
    """
    __tablename__ = "seasons"

    season_num = Column(Integer, nullable=False, unique=True)
    status = Column(Enum(SeasonStatus, create_constraint=True), nullable=False, default=SeasonStatus.ACTIVE)
    games_played = Column(Integer, nullable=False, default=0)
    total_games = Column(Integer, nullable=False, default=30)
    completed_at = Column(DateTime, nullable=True)

    games = relationship("Game", back_populates="season", order_by="Game.game_num")

    __table_args__ = (
        CheckConstraint("games_played <= total_games", name="ck_season_games_bounded"),
        Index("idx_season_status", "status"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "season_num": self.season_num,
            "status": self.status.value if self.status else None,
            "games_played": self.games_played,
            "total_games": self.total_games,
            "created_at": iso(self.created_at),
            "completed_at": iso(self.completed_at),
        }


class Game(BaseModel):
    """One simulated match between two agents. Immutable once written."""
    __tablename__ = "games"

    season_id = Column(Integer, ForeignKey("seasons.id"), nullable=False, index=True)
    game_num = Column(Integer, nullable=False)
    home_agent_id = Column(Integer, ForeignKey("agents.id"), nullable=False)
    away_agent_id = Column(Integer, ForeignKey("agents.id"), nullable=False)
    home_score = Column(Integer, nullable=False)
    away_score = Column(Integer, nullable=False)
    mvp_agent_id = Column(Integer, ForeignKey("agents.id"), nullable=True)
    event_type = Column(Enum(GameEventType, create_constraint=True), nullable=False, default=GameEventType.NORMAL)
    narrative = Column(Text, nullable=True)
    is_completed = Column(Boolean, nullable=False, default=True)

    season = relationship("Season", back_populates="games")
    stats = relationship("GameStats", back_populates="game", order_by="GameStats.id")

    __table_args__ = (
        UniqueConstraint("season_id", "game_num", name="uq_game_season_num"),
    )

    def to_dict(self, include_stats: bool = False):
        data = {
            "id": self.id,
            "season_id": self.season_id,
            "game_num": self.game_num,
            "home_agent_id": self.home_agent_id,
            "away_agent_id": self.away_agent_id,
            "home_score": self.home_score,
            "away_score": self.away_score,
            "mvp_agent_id": self.mvp_agent_id,
            "event_type": self.event_type.value if self.event_type else None,
            "narrative": self.narrative,
            "played_at": iso(self.created_at),
        }
        if include_stats:
            data["stats"] = [s.to_dict() for s in self.stats]
        return data


class GameStats(BaseModel):
    """Box score of one agent in one game."""
    __tablename__ = "game_stats"

    game_id = Column(Integer, ForeignKey("games.id"), nullable=False, index=True)
    agent_id = Column(Integer, ForeignKey("agents.id"), nullable=False, index=True)
    minutes = Column(Integer, nullable=False, default=0)
    points = Column(Integer, nullable=False, default=0)
    rebounds = Column(Integer, nullable=False, default=0)
    assists = Column(Integer, nullable=False, default=0)
    steals = Column(Integer, nullable=False, default=0)
    blocks = Column(Integer, nullable=False, default=0)
    turnovers = Column(Integer, nullable=False, default=0)
    rating = Column(Integer, nullable=False, default=1)

    game = relationship("Game", back_populates="stats")

    __table_args__ = (
        UniqueConstraint("game_id", "agent_id", name="uq_game_stats_agent"),
    )

    def to_dict(self):
        return {
            "agent_id": self.agent_id,
            "minutes": self.minutes,
            "points": self.points,
            "rebounds": self.rebounds,
            "assists": self.assists,
            "steals": self.steals,
            "blocks": self.blocks,
            "turnovers": self.turnovers,
            "rating": self.rating,
        }


class SeasonStats(BaseModel):
    """Running per-agent aggregates for one season."""
    __tablename__ = "season_stats"

    season_id = Column(Integer, ForeignKey("seasons.id"), nullable=False)
    agent_id = Column(Integer, ForeignKey("agents.id"), nullable=False)
    games_played = Column(Integer, nullable=False, default=0)
    games_won = Column(Integer, nullable=False, default=0)
    total_points = Column(Integer, nullable=False, default=0)
    total_rebounds = Column(Integer, nullable=False, default=0)
    total_assists = Column(Integer, nullable=False, default=0)
    total_steals = Column(Integer, nullable=False, default=0)
    total_blocks = Column(Integer, nullable=False, default=0)
    avg_rating = Column(Float, nullable=False, default=0.0)
    salary_current = Column(Integer, nullable=False, default=0)
    tokens_earned = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("season_id", "agent_id", name="uq_season_stats_agent"),
    )

    @property
    def win_rate(self) -> float:
        return self.games_won / self.games_played if self.games_played else 0.0

    def averages(self) -> dict:
        games = self.games_played or 1
        return {
            "ppg": round(self.total_points / games, 1),
            "rpg": round(self.total_rebounds / games, 1),
            "apg": round(self.total_assists / games, 1),
        }

    def to_dict(self):
        return {
            "season_id": self.season_id,
            "agent_id": self.agent_id,
            "games_played": self.games_played,
            "games_won": self.games_won,
            "total_points": self.total_points,
            "total_rebounds": self.total_rebounds,
            "total_assists": self.total_assists,
            "total_steals": self.total_steals,
            "total_blocks": self.total_blocks,
            "avg_rating": self.avg_rating,
            "salary_current": self.salary_current,
            "tokens_earned": self.tokens_earned,
            **self.averages(),
        }


class GameInteraction(BaseModel):
    """One line of pre/in/post-game dialogue attached to a game."""
    __tablename__ = "game_interactions"

    game_id = Column(Integer, ForeignKey("games.id"), nullable=False, index=True)
    agent_id = Column(Integer, ForeignKey("agents.id"), nullable=False)
    phase = Column(Enum(InteractionPhase, create_constraint=True), nullable=False)
    message = Column(Text, nullable=False)
    source = Column(String(20), nullable=False, default="template")

    def to_dict(self):
        return {
            "game_id": self.game_id,
            "agent_id": self.agent_id,
            "phase": self.phase.value if self.phase else None,
            "message": self.message,
            "source": self.source,
        }
