"""
Economy ORM models: token ledger, activity log and reflections.

TokenTransaction and ActivityLog are append-only. No edits, no deletions.
"""
from enum import Enum as PyEnum

from sqlalchemy import Column, Integer, String, Text, ForeignKey, Enum, Index, event

from courtside.orm.base import BaseModel, iso


class TransactionType(str, PyEnum):
    EARN = "earn"
    SPEND = "spend"
    REWARD = "reward"
    TRANSFER_IN = "transfer_in"
    TRANSFER_OUT = "transfer_out"
    STAKE = "stake"


class ReferenceType(str, PyEnum):
    GAME = "game"
    SEASON = "season"
    TOURNAMENT = "tournament"
    AGENT = "agent"


class ActivityType(str, PyEnum):
    GAME = "game"
    SALARY = "salary"
    TOURNAMENT = "tournament"
    EVENT = "event"
    REFLECTION = "reflection"
    SYSTEM = "system"


class TokenTransaction(BaseModel):
    """
    Immutable ledger entry.

    amount is signed; balance_after is the agent's balance once this
    entry was applied.
    """
    __tablename__ = "token_transactions"

    agent_id = Column(Integer, ForeignKey("agents.id"), nullable=False)
    type = Column(Enum(TransactionType, create_constraint=True), nullable=False)
    amount = Column(Integer, nullable=False)
    balance_after = Column(Integer, nullable=False)
    description = Column(String(255), nullable=False)
    reference_type = Column(Enum(ReferenceType, create_constraint=True), nullable=True)
    reference_id = Column(Integer, nullable=True)

    __table_args__ = (
        Index("idx_transaction_agent", "agent_id", "id"),
        Index("idx_transaction_reference", "reference_type", "reference_id"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "agent_id": self.agent_id,
            "type": self.type.value if self.type else None,
            "amount": self.amount,
            "balance_after": self.balance_after,
            "description": self.description,
            "reference_type": self.reference_type.value if self.reference_type else None,
            "reference_id": self.reference_id,
            "created_at": iso(self.created_at),
        }


class ActivityLog(BaseModel):
    """Human-readable career feed entry."""
    __tablename__ = "activity_logs"

    agent_id = Column(Integer, ForeignKey("agents.id"), nullable=False)
    type = Column(Enum(ActivityType, create_constraint=True), nullable=False)
    title = Column(String(200), nullable=False)
    content = Column(Text, nullable=False)
    token_change = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        Index("idx_activity_agent", "agent_id", "id"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "agent_id": self.agent_id,
            "type": self.type.value if self.type else None,
            "title": self.title,
            "content": self.content,
            "token_change": self.token_change,
            "created_at": iso(self.created_at),
        }


class Reflection(BaseModel):
    """A training reflection submitted by a player and its applied boosts."""
    __tablename__ = "reflections"

    agent_id = Column(Integer, ForeignKey("agents.id"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    focus_attribute = Column(String(30), nullable=True)
    primary_attribute = Column(String(30), nullable=False)
    primary_amount = Column(Integer, nullable=False)
    secondary_attribute = Column(String(30), nullable=True)
    secondary_amount = Column(Integer, nullable=False, default=0)
    cognitive_boost = Column(Integer, nullable=False, default=0)
    summary = Column(Text, nullable=True)
    advice = Column(Text, nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "agent_id": self.agent_id,
            "content": self.content,
            "focus_attribute": self.focus_attribute,
            "primary_attribute": self.primary_attribute,
            "primary_amount": self.primary_amount,
            "secondary_attribute": self.secondary_attribute,
            "secondary_amount": self.secondary_amount,
            "cognitive_boost": self.cognitive_boost,
            "summary": self.summary,
            "advice": self.advice,
            "created_at": iso(self.created_at),
        }


# =============================================================================
# Append-only guards
# =============================================================================

class AppendOnlyViolation(Exception):
    """Raised when an append-only record is updated or deleted."""
    pass


@event.listens_for(TokenTransaction, 'before_update')
def prevent_transaction_update(mapper, connection, target):
    raise AppendOnlyViolation("TokenTransaction is append-only. Updates are prohibited.")


@event.listens_for(TokenTransaction, 'before_delete')
def prevent_transaction_delete(mapper, connection, target):
    raise AppendOnlyViolation("TokenTransaction is append-only. Deletions are prohibited.")


@event.listens_for(ActivityLog, 'before_delete')
def prevent_activity_delete(mapper, connection, target):
    raise AppendOnlyViolation("ActivityLog is append-only. Deletions are prohibited.")
