"""
Token Ledger Service

Every balance mutation goes through this module and is paired with an
immutable TokenTransaction carrying the signed amount and the resulting
balance snapshot.

Rules:
- Transactions are append-only (enforced by ORM event guards)
- initial_balance + sum(amounts) == token_balance for every agent
- NPC agents have no economic stake and are refused
- Transfers debit the sender before crediting the receiver
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from courtside.orm.agent import Agent
from courtside.orm.economy import TokenTransaction, TransactionType, ReferenceType

logger = logging.getLogger(__name__)


# =============================================================================
# Custom Exceptions
# =============================================================================

class LedgerError(Exception):
    """Base exception for ledger errors."""
    pass


class NPCLedgerError(LedgerError):
    """Raised when a ledger operation targets an NPC agent."""
    pass


class InvalidAmountError(LedgerError):
    """Raised when an amount has the wrong sign for the operation."""
    pass


class InsufficientBalanceError(LedgerError):
    """Raised when a transfer would overdraw the sender."""
    pass


# =============================================================================
# Ledger Operations
# =============================================================================

async def apply_token_change(
    db: AsyncSession,
    agent: Agent,
    amount: int,
    tx_type: TransactionType,
    description: str,
    reference_type: Optional[ReferenceType] = None,
    reference_id: Optional[int] = None,
    refund: bool = False
) -> TokenTransaction:
    """
    Apply a signed change to an agent's balance and append the ledger entry.

    Positive amounts count toward total_earned and negative ones toward
    total_spent. A refund is a positive amount that reverses an earlier
    spend, so it reduces total_spent instead of growing total_earned.

    The caller owns the transaction; this only flushes.
    """
    if agent.is_npc:
        raise NPCLedgerError(f"Agent {agent.id} is an NPC and has no token ledger")
    if refund and amount < 0:
        raise InvalidAmountError("Refund amount must not be negative")

    agent.token_balance = (agent.token_balance or 0) + amount
    if refund:
        agent.total_spent = (agent.total_spent or 0) - amount
    elif amount > 0:
        agent.total_earned = (agent.total_earned or 0) + amount
    elif amount < 0:
        agent.total_spent = (agent.total_spent or 0) - amount

    tx = TokenTransaction(
        agent_id=agent.id,
        type=tx_type,
        amount=amount,
        balance_after=agent.token_balance,
        description=description[:255],
        reference_type=reference_type,
        reference_id=reference_id,
    )
    db.add(tx)
    await db.flush()

    logger.debug(f"Ledger: agent={agent.id} {tx_type.value} {amount:+d} -> {agent.token_balance}")
    return tx


async def transfer_tokens(
    db: AsyncSession,
    sender: Agent,
    receiver: Agent,
    amount: int,
    description: str,
    reference_type: Optional[ReferenceType] = None,
    reference_id: Optional[int] = None
) -> Dict[str, TokenTransaction]:
    """Move tokens between two agents, debiting before crediting."""
    if amount <= 0:
        raise InvalidAmountError("Transfer amount must be positive")
    if sender.id == receiver.id:
        raise InvalidAmountError("Cannot transfer to the same agent")
    if (sender.token_balance or 0) < amount:
        raise InsufficientBalanceError(
            f"Agent {sender.id} has {sender.token_balance} tokens, needs {amount}"
        )

    debit = await apply_token_change(
        db, sender, -amount, TransactionType.TRANSFER_OUT,
        f"{description} (to {receiver.nickname})",
        reference_type, reference_id
    )
    credit = await apply_token_change(
        db, receiver, amount, TransactionType.TRANSFER_IN,
        f"{description} (from {sender.nickname})",
        reference_type, reference_id
    )
    return {"debit": debit, "credit": credit}


# =============================================================================
# Queries and Audit
# =============================================================================

async def get_transactions(
    db: AsyncSession,
    agent_id: int,
    limit: int = 50
) -> List[TokenTransaction]:
    """Most recent ledger entries for an agent, newest first."""
    result = await db.execute(
        select(TokenTransaction)
        .where(TokenTransaction.agent_id == agent_id)
        .order_by(TokenTransaction.id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def count_transactions(db: AsyncSession, agent_id: int) -> int:
    result = await db.execute(
        select(func.count(TokenTransaction.id)).where(TokenTransaction.agent_id == agent_id)
    )
    return result.scalar_one()


async def verify_agent_ledger(db: AsyncSession, agent: Agent) -> Dict[str, Any]:
    """
    Check the conservation rule for one agent.

    Returns:
        Verification result dict with:
        - is_consistent: initial stake plus all amounts equals the balance
        - expected_balance / actual_balance
        - total_entries
        - snapshot_mismatches: entry ids whose balance_after breaks the running sum
    """
    result = await db.execute(
        select(TokenTransaction)
        .where(TokenTransaction.agent_id == agent.id)
        .order_by(TokenTransaction.id.asc())
    )
    entries = list(result.scalars().all())

    running = agent.initial_balance or 0
    mismatches = []
    for entry in entries:
        running += entry.amount
        if entry.balance_after != running:
            mismatches.append(entry.id)

    is_consistent = running == agent.token_balance and not mismatches
    if not is_consistent:
        logger.warning(
            f"Ledger mismatch for agent {agent.id}: expected {running}, "
            f"actual {agent.token_balance}, bad snapshots {mismatches}"
        )

    return {
        "agent_id": agent.id,
        "is_consistent": is_consistent,
        "expected_balance": running,
        "actual_balance": agent.token_balance,
        "total_entries": len(entries),
        "snapshot_mismatches": mismatches,
    }
