"""
Tests for the token ledger: conservation, sign rules, NPC refusal and
append-only entries.
"""
import pytest

from courtside.orm.economy import AppendOnlyViolation, ReferenceType, TransactionType
from courtside.services.token_ledger_service import (
    InsufficientBalanceError, InvalidAmountError, NPCLedgerError,
    apply_token_change, count_transactions, get_transactions,
    transfer_tokens, verify_agent_ledger
)


@pytest.mark.asyncio
class TestApplyTokenChange:

    async def test_balance_and_snapshot(self, db, agent_factory):
        agent = await agent_factory("Ace", token_balance=1000)

        tx = await apply_token_change(db, agent, 15, TransactionType.REWARD, "Game win")
        await db.commit()

        assert agent.token_balance == 1015
        assert tx.balance_after == 1015
        assert agent.total_earned == 15
        assert agent.total_spent == 0

    async def test_conservation_over_mixed_entries(self, db, agent_factory):
        agent = await agent_factory("Ace", token_balance=1000)
        for amount, tx_type in ((-50, TransactionType.SPEND), (12, TransactionType.REWARD),
                                (0, TransactionType.EARN), (-3, TransactionType.SPEND),
                                (120, TransactionType.EARN)):
            await apply_token_change(db, agent, amount, tx_type, "entry")
        await db.commit()

        audit = await verify_agent_ledger(db, agent)
        assert audit["is_consistent"]
        assert audit["expected_balance"] == 1079
        assert audit["total_entries"] == 5
        assert audit["snapshot_mismatches"] == []
        assert agent.total_earned == 132
        assert agent.total_spent == 53

    async def test_zero_amount_still_logged(self, db, agent_factory):
        agent = await agent_factory("Ace")
        await apply_token_change(db, agent, 0, TransactionType.EARN, "Break-even game")
        await db.commit()
        assert await count_transactions(db, agent.id) == 1

    async def test_refund_reduces_total_spent(self, db, agent_factory):
        agent = await agent_factory("Ace", token_balance=500)
        await apply_token_change(db, agent, -100, TransactionType.SPEND, "Entry fee",
                                 ReferenceType.TOURNAMENT, 1)
        await apply_token_change(db, agent, 100, TransactionType.EARN, "Refund",
                                 ReferenceType.TOURNAMENT, 1, refund=True)
        await db.commit()

        assert agent.token_balance == 500
        assert agent.total_spent == 0
        assert agent.total_earned == 0
        assert (await verify_agent_ledger(db, agent))["is_consistent"]

    async def test_negative_refund_rejected(self, db, agent_factory):
        agent = await agent_factory("Ace")
        with pytest.raises(InvalidAmountError):
            await apply_token_change(db, agent, -5, TransactionType.EARN, "bad", refund=True)

    async def test_npc_refused(self, db, agent_factory):
        npc = await agent_factory("Bot", is_npc=True)
        with pytest.raises(NPCLedgerError):
            await apply_token_change(db, npc, 10, TransactionType.EARN, "no stake")
        assert npc.token_balance == 500
        assert await count_transactions(db, npc.id) == 0

    async def test_history_newest_first(self, db, agent_factory):
        agent = await agent_factory("Ace")
        for amount in (1, 2, 3):
            await apply_token_change(db, agent, amount, TransactionType.EARN, f"+{amount}")
        await db.commit()

        history = await get_transactions(db, agent.id, limit=2)
        assert [tx.amount for tx in history] == [3, 2]


@pytest.mark.asyncio
class TestTransfers:

    async def test_debit_precedes_credit(self, db, agent_factory):
        sender = await agent_factory("Ace", token_balance=300)
        receiver = await agent_factory("Bolt", token_balance=100)

        entries = await transfer_tokens(db, sender, receiver, 50, "Side bet")
        await db.commit()

        assert entries["debit"].id < entries["credit"].id
        assert entries["debit"].type == TransactionType.TRANSFER_OUT
        assert entries["credit"].type == TransactionType.TRANSFER_IN
        assert sender.token_balance == 250
        assert receiver.token_balance == 150
        assert (await verify_agent_ledger(db, sender))["is_consistent"]
        assert (await verify_agent_ledger(db, receiver))["is_consistent"]

    async def test_insufficient_balance(self, db, agent_factory):
        sender = await agent_factory("Ace", token_balance=10)
        receiver = await agent_factory("Bolt")
        with pytest.raises(InsufficientBalanceError):
            await transfer_tokens(db, sender, receiver, 11, "Too much")
        assert await count_transactions(db, sender.id) == 0

    @pytest.mark.parametrize("amount", [0, -5])
    async def test_non_positive_amount(self, db, agent_factory, amount):
        sender = await agent_factory("Ace")
        receiver = await agent_factory("Bolt")
        with pytest.raises(InvalidAmountError):
            await transfer_tokens(db, sender, receiver, amount, "Nothing")

    async def test_self_transfer_rejected(self, db, agent_factory):
        agent = await agent_factory("Ace")
        with pytest.raises(InvalidAmountError):
            await transfer_tokens(db, agent, agent, 5, "Loop")


@pytest.mark.asyncio
class TestAppendOnly:

    async def test_update_is_refused(self, db, agent_factory):
        agent = await agent_factory("Ace")
        tx = await apply_token_change(db, agent, 5, TransactionType.EARN, "entry")
        await db.commit()

        tx.amount = 500
        with pytest.raises(AppendOnlyViolation):
            await db.flush()
        await db.rollback()

    async def test_delete_is_refused(self, db, agent_factory):
        agent = await agent_factory("Ace")
        tx = await apply_token_change(db, agent, 5, TransactionType.EARN, "entry")
        await db.commit()

        await db.delete(tx)
        with pytest.raises(AppendOnlyViolation):
            await db.flush()
        await db.rollback()

    async def test_tampered_balance_detected(self, db, agent_factory):
        agent = await agent_factory("Ace", token_balance=1000)
        await apply_token_change(db, agent, 20, TransactionType.EARN, "entry")
        await db.commit()

        agent.token_balance = 5000
        audit = await verify_agent_ledger(db, agent)
        assert not audit["is_consistent"]
        assert audit["expected_balance"] == 1020
