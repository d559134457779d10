"""Tests for the conditional writes and constraints in the repositories."""

from __future__ import annotations

import pytest
from sqlalchemy.exc import IntegrityError

from barter_exchange.domain.enums import TradeStatus
from barter_exchange.infrastructure.database.engine import session_scope
from barter_exchange.infrastructure.database.orm_models import TradeTransaction
from barter_exchange.infrastructure.database.repositories import (
    ConfigRepository,
    TradeRepository,
    TransactionRepository,
)


def _row(trade_id, user_id, status: str = "pending") -> TradeTransaction:
    return TradeTransaction(
        trade_id=trade_id,
        user_id=user_id,
        tx_type="commitment_fee",
        amount_mojos=2000,
        status=status,
    )


class TestActiveTransactionIndex:
    @pytest.mark.asyncio
    async def test_second_active_row_violates_index(
        self, session_factory, matched_trade_id, proposer
    ) -> None:
        async with session_scope(session_factory) as session:
            await TransactionRepository(session).create(_row(matched_trade_id, proposer.user_id))

        with pytest.raises(IntegrityError):
            async with session_scope(session_factory) as session:
                await TransactionRepository(session).create(
                    _row(matched_trade_id, proposer.user_id, status="mempool")
                )

    @pytest.mark.asyncio
    async def test_terminal_rows_do_not_count(
        self, session_factory, matched_trade_id, proposer
    ) -> None:
        async with session_scope(session_factory) as session:
            repo = TransactionRepository(session)
            await repo.create(_row(matched_trade_id, proposer.user_id, status="failed"))
            await repo.create(_row(matched_trade_id, proposer.user_id, status="failed"))
            await repo.create(_row(matched_trade_id, proposer.user_id))

        async with session_scope(session_factory) as session:
            rows = await TransactionRepository(session).list_for_trade(matched_trade_id)
        assert len(rows) == 3


class TestTradeTransitions:
    @pytest.mark.asyncio
    async def test_transition_checks_source_status(
        self, session_factory, proposal_id, proposer
    ) -> None:
        async with session_scope(session_factory) as session:
            repo = TradeRepository(session)
            # commit is only legal from matched/committed
            assert not await repo.transition(
                proposal_id, "commit", participant_id=proposer.user_id
            )
            assert await repo.transition(
                proposal_id, "cancel", proposer_id=proposer.user_id
            )

        async with session_scope(session_factory) as session:
            trade = await TradeRepository(session).get_by_id(proposal_id)
        assert trade.status == "cancelled"

    @pytest.mark.asyncio
    async def test_count_by_status(self, session_factory, matched_trade_id) -> None:
        async with session_scope(session_factory) as session:
            repo = TradeRepository(session)
            assert await repo.count() == 1
            assert await repo.count([TradeStatus.MATCHED.value]) == 1
            assert await repo.count([TradeStatus.PROPOSAL.value]) == 0


class TestConfigRepository:
    @pytest.mark.asyncio
    async def test_upsert_overwrites(self, session_factory) -> None:
        async with session_scope(session_factory) as session:
            await ConfigRepository(session).upsert("answer", "41")
        async with session_scope(session_factory) as session:
            await ConfigRepository(session).upsert("answer", "42")
        async with session_scope(session_factory) as session:
            repo = ConfigRepository(session)
            assert await repo.get("answer") == "42"
            assert await repo.get("missing") is None
