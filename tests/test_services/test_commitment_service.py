"""Tests for the commitment ledger."""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

import pytest
from sqlalchemy import select

from barter_exchange.domain.exceptions import (
    ConfigurationError,
    DuplicateTransactionError,
    ForbiddenError,
    InvalidParamsError,
    InvalidStateError,
    TradeNotFoundError,
    TransactionNotFoundError,
)
from barter_exchange.domain.principal import Principal
from barter_exchange.infrastructure.database.engine import session_scope
from barter_exchange.infrastructure.database.orm_models import Trade, TradeTransaction
from barter_exchange.infrastructure.database.repositories import TransactionRepository
from barter_exchange.services.commitment_service import CommitmentService, commitment_memo

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

SYSTEM = Principal.system()


async def _pending(
    session_factory: async_sessionmaker[AsyncSession],
    principal: Principal,
    trade_id: uuid.UUID,
    amount: int = 2000,
) -> uuid.UUID:
    async with session_scope(session_factory) as session:
        pending = await CommitmentService(session).create_pending(principal, trade_id, amount)
    return pending.transaction_id


async def _in_mempool(
    session_factory: async_sessionmaker[AsyncSession],
    principal: Principal,
    trade_id: uuid.UUID,
    tx_id: str,
) -> uuid.UUID:
    transaction_id = await _pending(session_factory, principal, trade_id)
    async with session_scope(session_factory) as session:
        await CommitmentService(session).submit_tx_id(principal, transaction_id, tx_id)
    return transaction_id


async def _load(session_factory, model, row_id):
    async with session_scope(session_factory) as session:
        return (await session.execute(select(model).where(model.id == row_id))).scalar_one()


class TestCommitmentDetails:
    @pytest.mark.asyncio
    async def test_details_for_proposer(
        self, session_factory, matched_trade_id, proposer, configured_wallet
    ) -> None:
        async with session_scope(session_factory) as session:
            details = await CommitmentService(session).get_commitment_details(
                proposer, matched_trade_id
            )

        assert details.exchange_wallet_address == configured_wallet
        assert details.commitment_fee_usd == 1.0
        assert details.user_role == "proposer"
        assert details.user_commit_status == "pending"
        assert details.memo == f"DTREX-COMMIT-{matched_trade_id}-{proposer.user_id}"

    @pytest.mark.asyncio
    async def test_details_are_a_pure_read(
        self, session_factory, matched_trade_id, acceptor, configured_wallet
    ) -> None:
        async with session_scope(session_factory) as session:
            service = CommitmentService(session)
            first = await service.get_commitment_details(acceptor, matched_trade_id)
            second = await service.get_commitment_details(acceptor, matched_trade_id)
            rows = await service.list_for_trade(acceptor, matched_trade_id)

        assert first == second
        assert first.user_role == "acceptor"
        assert rows == []

    @pytest.mark.asyncio
    async def test_outsider_forbidden(
        self, session_factory, matched_trade_id, outsider, configured_wallet
    ) -> None:
        async with session_scope(session_factory) as session:
            with pytest.raises(ForbiddenError):
                await CommitmentService(session).get_commitment_details(
                    outsider, matched_trade_id
                )

    @pytest.mark.asyncio
    async def test_unknown_trade(self, session_factory, proposer, configured_wallet) -> None:
        async with session_scope(session_factory) as session:
            with pytest.raises(TradeNotFoundError):
                await CommitmentService(session).get_commitment_details(proposer, uuid.uuid4())

    @pytest.mark.asyncio
    async def test_proposal_is_not_committable(
        self, session_factory, proposal_id, proposer, configured_wallet
    ) -> None:
        async with session_scope(session_factory) as session:
            with pytest.raises(InvalidStateError):
                await CommitmentService(session).get_commitment_details(proposer, proposal_id)

    @pytest.mark.asyncio
    async def test_wallet_must_be_configured(
        self, session_factory, matched_trade_id, proposer
    ) -> None:
        async with session_scope(session_factory) as session:
            with pytest.raises(ConfigurationError):
                await CommitmentService(session).get_commitment_details(
                    proposer, matched_trade_id
                )

    def test_memo_format(self) -> None:
        trade_id = uuid.UUID("11111111-1111-1111-1111-111111111111")
        user_id = uuid.UUID("22222222-2222-2222-2222-222222222222")
        assert commitment_memo(trade_id, user_id) == (
            "DTREX-COMMIT-11111111-1111-1111-1111-111111111111"
            "-22222222-2222-2222-2222-222222222222"
        )


class TestCreatePending:
    @pytest.mark.asyncio
    async def test_creates_pending_row(
        self, session_factory, matched_trade_id, proposer, configured_wallet
    ) -> None:
        async with session_scope(session_factory) as session:
            pending = await CommitmentService(session).create_pending(
                proposer, matched_trade_id, 2000, from_address="xch1payer"
            )

        assert pending.status == "pending"
        assert pending.to_address == configured_wallet
        assert pending.memo == commitment_memo(matched_trade_id, proposer.user_id)

        row = await _load(session_factory, TradeTransaction, pending.transaction_id)
        assert row.tx_type == "commitment_fee"
        assert row.amount_mojos == 2000
        assert row.tx_id is None
        assert row.from_address == "xch1payer"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [0, 999, 10_000_000_000_001])
    async def test_amount_out_of_range(
        self, session_factory, matched_trade_id, proposer, configured_wallet, amount: int
    ) -> None:
        async with session_scope(session_factory) as session:
            with pytest.raises(InvalidParamsError):
                await CommitmentService(session).create_pending(
                    proposer, matched_trade_id, amount
                )

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [1_000, 10_000_000_000_000])
    async def test_amount_bounds_inclusive(
        self, session_factory, matched_trade_id, proposer, configured_wallet, amount: int
    ) -> None:
        transaction_id = await _pending(session_factory, proposer, matched_trade_id, amount)
        row = await _load(session_factory, TradeTransaction, transaction_id)
        assert row.amount_mojos == amount

    @pytest.mark.asyncio
    async def test_second_active_row_rejected(
        self, session_factory, matched_trade_id, proposer, configured_wallet
    ) -> None:
        await _pending(session_factory, proposer, matched_trade_id)
        async with session_scope(session_factory) as session:
            with pytest.raises(DuplicateTransactionError) as exc_info:
                await CommitmentService(session).create_pending(
                    proposer, matched_trade_id, 2000
                )
        assert exc_info.value.status == "pending"

    @pytest.mark.asyncio
    async def test_concurrent_create_keeps_one_active_row(
        self, session_factory, matched_trade_id, proposer, configured_wallet, monkeypatch
    ) -> None:
        """A competing row committed between the check and the flush loses on the index."""
        find_active = TransactionRepository.find_active

        async def find_then_race(repo, trade_id, user_id, tx_type):
            found = await find_active(repo, trade_id, user_id, tx_type)
            async with session_scope(session_factory) as other:
                await TransactionRepository(other).create(
                    TradeTransaction(
                        trade_id=trade_id,
                        user_id=user_id,
                        tx_type=tx_type,
                        amount_mojos=2000,
                        status="pending",
                    )
                )
            return found

        monkeypatch.setattr(TransactionRepository, "find_active", find_then_race)
        async with session_scope(session_factory) as session:
            with pytest.raises(DuplicateTransactionError):
                await CommitmentService(session).create_pending(
                    proposer, matched_trade_id, 2000
                )
        monkeypatch.undo()

        async with session_scope(session_factory) as session:
            rows = await TransactionRepository(session).list_for_trade(matched_trade_id)
        assert [row.status for row in rows] == ["pending"]

    @pytest.mark.asyncio
    async def test_each_side_has_its_own_row(
        self, session_factory, matched_trade_id, proposer, acceptor, configured_wallet
    ) -> None:
        await _pending(session_factory, proposer, matched_trade_id)
        await _pending(session_factory, acceptor, matched_trade_id)

        async with session_scope(session_factory) as session:
            rows = await CommitmentService(session).list_for_trade(proposer, matched_trade_id)
        assert {row.user_id for row in rows} == {proposer.user_id, acceptor.user_id}

    @pytest.mark.asyncio
    async def test_retry_allowed_after_failure(
        self, session_factory, matched_trade_id, proposer, configured_wallet
    ) -> None:
        await _in_mempool(session_factory, proposer, matched_trade_id, "dropped")
        async with session_scope(session_factory) as session:
            await CommitmentService(session).fail(SYSTEM, "dropped", "never confirmed")

        await _pending(session_factory, proposer, matched_trade_id)


class TestSubmit:
    @pytest.mark.asyncio
    async def test_pending_to_mempool(
        self, session_factory, matched_trade_id, proposer, configured_wallet
    ) -> None:
        transaction_id = await _in_mempool(session_factory, proposer, matched_trade_id, "abc")

        row = await _load(session_factory, TradeTransaction, transaction_id)
        assert row.status == "mempool"
        assert row.tx_id == "abc"
        assert row.mempool_at is not None

    @pytest.mark.asyncio
    async def test_only_owner_can_submit(
        self, session_factory, matched_trade_id, proposer, acceptor, configured_wallet
    ) -> None:
        transaction_id = await _pending(session_factory, proposer, matched_trade_id)
        async with session_scope(session_factory) as session:
            with pytest.raises(TransactionNotFoundError):
                await CommitmentService(session).submit_tx_id(acceptor, transaction_id, "abc")

    @pytest.mark.asyncio
    async def test_cannot_submit_twice(
        self, session_factory, matched_trade_id, proposer, configured_wallet
    ) -> None:
        transaction_id = await _in_mempool(session_factory, proposer, matched_trade_id, "abc")
        async with session_scope(session_factory) as session:
            with pytest.raises(TransactionNotFoundError):
                await CommitmentService(session).submit_tx_id(proposer, transaction_id, "def")

    @pytest.mark.asyncio
    async def test_blank_tx_id(
        self, session_factory, matched_trade_id, proposer, configured_wallet
    ) -> None:
        transaction_id = await _pending(session_factory, proposer, matched_trade_id)
        async with session_scope(session_factory) as session:
            with pytest.raises(InvalidParamsError):
                await CommitmentService(session).submit_tx_id(proposer, transaction_id, "  ")


class TestConfirm:
    @pytest.mark.asyncio
    async def test_confirm_marks_side(
        self, session_factory, matched_trade_id, proposer, configured_wallet
    ) -> None:
        transaction_id = await _in_mempool(session_factory, proposer, matched_trade_id, "abc")
        async with session_scope(session_factory) as session:
            await CommitmentService(session).confirm(SYSTEM, "abc", None, 6)

        row = await _load(session_factory, TradeTransaction, transaction_id)
        assert row.status == "confirmed"
        assert row.confirmations == 6
        assert row.confirmed_at is not None
        assert row.coin_id is None

        trade = await _load(session_factory, Trade, matched_trade_id)
        assert trade.proposer_commit_status == "confirmed"
        assert trade.proposer_commit_at is not None
        assert trade.acceptor_commit_status == "pending"
        assert trade.status == "matched"

    @pytest.mark.asyncio
    async def test_both_sides_commit_the_trade(
        self, session_factory, matched_trade_id, proposer, acceptor, configured_wallet
    ) -> None:
        await _in_mempool(session_factory, proposer, matched_trade_id, "p-tx")
        await _in_mempool(session_factory, acceptor, matched_trade_id, "a-tx")

        async with session_scope(session_factory) as session:
            service = CommitmentService(session)
            await service.confirm(SYSTEM, "p-tx", None, 6)
            await service.confirm(SYSTEM, "a-tx", None, 7)

        trade = await _load(session_factory, Trade, matched_trade_id)
        assert trade.status == "committed"
        assert trade.committed_at is not None

    @pytest.mark.asyncio
    async def test_confirm_twice_is_not_found(
        self, session_factory, matched_trade_id, proposer, configured_wallet
    ) -> None:
        await _in_mempool(session_factory, proposer, matched_trade_id, "abc")
        async with session_scope(session_factory) as session:
            await CommitmentService(session).confirm(SYSTEM, "abc", None, 6)
        async with session_scope(session_factory) as session:
            with pytest.raises(TransactionNotFoundError):
                await CommitmentService(session).confirm(SYSTEM, "abc", None, 7)

    @pytest.mark.asyncio
    async def test_system_operations_need_system_principal(
        self, session_factory, matched_trade_id, proposer, admin, configured_wallet
    ) -> None:
        await _in_mempool(session_factory, proposer, matched_trade_id, "abc")
        async with session_scope(session_factory) as session:
            service = CommitmentService(session)
            with pytest.raises(ForbiddenError):
                await service.confirm(admin, "abc", None, 6)
            with pytest.raises(ForbiddenError):
                await service.fail(proposer, "abc", "nope")
            with pytest.raises(ForbiddenError):
                await service.list_pending_verification(admin)

    @pytest.mark.asyncio
    async def test_fail_is_final(
        self, session_factory, matched_trade_id, proposer, configured_wallet
    ) -> None:
        transaction_id = await _in_mempool(session_factory, proposer, matched_trade_id, "abc")
        async with session_scope(session_factory) as session:
            await CommitmentService(session).fail(SYSTEM, "abc", "double spend")

        row = await _load(session_factory, TradeTransaction, transaction_id)
        assert row.status == "failed"
        assert row.error_message == "double spend"

        async with session_scope(session_factory) as session:
            with pytest.raises(TransactionNotFoundError):
                await CommitmentService(session).confirm(SYSTEM, "abc", None, 6)


class TestRefund:
    @pytest.mark.asyncio
    async def test_admin_refunds_confirmed(
        self, session_factory, matched_trade_id, proposer, admin, configured_wallet
    ) -> None:
        transaction_id = await _in_mempool(session_factory, proposer, matched_trade_id, "abc")
        async with session_scope(session_factory) as session:
            await CommitmentService(session).confirm(SYSTEM, "abc", None, 6)
        async with session_scope(session_factory) as session:
            await CommitmentService(session).refund(admin, transaction_id, "trade disputed")

        row = await _load(session_factory, TradeTransaction, transaction_id)
        assert row.status == "refunded"
        assert row.error_message == "trade disputed"

    @pytest.mark.asyncio
    async def test_cannot_refund_unconfirmed(
        self, session_factory, matched_trade_id, proposer, admin, configured_wallet
    ) -> None:
        transaction_id = await _in_mempool(session_factory, proposer, matched_trade_id, "abc")
        async with session_scope(session_factory) as session:
            with pytest.raises(TransactionNotFoundError):
                await CommitmentService(session).refund(admin, transaction_id, "too early")

    @pytest.mark.asyncio
    async def test_refund_is_admin_only(
        self, session_factory, matched_trade_id, proposer, configured_wallet
    ) -> None:
        transaction_id = await _pending(session_factory, proposer, matched_trade_id)
        async with session_scope(session_factory) as session:
            with pytest.raises(ForbiddenError):
                await CommitmentService(session).refund(proposer, transaction_id, "please")
