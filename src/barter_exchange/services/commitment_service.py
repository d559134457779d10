"""Commitment Service: the ledger of on-chain payments tied to trades.

Each participant pays a small commitment fee to the exchange wallet after
a trade is matched. The flow per payer is:

    create_pending  -> row in PENDING, wallet is told where to pay and with which memo
    submit_tx_id    -> wallet reports the broadcast id, row moves to MEMPOOL
    confirm / fail  -> driven by the verification loop (system principal)

When a commitment fee is confirmed the payer's side of the trade is marked
confirmed, and once both sides are, the trade moves MATCHED -> COMMITTED.
All of that happens in the caller's database transaction.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from sqlalchemy.exc import IntegrityError

from barter_exchange.domain.enums import TradeRole, TradeStatus, TxStatus, TxType
from barter_exchange.domain.exceptions import (
    DuplicateTransactionError,
    ForbiddenError,
    InvalidParamsError,
    InvalidStateError,
    TradeNotFoundError,
    TransactionNotFoundError,
)
from barter_exchange.infrastructure.database.orm_models import TradeTransaction
from barter_exchange.infrastructure.database.repositories import (
    TradeRepository,
    TransactionRepository,
)
from barter_exchange.logging_config import get_logger
from barter_exchange.schemas.commitment import (
    MAX_COMMITMENT_MOJOS,
    MIN_COMMITMENT_MOJOS,
    CommitmentDetails,
    PendingCommitment,
    TransactionResponse,
)
from barter_exchange.services.config_service import ExchangeConfigService

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from barter_exchange.domain.principal import Principal

logger = get_logger(__name__)

MEMO_PREFIX = "DTREX-COMMIT"

_COMMITTABLE_STATUSES = (TradeStatus.MATCHED.value, TradeStatus.COMMITTED.value)


def commitment_memo(trade_id: uuid.UUID, user_id: uuid.UUID) -> str:
    """Deterministic reference string correlating a payment to a trade and payer."""
    return f"{MEMO_PREFIX}-{trade_id}-{user_id}"


class CommitmentService:
    """Creates and advances ledger entries for commitment payments."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._trade_repo = TradeRepository(session)
        self._tx_repo = TransactionRepository(session)
        self._config = ExchangeConfigService(session)

    # ------------------------------------------------------------------
    # Participant operations
    # ------------------------------------------------------------------

    async def get_commitment_details(
        self, principal: Principal, trade_id: uuid.UUID
    ) -> CommitmentDetails:
        """Tell a participant where and how to pay their commitment fee.

        Pure read: calling it repeatedly returns the same details.

        Raises:
            TradeNotFoundError: If the trade does not exist.
            ForbiddenError: If the caller is not a party to the trade.
            InvalidStateError: Unless the trade is matched or committed.
            ConfigurationError: If no exchange wallet is configured.
        """
        trade = await self._trade_repo.get_by_id(trade_id)
        if trade is None:
            raise TradeNotFoundError(str(trade_id))

        if trade.proposer_id == principal.user_id:
            role = TradeRole.PROPOSER
            user_status, other_status = trade.proposer_commit_status, trade.acceptor_commit_status
        elif trade.acceptor_id is not None and trade.acceptor_id == principal.user_id:
            role = TradeRole.ACCEPTOR
            user_status, other_status = trade.acceptor_commit_status, trade.proposer_commit_status
        else:
            raise ForbiddenError("Not a participant in this trade")

        if trade.status not in _COMMITTABLE_STATUSES:
            raise InvalidStateError(
                f"Trade must be matched or committed to pay a commitment fee "
                f"(current status: {trade.status})"
            )

        wallet_address = await self._config.require_wallet_address()
        fee_usd = await self._config.commitment_fee_usd()

        return CommitmentDetails(
            trade_id=trade.id,
            exchange_wallet_address=wallet_address,
            commitment_fee_usd=fee_usd,
            user_role=role.value,
            user_commit_status=user_status,
            other_commit_status=other_status,
            memo=commitment_memo(trade.id, principal.user_id),
        )

    async def create_pending(
        self,
        principal: Principal,
        trade_id: uuid.UUID,
        amount_mojos: int,
        from_address: str | None = None,
        tx_type: TxType = TxType.COMMITMENT_FEE,
    ) -> PendingCommitment:
        """Open a PENDING ledger row for a payment the caller is about to broadcast.

        Raises:
            InvalidParamsError: If the amount is outside the allowed range.
            DuplicateTransactionError: If the caller already has an active row
                of this type for the trade.
        """
        if not MIN_COMMITMENT_MOJOS <= amount_mojos <= MAX_COMMITMENT_MOJOS:
            raise InvalidParamsError(
                f"amount_mojos must be between {MIN_COMMITMENT_MOJOS} "
                f"and {MAX_COMMITMENT_MOJOS}"
            )

        details = await self.get_commitment_details(principal, trade_id)

        existing = await self._tx_repo.find_active(trade_id, principal.user_id, tx_type.value)
        if existing is not None:
            raise DuplicateTransactionError(tx_type.value, existing.status)

        transaction = TradeTransaction(
            trade_id=trade_id,
            user_id=principal.user_id,
            tx_type=tx_type.value,
            from_address=from_address,
            to_address=details.exchange_wallet_address,
            amount_mojos=amount_mojos,
            status=TxStatus.PENDING.value,
        )
        try:
            transaction = await self._tx_repo.create(transaction)
        except IntegrityError as exc:
            # A concurrent request inserted the active row between our check and flush
            raise DuplicateTransactionError(tx_type.value) from exc

        logger.info(
            "ledger.pending_created",
            transaction_id=str(transaction.id),
            trade_id=str(trade_id),
            user_id=str(principal.user_id),
            tx_type=tx_type.value,
            amount_mojos=amount_mojos,
        )
        return PendingCommitment(
            transaction_id=transaction.id,
            trade_id=trade_id,
            amount_mojos=amount_mojos,
            to_address=details.exchange_wallet_address,
            memo=details.memo,
            status=transaction.status,
        )

    async def submit_tx_id(
        self,
        principal: Principal,
        transaction_id: uuid.UUID,
        tx_id: str,
    ) -> None:
        """Record the broadcast id reported by the payer's wallet: PENDING -> MEMPOOL."""
        if not tx_id.strip():
            raise InvalidParamsError("tx_id must not be blank")

        submitted = await self._tx_repo.submit(transaction_id, principal.user_id, tx_id)
        if not submitted:
            raise TransactionNotFoundError(str(transaction_id), "or not pending")
        logger.info(
            "ledger.submitted",
            transaction_id=str(transaction_id),
            tx_id=tx_id,
            user_id=str(principal.user_id),
        )

    async def list_for_trade(
        self, principal: Principal, trade_id: uuid.UUID
    ) -> list[TransactionResponse]:
        """Ledger rows of a trade, newest first. Participants only."""
        trade = await self._trade_repo.get_for_participant(trade_id, principal.user_id)
        if trade is None:
            raise ForbiddenError("Not a participant in this trade")
        rows = await self._tx_repo.list_for_trade(trade_id)
        return [TransactionResponse.model_validate(row) for row in rows]

    # ------------------------------------------------------------------
    # System operations (verification loop)
    # ------------------------------------------------------------------

    async def confirm(
        self,
        principal: Principal,
        tx_id: str,
        coin_id: str | None,
        confirmations: int,
    ) -> None:
        """Move the transaction to CONFIRMED and apply its effect on the trade.

        Raises:
            ForbiddenError: Unless called with the system principal.
            TransactionNotFoundError: If no active row carries ``tx_id``.
        """
        _require_system(principal)

        confirmed = await self._tx_repo.confirm(tx_id, coin_id, confirmations)
        if not confirmed:
            raise TransactionNotFoundError(tx_id, "or already confirmed")

        for trade_id, user_id, tx_type in confirmed:
            logger.info(
                "ledger.confirmed",
                tx_id=tx_id,
                trade_id=str(trade_id),
                user_id=str(user_id),
                confirmations=confirmations,
            )
            if tx_type != TxType.COMMITMENT_FEE.value:
                continue
            promoted = await self._trade_repo.mark_commitment_confirmed(trade_id, user_id)
            if promoted:
                logger.info("trade.committed", trade_id=str(trade_id), by="ledger")

    async def fail(self, principal: Principal, tx_id: str, reason: str) -> None:
        """Move the transaction to FAILED with ``reason`` as its error message."""
        _require_system(principal)

        failed = await self._tx_repo.fail(tx_id, reason)
        if not failed:
            raise TransactionNotFoundError(tx_id, "or no longer active")
        logger.warning("ledger.failed", tx_id=tx_id, reason=reason)

    async def list_pending_verification(self, principal: Principal) -> list[TradeTransaction]:
        """Every MEMPOOL row, oldest mempool entry first."""
        _require_system(principal)
        return await self._tx_repo.list_in_mempool()

    # ------------------------------------------------------------------
    # Admin operations
    # ------------------------------------------------------------------

    async def refund(
        self,
        principal: Principal,
        transaction_id: uuid.UUID,
        reason: str,
    ) -> None:
        """Mark a confirmed payment as refunded. The refund itself is paid out of band."""
        principal.require_admin()

        refunded = await self._tx_repo.refund(transaction_id, reason)
        if not refunded:
            raise TransactionNotFoundError(str(transaction_id), "or not confirmed")
        logger.warning(
            "ledger.refunded",
            transaction_id=str(transaction_id),
            admin=principal.username,
            reason=reason,
        )


def _require_system(principal: Principal) -> None:
    if not principal.is_system:
        raise ForbiddenError("System context required")
