"""Repository classes for database access.

Repositories encapsulate all SQL queries and provide a clean interface
to the service layer. They accept an AsyncSession and never manage
their own transactions (that's the caller's responsibility).

Every mutation that is scoped by ownership or status is a single
conditional UPDATE/DELETE. Callers get back whether a row matched; they
never read a row, check it in Python and write it back.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import and_, case, delete, func, or_, select, update

from barter_exchange.domain.enums import CommitStatus, TradeStatus, TxStatus
from barter_exchange.domain.state_machine import (
    TradeStateMachine,
    TransactionStateMachine,
    non_final_statuses,
    source_statuses,
    validate_transition,
)
from barter_exchange.infrastructure.database.orm_models import (
    ExchangeConfig,
    Trade,
    TradeReview,
    TradeTransaction,
    User,
)

if TYPE_CHECKING:
    import uuid
    from collections.abc import Iterable, Sequence

    from sqlalchemy import ColumnElement
    from sqlalchemy.ext.asyncio import AsyncSession


def _now() -> datetime:
    return datetime.now(UTC)


def _is_participant(user_id: uuid.UUID) -> ColumnElement[bool]:
    return or_(Trade.proposer_id == user_id, Trade.acceptor_id == user_id)


class TradeRepository:
    """Data access for trades."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, trade: Trade) -> Trade:
        """Insert a new trade."""
        self._session.add(trade)
        await self._session.flush()
        return trade

    async def get_by_id(self, trade_id: uuid.UUID) -> Trade | None:
        """Fetch a trade by its UUID regardless of who is asking."""
        result = await self._session.execute(
            select(Trade)
            .where(Trade.id == trade_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_for_participant(
        self,
        trade_id: uuid.UUID,
        user_id: uuid.UUID,
        statuses: Iterable[str] | None = None,
    ) -> Trade | None:
        """Fetch a trade only if ``user_id`` is one of its parties."""
        stmt = select(Trade).where(Trade.id == trade_id, _is_participant(user_id))
        if statuses is not None:
            stmt = stmt.where(Trade.status.in_(list(statuses)))
        result = await self._session.execute(
            stmt.execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_with_status(
        self, trade_id: uuid.UUID, status: TradeStatus
    ) -> Trade | None:
        result = await self._session.execute(
            select(Trade)
            .where(Trade.id == trade_id, Trade.status == status.value)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_by_status(
        self,
        status: TradeStatus | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Trade]:
        """List trades newest first, optionally filtered by status."""
        stmt = select(Trade)
        if status is not None:
            stmt = stmt.where(Trade.status == status.value)
        result = await self._session.execute(
            stmt.order_by(Trade.created_at.desc()).limit(limit).offset(offset)
        )
        return list(result.scalars().all())

    async def list_for_user(self, user_id: uuid.UUID) -> list[Trade]:
        """List every trade the user is a party to, most recently updated first."""
        result = await self._session.execute(
            select(Trade)
            .where(_is_participant(user_id))
            .order_by(Trade.updated_at.desc())
        )
        return list(result.scalars().all())

    async def count(self, statuses: Iterable[str] | None = None) -> int:
        stmt = select(func.count()).select_from(Trade)
        if statuses is not None:
            stmt = stmt.where(Trade.status.in_(list(statuses)))
        return int((await self._session.execute(stmt)).scalar_one())

    # ------------------------------------------------------------------
    # Conditional writes
    # ------------------------------------------------------------------

    async def accept(
        self,
        trade_id: uuid.UUID,
        acceptor_id: uuid.UUID,
        values: dict[str, Any],
    ) -> bool:
        """Set the acceptor and move proposal -> matched, exactly once.

        The predicate repeats every guard (status, unset acceptor, acceptor
        is not the proposer) so a concurrent second accept matches no rows.
        """
        stmt = (
            update(Trade)
            .where(
                Trade.id == trade_id,
                Trade.status.in_(source_statuses(TradeStateMachine, "accept")),
                Trade.acceptor_id.is_(None),
                Trade.proposer_id != acceptor_id,
            )
            .values(
                acceptor_id=acceptor_id,
                status=_target_status("accept"),
                **values,
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def transition(
        self,
        trade_id: uuid.UUID,
        event_name: str,
        *,
        participant_id: uuid.UUID | None = None,
        proposer_id: uuid.UUID | None = None,
        values: dict[str, Any] | None = None,
    ) -> bool:
        """Fire a state machine event as one conditional UPDATE.

        Args:
            trade_id: The trade to move.
            event_name: A TradeStateMachine event; its source states become
                the ``status IN (...)`` predicate.
            participant_id: If given, only a party to the trade matches.
            proposer_id: If given, only the proposer matches.
            values: Extra columns to set alongside the new status.

        Returns:
            True if a row was updated, False if nothing matched.
        """
        stmt = update(Trade).where(
            Trade.id == trade_id,
            Trade.status.in_(source_statuses(TradeStateMachine, event_name)),
        )
        if participant_id is not None:
            stmt = stmt.where(_is_participant(participant_id))
        if proposer_id is not None:
            stmt = stmt.where(Trade.proposer_id == proposer_id)
        stmt = stmt.values(
            status=_target_status(event_name), **(values or {})
        ).execution_options(synchronize_session=False)
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def set_tracking(
        self,
        trade_id: uuid.UUID,
        user_id: uuid.UUID,
        tracking_number: str,
        carrier: str,
    ) -> bool:
        """Record the caller's side of the shipment on a non-final trade."""
        now = _now()
        is_proposer = Trade.proposer_id == user_id
        stmt = (
            update(Trade)
            .where(
                Trade.id == trade_id,
                _is_participant(user_id),
                Trade.status.in_(non_final_statuses(TradeStateMachine)),
            )
            .values(
                proposer_tracking_number=case(
                    (is_proposer, tracking_number), else_=Trade.proposer_tracking_number
                ),
                proposer_tracking_carrier=case(
                    (is_proposer, carrier), else_=Trade.proposer_tracking_carrier
                ),
                proposer_shipped_at=case(
                    (is_proposer, now), else_=Trade.proposer_shipped_at
                ),
                acceptor_tracking_number=case(
                    (is_proposer, Trade.acceptor_tracking_number), else_=tracking_number
                ),
                acceptor_tracking_carrier=case(
                    (is_proposer, Trade.acceptor_tracking_carrier), else_=carrier
                ),
                acceptor_shipped_at=case(
                    (is_proposer, Trade.acceptor_shipped_at), else_=now
                ),
            )
            .execution_options(synchronize_session=False)
        )
        result = await self._session.execute(stmt)
        return result.rowcount == 1

    async def mark_commitment_confirmed(
        self, trade_id: uuid.UUID, user_id: uuid.UUID
    ) -> bool:
        """Mark the payer's side of the trade as committed.

        When both sides are confirmed the trade moves matched -> committed in
        a second conditional statement. Returns True if that promotion happened.
        """
        now = _now()
        is_proposer = Trade.proposer_id == user_id
        is_acceptor = Trade.acceptor_id == user_id
        confirmed = CommitStatus.CONFIRMED.value

        await self._session.execute(
            update(Trade)
            .where(Trade.id == trade_id, or_(is_proposer, is_acceptor))
            .values(
                proposer_commit_status=case(
                    (is_proposer, confirmed), else_=Trade.proposer_commit_status
                ),
                acceptor_commit_status=case(
                    (is_acceptor, confirmed), else_=Trade.acceptor_commit_status
                ),
                proposer_commit_at=case(
                    (and_(is_proposer, Trade.proposer_commit_at.is_(None)), now),
                    else_=Trade.proposer_commit_at,
                ),
                acceptor_commit_at=case(
                    (and_(is_acceptor, Trade.acceptor_commit_at.is_(None)), now),
                    else_=Trade.acceptor_commit_at,
                ),
            )
            .execution_options(synchronize_session=False)
        )

        result = await self._session.execute(
            update(Trade)
            .where(
                Trade.id == trade_id,
                Trade.status == TradeStatus.MATCHED.value,
                Trade.proposer_commit_status == confirmed,
                Trade.acceptor_commit_status == confirmed,
            )
            .values(
                status=TradeStatus.COMMITTED.value,
                committed_at=func.coalesce(Trade.committed_at, now),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def delete(
        self,
        trade_id: uuid.UUID,
        statuses: Sequence[TradeStatus],
        proposer_id: uuid.UUID | None = None,
    ) -> bool:
        """Delete a trade if it is in one of ``statuses`` (and owned, if scoped)."""
        stmt = delete(Trade).where(
            Trade.id == trade_id,
            Trade.status.in_([s.value for s in statuses]),
        )
        if proposer_id is not None:
            stmt = stmt.where(Trade.proposer_id == proposer_id)
        result = await self._session.execute(
            stmt.execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


class TransactionRepository:
    """Data access for the commitment ledger."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, transaction: TradeTransaction) -> TradeTransaction:
        """Insert a new ledger row.

        Raises:
            sqlalchemy.exc.IntegrityError: If an active row already exists for
                the same (trade, user, tx_type).
        """
        self._session.add(transaction)
        await self._session.flush()
        return transaction

    async def get_by_id(self, transaction_id: uuid.UUID) -> TradeTransaction | None:
        result = await self._session.execute(
            select(TradeTransaction)
            .where(TradeTransaction.id == transaction_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_by_tx_id(self, tx_id: str) -> list[TradeTransaction]:
        result = await self._session.execute(
            select(TradeTransaction)
            .where(TradeTransaction.tx_id == tx_id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    async def find_active(
        self,
        trade_id: uuid.UUID,
        user_id: uuid.UUID,
        tx_type: str,
    ) -> TradeTransaction | None:
        """Return the active (pending/mempool) row for a payer, if any."""
        result = await self._session.execute(
            select(TradeTransaction).where(
                TradeTransaction.trade_id == trade_id,
                TradeTransaction.user_id == user_id,
                TradeTransaction.tx_type == tx_type,
                TradeTransaction.status.in_([s.value for s in TxStatus.active()]),
            )
        )
        return result.scalars().first()

    async def list_for_trade(self, trade_id: uuid.UUID) -> list[TradeTransaction]:
        """All ledger rows for a trade, newest first."""
        result = await self._session.execute(
            select(TradeTransaction)
            .where(TradeTransaction.trade_id == trade_id)
            .order_by(TradeTransaction.created_at.desc())
        )
        return list(result.scalars().all())

    async def list_in_mempool(self) -> list[TradeTransaction]:
        """All mempool rows, oldest mempool entry first."""
        result = await self._session.execute(
            select(TradeTransaction)
            .where(TradeTransaction.status == TxStatus.MEMPOOL.value)
            .order_by(TradeTransaction.mempool_at.asc())
        )
        return list(result.scalars().all())

    async def list_stale_pending(self, cutoff: datetime) -> list[str]:
        """External ids of pending rows that were reported but created before ``cutoff``."""
        result = await self._session.execute(
            select(TradeTransaction.tx_id).where(
                TradeTransaction.status == TxStatus.PENDING.value,
                TradeTransaction.tx_id.is_not(None),
                TradeTransaction.created_at < cutoff,
            )
        )
        return [row for row in result.scalars().all() if row]

    # ------------------------------------------------------------------
    # Conditional writes
    # ------------------------------------------------------------------

    async def submit(
        self,
        transaction_id: uuid.UUID,
        user_id: uuid.UUID,
        tx_id: str,
    ) -> bool:
        """Record the broadcast tx id: pending -> mempool, owner only."""
        result = await self._session.execute(
            update(TradeTransaction)
            .where(
                TradeTransaction.id == transaction_id,
                TradeTransaction.user_id == user_id,
                TradeTransaction.status.in_(
                    source_statuses(TransactionStateMachine, "submit")
                ),
            )
            .values(
                tx_id=tx_id,
                status=_target_tx_status("submit"),
                mempool_at=_now(),
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def confirm(
        self,
        tx_id: str,
        coin_id: str | None,
        confirmations: int,
    ) -> list[tuple[uuid.UUID, uuid.UUID, str]]:
        """Move every active row with this external id to confirmed.

        Returns:
            (trade_id, user_id, tx_type) of each row that was confirmed.
        """
        result = await self._session.execute(
            update(TradeTransaction)
            .where(
                TradeTransaction.tx_id == tx_id,
                TradeTransaction.status.in_(
                    source_statuses(TransactionStateMachine, "confirm")
                ),
            )
            .values(
                status=_target_tx_status("confirm"),
                coin_id=coin_id,
                confirmations=confirmations,
                confirmed_at=_now(),
            )
            .returning(
                TradeTransaction.trade_id,
                TradeTransaction.user_id,
                TradeTransaction.tx_type,
            )
            .execution_options(synchronize_session=False)
        )
        return [tuple(row) for row in result.all()]

    async def fail(self, tx_id: str, error_message: str) -> int:
        """Move every active row with this external id to failed. Returns rows hit."""
        result = await self._session.execute(
            update(TradeTransaction)
            .where(
                TradeTransaction.tx_id == tx_id,
                TradeTransaction.status.in_(
                    source_statuses(TransactionStateMachine, "fail")
                ),
            )
            .values(status=_target_tx_status("fail"), error_message=error_message)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount

    async def refund(self, transaction_id: uuid.UUID, reason: str) -> bool:
        result = await self._session.execute(
            update(TradeTransaction)
            .where(
                TradeTransaction.id == transaction_id,
                TradeTransaction.status.in_(
                    source_statuses(TransactionStateMachine, "refund")
                ),
            )
            .values(status=_target_tx_status("refund"), error_message=reason)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1


class ReviewRepository:
    """Data access for trade reviews and the reputation they feed."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, review: TradeReview) -> TradeReview:
        """Insert a review. Reviews are never updated or deleted."""
        self._session.add(review)
        await self._session.flush()
        return review

    async def list_for_reviewee(self, user_id: uuid.UUID) -> list[TradeReview]:
        result = await self._session.execute(
            select(TradeReview)
            .where(TradeReview.reviewee_id == user_id)
            .order_by(TradeReview.created_at.desc())
        )
        return list(result.scalars().all())

    async def recompute_reputation(self, user_id: uuid.UUID) -> None:
        """Recompute a user's average score and reviewed-trade count from all their reviews."""
        average = (
            select(func.coalesce(func.avg(TradeReview.overall_score), 0.0))
            .where(TradeReview.reviewee_id == user_id)
            .scalar_subquery()
        )
        trade_count = (
            select(func.count(func.distinct(TradeReview.trade_id)))
            .where(TradeReview.reviewee_id == user_id)
            .scalar_subquery()
        )
        await self._session.execute(
            update(User)
            .where(User.id == user_id)
            .values(reputation_score=average, total_trades=trade_count)
            .execution_options(synchronize_session=False)
        )


class UserRepository:
    """Read access to the users projection."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, user: User) -> User:
        self._session.add(user)
        await self._session.flush()
        return user

    async def get_by_id(self, user_id: uuid.UUID) -> User | None:
        result = await self._session.execute(
            select(User)
            .where(User.id == user_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_many(self, user_ids: Iterable[uuid.UUID]) -> dict[uuid.UUID, User]:
        ids = list(set(user_ids))
        if not ids:
            return {}
        result = await self._session.execute(select(User).where(User.id.in_(ids)))
        return {user.id: user for user in result.scalars().all()}

    async def count(self) -> int:
        stmt = select(func.count()).select_from(User)
        return int((await self._session.execute(stmt)).scalar_one())


class ConfigRepository:
    """Data access for exchange_config key/value settings."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def get(self, key: str) -> str | None:
        result = await self._session.execute(
            select(ExchangeConfig.value).where(ExchangeConfig.key == key)
        )
        return result.scalar_one_or_none()

    async def upsert(self, key: str, value: str, description: str | None = None) -> None:
        """Insert or overwrite a setting in one statement."""
        dialect = self._session.bind.dialect.name
        if dialect == "postgresql":
            from sqlalchemy.dialects.postgresql import insert
        elif dialect == "sqlite":
            from sqlalchemy.dialects.sqlite import insert
        else:
            await self._session.merge(
                ExchangeConfig(key=key, value=value, description=description)
            )
            await self._session.flush()
            return

        stmt = insert(ExchangeConfig).values(
            key=key, value=value, description=description, updated_at=_now()
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[ExchangeConfig.key],
            set_={"value": stmt.excluded.value, "updated_at": stmt.excluded.updated_at},
        )
        await self._session.execute(stmt)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _target_status(event_name: str) -> str:
    source = source_statuses(TradeStateMachine, event_name)[0]
    return validate_transition(TradeStateMachine, source, event_name)


def _target_tx_status(event_name: str) -> str:
    source = source_statuses(TransactionStateMachine, event_name)[0]
    return validate_transition(TransactionStateMachine, source, event_name)
