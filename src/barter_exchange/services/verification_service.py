"""Verification Service: reconciles the ledger with what the chain reports.

One tick:
    1. Load every MEMPOOL transaction.
    2. Ask the node for the current height once.
    3. For each transaction: still in the mempool -> wait; confirmed deep
       enough -> confirm it; anything else (shallow, unknown, lookup error)
       -> leave it for the next tick.

Every transaction is confirmed in its own database session, so an error on
one never rolls back or aborts the others. The service only observes the
chain; it never builds or broadcasts transactions.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

from barter_exchange.domain.exceptions import (
    ChainObserverError,
    TransactionNotFoundError,
)
from barter_exchange.domain.principal import Principal
from barter_exchange.infrastructure.database.engine import session_scope
from barter_exchange.infrastructure.database.repositories import TransactionRepository
from barter_exchange.logging_config import get_logger
from barter_exchange.services.commitment_service import CommitmentService

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from barter_exchange.domain.chain_protocol import ChainObserver

logger = get_logger(__name__)

DEFAULT_MIN_CONFIRMATIONS = 6
DEFAULT_STALE_PENDING_HOURS = 24


class Outcome(enum.StrEnum):
    CONFIRMED = "confirmed"
    WAITING = "waiting"
    LOOKUP_FAILED = "lookup_failed"


@dataclass
class TickReport:
    """What one verification tick did.

    Attributes:
        checked: Mempool transactions looked at.
        confirmed: Transactions moved to confirmed.
        waiting: Still in the mempool or not deep enough yet.
        errors: Lookup failures and unexpected per-transaction errors.
        skipped: True if the tick bailed out because no height was available.
    """

    checked: int = 0
    confirmed: int = 0
    waiting: int = 0
    errors: int = 0
    skipped: bool = False


class VerificationService:
    """Drives MEMPOOL transactions to CONFIRMED and expires stale PENDING ones."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        observer: ChainObserver,
        min_confirmations: int = DEFAULT_MIN_CONFIRMATIONS,
        stale_pending_hours: int = DEFAULT_STALE_PENDING_HOURS,
    ) -> None:
        self._session_factory = session_factory
        self._observer = observer
        self._min_confirmations = min_confirmations
        self._stale_pending_hours = stale_pending_hours
        self._system = Principal.system()

    @property
    def stale_message(self) -> str:
        return (
            f"Transaction did not appear in mempool within "
            f"{self._stale_pending_hours} hours"
        )

    async def run_tick(self) -> TickReport:
        """Check every MEMPOOL transaction once.

        Raises:
            ChainObserverError: If the node cannot report its state at all.
            sqlalchemy.exc.SQLAlchemyError: If the mempool rows cannot be loaded.
        """
        report = TickReport()

        async with session_scope(self._session_factory) as session:
            rows = await CommitmentService(session).list_pending_verification(self._system)
            tx_ids = list(dict.fromkeys(row.tx_id for row in rows if row.tx_id))

        if not tx_ids:
            return report

        state = await self._observer.get_blockchain_state()
        if state.height is None:
            logger.warning("verification.height_unavailable", pending=len(tx_ids))
            report.skipped = True
            return report

        for tx_id in tx_ids:
            report.checked += 1
            try:
                outcome = await self._verify_one(tx_id, state.height)
            except Exception:
                # Retried next tick
                logger.exception("verification.transaction_error", tx_id=tx_id)
                report.errors += 1
                continue

            if outcome is Outcome.CONFIRMED:
                report.confirmed += 1
            elif outcome is Outcome.WAITING:
                report.waiting += 1
            else:
                report.errors += 1

        logger.info(
            "verification.tick_completed",
            height=state.height,
            checked=report.checked,
            confirmed=report.confirmed,
            waiting=report.waiting,
            errors=report.errors,
        )
        return report

    async def cleanup_stale(self, now: datetime | None = None) -> int:
        """Fail PENDING rows that were reported but never reached the mempool.

        Rows without an external tx id are left alone.

        Returns:
            How many transactions were failed.
        """
        cutoff = (now or datetime.now(UTC)) - timedelta(hours=self._stale_pending_hours)
        failed = 0

        async with session_scope(self._session_factory) as session:
            stale = await TransactionRepository(session).list_stale_pending(cutoff)
            service = CommitmentService(session)
            for tx_id in stale:
                try:
                    await service.fail(self._system, tx_id, self.stale_message)
                except TransactionNotFoundError:
                    # Moved on between the select and the update
                    continue
                failed += 1

        if failed:
            logger.info("verification.stale_cleaned", failed=failed, cutoff=cutoff.isoformat())
        return failed

    async def _verify_one(self, tx_id: str, height: int) -> Outcome:
        if await self._observer.is_tx_in_mempool(tx_id):
            logger.debug("verification.in_mempool", tx_id=tx_id)
            return Outcome.WAITING

        try:
            record = await self._observer.get_transaction(tx_id)
        except ChainObserverError as exc:
            # Never fail a transaction because the wallet could not find it
            logger.warning("verification.lookup_failed", tx_id=tx_id, error=exc.message)
            return Outcome.LOOKUP_FAILED

        if not record.confirmed:
            return Outcome.WAITING

        confirmations = record.confirmations_at(height)
        if confirmations < self._min_confirmations:
            logger.info(
                "verification.awaiting_confirmations",
                tx_id=tx_id,
                confirmations=confirmations,
                required=self._min_confirmations,
            )
            return Outcome.WAITING

        async with session_scope(self._session_factory) as session:
            await CommitmentService(session).confirm(
                self._system, tx_id, coin_id=None, confirmations=confirmations
            )
        logger.info(
            "verification.confirmed",
            tx_id=tx_id,
            confirmed_at_height=record.confirmed_at_height,
            confirmations=confirmations,
        )
        return Outcome.CONFIRMED
