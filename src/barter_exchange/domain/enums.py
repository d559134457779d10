"""Domain enumerations for the Barter Exchange.

Values are the lowercase strings stored in the database and returned over
the RPC surface. Framework-agnostic (no SQLAlchemy, no FastAPI imports).
"""

from __future__ import annotations

import enum


class TradeStatus(enum.StrEnum):
    """Lifecycle states of a trade.

    Transitions are enforced by TradeStateMachine; see domain/state_machine.py.
    """

    PROPOSAL = "proposal"
    MATCHED = "matched"
    COMMITTED = "committed"
    ESCROW = "escrow"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class TradeType(enum.StrEnum):
    """What the acceptor offers in exchange for the proposer's item."""

    ITEM_FOR_ITEM = "item_for_item"
    ITEM_FOR_XCH = "item_for_xch"
    MIXED = "mixed"

    @classmethod
    def from_offer_type(cls, offer_type: str) -> TradeType:
        """Derive the trade type from the acceptor's offer kind.

        Unknown offer kinds fall back to item_for_item.
        """
        if offer_type == "xch":
            return cls.ITEM_FOR_XCH
        if offer_type == "mixed":
            return cls.MIXED
        return cls.ITEM_FOR_ITEM


class WishlistType(enum.StrEnum):
    ITEM = "item"
    XCH = "xch"
    MIXED = "mixed"


class CommitStatus(enum.StrEnum):
    """Per-side commitment status recorded on the trade."""

    PENDING = "pending"
    CONFIRMED = "confirmed"


class TradeRole(enum.StrEnum):
    PROPOSER = "proposer"
    ACCEPTOR = "acceptor"


class TxType(enum.StrEnum):
    """Kinds of on-chain payment tracked by the commitment ledger."""

    COMMITMENT_FEE = "commitment_fee"
    ESCROW_DEPOSIT = "escrow_deposit"
    ESCROW_RELEASE = "escrow_release"
    REFUND = "refund"


class TxStatus(enum.StrEnum):
    """Lifecycle states of a ledger transaction.

    PENDING and MEMPOOL are the active statuses: at most one active row may
    exist per (trade, user, tx_type).
    """

    PENDING = "pending"
    MEMPOOL = "mempool"
    CONFIRMED = "confirmed"
    FAILED = "failed"
    REFUNDED = "refunded"

    @classmethod
    def active(cls) -> tuple[TxStatus, ...]:
        return (cls.PENDING, cls.MEMPOOL)
