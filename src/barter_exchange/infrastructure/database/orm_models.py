"""SQLAlchemy 2.0 ORM models for the Barter Exchange.

Tables:
    1. users                - Projection of the auth subsystem's users (reputation lives here).
    2. trades               - Proposed and negotiated exchanges.
    3. trade_wishlist_items - What a proposer would accept in return.
    4. trade_transactions   - The commitment ledger: one row per attempted on-chain payment.
    5. trade_reviews        - Post-completion ratings, immutable after insert.
    6. exchange_config      - Process-wide key/value settings.

Design decisions:
    - UUIDs as primary keys (no sequential leakage of trade volume).
    - Decimal for USD values, BIGINT mojos for on-chain amounts.
    - CHECK constraints on every status column.
    - A partial UNIQUE index over (trade_id, user_id, tx_type) restricted to
      active statuses, so two concurrent inserts for the same payment cannot
      both succeed regardless of what the application checked beforehand.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from decimal import Decimal  # noqa: TC003 - needed at runtime by SQLAlchemy Mapped[]

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    SmallInteger,
    String,
    Text,
    text,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def _utcnow() -> datetime:
    return datetime.now(UTC)


ACTIVE_TX_PREDICATE = "status IN ('pending', 'mempool')"


# ---------------------------------------------------------------------------
# 1. users
# ---------------------------------------------------------------------------
class User(Base):
    """A registered participant. Registration and credentials live upstream."""

    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    username: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    is_admin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # --- Reputation (recomputed from trade_reviews) ---
    reputation_score: Mapped[float] = mapped_column(
        Float,
        nullable=False,
        default=0.0,
        comment="Average overall_score of all reviews received",
    )
    total_trades: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        comment="Distinct trades this user has been reviewed on",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    def __repr__(self) -> str:
        return f"<User id={self.id} username={self.username} admin={self.is_admin}>"


# ---------------------------------------------------------------------------
# 2. trades
# ---------------------------------------------------------------------------
class Trade(Base):
    """A proposed and negotiated exchange between two users."""

    __tablename__ = "trades"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )

    # --- Parties ---
    proposer_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    acceptor_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=True,
        default=None,
        comment="Set exactly once, on accept",
    )

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="proposal",
        comment="Current lifecycle state (guarded by TradeStateMachine)",
    )
    trade_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="item_for_item",
    )

    # --- Proposer's item ---
    proposer_item_title: Mapped[str] = mapped_column(String(256), nullable=False)
    proposer_item_description: Mapped[str] = mapped_column(Text, nullable=False)
    proposer_item_condition: Mapped[str | None] = mapped_column(String(64), nullable=True)
    proposer_item_value_usd: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    proposer_item_category: Mapped[str | None] = mapped_column(String(64), nullable=True)

    # --- Acceptor's offer ---
    acceptor_item_title: Mapped[str | None] = mapped_column(String(256), nullable=True)
    acceptor_item_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    acceptor_item_condition: Mapped[str | None] = mapped_column(String(64), nullable=True)
    acceptor_item_value_usd: Mapped[Decimal | None] = mapped_column(
        Numeric(12, 2), nullable=True
    )
    acceptor_xch_offer: Mapped[int | None] = mapped_column(
        BigInteger,
        nullable=True,
        comment="XCH offered by the acceptor, in mojos",
    )

    # --- Commitment ---
    proposer_commit_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="pending"
    )
    acceptor_commit_status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="pending"
    )
    proposer_commit_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    acceptor_commit_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    commitment_memo: Mapped[str | None] = mapped_column(String(128), nullable=True)
    committed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # --- Escrow (reserved for the spend path) ---
    escrow_coin_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    escrow_puzzle_hash: Mapped[str | None] = mapped_column(String(128), nullable=True)
    escrow_start_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    escrow_end_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # --- Shipping ---
    proposer_tracking_number: Mapped[str | None] = mapped_column(String(128), nullable=True)
    proposer_tracking_carrier: Mapped[str | None] = mapped_column(String(64), nullable=True)
    proposer_shipped_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    proposer_received_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    acceptor_tracking_number: Mapped[str | None] = mapped_column(String(128), nullable=True)
    acceptor_tracking_carrier: Mapped[str | None] = mapped_column(String(64), nullable=True)
    acceptor_shipped_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    acceptor_received_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # --- Completion ---
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    final_blockchain_hash: Mapped[str | None] = mapped_column(String(128), nullable=True)

    # --- Timestamps ---
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    # --- Relationships ---
    wishlist: Mapped[list[TradeWishlistItem]] = relationship(
        "TradeWishlistItem",
        back_populates="trade",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('proposal', 'matched', 'committed', 'escrow', "
            "'completed', 'cancelled')",
            name="ck_trade_valid_status",
        ),
        CheckConstraint(
            "trade_type IN ('item_for_item', 'item_for_xch', 'mixed')",
            name="ck_trade_valid_type",
        ),
        CheckConstraint(
            "acceptor_id IS NULL OR acceptor_id <> proposer_id",
            name="ck_trade_distinct_parties",
        ),
        CheckConstraint(
            "proposer_item_value_usd >= 0",
            name="ck_trade_non_negative_value",
        ),
        Index("idx_trade_status", "status"),
        Index("idx_trade_proposer", "proposer_id"),
        Index("idx_trade_acceptor", "acceptor_id"),
        Index("idx_trade_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Trade id={self.id} status={self.status} type={self.trade_type}>"


# ---------------------------------------------------------------------------
# 3. trade_wishlist_items
# ---------------------------------------------------------------------------
class TradeWishlistItem(Base):
    """Something the proposer would take in exchange."""

    __tablename__ = "trade_wishlist_items"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    trade_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("trades.id", ondelete="CASCADE"),
        nullable=False,
    )
    wishlist_type: Mapped[str] = mapped_column(String(10), nullable=False)
    item_description: Mapped[str | None] = mapped_column(Text, nullable=True)
    item_min_value_usd: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    xch_amount: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    trade: Mapped[Trade] = relationship("Trade", back_populates="wishlist")

    __table_args__ = (
        CheckConstraint(
            "wishlist_type IN ('item', 'xch', 'mixed')",
            name="ck_wishlist_valid_type",
        ),
        Index("idx_wishlist_trade", "trade_id"),
    )


# ---------------------------------------------------------------------------
# 4. trade_transactions (commitment ledger)
# ---------------------------------------------------------------------------
class TradeTransaction(Base):
    """One attempted on-chain payment tied to a trade and a paying user."""

    __tablename__ = "trade_transactions"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    trade_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("trades.id", ondelete="CASCADE"),
        nullable=False,
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        comment="The paying user",
    )
    tx_type: Mapped[str] = mapped_column(String(30), nullable=False)

    # --- Chain data ---
    tx_id: Mapped[str | None] = mapped_column(
        String(128),
        nullable=True,
        default=None,
        comment="External transaction id, reported after broadcast",
    )
    coin_id: Mapped[str | None] = mapped_column(String(128), nullable=True)
    from_address: Mapped[str | None] = mapped_column(String(128), nullable=True)
    to_address: Mapped[str | None] = mapped_column(String(128), nullable=True)
    amount_mojos: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # --- Status ---
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="pending",
        comment="Current ledger state (guarded by TransactionStateMachine)",
    )
    confirmations: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    # --- Timestamps ---
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    mempool_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    confirmed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'mempool', 'confirmed', 'failed', 'refunded')",
            name="ck_tx_valid_status",
        ),
        CheckConstraint(
            "tx_type IN ('commitment_fee', 'escrow_deposit', 'escrow_release', 'refund')",
            name="ck_tx_valid_type",
        ),
        CheckConstraint("amount_mojos > 0", name="ck_tx_positive_amount"),
        Index(
            "uq_tx_one_active_per_payer",
            "trade_id",
            "user_id",
            "tx_type",
            unique=True,
            postgresql_where=text(ACTIVE_TX_PREDICATE),
            sqlite_where=text(ACTIVE_TX_PREDICATE),
        ),
        Index("idx_tx_trade", "trade_id"),
        Index("idx_tx_user", "user_id"),
        Index("idx_tx_external_id", "tx_id"),
        Index("idx_tx_status", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<TradeTransaction id={self.id} type={self.tx_type} "
            f"status={self.status} tx_id={self.tx_id}>"
        )


# ---------------------------------------------------------------------------
# 5. trade_reviews
# ---------------------------------------------------------------------------
class TradeReview(Base):
    """A rating of one participant by the other after completion. Append-only."""

    __tablename__ = "trade_reviews"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    trade_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("trades.id", ondelete="CASCADE"),
        nullable=False,
    )
    reviewer_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    reviewee_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    timeliness_score: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    packaging_score: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    value_honesty_score: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    state_accuracy_score: Mapped[int] = mapped_column(SmallInteger, nullable=False)
    overall_score: Mapped[float] = mapped_column(Float, nullable=False)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )

    __table_args__ = (
        CheckConstraint(
            "timeliness_score BETWEEN 1 AND 5 AND packaging_score BETWEEN 1 AND 5 "
            "AND value_honesty_score BETWEEN 1 AND 5 AND state_accuracy_score BETWEEN 1 AND 5",
            name="ck_review_score_range",
        ),
        Index("idx_review_reviewee", "reviewee_id"),
        Index("idx_review_trade", "trade_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<TradeReview id={self.id} trade={self.trade_id} "
            f"reviewee={self.reviewee_id} overall={self.overall_score}>"
        )


# ---------------------------------------------------------------------------
# 6. exchange_config
# ---------------------------------------------------------------------------
class ExchangeConfig(Base):
    """Process-wide key/value setting, upserted by admins."""

    __tablename__ = "exchange_config"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow
    )

    def __repr__(self) -> str:
        return f"<ExchangeConfig {self.key}={self.value!r}>"
