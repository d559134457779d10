"""Pydantic schemas for trades, reviews and admin views.

Request schemas are the ``params`` object of one RPC method each; a
ValidationError while decoding them is reported as invalid params.
Response schemas read straight off the ORM rows (``from_attributes``).
"""

from __future__ import annotations

import uuid  # noqa: TC003 - pydantic resolves annotations at runtime
from datetime import datetime  # noqa: TC003
from decimal import Decimal  # noqa: TC003

from pydantic import BaseModel, ConfigDict, Field

from barter_exchange.domain.enums import TradeStatus, WishlistType
from barter_exchange.domain.reputation import MAX_SCORE, MIN_SCORE

# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------


class WishlistItemParams(BaseModel):
    """Something the proposer would take in return."""

    wishlist_type: WishlistType
    item_description: str | None = Field(default=None, max_length=5000)
    item_min_value_usd: Decimal | None = Field(default=None, ge=0, decimal_places=2)
    xch_amount: int | None = Field(default=None, ge=0, description="Mojos")


class TradeCreateParams(BaseModel):
    """Params for ``trade_create``."""

    item_title: str = Field(..., min_length=1, max_length=256)
    item_description: str = Field(..., min_length=1, max_length=5000)
    item_condition: str | None = Field(default=None, max_length=64)
    item_value_usd: Decimal = Field(..., ge=0, decimal_places=2)
    item_category: str | None = Field(default=None, max_length=64)
    wishlist: list[WishlistItemParams] = Field(default_factory=list)


class TradeAcceptParams(BaseModel):
    """Params for ``trade_accept``: the acceptor's counter-offer."""

    trade_id: uuid.UUID
    offer_type: str = Field(
        default="item",
        description='"item", "xch" or "mixed"; anything else is treated as "item"',
    )
    item_title: str | None = Field(default=None, max_length=256)
    item_description: str | None = Field(default=None, max_length=5000)
    item_condition: str | None = Field(default=None, max_length=64)
    item_value_usd: Decimal | None = Field(default=None, ge=0, decimal_places=2)
    xch_amount: int | None = Field(default=None, ge=0, description="Mojos")


class TradeIdParams(BaseModel):
    """Params for every method that only needs a trade id."""

    trade_id: uuid.UUID


class ListProposalsParams(BaseModel):
    limit: int = Field(default=50, ge=1, le=200)
    offset: int = Field(default=0, ge=0)


class AddTrackingParams(BaseModel):
    trade_id: uuid.UUID
    tracking_number: str = Field(..., min_length=1, max_length=128)
    carrier: str = Field(..., min_length=1, max_length=64)


class ReviewCreateParams(BaseModel):
    """Params for ``trade_review``. Every score is an integer from 1 to 5."""

    trade_id: uuid.UUID
    timeliness_score: int = Field(..., ge=MIN_SCORE, le=MAX_SCORE)
    packaging_score: int = Field(..., ge=MIN_SCORE, le=MAX_SCORE)
    value_honesty_score: int = Field(..., ge=MIN_SCORE, le=MAX_SCORE)
    state_accuracy_score: int = Field(..., ge=MIN_SCORE, le=MAX_SCORE)
    comment: str | None = Field(default=None, max_length=5000)


class UserReviewsParams(BaseModel):
    user_id: uuid.UUID


class AdminListTradesParams(BaseModel):
    status: TradeStatus | None = None
    limit: int = Field(default=50, ge=1, le=200)
    offset: int = Field(default=0, ge=0)


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------


class UserPublicInfo(BaseModel):
    """What anyone may see about a trader."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    username: str
    reputation_score: float
    total_trades: int


class WishlistItemResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    wishlist_type: str
    item_description: str | None
    item_min_value_usd: Decimal | None
    xch_amount: int | None


class TradeResponse(BaseModel):
    """Full trade representation, optionally enriched with the proposer's public info."""

    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    proposer_id: uuid.UUID
    acceptor_id: uuid.UUID | None
    status: str
    trade_type: str

    proposer_item_title: str
    proposer_item_description: str
    proposer_item_condition: str | None
    proposer_item_value_usd: Decimal
    proposer_item_category: str | None

    acceptor_item_title: str | None
    acceptor_item_description: str | None
    acceptor_item_condition: str | None
    acceptor_item_value_usd: Decimal | None
    acceptor_xch_offer: int | None

    proposer_commit_status: str
    acceptor_commit_status: str
    proposer_commit_at: datetime | None
    acceptor_commit_at: datetime | None
    commitment_memo: str | None
    committed_at: datetime | None

    escrow_coin_id: str | None
    escrow_puzzle_hash: str | None
    escrow_start_date: datetime | None
    escrow_end_date: datetime | None

    proposer_tracking_number: str | None
    proposer_tracking_carrier: str | None
    proposer_shipped_at: datetime | None
    proposer_received_at: datetime | None
    acceptor_tracking_number: str | None
    acceptor_tracking_carrier: str | None
    acceptor_shipped_at: datetime | None
    acceptor_received_at: datetime | None

    completed_at: datetime | None
    final_blockchain_hash: str | None
    created_at: datetime
    updated_at: datetime

    wishlist: list[WishlistItemResponse] = Field(default_factory=list)
    proposer: UserPublicInfo | None = None


class ReviewResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    trade_id: uuid.UUID
    reviewer_id: uuid.UUID
    reviewee_id: uuid.UUID
    timeliness_score: int
    packaging_score: int
    value_honesty_score: int
    state_accuracy_score: int
    overall_score: float
    comment: str | None
    created_at: datetime


class PlatformStats(BaseModel):
    """Admin dashboard counters."""

    total_users: int
    total_trades: int
    open_proposals: int
    active_trades: int
    completed_trades: int
    cancelled_trades: int
