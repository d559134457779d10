"""Pydantic RPC schemas."""

from barter_exchange.schemas.commitment import (
    CommitmentDetails,
    CreatePendingParams,
    ExchangeWalletResponse,
    PendingCommitment,
    RefundTransactionParams,
    SetExchangeWalletParams,
    SubmitTxParams,
    TransactionResponse,
)
from barter_exchange.schemas.trade import (
    AddTrackingParams,
    AdminListTradesParams,
    ListProposalsParams,
    PlatformStats,
    ReviewCreateParams,
    ReviewResponse,
    TradeAcceptParams,
    TradeCreateParams,
    TradeIdParams,
    TradeResponse,
    UserPublicInfo,
    UserReviewsParams,
    WishlistItemParams,
    WishlistItemResponse,
)

__all__ = [
    "AddTrackingParams",
    "AdminListTradesParams",
    "CommitmentDetails",
    "CreatePendingParams",
    "ExchangeWalletResponse",
    "ListProposalsParams",
    "PendingCommitment",
    "PlatformStats",
    "RefundTransactionParams",
    "ReviewCreateParams",
    "ReviewResponse",
    "SetExchangeWalletParams",
    "SubmitTxParams",
    "TradeAcceptParams",
    "TradeCreateParams",
    "TradeIdParams",
    "TradeResponse",
    "TransactionResponse",
    "UserPublicInfo",
    "UserReviewsParams",
    "WishlistItemParams",
    "WishlistItemResponse",
]
