"""Pydantic schemas for the commitment ledger and exchange configuration."""

from __future__ import annotations

import uuid  # noqa: TC003 - pydantic resolves annotations at runtime
from datetime import datetime  # noqa: TC003

from pydantic import BaseModel, ConfigDict, Field

MIN_COMMITMENT_MOJOS = 1_000
MAX_COMMITMENT_MOJOS = 10_000_000_000_000

# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------


class CreatePendingParams(BaseModel):
    """Params for ``commitment_create_pending``."""

    trade_id: uuid.UUID
    amount_mojos: int = Field(..., ge=MIN_COMMITMENT_MOJOS, le=MAX_COMMITMENT_MOJOS)
    from_address: str | None = Field(default=None, max_length=128)


class SubmitTxParams(BaseModel):
    """Params for ``commitment_submit_tx``: the id the wallet got back from broadcast."""

    transaction_id: uuid.UUID
    tx_id: str = Field(..., min_length=1, max_length=128)


class SetExchangeWalletParams(BaseModel):
    wallet_address: str
    commitment_fee_usd: float = Field(default=1.0, gt=0)


class RefundTransactionParams(BaseModel):
    transaction_id: uuid.UUID
    reason: str = Field(..., min_length=1, max_length=1000)


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------


class CommitmentDetails(BaseModel):
    """Everything a participant's wallet needs to pay its commitment fee."""

    trade_id: uuid.UUID
    exchange_wallet_address: str
    commitment_fee_usd: float
    user_role: str
    user_commit_status: str
    other_commit_status: str
    memo: str


class PendingCommitment(BaseModel):
    """The ledger row created for a payment the wallet is about to broadcast."""

    transaction_id: uuid.UUID
    trade_id: uuid.UUID
    amount_mojos: int
    to_address: str
    memo: str
    status: str


class TransactionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    trade_id: uuid.UUID
    user_id: uuid.UUID
    tx_type: str
    tx_id: str | None
    coin_id: str | None
    from_address: str | None
    to_address: str | None
    amount_mojos: int
    status: str
    confirmations: int
    error_message: str | None
    created_at: datetime
    mempool_at: datetime | None
    confirmed_at: datetime | None


class ExchangeWalletResponse(BaseModel):
    wallet_address: str | None
    commitment_fee_usd: float
