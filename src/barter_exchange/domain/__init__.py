"""Domain layer: pure business logic with zero framework dependencies."""

from barter_exchange.domain.chain_protocol import (
    BlockchainState,
    ChainObserver,
    TransactionRecord,
)
from barter_exchange.domain.enums import (
    CommitStatus,
    TradeRole,
    TradeStatus,
    TradeType,
    TxStatus,
    TxType,
    WishlistType,
)
from barter_exchange.domain.exceptions import (
    ExchangeError,
    InvalidStateError,
    NotFoundError,
)
from barter_exchange.domain.principal import Principal
from barter_exchange.domain.state_machine import (
    TradeStateMachine,
    TransactionStateMachine,
    source_statuses,
    validate_transition,
)

__all__ = [
    "BlockchainState",
    "ChainObserver",
    "TransactionRecord",
    "CommitStatus",
    "TradeRole",
    "TradeStatus",
    "TradeType",
    "TxStatus",
    "TxType",
    "WishlistType",
    "ExchangeError",
    "InvalidStateError",
    "NotFoundError",
    "Principal",
    "TradeStateMachine",
    "TransactionStateMachine",
    "source_statuses",
    "validate_transition",
]
