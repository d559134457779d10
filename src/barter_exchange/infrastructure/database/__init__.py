"""Database infrastructure: engine, ORM models, and repositories."""

from barter_exchange.infrastructure.database.engine import (
    close_db,
    create_engine_for_url,
    get_session_factory,
    init_db,
    session_scope,
)
from barter_exchange.infrastructure.database.orm_models import (
    Base,
    ExchangeConfig,
    Trade,
    TradeReview,
    TradeTransaction,
    TradeWishlistItem,
    User,
)
from barter_exchange.infrastructure.database.repositories import (
    ConfigRepository,
    ReviewRepository,
    TradeRepository,
    TransactionRepository,
    UserRepository,
)

__all__ = [
    "Base",
    "ExchangeConfig",
    "Trade",
    "TradeReview",
    "TradeTransaction",
    "TradeWishlistItem",
    "User",
    "ConfigRepository",
    "ReviewRepository",
    "TradeRepository",
    "TransactionRepository",
    "UserRepository",
    "create_engine_for_url",
    "get_session_factory",
    "session_scope",
    "init_db",
    "close_db",
]
