"""Application services: use case orchestration."""

from barter_exchange.services.commitment_service import CommitmentService
from barter_exchange.services.config_service import ExchangeConfigService
from barter_exchange.services.review_service import ReviewService
from barter_exchange.services.trade_service import TradeService
from barter_exchange.services.verification_loop import VerificationLoop
from barter_exchange.services.verification_service import TickReport, VerificationService

__all__ = [
    "CommitmentService",
    "ExchangeConfigService",
    "ReviewService",
    "TickReport",
    "TradeService",
    "VerificationLoop",
    "VerificationService",
]
