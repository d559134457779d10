"""Review Service: post-completion ratings and the reputation they feed."""

from __future__ import annotations

from typing import TYPE_CHECKING

from barter_exchange.domain.enums import TradeStatus
from barter_exchange.domain.exceptions import (
    BadRequestError,
    InvalidParamsError,
    TradeNotFoundError,
)
from barter_exchange.domain.reputation import MAX_SCORE, MIN_SCORE, overall_score
from barter_exchange.infrastructure.database.orm_models import TradeReview
from barter_exchange.infrastructure.database.repositories import (
    ReviewRepository,
    TradeRepository,
)
from barter_exchange.logging_config import get_logger
from barter_exchange.schemas.trade import ReviewResponse

if TYPE_CHECKING:
    import uuid

    from sqlalchemy.ext.asyncio import AsyncSession

    from barter_exchange.domain.principal import Principal
    from barter_exchange.schemas.trade import ReviewCreateParams

logger = get_logger(__name__)


class ReviewService:
    """Creates reviews and keeps the reviewee's reputation in step with them."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._trade_repo = TradeRepository(session)
        self._review_repo = ReviewRepository(session)

    async def create(self, principal: Principal, params: ReviewCreateParams) -> uuid.UUID:
        """Review the other party of a completed trade.

        The insert and the reputation recompute share the caller's transaction,
        so a reader never sees one without the other.

        Raises:
            InvalidParamsError: If a score is outside 1..5.
            TradeNotFoundError: Unless the trade is completed and the caller took part.
            BadRequestError: If the trade has no other party to review.
        """
        scores = {
            "timeliness_score": params.timeliness_score,
            "packaging_score": params.packaging_score,
            "value_honesty_score": params.value_honesty_score,
            "state_accuracy_score": params.state_accuracy_score,
        }
        for name, value in scores.items():
            if not MIN_SCORE <= value <= MAX_SCORE:
                raise InvalidParamsError(f"{name} must be between {MIN_SCORE} and {MAX_SCORE}")

        trade = await self._trade_repo.get_for_participant(
            params.trade_id,
            principal.user_id,
            statuses=[TradeStatus.COMPLETED.value],
        )
        if trade is None:
            raise TradeNotFoundError(str(params.trade_id))

        reviewee_id = (
            trade.acceptor_id if trade.proposer_id == principal.user_id else trade.proposer_id
        )
        if reviewee_id is None:
            raise BadRequestError("Trade has no counterparty to review", code="NO_COUNTERPARTY")

        review = TradeReview(
            trade_id=trade.id,
            reviewer_id=principal.user_id,
            reviewee_id=reviewee_id,
            overall_score=overall_score(
                timeliness=params.timeliness_score,
                packaging=params.packaging_score,
                value_honesty=params.value_honesty_score,
                state_accuracy=params.state_accuracy_score,
            ),
            comment=params.comment,
            **scores,
        )
        review = await self._review_repo.create(review)
        await self._review_repo.recompute_reputation(reviewee_id)

        logger.info(
            "review.created",
            review_id=str(review.id),
            trade_id=str(trade.id),
            reviewee_id=str(reviewee_id),
            overall_score=review.overall_score,
        )
        return review.id

    async def list_for_user(self, user_id: uuid.UUID) -> list[ReviewResponse]:
        """Reviews received by ``user_id``, newest first."""
        reviews = await self._review_repo.list_for_reviewee(user_id)
        return [ReviewResponse.model_validate(review) for review in reviews]
