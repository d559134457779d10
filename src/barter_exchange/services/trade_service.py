"""Trade Service: business logic for the trade lifecycle.

This is the application layer that coordinates between:
    - Domain state machine (which statuses an operation may start from)
    - Repositories (conditional writes scoped by ownership)
    - The principal handed in by the RPC layer

Every write is one conditional statement. When it matches no row the
caller gets NotFound, whether the trade is missing, belongs to someone
else or is in the wrong state.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from sqlalchemy import func

from barter_exchange.domain.enums import TradeStatus, TradeType
from barter_exchange.domain.exceptions import (
    InvalidParamsError,
    SelfAcceptError,
    TradeNotFoundError,
)
from barter_exchange.infrastructure.database.orm_models import Trade, TradeWishlistItem
from barter_exchange.infrastructure.database.repositories import (
    TradeRepository,
    UserRepository,
)
from barter_exchange.logging_config import get_logger
from barter_exchange.schemas.trade import PlatformStats, TradeResponse, UserPublicInfo

if TYPE_CHECKING:
    import uuid
    from collections.abc import Sequence

    from sqlalchemy.ext.asyncio import AsyncSession

    from barter_exchange.domain.principal import Principal
    from barter_exchange.schemas.trade import (
        AdminListTradesParams,
        TradeAcceptParams,
        TradeCreateParams,
    )

logger = get_logger(__name__)

_ACTIVE_TRADE_STATUSES = (
    TradeStatus.MATCHED.value,
    TradeStatus.COMMITTED.value,
    TradeStatus.ESCROW.value,
)


class TradeService:
    """Manages trades from proposal to completion."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._trade_repo = TradeRepository(session)
        self._user_repo = UserRepository(session)

    # ------------------------------------------------------------------
    # Proposal
    # ------------------------------------------------------------------

    async def create(self, principal: Principal, params: TradeCreateParams) -> uuid.UUID:
        """Create a trade in PROPOSAL state owned by the caller."""
        if not params.item_title.strip():
            raise InvalidParamsError("item_title must not be blank")
        if params.item_value_usd < 0:
            raise InvalidParamsError("item_value_usd must not be negative")

        trade = Trade(
            proposer_id=principal.user_id,
            status=TradeStatus.PROPOSAL.value,
            trade_type=TradeType.ITEM_FOR_ITEM.value,
            proposer_item_title=params.item_title,
            proposer_item_description=params.item_description,
            proposer_item_condition=params.item_condition,
            proposer_item_value_usd=params.item_value_usd,
            proposer_item_category=params.item_category,
            wishlist=[
                TradeWishlistItem(
                    wishlist_type=item.wishlist_type.value,
                    item_description=item.item_description,
                    item_min_value_usd=item.item_min_value_usd,
                    xch_amount=item.xch_amount,
                )
                for item in params.wishlist
            ],
        )
        trade = await self._trade_repo.create(trade)

        logger.info(
            "trade.created",
            trade_id=str(trade.id),
            proposer_id=str(principal.user_id),
            wishlist_items=len(params.wishlist),
        )
        return trade.id

    async def accept(self, principal: Principal, params: TradeAcceptParams) -> None:
        """Become the acceptor of a proposal and move it to MATCHED.

        Raises:
            TradeNotFoundError: If the trade is absent, not a proposal, or
                another acceptor won the race.
            SelfAcceptError: If the caller is the proposer.
        """
        trade = await self._trade_repo.get_with_status(params.trade_id, TradeStatus.PROPOSAL)
        if trade is None:
            raise TradeNotFoundError(str(params.trade_id))
        if trade.proposer_id == principal.user_id:
            raise SelfAcceptError(str(params.trade_id))

        trade_type = TradeType.from_offer_type(params.offer_type)
        accepted = await self._trade_repo.accept(
            params.trade_id,
            principal.user_id,
            {
                "acceptor_item_title": params.item_title,
                "acceptor_item_description": params.item_description,
                "acceptor_item_condition": params.item_condition,
                "acceptor_item_value_usd": params.item_value_usd,
                "acceptor_xch_offer": params.xch_amount,
                "trade_type": trade_type.value,
            },
        )
        if not accepted:
            raise TradeNotFoundError(str(params.trade_id))

        logger.info(
            "trade.accepted",
            trade_id=str(params.trade_id),
            acceptor_id=str(principal.user_id),
            trade_type=trade_type.value,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, principal: Principal, trade_id: uuid.UUID) -> TradeResponse:
        """Return a trade the caller is a party to, with the proposer's public info."""
        trade = await self._trade_repo.get_for_participant(trade_id, principal.user_id)
        if trade is None:
            raise TradeNotFoundError(str(trade_id))
        return (await self._with_proposers([trade]))[0]

    async def get_public(self, trade_id: uuid.UUID) -> TradeResponse:
        """Return an open proposal to any reader."""
        trade = await self._trade_repo.get_with_status(trade_id, TradeStatus.PROPOSAL)
        if trade is None:
            raise TradeNotFoundError(str(trade_id))
        return (await self._with_proposers([trade]))[0]

    async def list_proposals(self, limit: int = 50, offset: int = 0) -> list[TradeResponse]:
        """Open proposals, newest first."""
        trades = await self._trade_repo.list_by_status(
            TradeStatus.PROPOSAL, limit=limit, offset=offset
        )
        return await self._with_proposers(trades)

    async def list_my_trades(self, principal: Principal) -> list[TradeResponse]:
        trades = await self._trade_repo.list_for_user(principal.user_id)
        return [TradeResponse.model_validate(trade) for trade in trades]

    # ------------------------------------------------------------------
    # Participant transitions
    # ------------------------------------------------------------------

    async def commit(self, principal: Principal, trade_id: uuid.UUID) -> None:
        """Mark the trade committed (matched or already committed)."""
        await self._transition(
            trade_id,
            "commit",
            participant_id=principal.user_id,
            values={"committed_at": func.coalesce(Trade.committed_at, _utcnow())},
        )
        logger.info("trade.committed", trade_id=str(trade_id), user_id=str(principal.user_id))

    async def complete(self, principal: Principal, trade_id: uuid.UUID) -> None:
        await self._transition(
            trade_id,
            "complete",
            participant_id=principal.user_id,
            values={"completed_at": _utcnow()},
        )
        logger.info("trade.completed", trade_id=str(trade_id), user_id=str(principal.user_id))

    async def add_tracking(
        self,
        principal: Principal,
        trade_id: uuid.UUID,
        tracking_number: str,
        carrier: str,
    ) -> None:
        """Record the caller's shipment. The status does not change."""
        if not tracking_number.strip() or not carrier.strip():
            raise InvalidParamsError("tracking_number and carrier must not be blank")

        updated = await self._trade_repo.set_tracking(
            trade_id, principal.user_id, tracking_number, carrier
        )
        if not updated:
            raise TradeNotFoundError(str(trade_id))
        logger.info(
            "trade.tracking_added",
            trade_id=str(trade_id),
            user_id=str(principal.user_id),
            carrier=carrier,
        )

    async def cancel(self, principal: Principal, trade_id: uuid.UUID) -> None:
        """Proposer cancels a proposal or a matched trade."""
        await self._transition(trade_id, "cancel", proposer_id=principal.user_id)
        logger.info("trade.cancelled", trade_id=str(trade_id), by="proposer")

    async def delete(self, principal: Principal, trade_id: uuid.UUID) -> None:
        """Proposer deletes a trade that nobody has accepted yet."""
        deleted = await self._trade_repo.delete(
            trade_id, [TradeStatus.PROPOSAL], proposer_id=principal.user_id
        )
        if not deleted:
            raise TradeNotFoundError(str(trade_id))
        logger.info("trade.deleted", trade_id=str(trade_id), by="proposer")

    # ------------------------------------------------------------------
    # Admin
    # ------------------------------------------------------------------

    async def admin_cancel(self, principal: Principal, trade_id: uuid.UUID) -> None:
        principal.require_admin()
        await self._transition(trade_id, "admin_cancel")
        logger.warning("trade.cancelled", trade_id=str(trade_id), by="admin", admin=principal.username)

    async def admin_delete(self, principal: Principal, trade_id: uuid.UUID) -> None:
        principal.require_admin()
        deleted = await self._trade_repo.delete(
            trade_id, [TradeStatus.PROPOSAL, TradeStatus.CANCELLED]
        )
        if not deleted:
            raise TradeNotFoundError(str(trade_id))
        logger.warning("trade.deleted", trade_id=str(trade_id), by="admin", admin=principal.username)

    async def admin_list_trades(
        self, principal: Principal, params: AdminListTradesParams
    ) -> list[TradeResponse]:
        principal.require_admin()
        trades = await self._trade_repo.list_by_status(
            params.status, limit=params.limit, offset=params.offset
        )
        return await self._with_proposers(trades)

    async def platform_stats(self, principal: Principal) -> PlatformStats:
        principal.require_admin()
        return PlatformStats(
            total_users=await self._user_repo.count(),
            total_trades=await self._trade_repo.count(),
            open_proposals=await self._trade_repo.count([TradeStatus.PROPOSAL.value]),
            active_trades=await self._trade_repo.count(_ACTIVE_TRADE_STATUSES),
            completed_trades=await self._trade_repo.count([TradeStatus.COMPLETED.value]),
            cancelled_trades=await self._trade_repo.count([TradeStatus.CANCELLED.value]),
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _transition(
        self,
        trade_id: uuid.UUID,
        event_name: str,
        *,
        participant_id: uuid.UUID | None = None,
        proposer_id: uuid.UUID | None = None,
        values: dict | None = None,
    ) -> None:
        moved = await self._trade_repo.transition(
            trade_id,
            event_name,
            participant_id=participant_id,
            proposer_id=proposer_id,
            values=values,
        )
        if not moved:
            raise TradeNotFoundError(str(trade_id))

    async def _with_proposers(self, trades: Sequence[Trade]) -> list[TradeResponse]:
        users = await self._user_repo.get_many(trade.proposer_id for trade in trades)
        responses = []
        for trade in trades:
            response = TradeResponse.model_validate(trade)
            user = users.get(trade.proposer_id)
            if user is not None:
                response.proposer = UserPublicInfo.model_validate(user)
            responses.append(response)
        return responses


def _utcnow() -> datetime:
    return datetime.now(UTC)

