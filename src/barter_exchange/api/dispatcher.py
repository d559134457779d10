"""JSON-RPC style dispatcher over the application services.

Every call goes through the same steps:
    1. Look the method up in METHODS (unknown -> -32601).
    2. Require a principal unless the method is public (missing -> 4001).
    3. Decode ``params`` into the method's pydantic model (invalid -> -32602).
    4. Run the handler inside one database transaction; any exception
       rolls it back.
    5. Map domain exceptions to ``{code, message}``; anything else becomes
       5000 and is logged with its traceback.

The dispatcher is transport-agnostic: the FastAPI route feeds it the
decoded body and the principal read from the gateway headers.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import structlog
from pydantic import BaseModel, ValidationError

from barter_exchange.domain.exceptions import (
    ExchangeError,
    InvalidParamsError,
    MethodNotFoundError,
    UnauthorizedError,
)
from barter_exchange.infrastructure.database.engine import session_scope
from barter_exchange.logging_config import get_logger
from barter_exchange.schemas.commitment import (
    CreatePendingParams,
    RefundTransactionParams,
    SetExchangeWalletParams,
    SubmitTxParams,
)
from barter_exchange.schemas.rpc import RpcErrorBody, RpcRequest
from barter_exchange.schemas.trade import (
    AddTrackingParams,
    AdminListTradesParams,
    ListProposalsParams,
    ReviewCreateParams,
    TradeAcceptParams,
    TradeCreateParams,
    TradeIdParams,
    UserReviewsParams,
)
from barter_exchange.services.commitment_service import CommitmentService
from barter_exchange.services.config_service import ExchangeConfigService
from barter_exchange.services.review_service import ReviewService
from barter_exchange.services.trade_service import TradeService

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from barter_exchange.domain.principal import Principal

    Handler = Callable[[AsyncSession, Principal | None, Any], Awaitable[dict[str, Any]]]

logger = get_logger(__name__)

INVALID_REQUEST = -32600
INTERNAL_ERROR = 5000


def _dump(model: BaseModel) -> dict[str, Any]:
    return model.model_dump(mode="json")


def _dump_all(models: list[BaseModel]) -> list[dict[str, Any]]:
    return [_dump(model) for model in models]


_OK = {"success": True}


# ---------------------------------------------------------------------------
# Trades
# ---------------------------------------------------------------------------


async def _trade_create(
    session: AsyncSession, principal: Principal, params: TradeCreateParams
) -> dict[str, Any]:
    trade_id = await TradeService(session).create(principal, params)
    return {"trade_id": str(trade_id)}


async def _trade_accept(
    session: AsyncSession, principal: Principal, params: TradeAcceptParams
) -> dict[str, Any]:
    await TradeService(session).accept(principal, params)
    return _OK


async def _trade_get(
    session: AsyncSession, principal: Principal, params: TradeIdParams
) -> dict[str, Any]:
    return {"trade": _dump(await TradeService(session).get(principal, params.trade_id))}


async def _trade_get_public(
    session: AsyncSession, principal: Principal, params: TradeIdParams
) -> dict[str, Any]:
    return {"trade": _dump(await TradeService(session).get_public(params.trade_id))}


async def _trade_list_proposals(
    session: AsyncSession, principal: Principal, params: ListProposalsParams
) -> dict[str, Any]:
    trades = await TradeService(session).list_proposals(params.limit, params.offset)
    return {"trades": _dump_all(trades)}


async def _trade_my_trades(
    session: AsyncSession, principal: Principal, params: None
) -> dict[str, Any]:
    return {"trades": _dump_all(await TradeService(session).list_my_trades(principal))}


async def _trade_commit(
    session: AsyncSession, principal: Principal, params: TradeIdParams
) -> dict[str, Any]:
    await TradeService(session).commit(principal, params.trade_id)
    return _OK


async def _trade_add_tracking(
    session: AsyncSession, principal: Principal, params: AddTrackingParams
) -> dict[str, Any]:
    await TradeService(session).add_tracking(
        principal, params.trade_id, params.tracking_number, params.carrier
    )
    return _OK


async def _trade_complete(
    session: AsyncSession, principal: Principal, params: TradeIdParams
) -> dict[str, Any]:
    await TradeService(session).complete(principal, params.trade_id)
    return _OK


async def _trade_cancel(
    session: AsyncSession, principal: Principal, params: TradeIdParams
) -> dict[str, Any]:
    await TradeService(session).cancel(principal, params.trade_id)
    return _OK


async def _trade_delete(
    session: AsyncSession, principal: Principal, params: TradeIdParams
) -> dict[str, Any]:
    await TradeService(session).delete(principal, params.trade_id)
    return _OK


# ---------------------------------------------------------------------------
# Reviews
# ---------------------------------------------------------------------------


async def _trade_review(
    session: AsyncSession, principal: Principal, params: ReviewCreateParams
) -> dict[str, Any]:
    review_id = await ReviewService(session).create(principal, params)
    return {"review_id": str(review_id)}


async def _user_reviews(
    session: AsyncSession, principal: Principal, params: UserReviewsParams
) -> dict[str, Any]:
    return {"reviews": _dump_all(await ReviewService(session).list_for_user(params.user_id))}


# ---------------------------------------------------------------------------
# Commitment ledger
# ---------------------------------------------------------------------------


async def _commitment_get_details(
    session: AsyncSession, principal: Principal, params: TradeIdParams
) -> dict[str, Any]:
    details = await CommitmentService(session).get_commitment_details(principal, params.trade_id)
    return _dump(details)


async def _commitment_create_pending(
    session: AsyncSession, principal: Principal, params: CreatePendingParams
) -> dict[str, Any]:
    pending = await CommitmentService(session).create_pending(
        principal, params.trade_id, params.amount_mojos, params.from_address
    )
    return _dump(pending)


async def _commitment_submit_tx(
    session: AsyncSession, principal: Principal, params: SubmitTxParams
) -> dict[str, Any]:
    await CommitmentService(session).submit_tx_id(principal, params.transaction_id, params.tx_id)
    return _OK


async def _commitment_list_transactions(
    session: AsyncSession, principal: Principal, params: TradeIdParams
) -> dict[str, Any]:
    rows = await CommitmentService(session).list_for_trade(principal, params.trade_id)
    return {"transactions": _dump_all(rows)}


# ---------------------------------------------------------------------------
# Exchange config
# ---------------------------------------------------------------------------


async def _config_set_exchange_wallet(
    session: AsyncSession, principal: Principal, params: SetExchangeWalletParams
) -> dict[str, Any]:
    await ExchangeConfigService(session).set_exchange_wallet(
        principal, params.wallet_address, params.commitment_fee_usd
    )
    return _OK


async def _config_get_exchange_wallet(
    session: AsyncSession, principal: Principal, params: None
) -> dict[str, Any]:
    return _dump(await ExchangeConfigService(session).get_exchange_wallet(principal))


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------


async def _admin_cancel_trade(
    session: AsyncSession, principal: Principal, params: TradeIdParams
) -> dict[str, Any]:
    await TradeService(session).admin_cancel(principal, params.trade_id)
    return _OK


async def _admin_delete_trade(
    session: AsyncSession, principal: Principal, params: TradeIdParams
) -> dict[str, Any]:
    await TradeService(session).admin_delete(principal, params.trade_id)
    return _OK


async def _admin_list_trades(
    session: AsyncSession, principal: Principal, params: AdminListTradesParams
) -> dict[str, Any]:
    return {"trades": _dump_all(await TradeService(session).admin_list_trades(principal, params))}


async def _admin_platform_stats(
    session: AsyncSession, principal: Principal, params: None
) -> dict[str, Any]:
    return _dump(await TradeService(session).platform_stats(principal))


async def _admin_refund_transaction(
    session: AsyncSession, principal: Principal, params: RefundTransactionParams
) -> dict[str, Any]:
    await CommitmentService(session).refund(principal, params.transaction_id, params.reason)
    return _OK


# ---------------------------------------------------------------------------
# Method table
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RpcMethod:
    handler: Handler
    params_model: type[BaseModel] | None = None
    public: bool = False


METHODS: dict[str, RpcMethod] = {
    # Public
    "trade_list_proposals": RpcMethod(_trade_list_proposals, ListProposalsParams, public=True),
    "trade_get_public": RpcMethod(_trade_get_public, TradeIdParams, public=True),
    "user_reviews": RpcMethod(_user_reviews, UserReviewsParams, public=True),
    # Trades
    "trade_create": RpcMethod(_trade_create, TradeCreateParams),
    "trade_accept": RpcMethod(_trade_accept, TradeAcceptParams),
    "trade_get": RpcMethod(_trade_get, TradeIdParams),
    "trade_my_trades": RpcMethod(_trade_my_trades),
    "trade_commit": RpcMethod(_trade_commit, TradeIdParams),
    "trade_add_tracking": RpcMethod(_trade_add_tracking, AddTrackingParams),
    "trade_complete": RpcMethod(_trade_complete, TradeIdParams),
    "trade_cancel": RpcMethod(_trade_cancel, TradeIdParams),
    "trade_delete": RpcMethod(_trade_delete, TradeIdParams),
    "trade_review": RpcMethod(_trade_review, ReviewCreateParams),
    # Commitment ledger
    "commitment_get_details": RpcMethod(_commitment_get_details, TradeIdParams),
    "commitment_create_pending": RpcMethod(_commitment_create_pending, CreatePendingParams),
    "commitment_submit_tx": RpcMethod(_commitment_submit_tx, SubmitTxParams),
    "commitment_list_transactions": RpcMethod(_commitment_list_transactions, TradeIdParams),
    # Exchange config
    "config_set_exchange_wallet": RpcMethod(_config_set_exchange_wallet, SetExchangeWalletParams),
    "config_get_exchange_wallet": RpcMethod(_config_get_exchange_wallet),
    # Admin
    "admin_cancel_trade": RpcMethod(_admin_cancel_trade, TradeIdParams),
    "admin_delete_trade": RpcMethod(_admin_delete_trade, TradeIdParams),
    "admin_list_trades": RpcMethod(_admin_list_trades, AdminListTradesParams),
    "admin_platform_stats": RpcMethod(_admin_platform_stats),
    "admin_refund_transaction": RpcMethod(_admin_refund_transaction, RefundTransactionParams),
}


class RpcDispatcher:
    """Routes ``{id, method, params}`` bodies to the service layer."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def dispatch(self, payload: Any, principal: Principal | None) -> dict[str, Any]:
        """Run one call and return the response envelope. Never raises."""
        try:
            request = RpcRequest.model_validate(payload)
        except ValidationError:
            request_id = payload.get("id") if isinstance(payload, dict) else None
            return _error(request_id, INVALID_REQUEST, "Invalid request")

        with structlog.contextvars.bound_contextvars(rpc_method=request.method):
            try:
                result = await self._call(request, principal)
            except ExchangeError as exc:
                if exc.rpc_code == INTERNAL_ERROR:
                    logger.error("rpc.failed", code=exc.code, error=exc.message)
                else:
                    logger.info("rpc.rejected", code=exc.code, error=exc.message)
                return _error(request.id, exc.rpc_code, exc.message)
            except Exception:
                logger.exception("rpc.unhandled_error")
                return _error(request.id, INTERNAL_ERROR, "Internal server error")

        return {"id": request.id, "result": result}

    async def _call(self, request: RpcRequest, principal: Principal | None) -> dict[str, Any]:
        method = METHODS.get(request.method)
        if method is None:
            raise MethodNotFoundError(request.method)
        if not method.public and principal is None:
            raise UnauthorizedError()

        params = _decode_params(method.params_model, request.params)
        async with session_scope(self._session_factory) as session:
            return await method.handler(session, principal, params)


def _decode_params(model: type[BaseModel] | None, raw: dict[str, Any] | None) -> BaseModel | None:
    if model is None:
        return None
    try:
        return model.model_validate(raw or {})
    except ValidationError as exc:
        details = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or 'params'}: {error['msg']}"
            for error in exc.errors()
        )
        raise InvalidParamsError(details) from exc


def _error(request_id: Any, code: int, message: str) -> dict[str, Any]:
    return {"id": request_id, "error": RpcErrorBody(code=code, message=message).model_dump()}
