"""The single RPC endpoint.

Every call is a POST of ``{id, method, params}``; the response is always
HTTP 200 with either ``result`` or ``error`` in the body.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from barter_exchange.api.deps import get_principal, get_rpc_dispatcher
from barter_exchange.api.dispatcher import RpcDispatcher  # noqa: TC001 - FastAPI resolves annotations at runtime
from barter_exchange.domain.principal import Principal  # noqa: TC001

router = APIRouter(tags=["RPC"])


@router.post(
    "/rpc",
    summary="RPC endpoint",
    description="Dispatches {id, method, params} to the trade, ledger and review services.",
)
async def rpc_endpoint(
    request: Request,
    principal: Principal | None = Depends(get_principal),
    dispatcher: RpcDispatcher = Depends(get_rpc_dispatcher),
) -> JSONResponse:
    try:
        payload: Any = await request.json()
    except ValueError:
        # JSONDecodeError and UnicodeDecodeError
        payload = None
    return JSONResponse(await dispatcher.dispatch(payload, principal))
