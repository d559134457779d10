"""Envelope schemas for the RPC endpoint and the health check."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class RpcRequest(BaseModel):
    """``{id, method, params}``; ``id`` is echoed back untouched."""

    id: Any = None
    method: str = Field(..., min_length=1)
    params: dict[str, Any] | None = None


class RpcErrorBody(BaseModel):
    code: int
    message: str


class HealthResponse(BaseModel):
    """Response for the health check endpoint."""

    status: str
    version: str
    database: str
    chain_node: str
    verification_loop: str
