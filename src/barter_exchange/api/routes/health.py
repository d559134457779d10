"""Health check endpoint.

Verifies connectivity to the database and the chain node, and reports
whether the verification loop is running. Used by container healthchecks
and load balancers.
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from barter_exchange.infrastructure.database.engine import get_engine
from barter_exchange.logging_config import get_logger
from barter_exchange.schemas.rpc import HealthResponse

router = APIRouter(tags=["Health"])
logger = get_logger(__name__)

APP_VERSION = "0.1.0"


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Returns the health status of the application and its dependencies.",
)
async def health_check(request: Request) -> HealthResponse:
    db_status = "unknown"
    chain_status = "unknown"

    try:
        async with get_engine().connect() as conn:
            await conn.execute(text("SELECT 1"))
        db_status = "healthy"
    except (SQLAlchemyError, OSError) as exc:
        db_status = f"unhealthy: {exc}"
        logger.error("health.db_check_failed", error=str(exc))

    observer = getattr(request.app.state, "chain_observer", None)
    if observer is None:
        chain_status = "not configured"
    elif await observer.health_check():
        chain_status = "healthy"
    else:
        chain_status = "unreachable"

    loop = getattr(request.app.state, "verification_loop", None)
    loop_status = "running" if loop is not None and loop.running else "stopped"

    overall = "ok" if db_status == "healthy" and chain_status == "healthy" else "degraded"

    return HealthResponse(
        status=overall,
        version=APP_VERSION,
        database=db_status,
        chain_node=chain_status,
        verification_loop=loop_status,
    )
