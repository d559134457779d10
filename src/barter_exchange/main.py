"""FastAPI application entry point for the Barter Exchange.

Lifecycle:
    1. Startup: Initialize logging and the database (tables in dev mode),
       open the chain node client, start the verification loop.
    2. Running: Serve the RPC endpoint and the health check.
    3. Shutdown: Stop the loop, close the chain client and the database.

Run with:
    uvicorn barter_exchange.main:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI

from barter_exchange.config import get_settings
from barter_exchange.logging_config import get_logger, setup_logging

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle."""
    settings = get_settings()

    # 1. Setup structured logging
    setup_logging(
        log_level=settings.app_log_level,
        json_logs=settings.json_logs,
    )
    logger = get_logger(__name__)
    logger.info("app.starting", env=settings.app_env, debug=settings.app_debug)

    # 2. Initialize database
    from barter_exchange.infrastructure.database.engine import (
        close_db,
        get_session_factory,
        init_db,
    )

    await init_db()

    # 3. Chain node client
    from barter_exchange.infrastructure.chain_client import (
        ChainObserverConfig,
        HttpChainObserver,
    )

    observer = HttpChainObserver(ChainObserverConfig.from_settings(settings))
    app.state.chain_observer = observer

    # 4. Verification loop
    from barter_exchange.services.verification_loop import VerificationLoop
    from barter_exchange.services.verification_service import VerificationService

    loop: VerificationLoop | None = None
    if settings.verification_enabled:
        loop = VerificationLoop(
            VerificationService(
                get_session_factory(),
                observer,
                min_confirmations=settings.min_confirmations,
                stale_pending_hours=settings.stale_pending_hours,
            ),
            verification_interval=settings.verification_interval_seconds,
            cleanup_interval=settings.stale_cleanup_interval_seconds,
        )
        loop.start()
    else:
        logger.info("app.verification_disabled")
    app.state.verification_loop = loop

    logger.info("app.started", host=settings.app_host, port=settings.app_port)

    yield

    # Shutdown
    logger.info("app.shutting_down")
    if loop is not None:
        await loop.stop()
    await observer.close()
    await close_db()
    logger.info("app.stopped")


def create_app() -> FastAPI:
    """Build the FastAPI app with its middleware and routers."""
    settings = get_settings()

    app = FastAPI(
        title="Barter Exchange",
        description=(
            "Peer-to-peer barter trades with on-chain commitment fees, "
            "ledger verification and reputation."
        ),
        version="0.1.0",
        lifespan=lifespan,
        debug=settings.app_debug,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    # --- Middleware ---
    from barter_exchange.api.middleware import setup_middleware

    setup_middleware(app, allowed_origins=settings.cors_allowed_origins)

    # --- Routes ---
    from barter_exchange.api.routes.health import router as health_router
    from barter_exchange.api.routes.rpc import router as rpc_router

    app.include_router(health_router)
    app.include_router(rpc_router)

    return app


# The app instance used by Uvicorn
app = create_app()
