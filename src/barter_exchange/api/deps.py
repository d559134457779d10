"""FastAPI dependency injection providers.

The gateway in front of this service authenticates callers and forwards
who they are in three headers:

    X-User-Id     UUID of the user (absent for anonymous callers)
    X-Username    display name
    X-User-Admin  "true"/"1"/"yes" for administrators
"""

from __future__ import annotations

import uuid

from fastapi import Header

from barter_exchange.api.dispatcher import RpcDispatcher
from barter_exchange.config import Settings, get_settings
from barter_exchange.domain.principal import SYSTEM_USER_ID, Principal
from barter_exchange.infrastructure.database.engine import get_session_factory
from barter_exchange.logging_config import get_logger

logger = get_logger(__name__)

_TRUTHY = frozenset({"1", "true", "yes"})


async def get_principal(
    x_user_id: str | None = Header(default=None),
    x_username: str | None = Header(default=None),
    x_user_admin: str | None = Header(default=None),
) -> Principal | None:
    """Resolve the caller from gateway headers; None means anonymous."""
    if not x_user_id:
        return None
    try:
        user_id = uuid.UUID(x_user_id)
    except ValueError:
        logger.warning("auth.invalid_user_id_header", value=x_user_id)
        return None
    if user_id == SYSTEM_USER_ID:
        logger.warning("auth.system_id_rejected")
        return None
    return Principal(
        user_id=user_id,
        username=x_username or "",
        is_admin=(x_user_admin or "").strip().lower() in _TRUTHY,
    )


def get_rpc_dispatcher() -> RpcDispatcher:
    """Provide a dispatcher bound to the application's session factory."""
    return RpcDispatcher(get_session_factory())


def get_app_settings() -> Settings:
    """Provide the application settings."""
    return get_settings()
