"""Async engine, session factory and transaction scope.

The RPC dispatcher and the verification loop both work in units of
``session_scope``: one session, committed when the block exits normally
and rolled back otherwise. Nothing else in the code base commits.

PostgreSQL (asyncpg) is the production target. SQLite (aiosqlite) is
accepted for tests and local runs; it gets no connection pool settings
and has foreign key enforcement switched on per connection.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from barter_exchange.config import get_settings
from barter_exchange.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

logger = get_logger(__name__)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def create_engine_for_url(url: str, **pool_options: Any) -> AsyncEngine:
    """Create an engine; pool options apply to server databases only."""
    if make_url(url).get_backend_name() == "sqlite":
        engine = create_async_engine(url, echo=pool_options.get("echo", False))
        enable_sqlite_foreign_keys(engine)
        return engine
    return create_async_engine(url, pool_pre_ping=True, **pool_options)


def enable_sqlite_foreign_keys(engine: AsyncEngine) -> None:
    """SQLite ignores ON DELETE CASCADE unless this pragma is set per connection."""

    @event.listens_for(engine.sync_engine, "connect")
    def _set_pragma(dbapi_connection: Any, _record: Any) -> None:
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def get_engine() -> AsyncEngine:
    """The application engine, created from settings on first use."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_engine_for_url(
            settings.database_url,
            pool_size=settings.db_pool_size,
            max_overflow=settings.db_max_overflow,
            pool_timeout=settings.db_pool_timeout,
            echo=settings.db_echo_sql,
        )
        logger.info("database.engine_created", backend=_engine.dialect.name)
    return _engine


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Objects stay readable after commit; services return them to the dispatcher
    return async_sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory
    if _session_factory is None:
        _session_factory = make_session_factory(get_engine())
    return _session_factory


@asynccontextmanager
async def session_scope(
    factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    """One transaction: commit on normal exit, roll back on any exception."""
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Create missing tables in development; other environments run migrations."""
    from barter_exchange.infrastructure.database.orm_models import Base

    if not get_settings().is_development:
        logger.info("database.create_all_skipped")
        return
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("database.tables_ready")


async def close_db() -> None:
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
        logger.info("database.engine_disposed")
    _engine = None
    _session_factory = None
