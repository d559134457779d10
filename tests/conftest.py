"""Shared test fixtures for the Barter Exchange test suite.

Provides:
    - A throwaway SQLite database (aiosqlite) built from the real ORM metadata
    - Persisted users and their principals
    - A configured exchange wallet and a matched trade ready for commitment
    - FakeChainObserver, an in-memory ChainObserver
"""

from __future__ import annotations

import uuid
from decimal import Decimal
from typing import TYPE_CHECKING

import pytest

from barter_exchange.domain.chain_protocol import BlockchainState, TransactionRecord
from barter_exchange.domain.exceptions import ChainObserverError
from barter_exchange.domain.principal import Principal
from barter_exchange.infrastructure.database.engine import (
    create_engine_for_url,
    make_session_factory,
    session_scope,
)
from barter_exchange.infrastructure.database.orm_models import Base, User
from barter_exchange.schemas.trade import TradeAcceptParams, TradeCreateParams
from barter_exchange.services.config_service import ExchangeConfigService
from barter_exchange.services.trade_service import TradeService

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

EXCHANGE_WALLET = "xch1" + "q" * 58


# ---------------------------------------------------------------------------
# Database Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
async def engine(tmp_path) -> AsyncIterator[AsyncEngine]:
    """A fresh SQLite file per test, with foreign keys enforced like PostgreSQL."""
    engine = create_engine_for_url(f"sqlite+aiosqlite:///{tmp_path / 'exchange.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return make_session_factory(engine)


async def _create_user(
    session_factory: async_sessionmaker[AsyncSession],
    username: str,
    is_admin: bool = False,
) -> Principal:
    async with session_scope(session_factory) as session:
        user = User(id=uuid.uuid4(), username=username, is_admin=is_admin)
        session.add(user)
    return Principal(user_id=user.id, username=username, is_admin=is_admin)


# ---------------------------------------------------------------------------
# Principal Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
async def proposer(session_factory) -> Principal:
    return await _create_user(session_factory, "alice")


@pytest.fixture
async def acceptor(session_factory) -> Principal:
    return await _create_user(session_factory, "bob")


@pytest.fixture
async def outsider(session_factory) -> Principal:
    return await _create_user(session_factory, "mallory")


@pytest.fixture
async def admin(session_factory) -> Principal:
    return await _create_user(session_factory, "root", is_admin=True)


# ---------------------------------------------------------------------------
# Domain Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def sample_trade_params() -> TradeCreateParams:
    """Return valid trade creation params."""
    return TradeCreateParams(
        item_title="Vintage film camera",
        item_description="Working 35mm rangefinder with original leather case",
        item_condition="good",
        item_value_usd=Decimal("100.00"),
        item_category="electronics",
    )


@pytest.fixture
async def configured_wallet(session_factory, admin: Principal) -> str:
    async with session_scope(session_factory) as session:
        await ExchangeConfigService(session).set_exchange_wallet(admin, EXCHANGE_WALLET)
    return EXCHANGE_WALLET


@pytest.fixture
async def proposal_id(
    session_factory,
    proposer: Principal,
    sample_trade_params: TradeCreateParams,
) -> uuid.UUID:
    async with session_scope(session_factory) as session:
        return await TradeService(session).create(proposer, sample_trade_params)


@pytest.fixture
async def matched_trade_id(
    session_factory,
    proposal_id: uuid.UUID,
    acceptor: Principal,
) -> uuid.UUID:
    async with session_scope(session_factory) as session:
        await TradeService(session).accept(
            acceptor,
            TradeAcceptParams(
                trade_id=proposal_id,
                offer_type="item",
                item_title="Mechanical keyboard",
                item_description="Tenkeyless, brown switches",
                item_value_usd=Decimal("90.00"),
            ),
        )
    return proposal_id


# ---------------------------------------------------------------------------
# Chain Observer Fake
# ---------------------------------------------------------------------------


class FakeChainObserver:
    """In-memory ChainObserver.

    ``height`` is what get_blockchain_state reports; transactions become
    visible by calling ``include``.
    """

    def __init__(self, height: int | None = 100) -> None:
        self.height = height
        self.mempool: set[str] = set()
        self.records: dict[str, TransactionRecord] = {}
        self.broken_lookups: set[str] = set()
        self.state_error: Exception | None = None
        self.state_calls = 0

    def include(self, tx_id: str, at_height: int) -> None:
        self.mempool.discard(tx_id)
        self.records[tx_id] = TransactionRecord(
            tx_id=tx_id, confirmed=True, confirmed_at_height=at_height, amount=2000
        )

    async def get_blockchain_state(self) -> BlockchainState:
        self.state_calls += 1
        if self.state_error is not None:
            raise self.state_error
        return BlockchainState(height=self.height)

    async def is_tx_in_mempool(self, tx_id: str) -> bool:
        return tx_id in self.mempool

    async def get_transaction(self, tx_id: str) -> TransactionRecord:
        if tx_id in self.broken_lookups or tx_id not in self.records:
            raise ChainObserverError(f"Transaction {tx_id} not found", tx_id=tx_id)
        return self.records[tx_id]


@pytest.fixture
def chain() -> FakeChainObserver:
    return FakeChainObserver()
