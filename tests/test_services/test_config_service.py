"""Tests for exchange wallet configuration."""

from __future__ import annotations

import pytest

from barter_exchange.domain.exceptions import (
    ConfigurationError,
    ForbiddenError,
    InvalidParamsError,
)
from barter_exchange.infrastructure.database.engine import session_scope
from barter_exchange.services.config_service import ExchangeConfigService

WALLET = "xch1" + "z" * 58


class TestExchangeWallet:
    @pytest.mark.asyncio
    async def test_unset_wallet(self, session_factory, proposer) -> None:
        async with session_scope(session_factory) as session:
            service = ExchangeConfigService(session)
            wallet = await service.get_exchange_wallet(proposer)
            with pytest.raises(ConfigurationError):
                await service.require_wallet_address()

        assert wallet.wallet_address is None
        assert wallet.commitment_fee_usd == 1.0

    @pytest.mark.asyncio
    async def test_set_and_overwrite(self, session_factory, admin, proposer) -> None:
        async with session_scope(session_factory) as session:
            await ExchangeConfigService(session).set_exchange_wallet(admin, WALLET, 2.5)
        async with session_scope(session_factory) as session:
            await ExchangeConfigService(session).set_exchange_wallet(admin, WALLET, 0.75)

        async with session_scope(session_factory) as session:
            wallet = await ExchangeConfigService(session).get_exchange_wallet(proposer)
        assert wallet.wallet_address == WALLET
        assert wallet.commitment_fee_usd == 0.75

    @pytest.mark.asyncio
    async def test_admin_only(self, session_factory, proposer) -> None:
        async with session_scope(session_factory) as session:
            with pytest.raises(ForbiddenError):
                await ExchangeConfigService(session).set_exchange_wallet(proposer, WALLET)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "address",
        [
            "xch1short",
            "txch1" + "q" * 57,
            "xch1" + "q" * 59,
            "",
        ],
    )
    async def test_address_shape(self, session_factory, admin, address: str) -> None:
        async with session_scope(session_factory) as session:
            with pytest.raises(InvalidParamsError):
                await ExchangeConfigService(session).set_exchange_wallet(admin, address)

    @pytest.mark.asyncio
    async def test_fee_must_be_positive(self, session_factory, admin) -> None:
        async with session_scope(session_factory) as session:
            with pytest.raises(InvalidParamsError):
                await ExchangeConfigService(session).set_exchange_wallet(admin, WALLET, 0)
