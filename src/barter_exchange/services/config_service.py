"""Exchange configuration: where commitment fees go and how much they are."""

from __future__ import annotations

from typing import TYPE_CHECKING

from barter_exchange.domain.exceptions import ConfigurationError, InvalidParamsError
from barter_exchange.infrastructure.database.repositories import ConfigRepository
from barter_exchange.logging_config import get_logger
from barter_exchange.schemas.commitment import ExchangeWalletResponse

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from barter_exchange.domain.principal import Principal

logger = get_logger(__name__)

EXCHANGE_WALLET_KEY = "exchange_wallet_address"
COMMITMENT_FEE_KEY = "commitment_fee_usd"
DEFAULT_COMMITMENT_FEE_USD = 1.0

WALLET_ADDRESS_PREFIX = "xch1"
WALLET_ADDRESS_LENGTH = 62


class ExchangeConfigService:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._config_repo = ConfigRepository(session)

    async def set_exchange_wallet(
        self,
        principal: Principal,
        wallet_address: str,
        commitment_fee_usd: float = DEFAULT_COMMITMENT_FEE_USD,
    ) -> None:
        """Store the exchange wallet and the commitment fee. Admin only.

        Raises:
            ForbiddenError: If the caller is not an admin.
            InvalidParamsError: If the address is not a 62-character xch1 address
                or the fee is not positive.
        """
        principal.require_admin()

        if (
            not wallet_address.startswith(WALLET_ADDRESS_PREFIX)
            or len(wallet_address) != WALLET_ADDRESS_LENGTH
        ):
            raise InvalidParamsError(
                f"wallet_address must start with '{WALLET_ADDRESS_PREFIX}' "
                f"and be {WALLET_ADDRESS_LENGTH} characters long"
            )
        if commitment_fee_usd <= 0:
            raise InvalidParamsError("commitment_fee_usd must be positive")

        await self._config_repo.upsert(
            EXCHANGE_WALLET_KEY,
            wallet_address,
            "Exchange wallet that receives commitment fees",
        )
        await self._config_repo.upsert(
            COMMITMENT_FEE_KEY,
            str(commitment_fee_usd),
            "Commitment fee in USD; the XCH amount is computed by the client",
        )
        logger.info(
            "config.exchange_wallet_set",
            admin=principal.username,
            commitment_fee_usd=commitment_fee_usd,
        )

    async def get_exchange_wallet(self, principal: Principal) -> ExchangeWalletResponse:  # noqa: ARG002
        """Readable by any authenticated caller; wallets need it to pay fees."""
        return ExchangeWalletResponse(
            wallet_address=await self._config_repo.get(EXCHANGE_WALLET_KEY),
            commitment_fee_usd=await self.commitment_fee_usd(),
        )

    async def require_wallet_address(self) -> str:
        address = await self._config_repo.get(EXCHANGE_WALLET_KEY)
        if not address:
            raise ConfigurationError("Exchange wallet not configured")
        return address

    async def commitment_fee_usd(self) -> float:
        raw = await self._config_repo.get(COMMITMENT_FEE_KEY)
        if raw is None:
            return DEFAULT_COMMITMENT_FEE_USD
        try:
            return float(raw)
        except ValueError:
            logger.warning("config.invalid_commitment_fee", value=raw)
            return DEFAULT_COMMITMENT_FEE_USD
