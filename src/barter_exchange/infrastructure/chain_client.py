"""HTTP client for the chain node and wallet RPC.

Implements the ChainObserver protocol on top of httpx. Both RPC servers
take POST requests with a JSON body and answer with a JSON object that
carries a ``success`` flag. Any transport failure, non-2xx status or
``success: false`` surfaces as ChainObserverError so the verification loop
has exactly one exception type to log.
"""

from __future__ import annotations

import ssl
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

import httpx

from barter_exchange.domain.chain_protocol import BlockchainState, TransactionRecord
from barter_exchange.domain.exceptions import ChainObserverError
from barter_exchange.logging_config import get_logger

if TYPE_CHECKING:
    from barter_exchange.config import Settings

logger = get_logger(__name__)


@dataclass(frozen=True)
class ChainObserverConfig:
    """Connection details for the node and wallet RPC endpoints."""

    node_url: str
    wallet_url: str
    timeout_seconds: float = 10.0
    cert_path: str = ""
    key_path: str = ""
    ca_path: str = ""
    allow_insecure: bool = False

    @classmethod
    def from_settings(cls, settings: Settings) -> ChainObserverConfig:
        return cls(
            node_url=settings.chain_node_url,
            wallet_url=settings.chain_wallet_url,
            timeout_seconds=settings.chain_timeout_seconds,
            cert_path=settings.chain_cert_path,
            key_path=settings.chain_key_path,
            ca_path=settings.chain_ca_path,
            allow_insecure=settings.chain_allow_insecure,
        )

    def ssl_context(self) -> ssl.SSLContext | bool:
        """TLS settings for httpx: a context when certs are configured, else default verification."""
        if not (self.cert_path or self.ca_path or self.allow_insecure):
            return True
        context = ssl.create_default_context(cafile=self.ca_path or None)
        if self.cert_path:
            context.load_cert_chain(self.cert_path, self.key_path or None)
        if self.allow_insecure:
            # Nodes ship self-signed certs for their private RPC ports
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        return context


class HttpChainObserver:
    """ChainObserver backed by the node's and wallet's HTTPS RPC.

    Usage:
        observer = HttpChainObserver(ChainObserverConfig.from_settings(settings))
        state = await observer.get_blockchain_state()
        await observer.close()
    """

    def __init__(
        self,
        config: ChainObserverConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        client_kwargs: dict[str, Any] = {
            "timeout": httpx.Timeout(config.timeout_seconds),
            "headers": {"Content-Type": "application/json"},
        }
        if transport is not None:
            client_kwargs["transport"] = transport
        else:
            client_kwargs["verify"] = config.ssl_context()
        self._client = httpx.AsyncClient(**client_kwargs)

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> HttpChainObserver:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # ChainObserver
    # ------------------------------------------------------------------

    async def get_blockchain_state(self) -> BlockchainState:
        data = await self._post(self._config.node_url, "get_blockchain_state", {})
        state = data.get("blockchain_state") or {}
        peak = state.get("peak") or {}
        height = peak.get("height")
        return BlockchainState(
            height=int(height) if height is not None else None,
            network=state.get("network_name"),
            sync_mode=bool((state.get("sync") or {}).get("sync_mode", False)),
        )

    async def is_tx_in_mempool(self, tx_id: str) -> bool:
        data = await self._post(
            self._config.node_url, "get_all_mempool_tx_ids", {}, tx_id=tx_id
        )
        return tx_id in (data.get("tx_ids") or [])

    async def get_transaction(self, tx_id: str) -> TransactionRecord:
        data = await self._post(
            self._config.wallet_url,
            "get_transaction",
            {"transaction_id": tx_id},
            tx_id=tx_id,
        )
        tx = data.get("transaction")
        if not tx:
            raise ChainObserverError(f"No transaction in response for {tx_id}", tx_id=tx_id)

        confirmed_at_height = tx.get("confirmed_at_height")
        return TransactionRecord(
            tx_id=tx.get("name") or tx_id,
            confirmed=bool(tx.get("confirmed", False)),
            confirmed_at_height=(
                int(confirmed_at_height) if confirmed_at_height is not None else None
            ),
            amount=int(tx.get("amount") or 0),
            to_address=tx.get("to_address") or "",
        )

    async def health_check(self) -> bool:
        """Return True if the node answers its health endpoint with a 2xx."""
        try:
            response = await self._client.get(f"{self._config.node_url}/healthz")
        except httpx.HTTPError as exc:
            logger.warning("chain.health_check_failed", error=str(exc))
            return False
        return response.is_success

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _post(
        self,
        base_url: str,
        endpoint: str,
        payload: dict[str, Any],
        tx_id: str | None = None,
    ) -> dict[str, Any]:
        url = f"{base_url.rstrip('/')}/{endpoint}"
        try:
            response = await self._client.post(url, json=payload)
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as exc:
            raise ChainObserverError(f"Timed out calling {endpoint}", tx_id=tx_id) from exc
        except httpx.HTTPStatusError as exc:
            raise ChainObserverError(
                f"{endpoint} returned HTTP {exc.response.status_code}", tx_id=tx_id
            ) from exc
        except httpx.HTTPError as exc:
            raise ChainObserverError(f"{endpoint} failed: {exc}", tx_id=tx_id) from exc
        except ValueError as exc:
            raise ChainObserverError(f"{endpoint} returned invalid JSON", tx_id=tx_id) from exc

        if not isinstance(data, dict):
            raise ChainObserverError(f"{endpoint} returned a non-object body", tx_id=tx_id)
        if data.get("success") is False:
            raise ChainObserverError(
                f"{endpoint} failed: {data.get('error', 'unknown error')}", tx_id=tx_id
            )
        logger.debug("chain.rpc_call", endpoint=endpoint)
        return data
