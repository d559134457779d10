"""Chain Observer Protocol.

Defines the read-only view of the blockchain that the verification loop
consumes. This is a Protocol (structural subtyping) so the HTTP client and
test fakes only need to match the shape.

The domain layer has ZERO imports from httpx or any transport.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class BlockchainState:
    """Snapshot of the node's view of the chain.

    Attributes:
        height: Peak height, or None if the node did not report one.
        network: Network name (e.g. "mainnet"), if reported.
        sync_mode: Whether the node is still syncing.
    """

    height: int | None
    network: str | None = None
    sync_mode: bool = False


@dataclass(frozen=True)
class TransactionRecord:
    """A wallet's record of a broadcast transaction.

    Attributes:
        tx_id: External transaction id.
        confirmed: Whether the transaction has been included in a block.
        confirmed_at_height: Inclusion height, when confirmed.
        amount: Amount in mojos.
        to_address: Destination address.
    """

    tx_id: str
    confirmed: bool
    confirmed_at_height: int | None = None
    amount: int = 0
    to_address: str = ""

    def confirmations_at(self, height: int) -> int:
        """Blocks mined on top of the inclusion block at ``height`` (never negative)."""
        if not self.confirmed or self.confirmed_at_height is None:
            return 0
        return max(height - self.confirmed_at_height, 0)


@runtime_checkable
class ChainObserver(Protocol):
    """Read-only queries against a remote node.

    Concrete implementations:
        - infrastructure/chain_client.py (HttpChainObserver, httpx)
    """

    async def get_blockchain_state(self) -> BlockchainState:
        ...

    async def is_tx_in_mempool(self, tx_id: str) -> bool:
        ...

    async def get_transaction(self, tx_id: str) -> TransactionRecord:
        """Look up a transaction.

        Raises:
            ChainObserverError: If the transaction is unknown or the node fails.
        """
        ...
