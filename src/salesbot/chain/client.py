"""Abstract chain client interface.

Defines the contract for all chain implementations. The listener and the
sale evaluator depend only on this interface, keeping web3-specific details
isolated in the concrete implementation.
"""

from abc import ABC, abstractmethod

from salesbot.models import Block, LogEntry, Receipt, Transaction


class ChainClient(ABC):
    """Abstract base class for chain RPC clients."""

    @abstractmethod
    async def connect(self) -> None:
        """Open the RPC connection."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release the RPC connection."""
        ...

    @abstractmethod
    async def block_number(self) -> int:
        """Return the latest block number."""
        ...

    @abstractmethod
    async def get_transfer_logs(
        self, addresses: list[str], from_block: int, to_block: int
    ) -> list[tuple[LogEntry, str, int, int]]:
        """Fetch Transfer logs emitted by ``addresses`` in a block range.

        Returns tuples of (log, transaction_hash, block_number, log_index),
        ordered by block then log index.
        """
        ...

    @abstractmethod
    async def get_transaction(self, tx_hash: str) -> Transaction:
        """Fetch a transaction by hash."""
        ...

    @abstractmethod
    async def get_receipt(self, tx_hash: str) -> Receipt:
        """Fetch a transaction receipt by hash."""
        ...

    @abstractmethod
    async def get_block(self, block_number: int) -> Block:
        """Fetch a block header by number."""
        ...

    @abstractmethod
    async def token_uri(self, contract_address: str, token_id: str) -> str:
        """Call ``tokenURI(tokenId)`` on an ERC-721 contract."""
        ...
