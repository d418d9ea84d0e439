"""Chain client implementation via web3.py AsyncWeb3.

Picks a WebSocket or HTTP provider from the URI scheme, converts web3's
AttributeDict/HexBytes results into the bot's plain models, and wraps every
RPC failure in ChainFetchError.
"""

from collections.abc import Awaitable
from typing import Any, TypeVar

from web3 import AsyncHTTPProvider, AsyncWeb3, Web3, WebSocketProvider

from salesbot.chain.client import ChainClient
from salesbot.chain.units import TRANSFER_TOPIC
from salesbot.exceptions import ChainFetchError
from salesbot.logging import get_logger
from salesbot.models import Block, LogEntry, Receipt, Transaction

logger = get_logger(__name__)

T = TypeVar("T")

ERC721_METADATA_ABI: list[dict[str, Any]] = [
    {
        "inputs": [{"internalType": "uint256", "name": "tokenId", "type": "uint256"}],
        "name": "tokenURI",
        "outputs": [{"internalType": "string", "name": "", "type": "string"}],
        "stateMutability": "view",
        "type": "function",
    }
]


def _hex(value: Any) -> str:
    """Normalize HexBytes/bytes/str to a lowercase 0x-prefixed string."""
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    text = str(value).lower()
    return text if text.startswith("0x") else "0x" + text


def to_log_entry(raw: Any) -> LogEntry:
    """Convert a web3 log (AttributeDict or plain dict) to a LogEntry."""
    data = raw.get("data")
    return LogEntry(
        address=str(raw["address"]).lower(),
        topics=tuple(_hex(t) for t in raw.get("topics") or ()),
        data=_hex(data) if data is not None else None,
    )


class Web3ChainClient(ChainClient):
    """Concrete chain client using web3.py's async API."""

    def __init__(self, rpc_uri: str, w3: AsyncWeb3 | None = None) -> None:
        self._rpc_uri = rpc_uri
        self._is_websocket = rpc_uri.startswith(("ws://", "wss://"))
        if w3 is not None:
            self._w3 = w3
        elif self._is_websocket:
            self._w3 = AsyncWeb3(WebSocketProvider(rpc_uri))
        else:
            self._w3 = AsyncWeb3(AsyncHTTPProvider(rpc_uri))
        self._contracts: dict[str, Any] = {}

    async def connect(self) -> None:
        """Open the provider connection and confirm the node answers."""
        logger.info("connecting_to_chain", websocket=self._is_websocket)
        if self._is_websocket:
            await self._call(self._w3.provider.connect(), "connect")
        if not await self._call(self._w3.is_connected(), "is_connected"):
            raise ChainFetchError("RPC endpoint is not reachable")
        chain_id = await self._call(self._w3.eth.chain_id, "chain_id")
        logger.info("chain_connected", chain_id=chain_id)

    async def close(self) -> None:
        """Disconnect the provider. Safe to call more than once."""
        try:
            await self._w3.provider.disconnect()
        except Exception:
            logger.debug("chain_disconnect_error", exc_info=True)
        logger.info("chain_connection_closed")

    async def block_number(self) -> int:
        return int(await self._call(self._w3.eth.block_number, "block_number"))

    async def get_transfer_logs(
        self, addresses: list[str], from_block: int, to_block: int
    ) -> list[tuple[LogEntry, str, int, int]]:
        raw_logs = await self._call(
            self._w3.eth.get_logs(
                {
                    "address": [Web3.to_checksum_address(a) for a in addresses],
                    "topics": [TRANSFER_TOPIC],
                    "fromBlock": from_block,
                    "toBlock": to_block,
                }
            ),
            "get_logs",
        )
        results = [
            (
                to_log_entry(raw),
                _hex(raw["transactionHash"]),
                int(raw["blockNumber"]),
                int(raw.get("logIndex") or 0),
            )
            for raw in raw_logs
        ]
        results.sort(key=lambda item: (item[2], item[3]))
        return results

    async def get_transaction(self, tx_hash: str) -> Transaction:
        raw = await self._call(self._w3.eth.get_transaction(tx_hash), "get_transaction")
        return Transaction(hash=tx_hash, value=int(raw.get("value") or 0))

    async def get_receipt(self, tx_hash: str) -> Receipt:
        raw = await self._call(
            self._w3.eth.get_transaction_receipt(tx_hash), "get_transaction_receipt"
        )
        return Receipt(
            transaction_hash=tx_hash,
            logs=tuple(to_log_entry(log) for log in raw.get("logs") or ()),
        )

    async def get_block(self, block_number: int) -> Block:
        raw = await self._call(self._w3.eth.get_block(block_number), "get_block")
        return Block(number=block_number, timestamp=int(raw["timestamp"]))

    async def token_uri(self, contract_address: str, token_id: str) -> str:
        contract = self._contracts.get(contract_address)
        if contract is None:
            contract = self._w3.eth.contract(
                address=Web3.to_checksum_address(contract_address),
                abi=ERC721_METADATA_ABI,
            )
            self._contracts[contract_address] = contract
        uri = await self._call(
            contract.functions.tokenURI(int(token_id)).call(), "tokenURI"
        )
        return str(uri)

    async def _call(self, awaitable: Awaitable[T], method: str) -> T:
        """Await an RPC call, converting any failure to ChainFetchError."""
        try:
            return await awaitable
        except ChainFetchError:
            raise
        except Exception as e:
            raise ChainFetchError(f"{method} failed: {e}") from e
