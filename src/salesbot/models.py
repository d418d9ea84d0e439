"""Shared data models for the NFT sales bot.

CRITICAL: All currency amounts use Decimal. On-chain base-unit amounts stay int
until converted with salesbot.chain.units. Never use float for amounts.
"""

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum


class ValueSource(str, Enum):
    """Where the sale value was found."""

    NATIVE = "native"
    WRAPPED_TOKEN = "wrapped_token"
    NONE = "none"


@dataclass(frozen=True)
class TransferEvent:
    """An ERC-721 Transfer log on a watched contract."""

    from_address: str
    to_address: str
    token_id: str
    transaction_hash: str
    block_number: int
    contract_address: str
    log_index: int = 0

    @property
    def identity(self) -> str:
        """Key used to recognise a redelivered event."""
        return f"{self.contract_address.lower()}:{self.transaction_hash.lower()}:{self.token_id}"


@dataclass(frozen=True)
class LogEntry:
    """A single receipt log. Topics and data are 0x-prefixed hex strings."""

    address: str
    topics: tuple[str, ...]
    data: str | None = None


@dataclass(frozen=True)
class Transaction:
    """The parts of a transaction the value resolver needs."""

    hash: str
    value: int  # base units (wei)


@dataclass(frozen=True)
class Receipt:
    """Transaction receipt logs, in emission order."""

    transaction_hash: str
    logs: tuple[LogEntry, ...] = ()


@dataclass(frozen=True)
class Block:
    """Block header fields used for the sale timestamp."""

    number: int
    timestamp: int  # unix seconds


@dataclass(frozen=True)
class SaleValue:
    """Net value paid to the seller, in native-currency units."""

    amount_native: Decimal
    source: ValueSource

    @property
    def is_sale(self) -> bool:
        return self.amount_native > 0


@dataclass(frozen=True)
class Metadata:
    """Normalized token metadata."""

    name: str
    image: str


@dataclass
class PriceQuote:
    """Cached native-to-USD rate. rate is 0 until the first successful fetch."""

    rate_usd_per_native: Decimal = Decimal("0")
    fetched_at: float | None = None  # unix seconds


@dataclass(frozen=True)
class SaleRecord:
    """A detected, valued sale ready for notification."""

    metadata: Metadata
    amount_native: Decimal
    amount_usd: Decimal
    source: ValueSource
    buyer: str
    seller: str
    block_timestamp: int
    contract_address: str
    token_id: str
    transaction_hash: str
