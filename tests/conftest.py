"""Shared test fixtures for the NFT sales bot."""

from collections.abc import Callable

import pytest

from salesbot.chain.units import TRANSFER_TOPIC, pad_address
from salesbot.config import (
    DEFAULT_WRAPPED_CURRENCY_ADDRESS,
    AppSettings,
    ChainSettings,
    DiscordSettings,
)
from salesbot.models import LogEntry, TransferEvent

SELLER = "0x" + "11" * 20
BUYER = "0x" + "22" * 20
CONTRACT = "0x" + "33" * 20
TX_HASH = "0x" + "ab" * 32
WETH = DEFAULT_WRAPPED_CURRENCY_ADDRESS

ONE_ETH = 10**18


@pytest.fixture
def mock_settings() -> AppSettings:
    """Return AppSettings with test defaults (dummy endpoint and token)."""
    return AppSettings(
        log_level="DEBUG",
        chain=ChainSettings(
            rpc_uri="wss://node.example/ws",
            contract_addresses=[CONTRACT],
        ),
        discord=DiscordSettings(
            bot_token="test-bot-token",  # type: ignore[arg-type]
            channel_id="123456789",
        ),
    )


@pytest.fixture
def transfer_event() -> TransferEvent:
    """An ERC-721 transfer of token 42 from SELLER to BUYER."""
    return TransferEvent(
        from_address=SELLER,
        to_address=BUYER,
        token_id="42",
        transaction_hash=TX_HASH,
        block_number=19_000_000,
        contract_address=CONTRACT,
    )


@pytest.fixture
def make_wrapped_log() -> Callable[..., LogEntry]:
    """Factory for ERC-20 Transfer logs on the wrapped-currency contract."""

    def _make(
        amount: int,
        recipient: str = SELLER,
        sender: str = BUYER,
        address: str = WETH,
        topic0: str = TRANSFER_TOPIC,
        data: str | None = None,
    ) -> LogEntry:
        return LogEntry(
            address=address,
            topics=(topic0, pad_address(sender), pad_address(recipient)),
            data=data if data is not None else "0x" + format(amount, "064x"),
        )

    return _make
