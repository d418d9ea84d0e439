"""Chain access layer -- RPC client, Transfer log polling, and unit conversion."""

from salesbot.chain.client import ChainClient
from salesbot.chain.listener import TransferListener, decode_transfer_log
from salesbot.chain.units import (
    TRANSFER_TOPIC,
    decode_uint256,
    from_base_units,
    pad_address,
    to_base_units,
)
from salesbot.chain.web3_client import Web3ChainClient

__all__ = [
    "ChainClient",
    "TRANSFER_TOPIC",
    "TransferListener",
    "Web3ChainClient",
    "decode_transfer_log",
    "decode_uint256",
    "from_base_units",
    "pad_address",
    "to_base_units",
]
