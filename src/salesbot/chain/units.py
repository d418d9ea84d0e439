"""On-chain unit conversion and hex helpers.

Base-unit amounts can exceed 2**53 (and the 28-digit default Decimal context),
so conversions build Decimals from digit tuples instead of dividing.
"""

from decimal import Decimal

from salesbot.exceptions import DecodeError

NATIVE_DECIMALS = 18

# keccak256("Transfer(address,address,uint256)"), shared by ERC-20 and ERC-721
TRANSFER_TOPIC = "0xddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef"


def from_base_units(value: int, decimals: int = NATIVE_DECIMALS) -> Decimal:
    """Convert an integer base-unit amount (e.g. wei) to a decimal amount.

    Exact for any integer: only the exponent is shifted.
    """
    sign, digits, exponent = Decimal(int(value)).as_tuple()
    return Decimal((sign, digits, exponent - decimals))


def to_base_units(amount: Decimal, decimals: int = NATIVE_DECIMALS) -> int:
    """Convert a decimal amount back to integer base units.

    Raises:
        ValueError: If the amount has more fractional digits than ``decimals``.
    """
    sign, digits, exponent = amount.as_tuple()
    if not isinstance(exponent, int):
        raise ValueError(f"Cannot convert non-finite amount {amount}")
    shifted = Decimal((sign, digits, exponent + decimals))
    integral = int(shifted)
    if shifted != integral:
        raise ValueError(f"{amount} has more than {decimals} decimal places")
    return integral


def pad_address(address: str) -> str:
    """Left-pad a 20-byte address to a 32-byte topic, lowercased."""
    return "0x" + strip_hex_prefix(address).lower().rjust(64, "0")


def topic_to_address(topic: str) -> str:
    """Extract the address held in the low 20 bytes of an indexed topic."""
    return "0x" + strip_hex_prefix(topic).lower()[-40:].rjust(40, "0")


def strip_hex_prefix(value: str) -> str:
    return value[2:] if value[:2] in ("0x", "0X") else value


def decode_uint256(data: str | None) -> int:
    """Decode the hex data field of an ERC-20 Transfer log into an integer.

    Raises:
        DecodeError: If data is missing, empty or not valid hex.
    """
    if data is None:
        raise DecodeError("log data is missing")
    raw = strip_hex_prefix(data.strip())
    if not raw:
        raise DecodeError("log data is empty")
    try:
        return int(raw, 16)
    except ValueError as e:
        raise DecodeError(f"log data is not hex: {data[:20]!r}") from e


def format_amount(amount: Decimal) -> str:
    """Render an amount in plain notation without trailing zeros."""
    if amount == 0:
        return "0"
    text = format(amount, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text
