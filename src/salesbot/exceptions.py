"""Custom exceptions for the NFT sales bot.

Per-event failures derive from TransientFetchError and are isolated to the
evaluation of a single transfer. FatalConfigError is the only error that
stops the process.
"""


class SalesBotError(Exception):
    """Base exception for all sales bot errors."""


class FatalConfigError(SalesBotError):
    """Raised at startup when configuration or credentials are unusable."""


class DecodeError(SalesBotError):
    """Raised when on-chain log data cannot be decoded into an amount."""


class TransientFetchError(SalesBotError):
    """Raised when an external fetch fails (network, HTTP status, bad payload)."""


class ChainFetchError(TransientFetchError):
    """Raised when a transaction, receipt, block or tokenURI lookup fails."""


class PriceFetchError(TransientFetchError):
    """Raised when the USD quote source cannot be reached or parsed."""


class PriceUnavailableError(TransientFetchError):
    """Raised when no rate was ever fetched and the first fetch failed."""


class MetadataFetchError(TransientFetchError):
    """Raised when token metadata cannot be fetched, parsed or transformed."""


class NotificationError(TransientFetchError):
    """Raised when a sale notification cannot be delivered."""
