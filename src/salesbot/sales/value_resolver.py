"""Sale value resolution from a transaction and its receipt.

A transfer counts as a sale when native currency was attached to the
transaction, or when the wrapped-currency contract emitted a Transfer to the
NFT seller in the same transaction. Native value wins outright; the two are
never summed, so a mixed native+wrapped payment reports only its native part.
"""

from decimal import Decimal

from salesbot.chain.units import (
    TRANSFER_TOPIC,
    decode_uint256,
    from_base_units,
    pad_address,
)
from salesbot.exceptions import DecodeError
from salesbot.logging import get_logger
from salesbot.models import LogEntry, Receipt, SaleValue, Transaction, TransferEvent, ValueSource

logger = get_logger(__name__)


class ValueResolver:
    """Computes the value a transfer's seller received, in native units.

    Args:
        wrapped_currency_address: Contract address of the wrapped-currency
            token (e.g. WETH). Compared case-insensitively.
        decimals: Decimals of both the native and wrapped currency.
    """

    def __init__(self, wrapped_currency_address: str, decimals: int = 18) -> None:
        self._wrapped_address = wrapped_currency_address.lower()
        self._decimals = decimals

    def resolve(
        self, event: TransferEvent, tx: Transaction, receipt: Receipt
    ) -> SaleValue:
        """Return the sale value for a transfer.

        ``SaleValue.amount_native == 0`` (source NONE) means the transfer was
        not a sale: a gift, airdrop, mint without payment or internal move.
        """
        native = from_base_units(tx.value, self._decimals)
        wrapped = self.wrapped_value(event, receipt)

        logger.debug(
            "value_resolved",
            tx_hash=tx.hash,
            native=str(native),
            wrapped=str(wrapped),
        )

        if native > 0:
            return SaleValue(amount_native=native, source=ValueSource.NATIVE)
        if wrapped > 0:
            return SaleValue(amount_native=wrapped, source=ValueSource.WRAPPED_TOKEN)
        return SaleValue(amount_native=Decimal("0"), source=ValueSource.NONE)

    def wrapped_value(self, event: TransferEvent, receipt: Receipt) -> Decimal:
        """Sum wrapped-currency Transfers paid to the seller, in receipt order."""
        seller_topic = pad_address(event.from_address)
        total = 0
        for log in receipt.logs:
            if not self._is_payment_to(log, seller_topic):
                continue
            try:
                amount = decode_uint256(log.data)
            except DecodeError as e:
                logger.warning(
                    "wrapped_log_undecodable",
                    tx_hash=receipt.transaction_hash,
                    error=str(e),
                )
                continue
            total += amount
        # Summed as int base units so the total stays exact
        return from_base_units(total, self._decimals)

    def _is_payment_to(self, log: LogEntry, recipient_topic: str) -> bool:
        if log.address.lower() != self._wrapped_address:
            return False
        if len(log.topics) < 3:
            return False
        return (
            log.topics[0].lower() == TRANSFER_TOPIC
            and log.topics[2].lower() == recipient_topic
        )
