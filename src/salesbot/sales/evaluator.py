"""Sale evaluator -- turns one TransferEvent into a SaleRecord or nothing.

Each evaluation:
  1. FETCH: transaction and receipt (concurrently)
  2. VALUE: ValueResolver decides whether the seller was paid
  3. FILTER: zero value -> None, nothing else is fetched
  4. ENRICH: tokenURI -> metadata, alongside block timestamp and USD rate
  5. BUILD: SaleRecord with amount_usd = rate * amount_native

No retries here. Collaborator errors propagate to the caller, which decides
whether to log and drop.
"""

import asyncio
from collections.abc import Awaitable, Callable

from salesbot.logging import get_logger
from salesbot.models import Block, Receipt, SaleRecord, Transaction, TransferEvent
from salesbot.sales.metadata import MetadataResolver, MetadataTransform
from salesbot.sales.price_oracle import PriceOracle
from salesbot.sales.value_resolver import ValueResolver

logger = get_logger(__name__)

TransactionFetcher = Callable[[str], Awaitable[Transaction]]
ReceiptFetcher = Callable[[str], Awaitable[Receipt]]
BlockFetcher = Callable[[int], Awaitable[Block]]
TokenUriFetcher = Callable[[str, str], Awaitable[str]]


class SaleEvaluator:
    """Detects and values sales.

    Args:
        value_resolver: Decides whether and how much the seller was paid.
        metadata_resolver: Fetches token metadata.
        price_oracle: Shared USD-per-native rate cache.
        transform: Metadata transform passed to the resolver. None uses the
            resolver's default.
    """

    def __init__(
        self,
        value_resolver: ValueResolver,
        metadata_resolver: MetadataResolver,
        price_oracle: PriceOracle,
        transform: MetadataTransform | None = None,
    ) -> None:
        self._value_resolver = value_resolver
        self._metadata_resolver = metadata_resolver
        self._price_oracle = price_oracle
        self._transform = transform

    async def evaluate(
        self,
        event: TransferEvent,
        fetch_transaction: TransactionFetcher,
        fetch_receipt: ReceiptFetcher,
        fetch_block: BlockFetcher,
        fetch_token_uri: TokenUriFetcher,
    ) -> SaleRecord | None:
        """Evaluate a transfer. Returns None when no value changed hands."""
        tx, receipt = await asyncio.gather(
            fetch_transaction(event.transaction_hash),
            fetch_receipt(event.transaction_hash),
        )

        value = self._value_resolver.resolve(event, tx, receipt)
        if not value.is_sale:
            logger.debug("transfer_not_a_sale", tx_hash=event.transaction_hash)
            return None

        logger.info(
            "sale_detected",
            tx_hash=event.transaction_hash,
            token_id=event.token_id,
            amount=str(value.amount_native),
            source=value.source.value,
        )

        token_uri = await fetch_token_uri(event.contract_address, event.token_id)
        metadata, block, rate = await asyncio.gather(
            self._metadata_resolver.resolve(token_uri, self._transform),
            fetch_block(event.block_number),
            self._price_oracle.get_rate(),
        )

        return SaleRecord(
            metadata=metadata,
            amount_native=value.amount_native,
            amount_usd=rate * value.amount_native,
            source=value.source,
            buyer=event.to_address,
            seller=event.from_address,
            block_timestamp=block.timestamp,
            contract_address=event.contract_address,
            token_id=event.token_id,
            transaction_hash=event.transaction_hash,
        )
