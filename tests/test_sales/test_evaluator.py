"""Tests for SaleEvaluator end-to-end scenarios.

Uses the real ValueResolver and PriceOracle (with a fake quote source) and a
mocked MetadataResolver; chain fetchers are AsyncMocks.
"""

from collections.abc import Callable
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from salesbot.config import DEFAULT_WRAPPED_CURRENCY_ADDRESS
from salesbot.exceptions import (
    ChainFetchError,
    MetadataFetchError,
    PriceFetchError,
    PriceUnavailableError,
)
from salesbot.models import (
    Block,
    LogEntry,
    Metadata,
    Receipt,
    SaleRecord,
    Transaction,
    TransferEvent,
    ValueSource,
)
from salesbot.sales.evaluator import SaleEvaluator
from salesbot.sales.metadata import MetadataResolver
from salesbot.sales.price_oracle import PriceOracle, QuoteSource
from salesbot.sales.value_resolver import ValueResolver

ONE_ETH = 10**18
METADATA = Metadata(name="Ape #42", image="https://img.example/42.png")


@pytest.fixture
def quote_source() -> AsyncMock:
    source = AsyncMock(spec=QuoteSource)
    source.fetch_rate.return_value = Decimal("3000")
    return source


@pytest.fixture
def metadata_resolver() -> AsyncMock:
    resolver = AsyncMock(spec=MetadataResolver)
    resolver.resolve.return_value = METADATA
    return resolver


@pytest.fixture
def evaluator(quote_source: AsyncMock, metadata_resolver: AsyncMock) -> SaleEvaluator:
    return SaleEvaluator(
        value_resolver=ValueResolver(DEFAULT_WRAPPED_CURRENCY_ADDRESS),
        metadata_resolver=metadata_resolver,
        price_oracle=PriceOracle(quote_source),
    )


class Fetchers:
    """Chain fetchers for a single transaction."""

    def __init__(self, value: int, logs: tuple[LogEntry, ...] = ()) -> None:
        self.transaction = AsyncMock(side_effect=lambda h: Transaction(hash=h, value=value))
        self.receipt = AsyncMock(side_effect=lambda h: Receipt(transaction_hash=h, logs=logs))
        self.block = AsyncMock(side_effect=lambda n: Block(number=n, timestamp=1_700_000_000))
        self.token_uri = AsyncMock(return_value="https://meta.example/42")

    def args(self) -> tuple[AsyncMock, AsyncMock, AsyncMock, AsyncMock]:
        return self.transaction, self.receipt, self.block, self.token_uri


@pytest.mark.asyncio
async def test_scenario_a_native_sale(
    evaluator: SaleEvaluator, transfer_event: TransferEvent
) -> None:
    """1.5 ETH at 3000 USD/ETH -> 4500 USD, source NATIVE."""
    fetchers = Fetchers(value=3 * ONE_ETH // 2)

    record = await evaluator.evaluate(transfer_event, *fetchers.args())

    assert record == SaleRecord(
        metadata=METADATA,
        amount_native=Decimal("1.5"),
        amount_usd=Decimal("4500"),
        source=ValueSource.NATIVE,
        buyer=transfer_event.to_address,
        seller=transfer_event.from_address,
        block_timestamp=1_700_000_000,
        contract_address=transfer_event.contract_address,
        token_id="42",
        transaction_hash=transfer_event.transaction_hash,
    )
    fetchers.transaction.assert_awaited_once_with(transfer_event.transaction_hash)
    fetchers.receipt.assert_awaited_once_with(transfer_event.transaction_hash)
    fetchers.block.assert_awaited_once_with(transfer_event.block_number)
    fetchers.token_uri.assert_awaited_once_with(transfer_event.contract_address, "42")


@pytest.mark.asyncio
async def test_scenario_b_wrapped_sale(
    evaluator: SaleEvaluator,
    transfer_event: TransferEvent,
    make_wrapped_log: Callable[..., LogEntry],
) -> None:
    """tx.value 0 plus a 2.0 WETH payment to the seller."""
    fetchers = Fetchers(value=0, logs=(make_wrapped_log(2 * ONE_ETH),))

    record = await evaluator.evaluate(transfer_event, *fetchers.args())

    assert record is not None
    assert record.amount_native == Decimal("2.0")
    assert record.source is ValueSource.WRAPPED_TOKEN
    assert record.amount_usd == Decimal("6000")


@pytest.mark.asyncio
async def test_scenario_c_no_value_returns_none(
    evaluator: SaleEvaluator,
    transfer_event: TransferEvent,
    quote_source: AsyncMock,
    metadata_resolver: AsyncMock,
    make_wrapped_log: Callable[..., LogEntry],
) -> None:
    """No value to the seller: nothing past the receipt is fetched."""
    other = "0x" + "99" * 20
    fetchers = Fetchers(value=0, logs=(make_wrapped_log(ONE_ETH, recipient=other),))

    assert await evaluator.evaluate(transfer_event, *fetchers.args()) is None

    fetchers.token_uri.assert_not_awaited()
    fetchers.block.assert_not_awaited()
    metadata_resolver.resolve.assert_not_awaited()
    quote_source.fetch_rate.assert_not_awaited()


@pytest.mark.asyncio
async def test_configured_transform_passed_through(
    quote_source: AsyncMock,
    metadata_resolver: AsyncMock,
    transfer_event: TransferEvent,
) -> None:
    def transform(doc: dict) -> Metadata:
        return METADATA

    evaluator = SaleEvaluator(
        ValueResolver(DEFAULT_WRAPPED_CURRENCY_ADDRESS),
        metadata_resolver,
        PriceOracle(quote_source),
        transform=transform,
    )
    await evaluator.evaluate(transfer_event, *Fetchers(value=ONE_ETH).args())

    metadata_resolver.resolve.assert_awaited_once_with("https://meta.example/42", transform)


@pytest.mark.asyncio
async def test_metadata_failure_propagates(
    evaluator: SaleEvaluator,
    metadata_resolver: AsyncMock,
    transfer_event: TransferEvent,
) -> None:
    metadata_resolver.resolve.side_effect = MetadataFetchError("HTTP 502")
    with pytest.raises(MetadataFetchError):
        await evaluator.evaluate(transfer_event, *Fetchers(value=ONE_ETH).args())


@pytest.mark.asyncio
async def test_receipt_failure_propagates(
    evaluator: SaleEvaluator, transfer_event: TransferEvent
) -> None:
    fetchers = Fetchers(value=ONE_ETH)
    fetchers.receipt.side_effect = ChainFetchError("receipt not found")
    with pytest.raises(ChainFetchError):
        await evaluator.evaluate(transfer_event, *fetchers.args())


@pytest.mark.asyncio
async def test_price_unavailable_propagates(
    evaluator: SaleEvaluator, quote_source: AsyncMock, transfer_event: TransferEvent
) -> None:
    quote_source.fetch_rate.side_effect = PriceFetchError("down")
    with pytest.raises(PriceUnavailableError):
        await evaluator.evaluate(transfer_event, *Fetchers(value=ONE_ETH).args())


@pytest.mark.asyncio
async def test_rate_cached_across_evaluations(
    evaluator: SaleEvaluator, quote_source: AsyncMock, transfer_event: TransferEvent
) -> None:
    await evaluator.evaluate(transfer_event, *Fetchers(value=ONE_ETH).args())
    await evaluator.evaluate(transfer_event, *Fetchers(value=2 * ONE_ETH).args())
    assert quote_source.fetch_rate.await_count == 1
