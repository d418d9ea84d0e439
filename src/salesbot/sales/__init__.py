"""Sale detection and valuation -- value resolution, metadata, USD pricing."""

from salesbot.sales.evaluator import SaleEvaluator
from salesbot.sales.metadata import MetadataResolver, identity_transform, ipfs_gateway_rewriter
from salesbot.sales.price_oracle import (
    CryptoCompareQuoteSource,
    OracleState,
    PriceOracle,
    QuoteSource,
)
from salesbot.sales.value_resolver import ValueResolver

__all__ = [
    "CryptoCompareQuoteSource",
    "MetadataResolver",
    "OracleState",
    "PriceOracle",
    "QuoteSource",
    "SaleEvaluator",
    "ValueResolver",
    "identity_transform",
    "ipfs_gateway_rewriter",
]
