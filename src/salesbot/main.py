"""Entry point for the NFT sales bot.

Wires all components together and runs the pipeline until SIGINT/SIGTERM.

Component wiring order (in _build_components):
1. AppSettings (configuration, validated)
2. Logging setup
3. ChainClient (web3, WebSocket or HTTP by URI scheme)
4. PriceOracle (CryptoCompare quote source, freshness window)
5. MetadataResolver (optional IPFS gateway rewrite, optional transform)
6. ValueResolver (wrapped-currency address)
7. SaleEvaluator
8. DiscordNotifier
9. SalesPipeline
10. TransferListener (dispatches into the pipeline)
"""

import asyncio
import signal
import sys
from typing import Any

from pydantic import ValidationError

from salesbot.chain.listener import TransferListener
from salesbot.chain.web3_client import Web3ChainClient
from salesbot.config import AppSettings, load_transform, validate_settings
from salesbot.exceptions import ChainFetchError, FatalConfigError
from salesbot.logging import get_logger, setup_logging
from salesbot.notify.discord import DiscordNotifier
from salesbot.pipeline import SalesPipeline
from salesbot.sales.evaluator import SaleEvaluator
from salesbot.sales.metadata import MetadataResolver, identity_transform, ipfs_gateway_rewriter
from salesbot.sales.price_oracle import CryptoCompareQuoteSource, PriceOracle
from salesbot.sales.value_resolver import ValueResolver


def _build_components(settings: AppSettings) -> dict[str, Any]:
    """Build all bot components from validated settings.

    Does NOT connect anything -- that happens in run().

    Returns:
        Dict mapping component names to instances.
    """
    chain_client = Web3ChainClient(settings.chain.rpc_uri)

    quote_source = CryptoCompareQuoteSource(
        url=settings.price.quote_url,
        field=settings.price.quote_field,
        timeout=settings.price.request_timeout,
    )
    price_oracle = PriceOracle(
        quote_source,
        freshness_seconds=settings.price.freshness_minutes * 60,
        retry_seconds=settings.price.retry_seconds,
    )

    transform = (
        load_transform(settings.metadata.transform)
        if settings.metadata.transform
        else identity_transform
    )
    metadata_resolver = MetadataResolver(
        rewriter=(
            ipfs_gateway_rewriter(settings.metadata.ipfs_gateway)
            if settings.metadata.ipfs_gateway
            else None
        ),
        default_transform=transform,
        timeout=settings.metadata.request_timeout,
    )

    value_resolver = ValueResolver(settings.chain.wrapped_currency_address)

    evaluator = SaleEvaluator(
        value_resolver=value_resolver,
        metadata_resolver=metadata_resolver,
        price_oracle=price_oracle,
    )

    notifier = DiscordNotifier(
        bot_token=settings.discord.bot_token.get_secret_value(),
        channel_id=settings.discord.channel_id,
        api_base=settings.discord.api_base,
        marketplace_url=settings.discord.marketplace_url,
        timeout=settings.discord.request_timeout,
    )

    pipeline = SalesPipeline(
        chain_client=chain_client,
        evaluator=evaluator,
        sink=notifier,
        price_oracle=price_oracle,
        dedupe_capacity=settings.dedupe_capacity,
    )

    listener = TransferListener(
        client=chain_client,
        contract_addresses=settings.chain.contract_addresses,
        on_transfer=pipeline.dispatch,
        poll_interval=settings.chain.poll_interval,
        reconnect_delay=settings.chain.reconnect_delay,
        reconnect_max_delay=settings.chain.reconnect_max_delay,
        start_block=settings.chain.start_block,
    )
    pipeline.set_listener(listener)

    return {
        "chain_client": chain_client,
        "quote_source": quote_source,
        "price_oracle": price_oracle,
        "metadata_resolver": metadata_resolver,
        "value_resolver": value_resolver,
        "evaluator": evaluator,
        "notifier": notifier,
        "pipeline": pipeline,
        "listener": listener,
    }


def _setup_signal_handlers(pipeline: SalesPipeline) -> None:
    """Register SIGINT/SIGTERM to stop the pipeline gracefully.

    Must be called after the asyncio event loop is running.
    """
    logger = get_logger("salesbot.main")
    loop = asyncio.get_running_loop()

    def _graceful_handler() -> None:
        logger.info("graceful_shutdown_signal")
        asyncio.create_task(pipeline.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _graceful_handler)


def load_settings() -> AppSettings:
    """Load and validate settings.

    Raises:
        FatalConfigError: If loading or validation fails.
    """
    try:
        settings = AppSettings()
    except ValidationError as e:
        raise FatalConfigError(f"Invalid configuration: {e}") from e
    validate_settings(settings)
    return settings


async def run(settings: AppSettings) -> None:
    """Connect collaborators, run the pipeline, and clean up on exit."""
    logger = get_logger("salesbot.main")
    components = _build_components(settings)
    pipeline: SalesPipeline = components["pipeline"]

    logger.info(
        "starting_sales_bot",
        contracts=len(settings.chain.contract_addresses),
        wrapped_currency=settings.chain.wrapped_currency_address,
    )

    try:
        await components["notifier"].connect()
        try:
            await components["chain_client"].connect()
        except ChainFetchError as e:
            # The listener reconnects with backoff on its first failed poll
            logger.warning("initial_chain_connect_failed", error=str(e))
        _setup_signal_handlers(pipeline)
        await pipeline.run()
    finally:
        await pipeline.stop()
        await components["notifier"].close()
        await components["metadata_resolver"].close()
        await components["quote_source"].close()
        await components["chain_client"].close()
        logger.info("sales_bot_stopped", **pipeline.get_status())


def main() -> None:
    """Synchronous entry point."""
    try:
        settings = load_settings()
    except FatalConfigError as e:
        setup_logging()
        get_logger("salesbot.main").critical("fatal_config_error", error=str(e))
        sys.exit(1)

    setup_logging(settings.log_level, settings.log_format)
    try:
        asyncio.run(run(settings))
    except FatalConfigError as e:
        get_logger("salesbot.main").critical("fatal_config_error", error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    main()
