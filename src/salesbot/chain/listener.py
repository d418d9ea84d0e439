"""Transfer listener -- polls watched contracts for ERC-721 Transfer logs.

Uses block-range log polling rather than a push subscription: the cursor
survives reconnects, so a dropped socket costs latency, not events. Delivery
is at-least-once; a range that failed midway is re-read after reconnecting.
"""

import asyncio
from collections.abc import Callable

from salesbot.chain.client import ChainClient
from salesbot.chain.units import TRANSFER_TOPIC, topic_to_address
from salesbot.logging import get_logger
from salesbot.models import LogEntry, TransferEvent

logger = get_logger(__name__)

# Many RPC providers reject eth_getLogs spans wider than this
_MAX_BLOCK_RANGE = 1000


def decode_transfer_log(
    log: LogEntry, transaction_hash: str, block_number: int, log_index: int = 0
) -> TransferEvent | None:
    """Decode an ERC-721 Transfer log into a TransferEvent.

    ERC-721 indexes all three arguments (four topics). ERC-20 Transfer logs
    share the signature but carry the amount in data (three topics); those
    return None.
    """
    if len(log.topics) != 4 or log.topics[0].lower() != TRANSFER_TOPIC:
        return None
    try:
        token_id = int(log.topics[3], 16)
    except ValueError:
        logger.warning("undecodable_token_id", tx_hash=transaction_hash, topic=log.topics[3])
        return None
    return TransferEvent(
        from_address=topic_to_address(log.topics[1]),
        to_address=topic_to_address(log.topics[2]),
        token_id=str(token_id),
        transaction_hash=transaction_hash,
        block_number=block_number,
        contract_address=log.address.lower(),
        log_index=log_index,
    )


class TransferListener:
    """Streams Transfer events for a set of contracts to a callback.

    Polls for new blocks at a fixed interval. On any transport failure the
    client is reconnected with exponential backoff starting at
    ``reconnect_delay`` and capped at ``reconnect_max_delay``.

    Args:
        client: Chain RPC client.
        contract_addresses: Lowercase addresses of the watched contracts.
        on_transfer: Called synchronously with each decoded event. Must not block.
        poll_interval: Seconds between head checks.
        reconnect_delay: First backoff delay in seconds.
        reconnect_max_delay: Backoff ceiling in seconds.
        start_block: First block to scan. None starts after the current head.
    """

    def __init__(
        self,
        client: ChainClient,
        contract_addresses: list[str],
        on_transfer: Callable[[TransferEvent], object],
        poll_interval: float = 4.0,
        reconnect_delay: float = 5.0,
        reconnect_max_delay: float = 300.0,
        start_block: int | None = None,
    ) -> None:
        self._client = client
        self._addresses = [a.lower() for a in contract_addresses]
        self._on_transfer = on_transfer
        self._poll_interval = poll_interval
        self._reconnect_delay = reconnect_delay
        self._reconnect_max_delay = reconnect_max_delay
        self._next_block = start_block
        self._running = False
        self._task: asyncio.Task | None = None  # type: ignore[type-arg]

    @property
    def next_block(self) -> int | None:
        """The first block the next poll will scan."""
        return self._next_block

    async def start(self) -> None:
        """Begin polling in the background."""
        if self._running:
            logger.warning("transfer_listener_already_running")
            return
        self._running = True
        self._task = asyncio.create_task(self._stream_loop())
        logger.info(
            "transfer_listener_started",
            contracts=len(self._addresses),
            poll_interval=self._poll_interval,
        )

    async def stop(self) -> None:
        """Stop polling gracefully."""
        self._running = False
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("transfer_listener_stopped")

    async def wait(self) -> None:
        """Block until the polling task finishes."""
        if self._task is not None:
            await self._task

    async def _stream_loop(self) -> None:
        """Main polling loop with reconnect-with-backoff on failure."""
        delay = self._reconnect_delay
        while self._running:
            try:
                await self._poll_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.warning("transfer_poll_error", retry_in=delay, exc_info=True)
                await asyncio.sleep(delay)
                delay = min(delay * 2, self._reconnect_max_delay)
                await self._reconnect()
                continue
            delay = self._reconnect_delay
            if self._running:
                await asyncio.sleep(self._poll_interval)

    async def _reconnect(self) -> None:
        await self._client.close()
        try:
            await self._client.connect()
            logger.info("chain_reconnected")
        except Exception as e:
            logger.warning("chain_reconnect_failed", error=str(e))

    async def _poll_once(self) -> int:
        """Scan from the cursor up to the head (at most one range).

        Returns:
            Number of Transfer events handed to the callback.
        """
        head = await self._client.block_number()
        if self._next_block is None:
            self._next_block = head + 1
            logger.info("transfer_listener_cursor_initialized", next_block=self._next_block)
            return 0
        if head < self._next_block:
            return 0

        from_block = self._next_block
        to_block = min(head, from_block + _MAX_BLOCK_RANGE - 1)
        logs = await self._client.get_transfer_logs(self._addresses, from_block, to_block)

        dispatched = 0
        for log, tx_hash, block_number, log_index in logs:
            event = decode_transfer_log(log, tx_hash, block_number, log_index)
            if event is None:
                continue
            logger.debug(
                "transfer_received",
                contract=event.contract_address,
                token_id=event.token_id,
                tx_hash=tx_hash,
            )
            self._on_transfer(event)
            dispatched += 1

        self._next_block = to_block + 1
        if dispatched:
            logger.info(
                "transfers_dispatched",
                count=dispatched,
                from_block=from_block,
                to_block=to_block,
            )
        return dispatched
