"""Sales pipeline -- wires the listener, evaluator and notification sink.

Every TransferEvent the listener yields is evaluated in its own asyncio task,
so a slow metadata host or RPC call for one sale never delays another. All
per-event failures are caught here: logged, counted, and dropped. The
listener keeps running regardless.

Redelivered events (the listener is at-least-once) are suppressed by a
bounded in-memory identity window.
"""

from __future__ import annotations

import asyncio
from collections import deque
from typing import TYPE_CHECKING, Any

import structlog

from salesbot.exceptions import NotificationError, TransientFetchError
from salesbot.logging import get_logger
from salesbot.models import TransferEvent

if TYPE_CHECKING:
    from salesbot.chain.client import ChainClient
    from salesbot.chain.listener import TransferListener
    from salesbot.notify.sink import NotificationSink
    from salesbot.sales.evaluator import SaleEvaluator
    from salesbot.sales.price_oracle import PriceOracle

logger = get_logger(__name__)


class SalesPipeline:
    """Dispatches transfer events to concurrent sale evaluations.

    Args:
        chain_client: Supplies transactions, receipts, blocks and tokenURIs.
        evaluator: Turns an event into a SaleRecord or None.
        sink: Delivers sale records.
        price_oracle: Warmed at startup so the first sale has a rate ready.
        dedupe_capacity: How many recent event identities are remembered.
    """

    def __init__(
        self,
        chain_client: ChainClient,
        evaluator: SaleEvaluator,
        sink: NotificationSink,
        price_oracle: PriceOracle | None = None,
        dedupe_capacity: int = 10000,
    ) -> None:
        self._chain_client = chain_client
        self._evaluator = evaluator
        self._sink = sink
        self._price_oracle = price_oracle
        self._listener: TransferListener | None = None
        self._seen: set[str] = set()
        self._seen_order: deque[str] = deque()
        self._dedupe_capacity = dedupe_capacity
        self._tasks: set[asyncio.Task[None]] = set()
        self._stopped = asyncio.Event()
        self._running = False
        self._counters = {
            "received": 0,
            "duplicates": 0,
            "skipped": 0,
            "sales": 0,
            "failed": 0,
            "notified": 0,
            "notify_failed": 0,
        }

    def set_listener(self, listener: TransferListener) -> None:
        """Attach the listener (created after the pipeline; it calls dispatch)."""
        self._listener = listener

    async def start(self) -> None:
        """Warm the price cache and start listening."""
        if self._listener is None:
            raise RuntimeError("SalesPipeline.start() called before set_listener()")
        self._running = True
        self._stopped.clear()
        if self._price_oracle is not None:
            try:
                rate = await self._price_oracle.get_rate()
                logger.info("price_oracle_warmed", rate=str(rate))
            except TransientFetchError as e:
                logger.warning("price_oracle_warmup_failed", error=str(e))
        if not self._running:
            # stop() ran during the warm-up
            logger.info("sales_pipeline_start_aborted")
            return
        await self._listener.start()
        logger.info("sales_pipeline_started")

    async def run(self) -> None:
        """Start, then block until ``stop()`` is called."""
        await self.start()
        await self._stopped.wait()

    async def stop(self) -> None:
        """Stop listening and abandon in-flight evaluations."""
        if not self._running:
            return
        logger.info("sales_pipeline_stopping", in_flight=len(self._tasks))
        self._running = False
        if self._listener is not None:
            await self._listener.stop()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._stopped.set()
        logger.info("sales_pipeline_stopped", **self._counters)

    def dispatch(self, event: TransferEvent) -> asyncio.Task[None] | None:
        """Schedule evaluation of one event. Returns None for duplicates."""
        self._counters["received"] += 1
        if not self._remember(event.identity):
            self._counters["duplicates"] += 1
            logger.debug("duplicate_transfer_ignored", identity=event.identity)
            return None
        task = asyncio.create_task(self._handle(event))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self) -> None:
        """Wait for all in-flight evaluations to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _remember(self, identity: str) -> bool:
        if identity in self._seen:
            return False
        if len(self._seen_order) >= self._dedupe_capacity:
            self._seen.discard(self._seen_order.popleft())
        self._seen.add(identity)
        self._seen_order.append(identity)
        return True

    async def _handle(self, event: TransferEvent) -> None:
        """Evaluate one event and deliver the result. Never raises (except cancel)."""
        # Task-local: create_task copied the context, so this binding stays here
        structlog.contextvars.bind_contextvars(
            tx_hash=event.transaction_hash,
            token_id=event.token_id,
            contract=event.contract_address,
        )
        client = self._chain_client
        try:
            record = await self._evaluator.evaluate(
                event,
                client.get_transaction,
                client.get_receipt,
                client.get_block,
                client.token_uri,
            )
        except asyncio.CancelledError:
            raise
        except TransientFetchError as e:
            self._counters["failed"] += 1
            logger.warning(
                "sale_evaluation_failed",
                error_type=type(e).__name__,
                error=str(e),
            )
            return
        except Exception:
            self._counters["failed"] += 1
            logger.error("sale_evaluation_error", exc_info=True)
            return

        if record is None:
            self._counters["skipped"] += 1
            return

        self._counters["sales"] += 1
        try:
            await self._sink.send(record)
        except asyncio.CancelledError:
            raise
        except NotificationError as e:
            self._counters["notify_failed"] += 1
            logger.error("notification_failed", error=str(e))
            return
        except Exception:
            self._counters["notify_failed"] += 1
            logger.error("notification_error", exc_info=True)
            return
        self._counters["notified"] += 1

    def get_status(self) -> dict[str, Any]:
        """Return counters and component state for logging/inspection."""
        status: dict[str, Any] = {
            "running": self._running,
            "in_flight": len(self._tasks),
            **self._counters,
        }
        if self._price_oracle is not None:
            quote = self._price_oracle.quote
            status["price_state"] = self._price_oracle.state.value
            status["native_usd_rate"] = str(quote.rate_usd_per_native)
        if self._listener is not None:
            status["next_block"] = self._listener.next_block
        return status
