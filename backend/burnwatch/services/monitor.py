"""Ledger monitor: wires the pipeline together.

Startup flow:
1. Restore token snapshots from cache
2. Connect to every configured node (fatal if none)
3. Subscribe to each node's live transaction stream, holding its events
4. Catch up missed ledgers from the watermark until the network stops advancing
5. Drain the held events and classify live

On reconnect of a dropped node the same handoff runs for the new node only.
"""

import asyncio
import logging

from burnwatch.clients import NodePool, XrplNode
from burnwatch.config import Settings, get_settings
from burnwatch.models import CategoryStats, Token
from burnwatch.services.catalog import TokenCatalog
from burnwatch.services.classifier import TransactionClassifier
from burnwatch.services.enrichment import TokenEnrichmentWorkflow
from burnwatch.services.metrics_recorder import MetricsRecorder
from burnwatch.services.reconciler import CatchUpReconciler
from burnwatch.services.watermark import WatermarkStore

logger = logging.getLogger(__name__)


class LedgerMonitor:
    """Owns the node pool, stores and detection services."""

    def __init__(
        self,
        settings: Settings | None = None,
        pool: NodePool | None = None,
        metrics: MetricsRecorder | None = None,
        watermark: WatermarkStore | None = None,
        catalog: TokenCatalog | None = None,
    ):
        self.settings = settings or get_settings()
        s = self.settings

        self.metrics = metrics or MetricsRecorder(
            stats_interval=s.stats_interval,
            stats_window=s.stats_window,
            queue_max_size=s.write_queue_max_size,
            flush_interval=s.write_queue_flush_interval,
        )
        self.watermark = watermark or WatermarkStore(
            genesis_ledger=s.genesis_ledger_index,
            queue_max_size=s.write_queue_max_size,
            flush_interval=s.write_queue_flush_interval,
        )
        self.pool = pool or NodePool(
            s.xrpl_nodes,
            metrics=self.metrics,
            connect_retries=s.connect_retries,
            connect_timeout=s.connect_timeout,
            request_retries=s.request_retries,
            request_timeout=s.request_timeout,
            backoff_base=s.retry_backoff_base,
        )
        self.catalog = catalog or TokenCatalog()
        self.enrichment = TokenEnrichmentWorkflow(
            self.pool,
            self.catalog,
            self.metrics,
            account_tx_limit=s.account_tx_limit,
            trust_line_page_limit=s.trust_line_page_limit,
            trust_line_max_pages=s.trust_line_max_pages,
        )
        self.classifier = TransactionClassifier(
            self.pool,
            self.watermark,
            self.catalog,
            self.enrichment,
            burn_address=s.burn_address,
            burn_amounts=s.burn_amounts,
            seen_tx_cache_size=s.seen_tx_cache_size,
        )
        self.reconciler = CatchUpReconciler(
            self.pool,
            self.watermark,
            self.classifier,
            max_lookback=s.max_lookback,
            max_passes=s.catch_up_max_passes,
        )

        self.pool.on_reconnect(self._on_reconnect)
        self._stream_tasks: set[asyncio.Task] = set()

    def on_token(self, callback) -> None:
        """Register callback for created/refreshed tokens."""
        self.enrichment.on_token(callback)

    @property
    def tokens(self) -> list[Token]:
        return self.catalog.all()

    async def start(self) -> None:
        """Connect, subscribe, catch up, then classify live.

        Raises:
            NoNodesAvailableError: if no node could be connected
        """
        self.metrics.start()
        self.watermark.start()
        await self.catalog.warm_start()

        await self.pool.connect_all()
        await self._synchronize(self.pool.nodes)

    async def _synchronize(self, nodes: list[XrplNode]) -> None:
        """Subscribe first, replay the gap, then release held stream events."""
        self.classifier.hold()
        replayed: set[int] = set()
        try:
            for node in nodes:
                self._consume(node)
            # Let the consumers send their subscribe requests
            await asyncio.sleep(0)
            replayed = await self.reconciler.catch_up()
        finally:
            await self.classifier.release(replayed)

    def _consume(self, node: XrplNode) -> None:
        task = asyncio.create_task(self.classifier.consume(node))
        self._stream_tasks.add(task)
        task.add_done_callback(self._stream_tasks.discard)

    async def _on_reconnect(self, node: XrplNode) -> None:
        """Listen on a replacement node and reconcile the gap its drop left."""
        await self._synchronize([node])

    async def get_performance_stats(self) -> list[CategoryStats]:
        return await self.metrics.get_performance_stats()

    def status(self) -> dict:
        """Pipeline health snapshot."""
        return {
            "nodes": [node.url for node in self.pool.nodes],
            "network_ledger": self.pool.current_ledger,
            "last_seen_ledger": self.classifier.last_seen_ledger,
            "catching_up": self.reconciler.is_running,
            "held_stream_events": self.classifier.held_events,
            "tokens": len(self.catalog),
            "pending_enrichments": self.enrichment.pending_tasks,
            "watermark_retry_queue": self.watermark.retry_queue.size,
            "watermark_retry_dropped": self.watermark.retry_queue.dropped,
            "metrics_retry_queue": self.metrics.retry_queue.size,
            "metrics_retry_dropped": self.metrics.retry_queue.dropped,
        }

    async def stop(self) -> None:
        """Stop streams, in-flight enrichment and flush queued writes."""
        await self.pool.close()

        tasks = list(self._stream_tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        await self.enrichment.stop()
        await self.watermark.stop()
        await self.metrics.stop()
