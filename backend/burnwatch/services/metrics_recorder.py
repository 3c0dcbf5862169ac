"""Operation latency recorder with rolling-window stats."""

import asyncio
import logging
import time
from datetime import datetime, timedelta, timezone

from burnwatch.models import CategoryStats, MetricSample
from burnwatch.storage import MetricsRepository, WriteRetryQueue

logger = logging.getLogger(__name__)


class MetricsRecorder:
    """Records timed outcomes per category and node.

    Samples are written straight to the store; a failed write is parked in
    a retry queue and never raised to the caller.
    """

    def __init__(
        self,
        repo: MetricsRepository | None = None,
        stats_interval: float = 300.0,
        stats_window: float = 300.0,
        queue_max_size: int = 10_000,
        flush_interval: float = 5.0,
    ):
        self.repo = repo or MetricsRepository()
        self.stats_interval = stats_interval
        self.window_seconds = stats_window
        self.retry_queue: WriteRetryQueue[MetricSample] = WriteRetryQueue(
            "metrics",
            self.repo.save_batch,
            max_size=queue_max_size,
            flush_interval=flush_interval,
        )
        self._stats_task: asyncio.Task | None = None

    async def record(
        self,
        category: str,
        start_time: float,
        node: str,
        success: bool = True,
    ) -> MetricSample:
        """Record one operation outcome.

        Args:
            category: Operation category (NodeConnect, InitialDetection, ...)
            start_time: ``time.monotonic()`` taken when the operation began
            node: Node URL that served the operation
            success: Whether the operation succeeded
        """
        latency = max(0.0, time.monotonic() - start_time)
        sample = MetricSample(
            category=category,
            timestamp=datetime.now(timezone.utc),
            latency_seconds=latency,
            node_id=node,
            success=success,
        )

        try:
            await self.repo.save_batch([sample])
        except Exception as e:
            logger.warning(f"Metric write failed, queuing: {e}")
            self.retry_queue.put(sample)
            return sample

        logger.info(f"{category} - Latency: {latency:.3f}s, Node: {node}, Success: {success}")
        return sample

    async def stats_window(self, duration_seconds: float) -> list[CategoryStats]:
        """Aggregate samples over the trailing window, grouped by category."""
        since = datetime.now(timezone.utc) - timedelta(seconds=duration_seconds)
        try:
            return await self.repo.aggregate_since(since)
        except Exception as e:
            logger.error(f"Failed to get stats: {e}")
            return []

    async def get_performance_stats(self) -> list[CategoryStats]:
        """Current 5-minute aggregate for external reporting."""
        return await self.stats_window(self.window_seconds)

    async def log_stats(self) -> None:
        """Log the trailing-window summary."""
        stats = await self.get_performance_stats()
        minutes = self.window_seconds / 60
        logger.info(f"Performance Stats (Last {minutes:g} Minutes):")
        for row in stats:
            logger.info(row.summary())
        if self.retry_queue.size:
            logger.info(
                f"Metric retry queue: {self.retry_queue.size} pending, "
                f"{self.retry_queue.dropped} dropped"
            )

    async def _periodic_stats(self) -> None:
        """Background task logging stats every ``stats_interval`` seconds."""
        while True:
            try:
                await asyncio.sleep(self.stats_interval)
                await self.log_stats()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.warning(f"Stats logging error: {e}")

    def start(self) -> None:
        """Start the retry flush and stats logging tasks."""
        self.retry_queue.start()
        if self._stats_task is None:
            self._stats_task = asyncio.create_task(self._periodic_stats())

    async def stop(self) -> None:
        """Stop background tasks (flushing queued samples)."""
        if self._stats_task:
            self._stats_task.cancel()
            try:
                await self._stats_task
            except asyncio.CancelledError:
                pass
            self._stats_task = None
        await self.retry_queue.stop()
