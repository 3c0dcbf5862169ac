"""Bounded in-memory retry queue for failed store writes.

Writes that fail (database down, pool exhausted) are parked here instead of
failing the caller. A background task retries them periodically.

Flush policy:
- every ``flush_interval`` seconds, and once more on stop
- items are flushed as one batch; a failed batch is put back at the front
- when full, the oldest item is dropped and ``dropped`` is incremented
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Awaitable, Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Log a drop warning on the first drop and then every N drops
DROP_LOG_EVERY = 1000


class WriteRetryQueue(Generic[T]):
    """Retry buffer for one kind of write."""

    def __init__(
        self,
        name: str,
        flush: Callable[[list[T]], Awaitable[None]],
        max_size: int = 10_000,
        flush_interval: float = 5.0,
    ):
        self.name = name
        self.max_size = max_size
        self.flush_interval = flush_interval
        self.dropped = 0
        self._flush = flush
        self._items: deque[T] = deque()
        self._lock = asyncio.Lock()
        self._task: asyncio.Task | None = None

    @property
    def size(self) -> int:
        """Number of writes waiting for retry."""
        return len(self._items)

    def put(self, item: T) -> None:
        """Queue a failed write, dropping the oldest when full."""
        if len(self._items) >= self.max_size:
            self._items.popleft()
            self.dropped += 1
            if self.dropped % DROP_LOG_EVERY == 1:
                logger.warning(
                    f"{self.name} retry queue full ({self.max_size}), "
                    f"dropped {self.dropped} write(s) so far"
                )
        self._items.append(item)

    async def flush(self) -> int:
        """Retry every queued write as one batch.

        Returns:
            Number of writes flushed (0 if the batch failed again)
        """
        async with self._lock:
            if not self._items:
                return 0

            batch = list(self._items)
            self._items.clear()

            try:
                await self._flush(batch)
            except Exception as e:
                logger.warning(f"{self.name} retry flush failed ({len(batch)} pending): {e}")
                # Newer failures queued during the attempt go after the batch
                newer = list(self._items)
                self._items.clear()
                for item in batch + newer:
                    self.put(item)
                return 0

            logger.info(f"{self.name} retry queue flushed {len(batch)} write(s)")
            return len(batch)

    async def _run(self) -> None:
        """Background flush loop."""
        while True:
            try:
                await asyncio.sleep(self.flush_interval)
                await self.flush()
            except asyncio.CancelledError:
                break

    def start(self) -> None:
        """Start the background flush task."""
        if self._task is None:
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        """Stop the flush task, then flush what is left."""
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        # Final flush on shutdown
        await self.flush()
