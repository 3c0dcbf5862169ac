"""Ledger watermark store.

Tracks which ledgers have been fully classified so restarts and reconnects
can replay exactly the gap. Writes are idempotent upserts; a failed write is
parked in a retry queue and never raised, since the catch-up pass re-derives
any unpersisted ledger on the next run.
"""

import logging

from burnwatch.models import LedgerWatermark
from burnwatch.storage import WatermarkRepository, WriteRetryQueue

logger = logging.getLogger(__name__)


class WatermarkStore:
    """Highest-processed ledger tracking backed by the ``ledgers`` table."""

    def __init__(
        self,
        repo: WatermarkRepository | None = None,
        genesis_ledger: int = 94300000,
        queue_max_size: int = 10_000,
        flush_interval: float = 5.0,
    ):
        self.repo = repo or WatermarkRepository()
        self.genesis_ledger = genesis_ledger
        self.retry_queue: WriteRetryQueue[LedgerWatermark] = WriteRetryQueue(
            "ledger watermark",
            self.repo.upsert,
            max_size=queue_max_size,
            flush_interval=flush_interval,
        )
        self._last_marked: int | None = None

    async def highest_processed(self) -> int:
        """Highest processed ledger, or the genesis default if none."""
        try:
            highest = await self.repo.get_highest_processed()
        except Exception as e:
            logger.warning(f"Watermark read failed, using genesis {self.genesis_ledger}: {e}")
            return self.genesis_ledger
        return highest if highest is not None else self.genesis_ledger

    async def mark_processed(self, ledger_index: int) -> None:
        """Mark a ledger processed. Never raises."""
        # Live streams mark once per transaction; skip repeats of the last ledger
        if ledger_index == self._last_marked:
            return

        watermark = LedgerWatermark(index=ledger_index, processed=True)
        try:
            await self.repo.upsert([watermark])
        except Exception as e:
            logger.warning(f"Ledger DB write failed for {ledger_index}, queuing: {e}")
            self.retry_queue.put(watermark)

        # Written or queued; the retry queue owns it from here
        self._last_marked = ledger_index

    def start(self) -> None:
        self.retry_queue.start()

    async def stop(self) -> None:
        await self.retry_queue.stop()
