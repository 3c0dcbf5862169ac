"""Ledger catch-up reconciliation.

Replays ledgers missed while the process was down or a node was
disconnected, so no ledger is silently skipped:

- start = max(last processed + 1, network ledger - MAX_LOOKBACK)
- end = network ledger
- the pass repeats from where it ended until the network ledger stops
  advancing, so ledgers that close mid-pass are not left behind
- ledgers are replayed strictly in increasing order (later transactions may
  reference pools created by earlier ones) and marked processed one by one

A ledger that cannot be fetched after retries is logged and skipped; a
"ledger not found" answer means the rest of the range has aged out of the
node's history, so the pass stops.
"""

import asyncio
import logging

from burnwatch.clients import LedgerNotFoundError, NodePool, XrplError
from burnwatch.services.classifier import TransactionClassifier
from burnwatch.services.watermark import WatermarkStore

logger = logging.getLogger(__name__)

# Maximum number of ledgers behind the network to replay
MAX_LOOKBACK = 1000

# Passes before handing the rest of the gap to held stream events
MAX_PASSES = 5


def catch_up_range(highest_processed: int, network_ledger: int, max_lookback: int = MAX_LOOKBACK) -> range:
    """Ledgers to replay, in order. Empty when there is no gap."""
    start = max(highest_processed + 1, network_ledger - max_lookback)
    if start >= network_ledger:
        return range(0)
    return range(start, network_ledger + 1)


class CatchUpReconciler:
    """Replays the gap between the watermark and the network ledger."""

    def __init__(
        self,
        pool: NodePool,
        watermark: WatermarkStore,
        classifier: TransactionClassifier,
        max_lookback: int = MAX_LOOKBACK,
        max_passes: int = MAX_PASSES,
    ):
        self.pool = pool
        self.watermark = watermark
        self.classifier = classifier
        self.max_lookback = max_lookback
        self.max_passes = max_passes
        self._lock = asyncio.Lock()  # One pass at a time
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    async def run(self) -> int:
        """Replay missed ledgers up to the network ledger known right now.

        Returns:
            Number of ledgers processed
        """
        async with self._lock:
            self._running = True
            try:
                processed, _ = await self._run()
                return processed
            finally:
                self._running = False

    async def catch_up(self) -> set[int]:
        """Replay passes until one finds nothing new.

        Each pass re-reads the network ledger first and starts where the
        previous one ended, so ledgers that closed during a pass are
        replayed by the next.

        Returns:
            Ledgers fetched and classified in full
        """
        replayed: set[int] = set()
        async with self._lock:
            self._running = True
            try:
                highest = None
                for _ in range(self.max_passes):
                    await self.pool.refresh_ledger()
                    processed, highest = await self._run(highest, replayed)
                    if not processed:
                        break
                else:
                    logger.warning(
                        f"Network still advancing after {self.max_passes} catch-up passes, "
                        f"continuing from held stream events"
                    )
            finally:
                self._running = False
        return replayed

    async def _run(self, highest: int | None = None, replayed: set[int] | None = None) -> tuple[int, int]:
        """One pass over ``highest + 1 .. network ledger``.

        Returns:
            (ledgers processed, highest ledger index the pass got through)
        """
        network = self.pool.current_ledger
        if highest is None:
            highest = await self.watermark.highest_processed()
            ledgers = catch_up_range(highest, network, self.max_lookback)
        else:
            # Follow-up passes pick up even a single newly closed ledger
            ledgers = range(max(highest + 1, network - self.max_lookback), network + 1)
        if not ledgers:
            logger.info(f"No catch-up needed (processed {highest}, network {network})")
            return 0, highest

        logger.info(f"Catching up from ledger {ledgers.start} to {ledgers.stop - 1}")
        processed = 0
        through = highest

        for ledger_index in ledgers:
            try:
                response = await self.pool.query(
                    "ledger",
                    ledger_index=ledger_index,
                    transactions=True,
                    expand=True,
                )
            except LedgerNotFoundError as e:
                logger.warning(f"Ledger {ledger_index} not available ({e}), stopping catch-up")
                break
            except (XrplError, asyncio.TimeoutError, OSError) as e:
                logger.warning(f"Failed to process ledger {ledger_index}: {e}")
                through = ledger_index
                continue

            transactions = (response.result.get("ledger") or {}).get("transactions")
            if isinstance(transactions, list):
                for entry in transactions:
                    self.classifier.classify(entry, ledger_index, response.node)
            else:
                logger.debug(f"Ledger {ledger_index} has no transactions")

            await self.watermark.mark_processed(ledger_index)
            if replayed is not None:
                replayed.add(ledger_index)
            processed += 1
            through = ledger_index

        logger.info(f"Catch-up complete: {processed} ledger(s) processed")
        return processed, through
