"""Real-time transaction classifier.

Consumes transaction events (live stream or catch-up replay) and runs:

- burn detection: a successful native payment of an allow-listed amount,
  dispatched to enrichment without blocking the stream
- pool-update detection: AMM deposits/withdrawals on a tracked token's pool,
  or payments to/from its AMM account, dispatched as a refresh

then advances the ledger watermark. A transaction hash already classified
is skipped, so the same transaction delivered by several nodes (or by
catch-up and the stream) is dispatched once.

While a catch-up pass runs, stream events are held instead of classified and
drained in arrival order once it finishes; events for ledgers the pass
replayed in full are dropped at drain.
"""

import logging
from collections import deque

from burnwatch.clients import NodePool, XrplError, XrplNode
from burnwatch.models import (
    AmmDepositTx,
    AmmWithdrawTx,
    BurnEvent,
    LedgerTransaction,
    PaymentTx,
    Token,
    TransactionDecodeError,
    decode_entry,
    DROPS_PER_XRP,
)
from burnwatch.services.catalog import TokenCatalog
from burnwatch.services.enrichment import TokenEnrichmentWorkflow
from burnwatch.services.watermark import WatermarkStore

logger = logging.getLogger(__name__)


class TransactionClassifier:
    """Burn and pool-update detection over decoded transactions."""

    def __init__(
        self,
        pool: NodePool,
        watermark: WatermarkStore,
        catalog: TokenCatalog,
        enrichment: TokenEnrichmentWorkflow,
        burn_address: str,
        burn_amounts: list[str],
        seen_tx_cache_size: int = 10_000,
    ):
        self.pool = pool
        self.watermark = watermark
        self.catalog = catalog
        self.enrichment = enrichment
        self.burn_address = burn_address
        self.burn_amounts = frozenset(burn_amounts)
        self.last_seen_ledger = 0

        # Bounded memory of classified transaction hashes
        self._seen_order: deque[str] = deque(maxlen=max(1, seen_tx_cache_size))
        self._seen: set[str] = set()

        # Stream events parked while catch-up runs
        self._holds = 0
        self._draining = False
        self._held: deque[tuple[dict, str]] = deque()
        self._replayed: set[int] = set()

    # =========================================================================
    # Detection rules
    # =========================================================================

    def detect_burn(self, tx: LedgerTransaction, node: str = "") -> BurnEvent | None:
        """Qualify a transaction as a burn.

        Qualifies iff it is a successful native payment whose amount is one
        of the allow-listed drop values. Payments to other destinations are
        still burns but unconfirmed, since other platforms reuse the same
        amounts.
        """
        if not isinstance(tx, PaymentTx) or not tx.succeeded:
            return None

        drops = tx.native_drops
        if drops is None or drops not in self.burn_amounts:
            return None

        confirmed = tx.destination == self.burn_address
        return BurnEvent(
            creator=tx.account,
            burned_xrp=int(drops) / DROPS_PER_XRP,
            confirmed=confirmed,
            destination=tx.destination,
            ledger_index=tx.ledger_index,
            node=node,
        )

    def detect_pool_update(self, tx: LedgerTransaction) -> Token | None:
        """Tracked token whose pool this transaction changed, if any."""
        token = self.catalog.find(tx.pool_asset)
        if token is None:
            return None

        if isinstance(tx, (AmmDepositTx, AmmWithdrawTx)):
            return token
        if isinstance(tx, PaymentTx) and token.amm_account in (tx.account, tx.destination):
            return token
        return None

    # =========================================================================
    # Per-transaction pipeline
    # =========================================================================

    def _first_sighting(self, tx_hash: str | None) -> bool:
        """Remember ``tx_hash``; False if it was already classified."""
        if not tx_hash:
            return True
        if tx_hash in self._seen:
            return False
        if len(self._seen_order) == self._seen_order.maxlen:
            self._seen.discard(self._seen_order[0])
        self._seen_order.append(tx_hash)
        self._seen.add(tx_hash)
        return True

    def classify(self, entry: dict, ledger_index: int | None = None, node: str = "") -> None:
        """Run both detectors on one raw transaction entry.

        Never raises: a malformed transaction is logged and skipped.
        """
        try:
            tx = decode_entry(entry, ledger_index)
        except TransactionDecodeError as e:
            logger.error(f"Transaction decode failed in ledger {ledger_index}: {e}")
            return

        if not self._first_sighting(tx.hash):
            logger.debug(f"Skipping {tx.hash} from {node}, already classified")
            return

        try:
            burn = self.detect_burn(tx, node)
            if burn is not None:
                logger.info(
                    f"Burn detected: {burn.burned_xrp:g} XRP to {burn.destination} "
                    f"({'FirstLedger' if burn.confirmed else 'Unsure'})"
                )
                self.enrichment.spawn(burn)

            token = self.detect_pool_update(tx)
            if token is not None:
                logger.debug(f"Pool update for {token.key} via {tx.tx_type} {tx.hash}")
                self.enrichment.spawn_refresh(token)
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Transaction processing error ({tx.hash}): {e}")

    async def handle_event(self, event: dict, node: str = "") -> None:
        """Process one live stream event, or hold it while catch-up runs."""
        ledger_index = event.get("ledger_index")
        if not isinstance(ledger_index, int):
            logger.error(f"Stream event without ledger index from {node}")
            return

        self.pool.observe_ledger(ledger_index)
        if self._holds or self._draining:
            self._held.append((event, node))
            return

        await self._process(event, ledger_index, node)

    async def _process(self, event: dict, ledger_index: int, node: str) -> None:
        self.last_seen_ledger = ledger_index
        self.classify(event, ledger_index, node)
        await self.watermark.mark_processed(ledger_index)

    # =========================================================================
    # Catch-up handoff
    # =========================================================================

    @property
    def held_events(self) -> int:
        return len(self._held)

    def hold(self) -> None:
        """Park stream events until the matching ``release``."""
        self._holds += 1

    async def release(self, replayed: set[int]) -> None:
        """End a hold and, once no hold remains, drain parked events in order.

        Args:
            replayed: Ledgers the catch-up pass fetched and classified in full
        """
        self._replayed |= replayed
        self._holds = max(0, self._holds - 1)
        if self._holds or self._draining:
            return

        self._draining = True
        drained = skipped = 0
        try:
            while self._held and not self._holds:
                event, node = self._held.popleft()
                ledger_index = event["ledger_index"]
                if ledger_index in self._replayed:
                    skipped += 1
                    continue
                await self._process(event, ledger_index, node)
                drained += 1
        finally:
            self._draining = False

        if not self._holds:
            self._replayed.clear()
        if drained or skipped:
            logger.info(f"Drained {drained} held stream event(s), {skipped} already replayed")

    async def consume(self, node: XrplNode) -> None:
        """Classify a node's transaction stream until it disconnects."""
        logger.info(f"Listening for burns and pool updates on {node.url}")
        try:
            async for event in node.transactions():
                await self.handle_event(event, node.url)
        except XrplError as e:
            logger.error(f"Subscription failed for {node.url}: {e}")
        logger.info(f"Transaction stream from {node.url} ended")
