"""Token enrichment workflow.

Turns a detected burn into tracked token state:

1. Recent transactions of the burning account (account_tx)
2. The AMMCreate among them -> token asset + AMM account
3. Issuer trust lines (account_lines) -> holders, supply
4. Pool reserves (amm_info) -> liquidity, price, market cap
5. Store in the catalog, publish, record an InitialDetection sample

Every query goes through the node pool's bounded retry. An exhausted step
abandons the enrichment with a failed metric sample; the burn itself is not
retried. A missing AMMCreate is a permanent miss and is only logged.

The refresh routine re-runs steps 4 and 3 for an already tracked token when
its pool changes.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable

from burnwatch.clients import NodePool, XrplError
from burnwatch.models import (
    AmmCreateTx,
    Asset,
    BurnEvent,
    Token,
    TransactionDecodeError,
    INITIAL_DETECTION,
    MARKET_UPDATE,
    decode_entry,
    parse_amount,
)
from burnwatch.services.catalog import TokenCatalog

logger = logging.getLogger(__name__)

# Failures that abandon one enrichment/refresh but never the pipeline
ENRICHMENT_ERRORS = (
    XrplError,
    asyncio.TimeoutError,
    OSError,
    TransactionDecodeError,
    KeyError,
    ValueError,
)

TokenCallback = Callable[[Token], Awaitable[None]]


@dataclass(slots=True)
class PoolCreation:
    """Token asset and pool account found in an AMMCreate."""

    asset: Asset
    amm_account: str


def find_pool_creation(entries: list[dict]) -> PoolCreation | None:
    """Find the first AMMCreate in an account_tx page."""
    for entry in entries:
        try:
            tx = decode_entry(entry)
        except TransactionDecodeError as e:
            logger.debug(f"Skipping undecodable account_tx entry: {e}")
            continue

        if not isinstance(tx, AmmCreateTx):
            continue

        asset = tx.pool_asset
        if asset is not None and tx.amm_account:
            return PoolCreation(asset=asset, amm_account=tx.amm_account)
    return None


def summarize_trust_lines(lines: list[dict]) -> tuple[int, float]:
    """Holder count and circulating supply from issuer trust lines.

    The issuer sees holder balances as negative; supply is the magnitude of
    their sum.
    """
    total = sum(float(line.get("balance") or 0) for line in lines)
    return len(lines), abs(total)


def pool_reserves(amm: dict) -> tuple[float, float]:
    """(XRP reserve, token reserve) from an amm_info ``amm`` object."""
    liquidity_xrp = 0.0
    liquidity_tokens = 0.0
    for field in ("amount", "amount2"):
        if field not in amm:
            continue
        asset, quantity = parse_amount(amm[field])
        if asset.is_native:
            liquidity_xrp = quantity
        else:
            liquidity_tokens = quantity
    return liquidity_xrp, liquidity_tokens


class TokenEnrichmentWorkflow:
    """Materializes and refreshes token state from ledger queries."""

    def __init__(
        self,
        pool: NodePool,
        catalog: TokenCatalog,
        metrics,
        account_tx_limit: int = 10,
        trust_line_page_limit: int = 400,
        trust_line_max_pages: int = 10,
    ):
        self.pool = pool
        self.catalog = catalog
        self.metrics = metrics
        self.account_tx_limit = account_tx_limit
        self.trust_line_page_limit = trust_line_page_limit
        self.trust_line_max_pages = trust_line_max_pages
        self._callbacks: list[TokenCallback] = []
        self._tasks: set[asyncio.Task] = set()

    def on_token(self, callback: TokenCallback) -> None:
        """Register callback for created/refreshed tokens."""
        self._callbacks.append(callback)

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    # =========================================================================
    # Task dispatch (never blocks the caller)
    # =========================================================================

    def spawn(self, burn: BurnEvent) -> asyncio.Task:
        """Run enrichment for a burn as an independent task."""
        return self._track(asyncio.create_task(self.enrich(burn)))

    def spawn_refresh(self, token: Token) -> asyncio.Task:
        """Run a refresh for a tracked token as an independent task."""
        return self._track(asyncio.create_task(self.refresh(token)))

    def _track(self, task: asyncio.Task) -> asyncio.Task:
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"Enrichment task crashed: {task.exception()!r}")

    async def stop(self) -> None:
        """Cancel in-flight enrichment and refresh tasks."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # =========================================================================
    # Queries
    # =========================================================================

    async def fetch_trust_lines(self, issuer: str) -> tuple[int, float, str]:
        """Holders and supply of an issuer, following pagination markers.

        Returns:
            (holders, supply, node url)
        """
        lines: list[dict] = []
        params: dict = {"account": issuer, "limit": self.trust_line_page_limit}
        node = ""

        for _ in range(self.trust_line_max_pages):
            response = await self.pool.query("account_lines", **params)
            node = response.node
            lines.extend(response.result.get("lines") or [])

            marker = response.result.get("marker")
            if not marker:
                break
            # Markers are only valid against the same ledger
            params["marker"] = marker
            if "ledger_index" in response.result:
                params["ledger_index"] = response.result["ledger_index"]
        else:
            logger.warning(
                f"Trust lines for {issuer} truncated at {len(lines)} "
                f"({self.trust_line_max_pages} pages)"
            )

        holders, supply = summarize_trust_lines(lines)
        return holders, supply, node

    async def fetch_pool_state(self, amm_account: str) -> tuple[float, float, str]:
        """Current reserves of an AMM.

        Returns:
            (XRP reserve, token reserve, node url)
        """
        response = await self.pool.query("amm_info", amm_account=amm_account)
        liquidity_xrp, liquidity_tokens = pool_reserves(response.result.get("amm") or {})
        return liquidity_xrp, liquidity_tokens, response.node

    # =========================================================================
    # Workflow
    # =========================================================================

    async def enrich(self, burn: BurnEvent) -> Token | None:
        """Build and publish the token created by a burn's account.

        Returns:
            The tracked token, or None if enrichment was abandoned
        """
        start_time = time.monotonic()
        node = burn.node or self.pool.primary_url

        try:
            response = await self.pool.query(
                "account_tx", account=burn.creator, limit=self.account_tx_limit
            )
            node = response.node

            creation = find_pool_creation(response.result.get("transactions") or [])
            if creation is None:
                logger.info(
                    f"No AMMCreate in last {self.account_tx_limit} transactions "
                    f"of {burn.creator}, not tracking"
                )
                return None

            holders, supply, node = await self.fetch_trust_lines(creation.asset.issuer)
            liquidity_xrp, liquidity_tokens, node = await self.fetch_pool_state(
                creation.amm_account
            )
        except ENRICHMENT_ERRORS as e:
            logger.error(f"Failed to fetch token info for {burn.creator}: {e}")
            await self.metrics.record(INITIAL_DETECTION, start_time, node, False)
            return None

        token = Token(
            currency=creation.asset.currency,
            issuer=creation.asset.issuer,
            creator=burn.creator,
            burned_xrp=burn.burned_xrp,
            is_first_ledger=burn.confirmed,
            amm_account=creation.amm_account,
        )
        token.apply_trust_lines(holders, supply)
        token.apply_pool_state(liquidity_xrp, liquidity_tokens)

        token = await self.catalog.upsert(token)
        logger.info(
            f"Tracking {token.currency} ({token.issuer}) [{token.confidence}]: "
            f"holders={token.holders}, price={token.price:.6f} XRP, "
            f"liquidity={token.liquidity_xrp:.2f} XRP"
        )

        await self._publish(token.model_copy())
        await self.metrics.record(INITIAL_DETECTION, start_time, node, True)
        return token

    async def refresh(self, token: Token) -> bool:
        """Re-query pool reserves and holders of a tracked token.

        Returns:
            True if the token was updated and published
        """
        start_time = time.monotonic()
        node = self.pool.primary_url

        try:
            liquidity_xrp, liquidity_tokens, node = await self.fetch_pool_state(token.amm_account)
            holders, supply, node = await self.fetch_trust_lines(token.issuer)
        except ENRICHMENT_ERRORS as e:
            logger.warning(f"Pool update failed for {token.currency}: {e}")
            await self.metrics.record(MARKET_UPDATE, start_time, node, False)
            return False

        async with self.catalog.locked(token.key):
            token.apply_trust_lines(holders, supply)
            token.apply_pool_state(liquidity_xrp, liquidity_tokens)
            snapshot = token.model_copy()

        await self._publish(snapshot)
        await self.metrics.record(MARKET_UPDATE, start_time, node, True)
        return True

    async def _publish(self, token: Token) -> None:
        """Push a token to subscribers and the snapshot cache."""
        for callback in self._callbacks:
            try:
                await callback(token)
            except Exception as e:
                logger.error(f"Token callback error: {e}")
        await self.catalog.snapshot(token)
