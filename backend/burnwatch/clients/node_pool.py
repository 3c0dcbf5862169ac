"""Pool of redundant XRPL node connections.

The pool owns every ``XrplNode``. It connects to the configured endpoints
with bounded exponential backoff, serves queries from any live node with the
same retry discipline, and replaces nodes that drop. After a successful
reconnect it notifies reconnect listeners so the gap left by the drop can be
reconciled.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Awaitable, Callable

from tenacity import (
    AsyncRetrying,
    RetryError,
    before_sleep_log,
    retry_if_exception_type,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from burnwatch.clients.errors import (
    LedgerNotFoundError,
    NoNodesAvailableError,
    XrplConnectionError,
    XrplError,
)
from burnwatch.clients.xrpl_ws import XrplNode
from burnwatch.models import NODE_CONNECT

logger = logging.getLogger(__name__)

# Errors worth another attempt; LedgerNotFoundError is excluded explicitly
TRANSIENT_ERRORS = (XrplError, asyncio.TimeoutError, OSError)

ReconnectCallback = Callable[[XrplNode], Awaitable[None]]
NodeFactory = Callable[[str], XrplNode]


@dataclass(slots=True)
class QueryResponse:
    """Result of a pooled query and the node that served it."""

    result: dict
    node: str


class NodePool:
    """Manages live connections to redundant XRPL endpoints."""

    def __init__(
        self,
        endpoints: list[str],
        metrics=None,
        connect_retries: int = 3,
        connect_timeout: float = 10.0,
        request_retries: int = 3,
        request_timeout: float = 20.0,
        backoff_base: float = 1.0,
        node_factory: NodeFactory | None = None,
    ):
        self.endpoints = list(endpoints)
        self.metrics = metrics
        self.connect_retries = connect_retries
        self.request_retries = request_retries
        self.backoff_base = backoff_base
        self._node_factory = node_factory or (
            lambda url: XrplNode(url, timeout=connect_timeout, request_timeout=request_timeout)
        )

        self._nodes: list[XrplNode] = []
        self._lock = asyncio.Lock()  # Protects pool membership
        self._cursor = 0
        self._current_ledger = 0
        self._closing = False
        self._reconnect_callbacks: list[ReconnectCallback] = []
        self._reconnect_tasks: set[asyncio.Task] = set()

    # =========================================================================
    # Pool state
    # =========================================================================

    @property
    def nodes(self) -> list[XrplNode]:
        """Snapshot of live nodes."""
        return [n for n in self._nodes if n.is_connected]

    @property
    def current_ledger(self) -> int:
        """Best known network ledger index (conservative about finality)."""
        return self._current_ledger

    @property
    def primary_url(self) -> str:
        nodes = self.nodes
        return nodes[0].url if nodes else ""

    def observe_ledger(self, ledger_index: int) -> None:
        """Advance the network ledger index from a live observation."""
        if ledger_index > self._current_ledger:
            self._current_ledger = ledger_index

    def on_reconnect(self, callback: ReconnectCallback) -> None:
        """Register callback awaited once after each successful reconnect."""
        self._reconnect_callbacks.append(callback)

    def _backoff(self) -> wait_exponential:
        return wait_exponential(multiplier=self.backoff_base, min=0, max=60)

    # =========================================================================
    # Connection management
    # =========================================================================

    async def connect_all(self) -> int:
        """Connect to every endpoint in order.

        Returns:
            Number of connected nodes

        Raises:
            NoNodesAvailableError: if no endpoint could be connected
        """
        for url in self.endpoints:
            await self._connect_node(url, self.connect_retries)

        if not self._nodes:
            raise NoNodesAvailableError(
                f"No nodes connected after {self.connect_retries} attempts each: {self.endpoints}"
            )

        logger.info(
            f"Connected to {len(self._nodes)}/{len(self.endpoints)} nodes, "
            f"network ledger {self._current_ledger}"
        )
        return len(self._nodes)

    async def _connect_node(self, url: str, retries: int) -> XrplNode | None:
        """Connect one endpoint with exponential backoff.

        Returns:
            The connected node, or None once retries are exhausted
        """
        start_time = time.monotonic()
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(retries),
                wait=self._backoff(),
                retry=retry_if_exception_type(TRANSIENT_ERRORS),
                before_sleep=before_sleep_log(logger, logging.WARNING),
            ):
                with attempt:
                    node = self._node_factory(url)
                    try:
                        await node.connect()
                        result = await node.request("ledger_current")
                    except TRANSIENT_ERRORS:
                        await node.close()
                        raise
        except RetryError as e:
            logger.warning(f"All {retries} attempts failed for {url}: {e.last_attempt.exception()}")
            await self._record(NODE_CONNECT, start_time, url, False)
            return None

        # One behind the open ledger to stay on validated data
        self.observe_ledger(int(result["ledger_current_index"]) - 1)
        node.on_disconnected(self._handle_disconnect)
        async with self._lock:
            self._nodes.append(node)

        logger.info(f"Connected to {url}")
        await self._record(NODE_CONNECT, start_time, url, True)
        return node

    def _handle_disconnect(self, node: XrplNode) -> None:
        """Schedule replacement of a dropped node."""
        if self._closing:
            return
        logger.warning(f"Disconnected from {node.url}, reconnecting...")
        task = asyncio.create_task(self.reconnect(node))
        self._reconnect_tasks.add(task)
        task.add_done_callback(self._reconnect_tasks.discard)

    async def reconnect(self, node: XrplNode) -> XrplNode | None:
        """Remove a dropped node, reconnect its endpoint, notify listeners."""
        async with self._lock:
            if node in self._nodes:
                self._nodes.remove(node)

        new_node = await self._connect_node(node.url, self.connect_retries)
        if new_node is None:
            logger.error(
                f"Reconnect to {node.url} failed; {len(self._nodes)} node(s) remain"
            )
            return None

        for callback in self._reconnect_callbacks:
            try:
                await callback(new_node)
            except Exception as e:
                logger.error(f"Reconnect callback failed for {node.url}: {e}")
        return new_node

    async def close(self) -> None:
        """Disconnect every node without reconnecting."""
        self._closing = True
        for task in list(self._reconnect_tasks):
            task.cancel()
        async with self._lock:
            nodes, self._nodes = self._nodes, []
        for node in nodes:
            try:
                await node.close()
            except Exception as e:
                logger.warning(f"Error closing {node.url}: {e}")

    # =========================================================================
    # Queries
    # =========================================================================

    def _pick_node(self) -> XrplNode:
        """Round-robin over live nodes."""
        nodes = self.nodes
        if not nodes:
            raise XrplConnectionError("No live nodes")
        self._cursor = (self._cursor + 1) % len(nodes)
        return nodes[self._cursor]

    async def query(self, command: str, **params) -> QueryResponse:
        """Run a command against a live node with bounded retries.

        Raises:
            LedgerNotFoundError: immediately, never retried
            XrplError: the last error once retries are exhausted
        """
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.request_retries),
            wait=self._backoff(),
            retry=(
                retry_if_exception_type(TRANSIENT_ERRORS)
                & retry_if_not_exception_type(LedgerNotFoundError)
            ),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        ):
            with attempt:
                node = self._pick_node()
                result = await node.request(command, **params)
        return QueryResponse(result=result, node=node.url)

    async def refresh_ledger(self) -> int:
        """Re-read the network ledger from a live node.

        Keeps the last known index if no node answers.
        """
        try:
            response = await self.query("ledger_current")
        except TRANSIENT_ERRORS as e:
            logger.warning(f"Network ledger refresh failed, keeping {self._current_ledger}: {e}")
            return self._current_ledger

        self.observe_ledger(int(response.result["ledger_current_index"]) - 1)
        return self._current_ledger

    async def _record(self, category: str, start_time: float, node: str, success: bool) -> None:
        if self.metrics is not None:
            await self.metrics.record(category, start_time, node, success)
