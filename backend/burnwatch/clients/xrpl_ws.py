"""XRPL WebSocket node connection using picows.

One ``XrplNode`` wraps a single websocket to a rippled endpoint and
multiplexes two things over it:

- request/response commands, correlated by ``id``
- the ``transactions`` subscription stream, delivered through a queue
"""

import asyncio
import logging
from typing import AsyncIterator, Callable

import orjson
from picows import ws_connect, WSFrame, WSTransport, WSListener, WSMsgType, WSCloseCode

from burnwatch.clients.errors import XrplConnectionError, request_error

logger = logging.getLogger(__name__)

# Queue marker signalling the stream ended because the socket closed
_STREAM_CLOSED = object()

DisconnectCallback = Callable[["XrplNode"], None]


class XrplListener(WSListener):
    """picows listener for a rippled WebSocket connection."""

    def __init__(self, node: "XrplNode", loop: asyncio.AbstractEventLoop):
        self._node = node
        self._transport: WSTransport | None = None
        # Store loop at init time; picows callbacks may run from different threads
        self._loop = loop

    def on_ws_connected(self, transport: WSTransport):
        """Called when WebSocket connection is established."""
        self._transport = transport
        logger.info(f"picows: connected to {self._node.url}")

    def on_ws_disconnected(self, transport: WSTransport):
        """Called when WebSocket is disconnected."""
        logger.info(f"picows: disconnected from {self._node.url}")
        self._transport = None
        self._loop.call_soon_threadsafe(self._node._handle_disconnected)

    def on_ws_frame(self, transport: WSTransport, frame: WSFrame):
        """Called when a new frame is received."""
        if frame.msg_type == WSMsgType.TEXT:
            payload = frame.get_payload_as_bytes()
            self._loop.call_soon_threadsafe(self._node._handle_message, payload)
        elif frame.msg_type == WSMsgType.PING:
            transport.send_pong(frame.get_payload_as_bytes())

    def send(self, message: dict) -> None:
        if not self._transport:
            raise XrplConnectionError(f"Not connected to {self._node.url}")
        self._transport.send(WSMsgType.TEXT, orjson.dumps(message))

    def disconnect(self) -> None:
        """Disconnect the WebSocket."""
        if self._transport:
            self._transport.send_close(WSCloseCode.OK)
            self._transport.disconnect()


class XrplNode:
    """A single connection to an XRPL node."""

    def __init__(self, url: str, timeout: float = 10.0, request_timeout: float = 20.0):
        self.url = url
        self.timeout = timeout
        self.request_timeout = request_timeout
        self._listener: XrplListener | None = None
        self._connected = False
        self._next_id = 0
        self._pending: dict[int, asyncio.Future] = {}
        self._events: asyncio.Queue = asyncio.Queue()
        self._disconnect_callbacks: list[DisconnectCallback] = []

    @property
    def is_connected(self) -> bool:
        return self._connected

    def on_disconnected(self, callback: DisconnectCallback) -> None:
        """Register callback invoked once when this connection drops."""
        self._disconnect_callbacks.append(callback)

    async def connect(self) -> None:
        """Open the websocket, failing after ``timeout`` seconds."""
        loop = asyncio.get_running_loop()

        def listener_factory():
            self._listener = XrplListener(self, loop)
            return self._listener

        try:
            await asyncio.wait_for(
                ws_connect(
                    listener_factory,
                    self.url,
                    enable_auto_ping=True,
                    auto_ping_idle_timeout=30,
                    auto_ping_reply_timeout=10,
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise XrplConnectionError(f"Connection to {self.url} timed out") from e
        except OSError as e:
            raise XrplConnectionError(f"Connection to {self.url} failed: {e}") from e

        self._connected = True

    async def close(self) -> None:
        """Close the connection without triggering reconnect callbacks."""
        self._disconnect_callbacks.clear()
        if self._listener:
            self._listener.disconnect()
        self._handle_disconnected()

    async def request(self, command: str, **params) -> dict:
        """Send a command and wait for its result.

        Raises:
            XrplConnectionError: not connected, dropped, or timed out
            XrplRequestError: the node returned an error status
        """
        if not self._connected or self._listener is None:
            raise XrplConnectionError(f"Not connected to {self.url}")

        self._next_id += 1
        request_id = self._next_id
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future

        try:
            self._listener.send({"id": request_id, "command": command, **params})
            response = await asyncio.wait_for(future, timeout=self.request_timeout)
        except asyncio.TimeoutError as e:
            raise XrplConnectionError(
                f"{command} on {self.url} timed out after {self.request_timeout}s"
            ) from e
        finally:
            self._pending.pop(request_id, None)

        if response.get("status") == "error" or "error" in response:
            raise request_error(response)
        return response.get("result", {})

    async def transactions(self) -> AsyncIterator[dict]:
        """Subscribe to validated transactions and yield stream events.

        Each event carries ``ledger_index``, ``transaction`` (or ``tx_json``)
        and ``meta``. The iterator ends when the connection drops.
        """
        await self.request("subscribe", streams=["transactions"])
        while True:
            event = await self._events.get()
            if event is _STREAM_CLOSED:
                return
            yield event

    def _handle_message(self, payload: bytes) -> None:
        """Route an incoming message to its request or to the stream."""
        try:
            data = orjson.loads(payload)
        except orjson.JSONDecodeError as e:
            logger.error(f"Failed to parse message from {self.url}: {e}")
            return

        msg_type = data.get("type")
        if msg_type == "transaction":
            if data.get("validated", True):
                self._events.put_nowait(data)
            return

        request_id = data.get("id")
        future = self._pending.get(request_id)
        if future is not None and not future.done():
            future.set_result(data)
        elif msg_type not in ("ledgerClosed", "serverStatus"):
            logger.debug(f"Unrouted message from {self.url}: {msg_type}")

    def _handle_disconnected(self) -> None:
        """Fail in-flight requests, end the stream, notify listeners."""
        if not self._connected:
            return
        self._connected = False

        for future in self._pending.values():
            if not future.done():
                future.set_exception(XrplConnectionError(f"Disconnected from {self.url}"))
        self._pending.clear()
        self._events.put_nowait(_STREAM_CLOSED)

        for callback in self._disconnect_callbacks:
            try:
                callback(self)
            except Exception as e:
                logger.error(f"Disconnect callback error for {self.url}: {e}")
