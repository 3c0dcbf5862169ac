"""Tests for XRPL node message routing."""

import asyncio

import orjson
import pytest
from unittest.mock import MagicMock

from burnwatch.clients import (
    LedgerNotFoundError,
    XrplConnectionError,
    XrplNode,
    XrplRequestError,
)
from burnwatch.clients.errors import request_error


class TestRequestError:
    """Tests for error response mapping."""

    def test_ledger_not_found_codes(self):
        assert isinstance(request_error({"error": "lgrNotFound"}), LedgerNotFoundError)
        assert isinstance(
            request_error({"error": "invalidParams", "error_message": "ledgerNotFound"}),
            LedgerNotFoundError,
        )

    def test_other_errors(self):
        error = request_error({"error": "tooBusy", "error_message": "The server is too busy"})
        assert type(error) is XrplRequestError
        assert error.code == "tooBusy"


class TestXrplNode:
    """Tests for XrplNode without a live socket."""

    @pytest.fixture
    def node(self):
        node = XrplNode("wss://a", request_timeout=1.0)
        node._listener = MagicMock()
        node._connected = True
        return node

    @staticmethod
    def reply(node, message):
        node._handle_message(orjson.dumps(message))

    @pytest.mark.asyncio
    async def test_request_routed_by_id(self, node):
        task = asyncio.create_task(node.request("ledger_current"))
        await asyncio.sleep(0)

        sent = node._listener.send.call_args[0][0]
        assert sent == {"id": 1, "command": "ledger_current"}

        self.reply(node, {"id": 1, "status": "success", "result": {"ledger_current_index": 42}})
        assert await task == {"ledger_current_index": 42}

    @pytest.mark.asyncio
    async def test_error_response_raises(self, node):
        task = asyncio.create_task(node.request("ledger", ledger_index=1))
        await asyncio.sleep(0)

        self.reply(node, {"id": 1, "status": "error", "error": "lgrNotFound"})
        with pytest.raises(LedgerNotFoundError):
            await task

    @pytest.mark.asyncio
    async def test_request_timeout(self, node):
        node.request_timeout = 0.01
        with pytest.raises(XrplConnectionError):
            await node.request("ledger_current")
        assert node._pending == {}

    @pytest.mark.asyncio
    async def test_request_when_disconnected(self):
        node = XrplNode("wss://a")
        with pytest.raises(XrplConnectionError):
            await node.request("ledger_current")

    @pytest.mark.asyncio
    async def test_stream_until_disconnect(self, node):
        events = []
        dropped = []
        node.on_disconnected(dropped.append)

        async def collect():
            async for event in node.transactions():
                events.append(event)

        task = asyncio.create_task(collect())
        await asyncio.sleep(0)
        assert node._listener.send.call_args[0][0]["command"] == "subscribe"
        self.reply(node, {"id": 1, "status": "success", "result": {}})

        self.reply(node, {"type": "transaction", "validated": True, "ledger_index": 10})
        self.reply(node, {"type": "transaction", "validated": False, "ledger_index": 11})
        self.reply(node, {"type": "ledgerClosed", "ledger_index": 11})
        node._handle_disconnected()

        await task
        assert [e["ledger_index"] for e in events] == [10]
        assert dropped == [node]
        assert not node.is_connected

    @pytest.mark.asyncio
    async def test_disconnect_fails_pending_requests(self, node):
        task = asyncio.create_task(node.request("account_lines", account="rIssuer"))
        await asyncio.sleep(0)

        node._handle_disconnected()
        with pytest.raises(XrplConnectionError):
            await task

    @pytest.mark.asyncio
    async def test_close_skips_disconnect_callbacks(self, node):
        dropped = []
        node.on_disconnected(dropped.append)

        await node.close()

        node._listener.disconnect.assert_called_once()
        assert dropped == []
        assert not node.is_connected

    def test_invalid_json_ignored(self, node):
        node._handle_message(b"{not json")
        assert node._events.empty()
