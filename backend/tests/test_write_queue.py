"""Tests for the write retry queue."""

import pytest
from unittest.mock import AsyncMock

from burnwatch.storage import WriteRetryQueue


class TestWriteRetryQueue:
    """Tests for WriteRetryQueue."""

    @pytest.fixture
    def flush(self):
        return AsyncMock()

    @pytest.fixture
    def queue(self, flush):
        return WriteRetryQueue("test", flush, max_size=3, flush_interval=60)

    def test_full_queue_drops_oldest(self, queue):
        for item in range(5):
            queue.put(item)

        assert queue.size == 3
        assert queue.dropped == 2
        assert list(queue._items) == [2, 3, 4]

    @pytest.mark.asyncio
    async def test_flush_sends_batch(self, queue, flush):
        queue.put("a")
        queue.put("b")

        assert await queue.flush() == 2
        flush.assert_awaited_once_with(["a", "b"])
        assert queue.size == 0

    @pytest.mark.asyncio
    async def test_empty_flush_is_noop(self, queue, flush):
        assert await queue.flush() == 0
        flush.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_failed_flush_requeues_in_order(self, queue, flush):
        flush.side_effect = ConnectionError("db down")
        queue.put("a")
        queue.put("b")

        assert await queue.flush() == 0
        assert list(queue._items) == ["a", "b"]
        assert queue.dropped == 0

    @pytest.mark.asyncio
    async def test_stop_flushes_pending(self, queue, flush):
        queue.start()
        queue.put("a")

        await queue.stop()

        flush.assert_awaited_once_with(["a"])
        assert queue.size == 0
