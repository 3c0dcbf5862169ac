"""Tests for the metrics recorder."""

import time
from datetime import datetime, timedelta, timezone

import pytest
from unittest.mock import AsyncMock, MagicMock

from burnwatch.models import CategoryStats, INITIAL_DETECTION, MetricSample, NODE_CONNECT
from burnwatch.services import MetricsRecorder


class TestMetricsRecorder:
    """Tests for MetricsRecorder."""

    @pytest.fixture
    def repo(self):
        repo = MagicMock()
        repo.save_batch = AsyncMock()
        repo.aggregate_since = AsyncMock(return_value=[])
        return repo

    @pytest.fixture
    def recorder(self, repo):
        return MetricsRecorder(repo=repo, stats_window=300)

    @pytest.mark.asyncio
    async def test_record_saves_sample(self, recorder, repo):
        start = time.monotonic() - 0.25

        sample = await recorder.record(NODE_CONNECT, start, "wss://a", True)

        assert isinstance(sample, MetricSample)
        assert sample.category == NODE_CONNECT
        assert sample.node_id == "wss://a"
        assert sample.latency_seconds >= 0.25
        repo.save_batch.assert_awaited_once_with([sample])

    @pytest.mark.asyncio
    async def test_record_failure_is_queued(self, recorder, repo):
        repo.save_batch.side_effect = ConnectionError("db down")

        sample = await recorder.record(INITIAL_DETECTION, time.monotonic(), "wss://a", False)

        assert sample.success is False
        assert recorder.retry_queue.size == 1

    @pytest.mark.asyncio
    async def test_stats_window_queries_trailing_window(self, recorder, repo):
        stats = [CategoryStats(
            category=NODE_CONNECT, count=2, avg_latency=0.5,
            min_latency=0.4, max_latency=0.6, success_rate=50.0,
        )]
        repo.aggregate_since.return_value = stats

        before = datetime.now(timezone.utc)
        assert await recorder.get_performance_stats() == stats

        since = repo.aggregate_since.await_args.args[0]
        assert before - timedelta(seconds=301) < since <= before - timedelta(seconds=299)

    @pytest.mark.asyncio
    async def test_stats_window_failure_is_empty(self, recorder, repo):
        repo.aggregate_since.side_effect = ConnectionError("db down")
        assert await recorder.stats_window(60) == []

    def test_summary_format(self):
        stats = CategoryStats(
            category=INITIAL_DETECTION, count=4, avg_latency=1.25,
            min_latency=0.5, max_latency=2.0, success_rate=75.0,
        )
        assert stats.summary() == (
            "InitialDetection: Count=4, Avg Latency=1.250s, "
            "Min=0.500s, Max=2.000s, Success Rate=75.0%"
        )
