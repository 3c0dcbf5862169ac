"""Metric sample repository."""

from datetime import datetime

from sqlalchemy import Integer, cast, func, insert, select

from burnwatch.models import CategoryStats, MetricSample
from burnwatch.storage.database import MetricTable, get_database


class MetricsRepository:
    """Repository for latency samples and windowed aggregates."""

    async def save_batch(self, samples: list[MetricSample]) -> None:
        """Append samples."""
        if not samples:
            return

        async with get_database().session() as session:
            await session.execute(
                insert(MetricTable),
                [
                    {
                        "category": s.category,
                        "timestamp": s.timestamp,
                        "latency": s.latency_seconds,
                        "node": s.node_id,
                        "success": s.success,
                    }
                    for s in samples
                ],
            )

    async def aggregate_since(self, since: datetime) -> list[CategoryStats]:
        """Per-category count, latency and success rate for samples >= since."""
        successes = func.sum(cast(MetricTable.success, Integer))
        total = func.count(MetricTable.id)

        async with get_database().session() as session:
            stmt = (
                select(
                    MetricTable.category,
                    total.label("sample_count"),
                    func.avg(MetricTable.latency).label("avg_latency"),
                    func.min(MetricTable.latency).label("min_latency"),
                    func.max(MetricTable.latency).label("max_latency"),
                    successes.label("successes"),
                )
                .where(MetricTable.timestamp >= since)
                .group_by(MetricTable.category)
                .order_by(MetricTable.category)
            )
            result = await session.execute(stmt)
            rows = result.all()

            return [
                CategoryStats(
                    category=row.category,
                    count=row.sample_count,
                    avg_latency=float(row.avg_latency or 0),
                    min_latency=float(row.min_latency or 0),
                    max_latency=float(row.max_latency or 0),
                    success_rate=(float(row.successes or 0) / row.sample_count * 100) if row.sample_count else 0.0,
                )
                for row in rows
            ]
