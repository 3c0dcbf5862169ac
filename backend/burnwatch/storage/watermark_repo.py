"""Ledger watermark repository."""

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert

from burnwatch.models import LedgerWatermark
from burnwatch.storage.database import LedgerTable, get_database


class WatermarkRepository:
    """Repository for per-ledger processing state.

    Errors propagate; callers decide whether a failed write is retried.
    """

    async def get_highest_processed(self) -> int | None:
        """Highest ledger index marked processed, or None if empty."""
        async with get_database().session() as session:
            stmt = select(func.max(LedgerTable.ledger_index)).where(
                LedgerTable.processed.is_(True)
            )
            result = await session.execute(stmt)
            return result.scalar_one_or_none()

    async def upsert(self, watermarks: list[LedgerWatermark]) -> None:
        """Insert or update watermarks.

        ``processed`` only ever moves to true: a conflicting row keeps its
        flag if the incoming one is false.
        """
        if not watermarks:
            return

        # One row per index; a batch may not touch the same row twice
        rows: dict[int, bool] = {}
        for w in watermarks:
            rows[w.index] = rows.get(w.index, False) or w.processed

        async with get_database().session() as session:
            stmt = insert(LedgerTable).values(
                [{"ledger_index": index, "processed": processed} for index, processed in rows.items()]
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["ledger_index"],
                set_={"processed": LedgerTable.processed | stmt.excluded.processed},
            )
            await session.execute(stmt)
