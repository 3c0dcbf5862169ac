"""Database connection and table definitions."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy import (
    BigInteger,
    Boolean,
    Column,
    DateTime,
    Float,
    Index,
    String,
    text,
)
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import declarative_base

from burnwatch.config import get_settings

Base = declarative_base()


class LedgerTable(Base):
    """Ledger watermark table.

    One row per ledger sequence number; ``processed`` is never reverted.
    """

    __tablename__ = "ledgers"

    ledger_index = Column(BigInteger, primary_key=True, autoincrement=False)
    processed = Column(Boolean, nullable=False, default=True)
    processed_at = Column(DateTime(timezone=True), server_default=text("NOW()"))

    __table_args__ = (
        Index("idx_ledgers_processed", "processed", "ledger_index"),
    )


class MetricTable(Base):
    """Operation latency samples."""

    __tablename__ = "metrics"

    id = Column(BigInteger, primary_key=True, autoincrement=True)
    category = Column(String(32), nullable=False)
    timestamp = Column(DateTime(timezone=True), nullable=False)
    latency = Column(Float, nullable=False)  # seconds
    node = Column(String(255), nullable=False, default="")
    success = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        Index("idx_metrics_timestamp", "timestamp"),
        Index("idx_metrics_category_timestamp", "category", "timestamp"),
    )


class Database:
    """Database connection manager."""

    def __init__(self, database_url: str | None = None):
        settings = get_settings()
        url = database_url or settings.database_url

        # Convert postgresql:// to postgresql+asyncpg://
        if url.startswith("postgresql://"):
            url = url.replace("postgresql://", "postgresql+asyncpg://", 1)

        # Writes are small and frequent (one upsert per ledger, one insert
        # per metric sample); a modest pool covers stream + catch-up + API.
        self.engine = create_async_engine(
            url,
            echo=settings.debug,
            pool_size=10,
            max_overflow=10,
            pool_pre_ping=True,    # Validate before use
            pool_recycle=3600,     # Recycle every hour
            pool_timeout=30,       # Wait max 30s for connection
            connect_args={
                "timeout": 10,
                "command_timeout": 30,
            },
        )
        self.session_factory = async_sessionmaker(
            self.engine, class_=AsyncSession, expire_on_commit=False
        )

    async def create_tables(self) -> None:
        """Create all tables."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get a database session."""
        async with self.session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def close(self) -> None:
        """Close database connection."""
        await self.engine.dispose()


# Global database instance
_db: Database | None = None


def get_database() -> Database:
    """Get the global database instance."""
    global _db
    if _db is None:
        _db = Database()
    return _db


async def init_database() -> Database:
    """Initialize the database and create tables."""
    db = get_database()
    await db.create_tables()
    return db
