"""Data storage layer."""

from burnwatch.storage.database import Database, get_database, init_database
from burnwatch.storage.metrics_repo import MetricsRepository
from burnwatch.storage.watermark_repo import WatermarkRepository
from burnwatch.storage.write_queue import WriteRetryQueue
from burnwatch.storage import cache
from burnwatch.storage import token_cache

__all__ = [
    "Database",
    "get_database",
    "init_database",
    "MetricsRepository",
    "WatermarkRepository",
    "WriteRetryQueue",
    "cache",
    "token_cache",
]
