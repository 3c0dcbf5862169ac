"""Business services."""

from burnwatch.services.catalog import TokenCatalog
from burnwatch.services.classifier import TransactionClassifier
from burnwatch.services.enrichment import TokenEnrichmentWorkflow
from burnwatch.services.metrics_recorder import MetricsRecorder
from burnwatch.services.monitor import LedgerMonitor
from burnwatch.services.reconciler import CatchUpReconciler, MAX_LOOKBACK, MAX_PASSES, catch_up_range
from burnwatch.services.watermark import WatermarkStore

__all__ = [
    "TokenCatalog",
    "TransactionClassifier",
    "TokenEnrichmentWorkflow",
    "MetricsRecorder",
    "LedgerMonitor",
    "CatchUpReconciler",
    "MAX_LOOKBACK",
    "MAX_PASSES",
    "catch_up_range",
    "WatermarkStore",
]
