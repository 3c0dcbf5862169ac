"""Performance metric models."""

from datetime import datetime

from pydantic import BaseModel

# Metric categories
NODE_CONNECT = "NodeConnect"
INITIAL_DETECTION = "InitialDetection"
MARKET_UPDATE = "MarketUpdate"


class MetricSample(BaseModel):
    """A single timed operation outcome."""

    category: str
    timestamp: datetime
    latency_seconds: float
    node_id: str  # URL of the node that served the operation
    success: bool = True


class CategoryStats(BaseModel):
    """Aggregate over a trailing window for one category."""

    category: str
    count: int
    avg_latency: float
    min_latency: float
    max_latency: float
    success_rate: float  # percent

    def summary(self) -> str:
        return (
            f"{self.category}: Count={self.count}, Avg Latency={self.avg_latency:.3f}s, "
            f"Min={self.min_latency:.3f}s, Max={self.max_latency:.3f}s, "
            f"Success Rate={self.success_rate:.1f}%"
        )
