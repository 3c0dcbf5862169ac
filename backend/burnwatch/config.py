"""Application configuration."""

from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database
    database_url: str = "postgresql://localhost/burnwatch"

    # Redis
    redis_url: str = "redis://localhost:6379/0"

    # XRPL nodes
    xrpl_nodes: list[str] = [
        "wss://s1.ripple.com",
        "wss://s2.ripple.com",
        "wss://xrpl.ws",
    ]
    connect_retries: int = 3
    connect_timeout: float = 10.0
    request_retries: int = 3
    request_timeout: float = 20.0
    retry_backoff_base: float = 1.0  # seconds, doubled per attempt

    # Burn detection
    burn_address: str = "rBurnFirstledger"
    burn_amounts: list[str] = ["100000000", "400000000", "1000000000"]  # drops
    seen_tx_cache_size: int = 10_000  # hashes remembered for duplicate deliveries

    # Ledger catch-up
    genesis_ledger_index: int = 94300000
    max_lookback: int = 1000
    catch_up_max_passes: int = 5  # re-read the network ledger after each pass

    # Enrichment
    account_tx_limit: int = 10
    trust_line_page_limit: int = 400
    trust_line_max_pages: int = 10

    # Performance stats
    stats_interval: float = 300.0
    stats_window: float = 300.0

    # Write retry queues (ledger watermark + metrics)
    write_queue_max_size: int = 10_000
    write_queue_flush_interval: float = 5.0

    # Server
    host: str = "0.0.0.0"
    port: int = 3000
    debug: bool = False


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
