"""REST API routes."""

import logging
from datetime import datetime

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from burnwatch import __version__
from burnwatch.models import CategoryStats, Token, token_key
from burnwatch.services import LedgerMonitor

logger = logging.getLogger(__name__)

router = APIRouter()


# Response models
class TokenResponse(BaseModel):
    """Token response model."""

    currency: str
    issuer: str
    creator: str
    burned_xrp: float
    confidence: str
    amm_account: str
    supply: float
    holders: int
    liquidity_xrp: float
    price: float
    market_cap: float
    timestamp: datetime

    @classmethod
    def from_token(cls, token: Token) -> "TokenResponse":
        return cls(confidence=token.confidence, **token.model_dump(exclude={"is_first_ledger", "liquidity_tokens"}))


class SystemStatus(BaseModel):
    """System status response."""

    status: str
    version: str
    nodes: list[str]
    network_ledger: int
    last_seen_ledger: int
    catching_up: bool
    held_stream_events: int = 0
    tokens: int
    pending_enrichments: int
    watermark_retry_queue: int
    watermark_retry_dropped: int
    metrics_retry_queue: int
    metrics_retry_dropped: int


# Dependency for the running monitor
def get_monitor(request: Request) -> LedgerMonitor:
    monitor = getattr(request.app.state, "monitor", None)
    if monitor is None:
        raise HTTPException(status_code=503, detail="Monitor not running")
    return monitor


@router.get("/status", response_model=SystemStatus)
async def get_status(request: Request):
    """Get pipeline status."""
    monitor = get_monitor(request)
    return SystemStatus(status="running", version=__version__, **monitor.status())


@router.get("/tokens", response_model=list[TokenResponse])
async def get_tokens(request: Request, confirmed_only: bool = False):
    """List tracked tokens, newest first."""
    monitor = get_monitor(request)
    tokens = monitor.tokens
    if confirmed_only:
        tokens = [t for t in tokens if t.is_first_ledger]
    return [TokenResponse.from_token(t) for t in tokens]


@router.get("/tokens/{currency}/{issuer}", response_model=TokenResponse)
async def get_token(request: Request, currency: str, issuer: str):
    """Get one tracked token."""
    monitor = get_monitor(request)
    token = monitor.catalog.get(token_key(currency, issuer))
    if token is None:
        raise HTTPException(status_code=404, detail="Token not tracked")
    return TokenResponse.from_token(token)


@router.get("/stats", response_model=list[CategoryStats])
async def get_stats(request: Request):
    """Performance stats for the last 5 minutes."""
    monitor = get_monitor(request)
    return await monitor.get_performance_stats()
