"""API endpoints."""

from burnwatch.api.routes import router
from burnwatch.api.websocket import manager, websocket_endpoint, ConnectionManager

__all__ = [
    "router",
    "manager",
    "websocket_endpoint",
    "ConnectionManager",
]
