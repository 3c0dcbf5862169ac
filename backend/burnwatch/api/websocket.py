"""WebSocket endpoint for live token and stats updates.

Server -> client messages (``{"type", "data", "timestamp"}``):
- snapshot: every tracked token, sent on connect and on request
- token: a token was created or refreshed
- stats: trailing-window performance summary
- ping / pong / error

Client -> server messages:
- {"type": "ping"}
- {"type": "snapshot"}
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any

import orjson
from fastapi import WebSocket, WebSocketDisconnect
from pydantic import BaseModel, Field

from burnwatch.models import CategoryStats, Token

logger = logging.getLogger(__name__)

# Idle seconds before the server pings a silent client
IDLE_PING_INTERVAL = 60.0


class WebSocketMessage(BaseModel):
    """Envelope for every server message."""

    type: str
    data: Any = None
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def to_json(self) -> str:
        return orjson.dumps(self.model_dump(mode="json")).decode("utf-8")


def _snapshot(websocket: WebSocket) -> WebSocketMessage:
    monitor = getattr(websocket.app.state, "monitor", None)
    tokens = monitor.tokens if monitor is not None else []
    return WebSocketMessage(
        type="snapshot",
        data=[token.model_dump(mode="json") for token in tokens],
    )


class ConnectionManager:
    """Tracks subscribers and fans out updates."""

    def __init__(self):
        self._connections: list[WebSocket] = []
        self._lock = asyncio.Lock()

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._connections.append(websocket)
        logger.info(f"Subscriber connected ({self.connection_count} total)")

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            if websocket in self._connections:
                self._connections.remove(websocket)
        logger.info(f"Subscriber disconnected ({self.connection_count} total)")

    async def broadcast(self, message: WebSocketMessage) -> None:
        """Send to every subscriber, dropping the ones that fail."""
        if not self._connections:
            return

        text = message.to_json()
        async with self._lock:
            stale = []
            for websocket in self._connections:
                try:
                    await websocket.send_text(text)
                except Exception as e:
                    logger.warning(f"Dropping subscriber after send failure: {e}")
                    stale.append(websocket)
            for websocket in stale:
                self._connections.remove(websocket)

    async def send_token(self, token: Token) -> None:
        await self.broadcast(WebSocketMessage(type="token", data=token.model_dump(mode="json")))

    async def send_stats(self, stats: list[CategoryStats]) -> None:
        await self.broadcast(WebSocketMessage(type="stats", data=[row.model_dump() for row in stats]))


# Global connection manager
manager = ConnectionManager()


async def websocket_endpoint(websocket: WebSocket):
    """Serve one subscriber until it disconnects."""
    await manager.connect(websocket)

    try:
        await websocket.send_text(_snapshot(websocket).to_json())

        while True:
            try:
                raw = await asyncio.wait_for(websocket.receive_text(), timeout=IDLE_PING_INTERVAL)
            except asyncio.TimeoutError:
                await websocket.send_text(WebSocketMessage(type="ping").to_json())
                continue

            try:
                request = orjson.loads(raw)
            except orjson.JSONDecodeError:
                reply = WebSocketMessage(type="error", data={"message": "Invalid JSON"})
            else:
                kind = request.get("type") if isinstance(request, dict) else None
                if kind == "ping":
                    reply = WebSocketMessage(type="pong")
                elif kind == "snapshot":
                    reply = _snapshot(websocket)
                else:
                    reply = WebSocketMessage(type="error", data={"message": f"Unknown request: {kind}"})

            await websocket.send_text(reply.to_json())

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error(f"WebSocket error: {e}")
    finally:
        await manager.disconnect(websocket)
