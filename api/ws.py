"""WebSocket connection manager and event broadcaster for schemax."""

import logging
from typing import Any

from fastapi import WebSocket

from schemax.events import DiagramEvent

logger = logging.getLogger(__name__)


class ConnectionManager:
    """Tracks active WebSocket connections per diagram and broadcasts messages."""

    def __init__(self) -> None:
        self.active_connections: dict[str, list[WebSocket]] = {}

    async def connect(self, diagram_id: str, websocket: WebSocket) -> None:
        await websocket.accept()
        self.active_connections.setdefault(diagram_id, []).append(websocket)

    def disconnect(self, diagram_id: str, websocket: WebSocket) -> None:
        connections = self.active_connections.get(diagram_id, [])
        if websocket in connections:
            connections.remove(websocket)
        if not connections:
            self.active_connections.pop(diagram_id, None)

    async def broadcast(self, diagram_id: str, message: dict[str, Any]) -> None:
        """Send a message to all clients watching a diagram."""
        dead: list[WebSocket] = []
        for ws in list(self.active_connections.get(diagram_id, [])):
            try:
                await ws.send_json(message)
            except Exception:
                logger.exception("Dropping websocket for diagram %s", diagram_id)
                dead.append(ws)
        for ws in dead:
            self.disconnect(diagram_id, ws)

    async def send_event(self, event: DiagramEvent) -> None:
        """EventBus listener that forwards session events to watchers."""
        if event.diagram_id in self.active_connections:
            await self.broadcast(event.diagram_id, event.to_message())


manager = ConnectionManager()
