import asyncio
import json
import logging
from typing import Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)


class ConnectionManager:
    """
    Tracks open WebSocket observers and broadcasts resolved alerts to them.

    Delivery is best-effort and at-most-once. There is no replay buffer, so
    observers only see alerts resolved while they are connected.
    """

    def __init__(self) -> None:
        self.active_connections: Set[WebSocket] = set()

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        self.active_connections.add(websocket)
        logger.info(f"Observer connected ({len(self.active_connections)} open)")

    def disconnect(self, websocket: WebSocket):
        self.active_connections.discard(websocket)
        logger.info(f"Observer disconnected ({len(self.active_connections)} open)")

    async def broadcast_json(self, event: dict) -> int:
        """
        Send event as a JSON text frame to every open connection.

        Returns:
            Number of connections the frame was handed to
        """
        message = json.dumps(event)
        targets = list(self.active_connections)
        if targets:
            await asyncio.gather(*(self._safe_send(ws, message) for ws in targets))
        return len(targets)

    async def _safe_send(self, ws: WebSocket, message: str):
        try:
            await ws.send_text(message)
        except Exception as e:
            logger.warning(f"Dropping observer after failed send: {e}")
            self.disconnect(ws)
