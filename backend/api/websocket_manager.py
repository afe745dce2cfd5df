"""
WebSocket connection manager for real-time session updates.
"""
import asyncio
from typing import Dict, Optional, Set, Tuple

from fastapi import WebSocket

from .logging_config import get_logger

logger = get_logger("websocket_manager")


class ConnectionManager:
    """Tracks WebSocket connections per game session."""

    def __init__(self):
        # session_id -> Set[WebSocket]
        self.active_connections: Dict[str, Set[WebSocket]] = {}
        # WebSocket -> (session_id, player_id)
        self.connection_info: Dict[WebSocket, Tuple[str, Optional[str]]] = {}
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket, session_id: str, player_id: Optional[str] = None):
        """Accept a WebSocket and attach it to a session."""
        await websocket.accept()

        async with self._lock:
            self.active_connections.setdefault(session_id, set()).add(websocket)
            self.connection_info[websocket] = (session_id, player_id)

    async def disconnect(self, websocket: WebSocket) -> Optional[Tuple[str, Optional[str]]]:
        """Detach a WebSocket. Returns the (session_id, player_id) it was bound to."""
        async with self._lock:
            info = self.connection_info.pop(websocket, None)
            if info:
                session_id, _ = info
                connections = self.active_connections.get(session_id)
                if connections is not None:
                    connections.discard(websocket)
                    if not connections:
                        del self.active_connections[session_id]
            return info

    async def send_personal_message(self, message: dict, websocket: WebSocket):
        """Send a message to a specific WebSocket."""
        try:
            await websocket.send_json(message)
        except Exception as e:
            logger.warning("send_personal_message_failed", error=str(e))
            await self.disconnect(websocket)

    async def broadcast_to_session(self, session_id: str, message: dict, exclude: Optional[WebSocket] = None):
        """Broadcast a message to every connection of a session."""
        async with self._lock:
            connections = self.active_connections.get(session_id, set()).copy()

        disconnected = []
        for connection in connections:
            if connection == exclude:
                continue
            try:
                await connection.send_json(message)
            except Exception as e:
                logger.warning("broadcast_failed", session_id=session_id, error=str(e))
                disconnected.append(connection)

        for conn in disconnected:
            await self.disconnect(conn)

    def get_connection_count(self, session_id: str) -> int:
        """Number of active connections for a session."""
        return len(self.active_connections.get(session_id, set()))

    def player_connected(self, session_id: str, player_id: str) -> bool:
        """Whether another socket is still bound to the player."""
        return any(info == (session_id, player_id) for info in self.connection_info.values())


# Global connection manager instance
connection_manager = ConnectionManager()
