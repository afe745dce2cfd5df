"""
WebSocket routes for real-time session updates.
"""
from typing import Optional

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from fingame import GameError, GameSession, serialize_notification

from .logging_config import activity_logger, get_logger
from .monitoring import broadcast_duration_seconds, track_performance, websocket_connections
from .sessions import SessionNotFoundError, session_manager
from .websocket_manager import connection_manager

logger = get_logger("websocket")

router = APIRouter()


@router.websocket("/ws/sessions/{session_id}")
async def websocket_session_endpoint(websocket: WebSocket, session_id: str, player_id: Optional[str] = Query(None)):
    """WebSocket endpoint for session updates."""
    try:
        session = session_manager.get_session(session_id)
    except SessionNotFoundError:
        await websocket.accept()
        await websocket.send_json({"type": "error", "message": f"Session {session_id} not found"})
        await websocket.close()
        return

    if player_id is not None and player_id not in session.players:
        player_id = None  # spectator

    await connection_manager.connect(websocket, session_id, player_id)
    websocket_connections.labels(session_id=session_id).inc()
    logger.info("websocket_connected", session_id=session_id, player_id=player_id)
    activity_logger.log_websocket_event("connected", session_id, player_id)

    try:
        await connection_manager.send_personal_message({
            "type": "state",
            "data": session.get_state(),
        }, websocket)

        while True:
            data = await websocket.receive_json()
            message_type = data.get("type") if isinstance(data, dict) else None

            if message_type == "ping":
                await connection_manager.send_personal_message({"type": "pong"}, websocket)

            elif message_type == "get_state":
                await connection_manager.send_personal_message({
                    "type": "state",
                    "data": session.get_state(),
                }, websocket)

            else:
                await connection_manager.send_personal_message({
                    "type": "error",
                    "message": f"Unknown message type: {message_type}",
                }, websocket)
    except WebSocketDisconnect:
        logger.info("websocket_disconnected", session_id=session_id, player_id=player_id)
        activity_logger.log_websocket_event("disconnected", session_id, player_id)
    finally:
        await connection_manager.disconnect(websocket)
        websocket_connections.labels(session_id=session_id).dec()
        await _drop_disconnected_player(session, player_id)


async def _drop_disconnected_player(session: GameSession, player_id: Optional[str]):
    """Remove a player whose last socket went away."""
    if player_id is None or connection_manager.player_connected(session.session_id, player_id):
        return
    if player_id not in session.players:
        return
    try:
        session.remove_player(player_id)
    except GameError as e:
        logger.warning("remove_disconnected_player_failed", session_id=session.session_id,
                       player_id=player_id, error=str(e))
        return
    activity_logger.log_websocket_event("player_removed", session.session_id, player_id)
    await broadcast_session_update(session)


@track_performance(broadcast_duration_seconds)
async def broadcast_session_update(session: GameSession):
    """Broadcast the state snapshot, new log entries and pending notifications."""
    session_id = session.session_id
    await connection_manager.broadcast_to_session(session_id, {
        "type": "state_update",
        "data": session.get_state(),
    })

    entries = session_manager.new_log_entries(session)
    if entries:
        await connection_manager.broadcast_to_session(session_id, {
            "type": "log",
            "data": entries,
        })

    for notification in session.drain_notifications():
        await connection_manager.broadcast_to_session(session_id, {
            "type": "notification",
            "data": serialize_notification(notification),
        })
