# classplay/api/websockets.py
import logging
from typing import Any, Dict, List, Set

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status
from starlette.websockets import WebSocketState

from classplay.api import deps
from classplay.core.errors import GameError
from classplay.models.game import GameSession, Move
from classplay.services.move_log import MoveLog
from classplay.services.presence import SessionPresence
from classplay.services.session_service import SessionManager

logger = logging.getLogger("classplay.api.websockets")  # Logger for this module
router = APIRouter()


class ConnectionManager:
    def __init__(self):
        # channel ("session:<id>" / "class:<id>") -> open sockets
        self.active_connections: Dict[str, Set[WebSocket]] = {}

    async def connect(self, websocket: WebSocket, channel: str):
        await websocket.accept()
        self.active_connections.setdefault(channel, set()).add(websocket)
        logger.info(f"WS connected to {channel}. Open on channel: {len(self.active_connections[channel])}")

    def disconnect(self, websocket: WebSocket, channel: str):
        sockets = self.active_connections.get(channel)
        if sockets is None or websocket not in sockets:
            return
        sockets.discard(websocket)
        logger.info(f"WS removed from {channel}")
        if not sockets:
            del self.active_connections[channel]

    @property
    def connection_count(self) -> int:
        return sum(len(sockets) for sockets in self.active_connections.values())

    async def send_json_safe(self, websocket: WebSocket, channel: str, message: dict) -> bool:
        try:
            if websocket.client_state == WebSocketState.CONNECTED:
                await websocket.send_json(message)
                return True
            logger.warning(f"WS on {channel} was already closed before sending {message.get('type')}. Disconnecting from manager.")
        except Exception as e:
            logger.exception(f"Error sending {message.get('type')} on {channel}: {e}. Disconnecting.")
        self.disconnect(websocket, channel)
        return False


connection_manager = ConnectionManager()


def session_state_event(session: GameSession | None, changed: Set[str]) -> Dict[str, Any]:
    return {
        "type": "session_state",
        "changed": sorted(changed),
        "session": session.model_dump(by_alias=True, mode="json") if session else None,
    }


def move_appended_event(move: Move) -> Dict[str, Any]:
    return {"type": "move_appended", "move": move.model_dump(by_alias=True, mode="json")}


def active_sessions_event(class_id: str, sessions: List[GameSession]) -> Dict[str, Any]:
    return {
        "type": "active_sessions",
        "class_id": class_id,
        "sessions": [session.model_dump(by_alias=True, mode="json") for session in sessions],
    }


async def _listen_until_disconnect(websocket: WebSocket, channel: str):
    # Clients only listen; anything they send besides "ping" is ignored.
    while True:
        text = await websocket.receive_text()
        if text == "ping":
            await connection_manager.send_json_safe(websocket, channel, {"type": "pong"})


@router.websocket("/ws/sessions/{session_id}")
async def session_websocket_endpoint(
    websocket: WebSocket,
    session_id: str,
    manager: SessionManager = Depends(deps.get_session_manager),
    move_log: MoveLog = Depends(deps.get_move_log),
):
    channel = f"session:{session_id}"
    await connection_manager.connect(websocket, channel)

    try:
        await manager.get_session(session_id)
    except GameError as e:
        logger.warning(f"S:{session_id} - WS rejected: {e.message}")
        await connection_manager.send_json_safe(websocket, channel, {"type": "error", **e.to_dict()})
        connection_manager.disconnect(websocket, channel)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=e.message)
        return

    async def _forward(kind: str, detail: Any):
        if kind == "session":
            event = session_state_event(presence.view.session, detail)
        else:
            event = move_appended_event(detail)
        await connection_manager.send_json_safe(websocket, channel, event)

    presence = SessionPresence(manager, move_log, session_id, on_change=_forward)
    try:
        async with presence:
            await _listen_until_disconnect(websocket, channel)
    except WebSocketDisconnect:
        logger.info(f"S:{session_id} - WS client disconnected.")
    finally:
        connection_manager.disconnect(websocket, channel)


@router.websocket("/ws/classes/{class_id}/sessions")
async def class_sessions_websocket_endpoint(
    websocket: WebSocket,
    class_id: str,
    manager: SessionManager = Depends(deps.get_session_manager),
):
    channel = f"class:{class_id}"
    await connection_manager.connect(websocket, channel)

    async def _forward(sessions: List[GameSession]):
        await connection_manager.send_json_safe(websocket, channel, active_sessions_event(class_id, sessions))

    unsubscribe = None
    try:
        unsubscribe = await manager.subscribe_active_sessions(class_id, _forward)
        await _listen_until_disconnect(websocket, channel)
    except WebSocketDisconnect:
        logger.info(f"Class '{class_id}' lobby WS disconnected.")
    except GameError as e:
        logger.warning(f"Class '{class_id}' lobby WS rejected: {e.message}")
        await connection_manager.send_json_safe(websocket, channel, {"type": "error", **e.to_dict()})
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason=e.message)
    finally:
        if unsubscribe is not None:
            unsubscribe()
        connection_manager.disconnect(websocket, channel)
