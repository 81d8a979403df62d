"""Canal em tempo real por sessão de chat."""
import json
import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from core.dependencies import get_broadcast_service, get_session_service
from core.websocket import manager
from domain.errors import ChatError
from handlers.ws.messages import HANDLERS, SocketContext
from services.broadcast_service import BroadcastService
from services.session_service import SessionService
from utils.auth import get_ws_caller
from utils.security import Security, get_security

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Realtime"])


@router.websocket("/ws/chat")
async def chat_socket(
    websocket: WebSocket,
    security: Security = Depends(get_security),
    session_service: SessionService = Depends(get_session_service),
    broadcaster: BroadcastService = Depends(get_broadcast_service),
):
    """
    Subscribers send JSON frames ``{"action": "join" | "leave" | "typing" | "ping", ...}``.
    Once joined, every message posted to the session is pushed here. Nothing
    is replayed on reconnect: clients re-fetch history over HTTP.
    """
    await websocket.accept()

    # Alguns navegadores não enviam headers no handshake: aceita ?token= ou ?guest=
    try:
        caller = get_ws_caller(websocket, security)
    except ValueError as e:
        logger.info("WebSocket auth failure: %s", e)
        await websocket.send_json({"type": "error", "message": "Unauthorized"})
        await websocket.close(code=1008)  # Policy Violation
        return

    ctx = SocketContext(
        websocket=websocket,
        caller=caller,
        session_service=session_service,
        broadcaster=broadcaster,
        manager=manager,
    )

    try:
        while True:
            raw_data = await websocket.receive_text()
            try:
                data = json.loads(raw_data)
            except ValueError:
                await websocket.send_json({"type": "error", "message": "Invalid JSON"})
                continue

            action = data.get("action") if isinstance(data, dict) else None
            handler = HANDLERS.get(action)
            if not handler:
                await websocket.send_json({"type": "error", "action": action, "message": "Unknown action"})
                continue

            try:
                result = await handler(ctx, data)
            except ChatError as e:
                await websocket.send_json({
                    "type": "error",
                    "action": action,
                    "status": e.status_code,
                    "message": e.message,
                })
                continue

            if result:
                await websocket.send_json(result)
    except WebSocketDisconnect:
        logger.debug("Socket of %s disconnected", caller.id)
    finally:
        manager.leave_all(websocket)
