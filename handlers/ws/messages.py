from dataclasses import dataclass

from fastapi import WebSocket

from core.websocket import ConnectionManager, channel_for
from domain.errors import Forbidden, InvalidInput
from domain.identity import Caller
from domain.policy import Action, ensure_allowed
from services.broadcast_service import BroadcastService
from services.session_service import SessionService


@dataclass
class SocketContext:
    websocket: WebSocket
    caller: Caller
    session_service: SessionService
    broadcaster: BroadcastService
    manager: ConnectionManager


def _session_id(payload: dict) -> str:
    session_id = payload.get("session_id")
    if not session_id:
        raise InvalidInput("session_id is required")
    return str(session_id)


async def join(ctx: SocketContext, payload: dict) -> dict:
    ensure_allowed(ctx.caller.role, Action.SUBSCRIBE)
    session = await ctx.session_service.get_session_for_caller(_session_id(payload), ctx.caller)
    ctx.manager.join(channel_for(session.id), ctx.websocket, ctx.caller)
    return {"type": "joined", "session_id": session.id}


async def leave(ctx: SocketContext, payload: dict) -> dict:
    session_id = _session_id(payload)
    ctx.manager.leave(channel_for(session_id), ctx.websocket)
    return {"type": "left", "session_id": session_id}


async def typing(ctx: SocketContext, payload: dict) -> None:
    session_id = _session_id(payload)
    # Membro atual do canal; agentes removidos após um claim não passam
    if ctx.websocket not in ctx.manager.subscribers(channel_for(session_id)):
        raise Forbidden("Join the chat before sending typing events")
    await ctx.broadcaster.publish_typing(
        session_id,
        ctx.caller.id,
        ctx.caller.display_name,
        bool(payload.get("is_typing", True)),
        exclude=ctx.websocket,
    )


async def ping(ctx: SocketContext, payload: dict) -> dict:
    return {"type": "pong"}


HANDLERS = {
    # action -> handler(ctx, payload)
    "join": join,
    "leave": leave,
    "typing": typing,
    "ping": ping,
}
