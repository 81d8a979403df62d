"""Process-wide registry of websocket subscribers, grouped by channel."""
import asyncio
import logging
from collections import defaultdict
from typing import Any, Dict, Optional

from fastapi import WebSocket

from domain.identity import Caller, Role

logger = logging.getLogger(__name__)

SESSION_CLAIMED = "session_claimed"


def channel_for(session_id: str) -> str:
    return f"session:{session_id}"


class ConnectionManager:
    def __init__(self):
        self._channels: Dict[str, set[WebSocket]] = defaultdict(set)
        self._owners: Dict[WebSocket, Caller] = {}

    def join(self, channel: str, websocket: WebSocket, caller: Optional[Caller] = None) -> None:
        self._channels[channel].add(websocket)
        if caller is not None:
            self._owners[websocket] = caller
        logger.debug("Socket joined %s (%d subscribers)", channel, len(self._channels[channel]))

    def leave(self, channel: str, websocket: WebSocket) -> None:
        subscribers = self._channels.get(channel)
        if not subscribers:
            return
        subscribers.discard(websocket)
        if not subscribers:
            del self._channels[channel]

    def leave_all(self, websocket: WebSocket) -> None:
        for channel in list(self._channels):
            self.leave(channel, websocket)
        self._owners.pop(websocket, None)

    def subscribers(self, channel: str) -> set[WebSocket]:
        return set(self._channels.get(channel, ()))

    def find(self, channel: str, socket_id: int) -> Optional[WebSocket]:
        """Local socket by ``id()``, used to honour excludes relayed between processes."""
        return next((ws for ws in self.subscribers(channel) if id(ws) == socket_id), None)

    def _evict_other_agents(self, channel: str, agent_id: Optional[str]) -> None:
        for ws in self.subscribers(channel):
            owner = self._owners.get(ws)
            if owner is not None and owner.role == Role.AGENT and owner.id != agent_id:
                logger.info("Agent %s removed from %s after claim by %s", owner.id, channel, agent_id)
                self.leave(channel, ws)

    async def broadcast(self,
                        channel: str,
                        payload: Dict[str, Any],
                        exclude: Optional[WebSocket] = None) -> int:
        """Send to every current subscriber but ``exclude``; returns how many got it."""
        targets = [ws for ws in self.subscribers(channel) if ws is not exclude]

        results = await asyncio.gather(
            *(ws.send_json(payload) for ws in targets),
            return_exceptions=True,
        )
        delivered = 0
        for ws, result in zip(targets, results):
            if isinstance(result, Exception):
                # Conexão morta: remove e segue para os demais
                logger.info("Dropping dead socket from %s: %s", channel, result)
                self.leave(channel, ws)
            else:
                delivered += 1

        if payload.get("type") == SESSION_CLAIMED:
            # Só o agente que assumiu continua no canal
            self._evict_other_agents(channel, payload.get("agent_id"))
        return delivered

    async def publish(self,
                      channel: str,
                      payload: Dict[str, Any],
                      exclude: Optional[WebSocket] = None) -> None:
        # Publisher de processo único (REALTIME_BACKEND=local)
        await self.broadcast(channel, payload, exclude=exclude)


manager = ConnectionManager()
