import logging
from typing import Any, Dict, Optional, Protocol

from fastapi import WebSocket

from core.websocket import SESSION_CLAIMED, channel_for
from domain.message.message import ChatMessage, SenderRole

logger = logging.getLogger(__name__)


class Publisher(Protocol):
    async def publish(self,
                      channel: str,
                      payload: Dict[str, Any],
                      exclude: Optional[WebSocket] = None) -> None: ...


class BroadcastService:
    """
    Best-effort, at-most-once push of chat events to a session's channel.

    Failures are logged and swallowed: the database is the source of truth
    and a client that missed an event re-fetches history.
    """

    def __init__(self, publisher: Publisher):
        self._publisher = publisher

    async def _safe_publish(self,
                            channel: str,
                            payload: Dict[str, Any],
                            exclude: Optional[WebSocket] = None) -> bool:
        try:
            await self._publisher.publish(channel, payload, exclude=exclude)
            return True
        except Exception as e:
            logger.warning("Broadcast to %s failed (%s): %s", channel, payload.get("type"), e)
            return False

    async def publish_message(self, message: ChatMessage) -> None:
        channel = channel_for(message.session_id)
        await self._safe_publish(channel, {
            "type": "receive_message",
            "data": message.to_payload(),
        })

        if message.sender_role == SenderRole.AGENT:
            # Sinal leve para o badge de notificação, sem o conteúdo
            await self._safe_publish(channel, {
                "type": "new_agent_message",
                "session_id": message.session_id,
            })

    async def publish_read(self, session_id: str, count: int) -> None:
        await self._safe_publish(channel_for(session_id), {
            "type": "messages_read",
            "session_id": session_id,
            "count": count,
        })

    async def publish_claimed(self, session_id: str, agent_id: str) -> None:
        """Every process drops other agents' sockets from the channel on this event."""
        await self._safe_publish(channel_for(session_id), {
            "type": SESSION_CLAIMED,
            "session_id": session_id,
            "agent_id": agent_id,
        })

    async def publish_typing(self,
                             session_id: str,
                             sender_id: str,
                             sender_name: str,
                             is_typing: bool,
                             exclude: Optional[WebSocket] = None) -> None:
        await self._safe_publish(channel_for(session_id), {
            "type": "user_typing",
            "session_id": session_id,
            "sender_id": sender_id,
            "sender_name": sender_name,
            "is_typing": is_typing,
        }, exclude=exclude)
