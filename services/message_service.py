import logging
from typing import List, Optional

from domain.errors import Forbidden, InvalidInput, NotFound, SessionEnded
from domain.identity import Caller, Role
from domain.message.attachment import Attachment
from domain.message.message import ChatMessage, SenderRole
from domain.session.chat_session import ChatSession, SessionStatus, utcnow
from repositories.message import MessageRepository
from repositories.session import SessionRepository
from services.broadcast_service import BroadcastService
from utils.cache import Cache

logger = logging.getLogger(__name__)

OPEN_SESSION_CACHE_PREFIX = "chat:open_session:"


class MessageService:
    def __init__(self,
                 message_repo: MessageRepository,
                 session_repo: SessionRepository,
                 broadcaster: BroadcastService,
                 cache: Optional[Cache] = None,
                 cache_ttl: int = 30):
        self._message_repo = message_repo
        self._session_repo = session_repo
        self._broadcaster = broadcaster
        self._cache = cache
        self._cache_ttl = cache_ttl

    # ----------------
    # Cache Helpers
    # ----------------
    async def remember_open_session(self, customer_key: str, session_id: str) -> None:
        if not self._cache:
            return
        try:
            await self._cache.set(f"{OPEN_SESSION_CACHE_PREFIX}{customer_key}",
                                  {"_id": session_id}, ttl=self._cache_ttl)
        except Exception as e:
            logger.warning("Could not cache open session for %s: %s", customer_key, e)

    async def forget_open_session(self, customer_key: str) -> None:
        if not self._cache:
            return
        try:
            await self._cache.delete(f"{OPEN_SESSION_CACHE_PREFIX}{customer_key}")
        except Exception as e:
            logger.warning("Could not evict open session for %s: %s", customer_key, e)

    async def _resolve_open_session_id(self, customer_key: str) -> Optional[str]:
        if self._cache:
            try:
                cached = await self._cache.get(f"{OPEN_SESSION_CACHE_PREFIX}{customer_key}")
                if cached:
                    return cached["_id"]
            except Exception as e:
                # Redis fora do ar: cai para o banco
                logger.warning("Open session cache lookup failed for %s: %s", customer_key, e)

        doc = await self._session_repo.find_open_by_customer_key(customer_key)
        if not doc:
            return None
        await self.remember_open_session(customer_key, doc["_id"])
        return doc["_id"]

    # ----------------
    # Core operations
    # ----------------
    async def post_message(self,
                           session_id: str,
                           sender_id: str,
                           sender_name: str,
                           sender_role: SenderRole,
                           text: str,
                           attachments: Optional[List[Attachment]] = None) -> ChatMessage:
        text = (text or "").strip()
        attachments = list(attachments or [])
        if not text and not attachments:
            raise InvalidInput("Message content is required")

        session = await self._session_repo.get_by_id(session_id)
        if not session:
            raise NotFound("Chat not found")
        if session["status"] == SessionStatus.CLOSED.value and sender_role != SenderRole.SYSTEM:
            raise SessionEnded()

        now = utcnow()
        message = ChatMessage(
            session_id=session_id,
            sender_id=sender_id,
            sender_name=sender_name,
            sender_role=sender_role,
            content=text,
            attachments=attachments,
            created_at=now,
            is_read=False,
        )
        stored = await self._message_repo.insert(message.to_document())
        message.id = stored["_id"]
        await self._session_repo.touch(session_id, now)

        # Só depois de persistido
        await self._broadcaster.publish_message(message)
        return message

    async def mark_agent_messages_read(self, session_id: str) -> int:
        count = await self._message_repo.mark_read(session_id, SenderRole.AGENT.value)
        if count:
            await self._broadcaster.publish_read(session_id, count)
        return count

    async def unread_agent_message_count(self, customer_key: str) -> int:
        session_id = await self._resolve_open_session_id(customer_key)
        if not session_id:
            return 0
        return await self._message_repo.count_unread(session_id, SenderRole.AGENT.value)

    async def list_messages(self, session_id: str) -> List[ChatMessage]:
        docs = await self._message_repo.list_by_session(session_id)
        return [ChatMessage(**doc) for doc in docs]

    # ----------------
    # Caller-aware wrappers
    # ----------------
    async def send_customer_message(self, session: ChatSession, caller: Caller, text: str) -> ChatMessage:
        if session.customer_key != caller.customer_key:
            raise Forbidden()
        return await self.post_message(session.id, caller.id, caller.display_name,
                                       SenderRole.CUSTOMER, text)

    async def send_agent_message(self, session: ChatSession, caller: Caller, text: str) -> ChatMessage:
        if session.agent_id != caller.id:
            raise Forbidden()
        return await self.post_message(session.id, caller.id, caller.display_name,
                                       SenderRole.AGENT, text)

    async def post_attachment(self, session: ChatSession, caller: Caller, attachment: Attachment) -> ChatMessage:
        if caller.role == Role.AGENT:
            if session.agent_id != caller.id:
                raise Forbidden()
            sender_role = SenderRole.AGENT
        else:
            if session.customer_key != caller.customer_key:
                raise Forbidden()
            sender_role = SenderRole.CUSTOMER

        return await self.post_message(
            session.id,
            caller.id,
            caller.display_name,
            sender_role,
            f"Sent attachment: {attachment.file_name}",
            attachments=[attachment],
        )
