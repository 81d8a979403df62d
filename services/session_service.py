import logging
from typing import Optional

from domain.errors import Forbidden, NotFound, SessionClaimed, SessionEnded
from domain.identity import Caller, Role, SYSTEM_CALLER
from domain.message.message import SenderRole
from domain.session.chat_session import ChatSession, SessionStatus, can_transition, utcnow
from domain.session.views import AgentDashboard, ChatView, CustomerContext
from repositories.customer_context import CustomerDirectory
from repositories.session import SessionRepository
from services.broadcast_service import BroadcastService
from services.message_service import MessageService

logger = logging.getLogger(__name__)


class SessionService:
    def __init__(self,
                 session_repo: SessionRepository,
                 message_service: MessageService,
                 broadcaster: BroadcastService,
                 customer_directory: Optional[CustomerDirectory] = None):
        self.session_repo: SessionRepository = session_repo
        self.message_service: MessageService = message_service
        self.broadcaster: BroadcastService = broadcaster
        self.customer_directory: Optional[CustomerDirectory] = customer_directory

    async def _transition(self,
                          session_id: str,
                          current: SessionStatus,
                          target: SessionStatus,
                          changes: dict) -> Optional[dict]:
        if not can_transition(current, target):
            raise ValueError(f"Illegal session transition {current.value} -> {target.value}")
        return await self.session_repo.transition(
            session_id, current, {**changes, "status": target.value}
        )

    async def _system_message(self, session_id: str, text: str) -> None:
        await self.message_service.post_message(
            session_id,
            SYSTEM_CALLER.id,
            SYSTEM_CALLER.display_name,
            SenderRole.SYSTEM,
            text,
        )

    async def get_session(self, session_id: str) -> ChatSession:
        doc = await self.session_repo.get_by_id(session_id)
        if not doc:
            raise NotFound("Chat not found")
        return ChatSession(**doc)

    async def get_or_create_session(self,
                                    customer_key: str,
                                    display_name: str,
                                    email: Optional[str] = None,
                                    customer_id: Optional[str] = None) -> ChatSession:
        """
        Return the customer's most recent open session, creating a Waiting one
        if there is none.

        Two first contacts racing on the same key can both create a session;
        there is no lock here and the agent sorts it out when claiming.
        """
        doc = await self.session_repo.find_open_by_customer_key(customer_key)
        if doc:
            return ChatSession(**doc)

        now = utcnow()
        session = ChatSession(
            customer_key=customer_key,
            customer_id=customer_id,
            customer_name=display_name or "Guest",
            customer_email=email,
            status=SessionStatus.WAITING,
            created_at=now,
            updated_at=now,
        )
        stored = await self.session_repo.create(session.to_document())
        logger.info("Chat session %s created for %s", stored["_id"], customer_key)
        await self.message_service.remember_open_session(customer_key, stored["_id"])
        return ChatSession(**stored)

    async def open_chat(self, caller: Caller) -> ChatView:
        """Customer opens (or reopens) the chat widget."""
        session = await self.get_or_create_session(
            caller.customer_key,
            caller.display_name,
            email=caller.email,
            customer_id=caller.customer_id,
        )
        await self.message_service.mark_agent_messages_read(session.id)
        messages = await self.message_service.list_messages(session.id)
        return ChatView(session=session, messages=messages)

    async def claim(self, session_id: str, agent_id: str, agent_name: str) -> ChatSession:
        updated = await self._transition(
            session_id,
            SessionStatus.WAITING,
            SessionStatus.ACTIVE,
            {"agent_id": agent_id, "updated_at": utcnow()},
        )
        if not updated:
            current = await self.session_repo.get_by_id(session_id)
            if not current:
                raise NotFound("Chat not found")
            if current["status"] == SessionStatus.CLOSED.value:
                raise SessionEnded()
            raise SessionClaimed()

        logger.info("Agent %s claimed chat %s", agent_id, session_id)
        await self.broadcaster.publish_claimed(session_id, agent_id)
        await self._system_message(session_id, f"{agent_name} has joined the conversation")
        return ChatSession(**updated)

    async def close(self, session_id: str, agent_id: str) -> ChatSession:
        session = await self.get_session(session_id)
        if session.agent_id != agent_id:
            raise Forbidden()
        if session.status == SessionStatus.CLOSED:
            raise SessionEnded()

        updated = await self._transition(
            session_id,
            SessionStatus.ACTIVE,
            SessionStatus.CLOSED,
            {"updated_at": utcnow()},
        )
        if not updated:
            raise SessionEnded()

        logger.info("Agent %s closed chat %s", agent_id, session_id)
        await self._system_message(session_id, "This conversation has been closed")
        await self.message_service.forget_open_session(session.customer_key)
        return ChatSession(**updated)

    async def get_session_for_caller(self, session_id: str, caller: Caller) -> ChatSession:
        session = await self.get_session(session_id)

        if caller.role == Role.SYSTEM:
            return session
        if caller.role == Role.AGENT:
            # Agentes veem a fila e as próprias conversas
            if session.agent_id == caller.id or session.status == SessionStatus.WAITING:
                return session
            raise Forbidden()
        if session.customer_key == caller.customer_key:
            return session
        raise Forbidden()

    async def _customer_context(self, session: ChatSession) -> Optional[CustomerContext]:
        # Visitantes anônimos não têm pedidos nem carrinho
        if not session.customer_id or self.customer_directory is None:
            return None
        try:
            return await self.customer_directory.get_context(session.customer_id)
        except Exception as e:
            logger.warning("Customer context unavailable for %s: %s", session.customer_id, e)
            return None

    async def get_chat_view(self, session_id: str, caller: Caller) -> ChatView:
        """History of a session; agents also get the customer's store context."""
        session = await self.get_session_for_caller(session_id, caller)
        messages = await self.message_service.list_messages(session.id)
        context = await self._customer_context(session) if caller.role == Role.AGENT else None
        return ChatView(session=session, messages=messages, customer_context=context)

    async def agent_dashboard(self, agent_id: str) -> AgentDashboard:
        waiting = await self.session_repo.list_waiting()
        active = await self.session_repo.list_active_for_agent(agent_id)
        return AgentDashboard(
            waiting=[ChatSession(**doc) for doc in waiting],
            active=[ChatSession(**doc) for doc in active],
        )
