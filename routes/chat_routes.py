"""Rotas do widget de chat do cliente (logado ou visitante)."""
from fastapi import APIRouter, Depends, File, UploadFile, status
from pydantic import BaseModel

from core.dependencies import get_attachment_service, get_message_service, get_session_service
from domain.errors import SessionEnded
from domain.identity import Caller
from domain.policy import Action
from services.attachment_service import AttachmentService
from services.message_service import MessageService
from services.session_service import SessionService
from utils.auth import PermissionChecker, get_current_caller


# --- Schemas ---
class SendMessageRequest(BaseModel):
    text: str


async def read_upload(file: UploadFile, attachment_service: AttachmentService) -> bytes:
    # Rejeita cedo quando o tamanho já vem no multipart
    if file.size is not None:
        attachment_service.validate(file.filename, file.size)
    return await file.read()


class ChatRoutes():
    def __init__(self):
        self.router = APIRouter(prefix="/chat", tags=["Chat"])
        self._register_routes()

    def _register_routes(self):
        self.router.add_api_route("/open", self.open_chat, methods=["POST"], status_code=status.HTTP_200_OK)
        self.router.add_api_route("/unread-count", self.unread_count, methods=["GET"], status_code=status.HTTP_200_OK)
        self.router.add_api_route("/{session_id}/messages", self.get_messages, methods=["GET"], status_code=status.HTTP_200_OK)
        self.router.add_api_route("/{session_id}/messages", self.send_message, methods=["POST"], status_code=status.HTTP_201_CREATED)
        self.router.add_api_route("/{session_id}/attachments", self.upload_attachment, methods=["POST"], status_code=status.HTTP_201_CREATED)
        self.router.add_api_route("/{session_id}/read", self.mark_read, methods=["POST"], status_code=status.HTTP_200_OK)

    async def open_chat(self,
                        caller: Caller = Depends(PermissionChecker(Action.OPEN_CHAT)),
                        session_service: SessionService = Depends(get_session_service)) -> dict:
        """Find or start the caller's conversation and mark agent replies as read."""
        view = await session_service.open_chat(caller)
        return view.to_payload()

    async def unread_count(self,
                           caller: Caller = Depends(get_current_caller),
                           message_service: MessageService = Depends(get_message_service)) -> dict:
        """Badge fallback, polled every few seconds by the storefront."""
        count = await message_service.unread_agent_message_count(caller.customer_key)
        return {"unreadCount": count}

    async def get_messages(self,
                           session_id: str,
                           caller: Caller = Depends(PermissionChecker(Action.VIEW_SESSION)),
                           session_service: SessionService = Depends(get_session_service)) -> list[dict]:
        """Full history; clients call this after reconnecting the websocket."""
        view = await session_service.get_chat_view(session_id, caller)
        return [m.to_payload() for m in view.messages]

    async def send_message(self,
                           session_id: str,
                           payload: SendMessageRequest,
                           caller: Caller = Depends(PermissionChecker(Action.SEND_CUSTOMER_MESSAGE)),
                           session_service: SessionService = Depends(get_session_service),
                           message_service: MessageService = Depends(get_message_service)) -> dict:
        session = await session_service.get_session_for_caller(session_id, caller)
        message = await message_service.send_customer_message(session, caller, payload.text)
        return message.to_payload()

    async def upload_attachment(self,
                                session_id: str,
                                file: UploadFile = File(...),
                                caller: Caller = Depends(PermissionChecker(Action.UPLOAD_ATTACHMENT)),
                                session_service: SessionService = Depends(get_session_service),
                                message_service: MessageService = Depends(get_message_service),
                                attachment_service: AttachmentService = Depends(get_attachment_service)) -> dict:
        session = await session_service.get_session_for_caller(session_id, caller)
        if not session.is_open:
            raise SessionEnded()

        content = await read_upload(file, attachment_service)
        attachment = await attachment_service.store(session.id, file.filename, content)
        message = await message_service.post_attachment(session, caller, attachment)
        return message.to_payload()

    async def mark_read(self,
                        session_id: str,
                        caller: Caller = Depends(PermissionChecker(Action.VIEW_SESSION)),
                        session_service: SessionService = Depends(get_session_service),
                        message_service: MessageService = Depends(get_message_service)) -> dict:
        session = await session_service.get_session_for_caller(session_id, caller)
        updated = await message_service.mark_agent_messages_read(session.id)
        return {"updated": updated}


_routes = ChatRoutes()
router = _routes.router
