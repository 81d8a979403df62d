"""Rotas do painel dos agentes de suporte."""
from fastapi import APIRouter, Depends, File, UploadFile

from core.dependencies import get_attachment_service, get_message_service, get_session_service
from domain.errors import Forbidden, SessionEnded
from domain.identity import Caller
from domain.policy import Action
from routes.chat_routes import SendMessageRequest, read_upload
from services.attachment_service import AttachmentService
from services.message_service import MessageService
from services.session_service import SessionService
from utils.auth import PermissionChecker

queue_permission = PermissionChecker(Action.VIEW_QUEUE)
view_permission = PermissionChecker(Action.VIEW_SESSION)
claim_permission = PermissionChecker(Action.CLAIM_SESSION)
send_permission = PermissionChecker(Action.SEND_AGENT_MESSAGE)
upload_permission = PermissionChecker(Action.UPLOAD_ATTACHMENT)
close_permission = PermissionChecker(Action.CLOSE_SESSION)

router = APIRouter(prefix="/support", tags=["Support"])


@router.get("/queue")
async def get_queue(
    agent: Caller = Depends(queue_permission),
    session_service: SessionService = Depends(get_session_service),
):
    """
    Conversas aguardando atendimento (mais antigas primeiro) e as conversas
    ativas do agente (atividade mais recente primeiro).
    """
    dashboard = await session_service.agent_dashboard(agent.id)
    return dashboard.to_payload()


@router.get("/{session_id}")
async def get_chat(
    session_id: str,
    agent: Caller = Depends(view_permission),
    session_service: SessionService = Depends(get_session_service),
):
    view = await session_service.get_chat_view(session_id, agent)
    return view.to_payload()


@router.post("/{session_id}/claim")
async def claim_chat(
    session_id: str,
    agent: Caller = Depends(claim_permission),
    session_service: SessionService = Depends(get_session_service),
):
    """
    Assume uma conversa da fila. 409 se outro agente chegou primeiro.
    """
    session = await session_service.claim(session_id, agent.id, agent.display_name)
    return session.model_dump(mode="json")


@router.post("/{session_id}/messages", status_code=201)
async def send_message(
    session_id: str,
    payload: SendMessageRequest,
    agent: Caller = Depends(send_permission),
    session_service: SessionService = Depends(get_session_service),
    message_service: MessageService = Depends(get_message_service),
):
    session = await session_service.get_session(session_id)
    message = await message_service.send_agent_message(session, agent, payload.text)
    return message.to_payload()


@router.post("/{session_id}/attachments", status_code=201)
async def upload_attachment(
    session_id: str,
    file: UploadFile = File(...),
    agent: Caller = Depends(upload_permission),
    session_service: SessionService = Depends(get_session_service),
    message_service: MessageService = Depends(get_message_service),
    attachment_service: AttachmentService = Depends(get_attachment_service),
):
    session = await session_service.get_session(session_id)
    if session.agent_id != agent.id:
        raise Forbidden()
    if not session.is_open:
        raise SessionEnded()

    content = await read_upload(file, attachment_service)
    attachment = await attachment_service.store(session.id, file.filename, content)
    message = await message_service.post_attachment(session, agent, attachment)
    return message.to_payload()


@router.post("/{session_id}/close")
async def close_chat(
    session_id: str,
    agent: Caller = Depends(close_permission),
    session_service: SessionService = Depends(get_session_service),
):
    session = await session_service.close(session_id, agent.id)
    return session.model_dump(mode="json")
