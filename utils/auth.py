import logging
from typing import Mapping, Optional

from fastapi import Depends, HTTPException, Request, WebSocket, status

from core.environment import get_environment
from domain.errors import Forbidden
from domain.identity import GUEST_KEY_PREFIX, Caller, Role, guest_caller
from domain.policy import Action, ensure_allowed
from utils.security import Security, get_security

logger = logging.getLogger(__name__)

AGENT_ROLES = {"SupportAgent", "Agent"}


def caller_from_payload(payload: dict) -> Caller:
    if str(payload["_id"]).startswith(GUEST_KEY_PREFIX):
        raise ValueError("Invalid token")
    role = Role.AGENT if payload.get("role") in AGENT_ROLES else Role.CUSTOMER
    return Caller(
        id=str(payload["_id"]),
        display_name=payload.get("name") or "Customer",
        role=role,
        email=payload.get("email"),
    )


def _extract_tokens(headers: Mapping[str, str], query: Mapping[str, str]) -> tuple[Optional[str], Optional[str]]:
    # Preferência: Header Authorization (Bearer), senão query param 'token'
    bearer = None
    auth_header = headers.get("authorization")
    if auth_header:
        parts = auth_header.split()
        bearer = parts[1] if len(parts) == 2 and parts[0].lower() == "bearer" else auth_header
    else:
        bearer = query.get("token")

    guest = headers.get(get_environment().GUEST_TOKEN_HEADER.lower()) or query.get("guest")
    return bearer, guest


def resolve_caller(bearer: Optional[str], guest: Optional[str], security: Security) -> Caller:
    """
    Logged-in users come with a signed token; anonymous visitors only carry
    the storefront's per-browser session token, namespaced into a guest key.
    """
    if bearer:
        return caller_from_payload(security.decode(bearer))
    if guest:
        return guest_caller(guest)
    raise ValueError("Token de autenticação ausente")


async def get_current_caller(request: Request, security: Security = Depends(get_security)) -> Caller:
    bearer, guest = _extract_tokens(request.headers, request.query_params)
    try:
        return resolve_caller(bearer, guest, security)
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )


def get_ws_caller(websocket: WebSocket, security: Security) -> Caller:
    """WebSocket flavour; raises ValueError so the handler can close with 1008."""
    bearer, guest = _extract_tokens(websocket.headers, websocket.query_params)
    return resolve_caller(bearer, guest, security)


# Factory para permissões: consulta a tabela única de políticas
class PermissionChecker:
    def __init__(self, action: Action):
        self.action = action

    async def __call__(self, caller: Caller = Depends(get_current_caller)) -> Caller:
        try:
            ensure_allowed(caller.role, self.action)
        except Forbidden as e:
            logger.warning("Acesso negado; caller=%s, action=%s", caller.id, self.action.value)
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=e.message)
        return caller
