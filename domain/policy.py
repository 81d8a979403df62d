"""Single access table for every chat action.

Routes and the websocket handler ask this table instead of branching on roles
themselves. Session-level ownership (is this *your* session?) is checked by
the services on top of this.
"""
from enum import Enum

from domain.errors import Forbidden
from domain.identity import Role


class Action(str, Enum):
    OPEN_CHAT = "open_chat"
    SEND_CUSTOMER_MESSAGE = "send_customer_message"
    VIEW_QUEUE = "view_queue"
    CLAIM_SESSION = "claim_session"
    SEND_AGENT_MESSAGE = "send_agent_message"
    CLOSE_SESSION = "close_session"
    UPLOAD_ATTACHMENT = "upload_attachment"
    VIEW_SESSION = "view_session"
    SUBSCRIBE = "subscribe"


_CUSTOMER_SIDE = {
    Action.OPEN_CHAT,
    Action.SEND_CUSTOMER_MESSAGE,
    Action.UPLOAD_ATTACHMENT,
    Action.VIEW_SESSION,
    Action.SUBSCRIBE,
}

_AGENT_SIDE = {
    Action.VIEW_QUEUE,
    Action.CLAIM_SESSION,
    Action.SEND_AGENT_MESSAGE,
    Action.CLOSE_SESSION,
    Action.UPLOAD_ATTACHMENT,
    Action.VIEW_SESSION,
    Action.SUBSCRIBE,
}

POLICY: dict[tuple[Role, Action], bool] = {
    (role, action): (
        (role in (Role.CUSTOMER, Role.ANONYMOUS) and action in _CUSTOMER_SIDE)
        or (role == Role.AGENT and action in _AGENT_SIDE)
    )
    for role in Role
    for action in Action
}


def is_allowed(role: Role, action: Action) -> bool:
    return POLICY.get((role, action), False)


def ensure_allowed(role: Role, action: Action) -> None:
    if not is_allowed(role, action):
        raise Forbidden(f"Role {role.value} cannot perform {action.value}")
