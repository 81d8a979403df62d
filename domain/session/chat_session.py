from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class SessionStatus(str, Enum):
    WAITING = "Waiting"
    ACTIVE = "Active"
    CLOSED = "Closed"


# Closed é terminal; nada volta para Waiting
ALLOWED_TRANSITIONS: dict[SessionStatus, set[SessionStatus]] = {
    SessionStatus.WAITING: {SessionStatus.ACTIVE},
    SessionStatus.ACTIVE: {SessionStatus.CLOSED},
    SessionStatus.CLOSED: set(),
}


def can_transition(current: SessionStatus, target: SessionStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[SessionStatus(current)]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ChatSession(BaseModel):
    model_config = ConfigDict(populate_by_name=True, use_enum_values=False)

    id: Optional[str] = Field(default=None, alias="_id")
    customer_key: str
    customer_id: Optional[str] = None  # None para visitantes anônimos
    customer_name: str = "Guest"
    customer_email: Optional[str] = None
    agent_id: Optional[str] = None
    status: SessionStatus = SessionStatus.WAITING
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    last_message_at: Optional[datetime] = None

    @property
    def is_open(self) -> bool:
        return self.status != SessionStatus.CLOSED

    @property
    def last_activity_at(self) -> datetime:
        return self.last_message_at or self.updated_at

    def to_document(self) -> dict:
        """Mongo document without ``_id`` so the driver generates one."""
        data = self.model_dump(exclude={"id"})
        data["status"] = self.status.value
        return data
