from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from domain.message.attachment import Attachment


class SenderRole(str, Enum):
    CUSTOMER = "Customer"
    AGENT = "Agent"
    SYSTEM = "System"


class ChatMessage(BaseModel):
    model_config = ConfigDict(populate_by_name=True, arbitrary_types_allowed=True)

    id: Optional[str] = Field(default=None, alias="_id")
    session_id: str
    sender_id: str
    sender_name: str
    sender_role: SenderRole
    content: str = ""
    attachments: List[Attachment] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    # Só é rastreado no sentido agente -> cliente
    is_read: bool = False

    @field_validator("attachments", mode="before")
    @classmethod
    def _load_attachments(cls, value):
        return [a if isinstance(a, Attachment) else Attachment.from_dict(a) for a in value or []]

    def to_document(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "sender_id": self.sender_id,
            "sender_name": self.sender_name,
            "sender_role": self.sender_role.value,
            "content": self.content,
            "attachments": [a.to_dict() for a in self.attachments],
            "created_at": self.created_at,
            "is_read": self.is_read,
        }

    def to_payload(self) -> Dict[str, Any]:
        """JSON-safe shape pushed to websocket subscribers and returned by the API."""
        return {
            "id": self.id,
            "session_id": self.session_id,
            "sender_id": self.sender_id,
            "sender_name": self.sender_name,
            "sender_role": self.sender_role.value,
            "content": self.content,
            "attachments": [
                {**a.to_dict(), "uploaded_at": a.uploaded_at.isoformat()}
                for a in self.attachments
            ],
            "created_at": self.created_at.isoformat(),
            "is_read": self.is_read,
        }
