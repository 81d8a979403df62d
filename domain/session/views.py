from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from domain.message.message import ChatMessage
from domain.session.chat_session import ChatSession


class OrderSummary(BaseModel):
    id: str
    status: str
    total_price: float = 0.0
    created_at: Optional[datetime] = None


class CustomerContext(BaseModel):
    """What the agent panel shows next to a logged-in customer's chat."""
    cart_item_count: int = 0
    wishlist_item_count: int = 0
    recent_orders: List[OrderSummary] = Field(default_factory=list)


class ChatView(BaseModel):
    session: ChatSession
    messages: List[ChatMessage]
    customer_context: Optional[CustomerContext] = None

    def to_payload(self) -> dict:
        payload = {
            "session": self.session.model_dump(mode="json"),
            "messages": [m.to_payload() for m in self.messages],
        }
        if self.customer_context is not None:
            payload["customer_context"] = self.customer_context.model_dump(mode="json")
        return payload


class AgentDashboard(BaseModel):
    waiting: List[ChatSession]
    active: List[ChatSession]

    def to_payload(self) -> dict:
        return {
            "waiting": [s.model_dump(mode="json") for s in self.waiting],
            "active": [s.model_dump(mode="json") for s in self.active],
        }
