from dataclasses import dataclass
from enum import Enum
from typing import Optional


class Role(str, Enum):
    CUSTOMER = "Customer"
    AGENT = "Agent"
    SYSTEM = "System"
    ANONYMOUS = "Anonymous"


@dataclass(frozen=True)
class Caller:
    """Who is calling, as resolved by the storefront's auth collaborator."""
    id: str
    display_name: str
    role: Role
    email: Optional[str] = None

    @property
    def is_authenticated(self) -> bool:
        return self.role != Role.ANONYMOUS

    @property
    def customer_key(self) -> str:
        # user id para clientes logados, "guest:<token>" para visitantes
        return self.id

    @property
    def customer_id(self) -> Optional[str]:
        return self.id if self.role == Role.CUSTOMER else None


SYSTEM_CALLER = Caller(id="system", display_name="System", role=Role.SYSTEM)


GUEST_KEY_PREFIX = "guest:"


def guest_caller(token: str) -> Caller:
    """Anonymous visitor; the prefix keeps guest keys apart from user ids."""
    return Caller(id=f"{GUEST_KEY_PREFIX}{token}", display_name="Guest", role=Role.ANONYMOUS)
