from unittest.mock import AsyncMock

import pytest
from mongomock_motor import AsyncMongoMockClient

from core.indexes import MESSAGES_COLLECTION, SESSIONS_COLLECTION
from domain.identity import Caller, Role
from repositories.message import MessageRepository
from repositories.session import SessionRepository
from services.broadcast_service import BroadcastService
from services.message_service import MessageService
from services.session_service import SessionService


@pytest.fixture(name="db")
def db_fixture():
    """Banco Mongo em memória, novo para cada teste."""
    client = AsyncMongoMockClient()
    return client["motormatch_test"]


@pytest.fixture
def session_repo(db):
    return SessionRepository(db[SESSIONS_COLLECTION])


@pytest.fixture
def message_repo(db):
    return MessageRepository(db[MESSAGES_COLLECTION])


@pytest.fixture
def publisher():
    """Captures every event the broadcaster pushes."""
    return AsyncMock()


@pytest.fixture
def broadcaster(publisher):
    return BroadcastService(publisher)


@pytest.fixture
def message_service(message_repo, session_repo, broadcaster):
    return MessageService(message_repo, session_repo, broadcaster)


@pytest.fixture
def session_service(session_repo, message_service, broadcaster):
    return SessionService(session_repo, message_service, broadcaster)


@pytest.fixture
def guest():
    return Caller(id="guest-abc", display_name="Guest", role=Role.ANONYMOUS)


@pytest.fixture
def customer():
    return Caller(id="user-42", display_name="Ana", role=Role.CUSTOMER, email="ana@example.com")


@pytest.fixture
def agent():
    return Caller(id="agent-1", display_name="agent-1", role=Role.AGENT)


@pytest.fixture
def other_agent():
    return Caller(id="agent-2", display_name="agent-2", role=Role.AGENT)


@pytest.fixture
def events(publisher):
    """(channel, payload) pairs published so far, in order."""
    def _events() -> list[tuple[str, dict]]:
        return [call.args for call in publisher.publish.await_args_list]
    return _events
