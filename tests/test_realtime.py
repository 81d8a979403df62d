import asyncio
import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from core.websocket import SESSION_CLAIMED, ConnectionManager, channel_for
from domain.errors import Forbidden, InvalidInput
from handlers.ws.messages import HANDLERS, SocketContext
from infrastructure.realtime.redis_relay import RedisRelay
from services.broadcast_service import BroadcastService
from services.message_service import MessageService
from services.session_service import SessionService


def make_socket(fail: bool = False) -> MagicMock:
    socket = MagicMock()
    socket.send_json = AsyncMock(side_effect=RuntimeError("closed") if fail else None)
    return socket


def frame_types(socket: MagicMock) -> list[str]:
    return [call.args[0]["type"] for call in socket.send_json.await_args_list]


# --- ConnectionManager ---


@pytest.mark.asyncio
async def test_broadcast_reaches_every_subscriber_of_the_channel():
    # Arrange:
    manager = ConnectionManager()
    a, b, outsider = make_socket(), make_socket(), make_socket()
    manager.join("session:1", a)
    manager.join("session:1", b)
    manager.join("session:2", outsider)

    # Act:
    delivered = await manager.broadcast("session:1", {"type": "receive_message"})

    # Assert:
    assert delivered == 2
    a.send_json.assert_awaited_once_with({"type": "receive_message"})
    b.send_json.assert_awaited_once_with({"type": "receive_message"})
    outsider.send_json.assert_not_awaited()


@pytest.mark.asyncio
async def test_broadcast_skips_excluded_socket():
    manager = ConnectionManager()
    typist, listener = make_socket(), make_socket()
    manager.join("session:1", typist)
    manager.join("session:1", listener)

    delivered = await manager.broadcast("session:1", {"type": "user_typing"}, exclude=typist)

    assert delivered == 1
    typist.send_json.assert_not_awaited()
    listener.send_json.assert_awaited_once_with({"type": "user_typing"})


@pytest.mark.asyncio
async def test_claimed_event_removes_other_agents(guest, agent, other_agent):
    # Arrange:
    manager = ConnectionManager()
    customer_ws, claimer_ws, rival_ws, anonymous_ws = make_socket(), make_socket(), make_socket(), make_socket()
    manager.join("session:1", customer_ws, guest)
    manager.join("session:1", claimer_ws, agent)
    manager.join("session:1", rival_ws, other_agent)
    manager.join("session:1", anonymous_ws)

    # Act:
    await manager.broadcast("session:1", {"type": SESSION_CLAIMED, "session_id": "1", "agent_id": agent.id})
    await manager.broadcast("session:1", {"type": "receive_message"})

    # Assert: o agente preterido ainda recebe o aviso, depois sai do canal
    assert manager.subscribers("session:1") == {customer_ws, claimer_ws, anonymous_ws}
    assert frame_types(rival_ws) == [SESSION_CLAIMED]
    assert frame_types(claimer_ws) == [SESSION_CLAIMED, "receive_message"]


@pytest.mark.asyncio
async def test_dead_socket_is_dropped_and_others_still_receive():
    manager = ConnectionManager()
    alive, dead = make_socket(), make_socket(fail=True)
    manager.join("session:1", alive)
    manager.join("session:1", dead)

    delivered = await manager.broadcast("session:1", {"type": "ping"})

    assert delivered == 1
    assert manager.subscribers("session:1") == {alive}


@pytest.mark.asyncio
async def test_broadcast_without_subscribers():
    assert await ConnectionManager().broadcast("session:404", {"type": "x"}) == 0


def test_leave_all_forgets_socket_everywhere():
    manager = ConnectionManager()
    socket = make_socket()
    manager.join("session:1", socket)
    manager.join("session:2", socket)

    manager.leave_all(socket)

    assert manager.subscribers("session:1") == set()
    assert manager.subscribers("session:2") == set()


# --- RedisRelay ---


class FakePubSub:
    """Stands in for redis' PubSub: yields ``items`` then raises ``error``."""

    def __init__(self, items=(), error: BaseException = None):
        self.items = list(items)
        self.error = error
        self.psubscribe = AsyncMock()
        self.punsubscribe = AsyncMock()
        self.aclose = AsyncMock()

    async def listen(self):
        for item in self.items:
            yield item
        if self.error:
            raise self.error


def envelope(payload: dict, origin: str = "other-worker", exclude=None) -> str:
    return json.dumps({"origin": origin, "exclude": exclude, "payload": payload})


@pytest.mark.asyncio
async def test_relay_publishes_json_to_redis():
    client = MagicMock()
    client.publish = AsyncMock()
    relay = RedisRelay("redis://unused", ConnectionManager(), client=client)

    await relay.publish("session:1", {"type": "receive_message", "data": {"content": "hi"}})

    channel, raw = client.publish.await_args.args
    body = json.loads(raw)
    assert channel == "session:1"
    assert body["payload"] == {"type": "receive_message", "data": {"content": "hi"}}
    assert body["exclude"] is None


@pytest.mark.asyncio
async def test_relay_forwards_to_local_sockets():
    manager = ConnectionManager()
    socket = make_socket()
    manager.join("session:1", socket)
    relay = RedisRelay("redis://unused", manager, client=MagicMock())

    await relay.forward("session:1", envelope({"type": "user_typing"}))
    await relay.forward("session:1", "{not json")
    await relay.forward("session:1", json.dumps({"type": "no envelope"}))

    socket.send_json.assert_awaited_once_with({"type": "user_typing"})


@pytest.mark.asyncio
async def test_relay_excludes_typist_only_in_its_own_process():
    # Arrange: o typist está neste processo
    manager = ConnectionManager()
    typist, listener = make_socket(), make_socket()
    manager.join("session:1", typist)
    manager.join("session:1", listener)
    client = MagicMock()
    client.publish = AsyncMock()
    relay = RedisRelay("redis://unused", manager, client=client)

    # Act: o que volta do Redis é o mesmo que foi publicado
    await relay.publish("session:1", {"type": "user_typing"}, exclude=typist)
    _, raw = client.publish.await_args.args
    await relay.forward("session:1", raw)

    # Assert:
    typist.send_json.assert_not_awaited()
    listener.send_json.assert_awaited_once_with({"type": "user_typing"})

    # Outro processo não reconhece o id e entrega a todos
    await relay.forward("session:1", envelope({"type": "user_typing"}, exclude=id(typist)))
    typist.send_json.assert_awaited_once_with({"type": "user_typing"})


@pytest.mark.asyncio
async def test_relay_resubscribes_after_connection_error():
    # Arrange: primeira assinatura cai, a segunda entrega uma mensagem
    manager = ConnectionManager()
    socket = make_socket()
    manager.join("session:1", socket)
    broken = FakePubSub(error=ConnectionError("redis went away"))
    healthy = FakePubSub(
        items=[
            {"type": "psubscribe", "channel": "session:*", "data": 1},
            {"type": "pmessage", "channel": "session:1", "data": envelope({"type": "receive_message"})},
        ],
        error=asyncio.CancelledError(),
    )
    client = MagicMock()
    client.pubsub.side_effect = [broken, healthy]
    relay = RedisRelay("redis://unused", manager, client=client, retry_delay=0)

    # Act:
    with pytest.raises(asyncio.CancelledError):
        await relay.run()

    # Assert:
    assert client.pubsub.call_count == 2
    broken.aclose.assert_awaited_once()
    healthy.psubscribe.assert_awaited_once_with("session:*")
    socket.send_json.assert_awaited_once_with({"type": "receive_message"})


# --- websocket actions ---


@pytest.fixture
def socket_ctx(session_service, publisher, guest):
    return SocketContext(
        websocket=make_socket(),
        caller=guest,
        session_service=session_service,
        broadcaster=BroadcastService(publisher),
        manager=ConnectionManager(),
    )


@pytest.mark.asyncio
async def test_join_subscribes_to_own_session(socket_ctx: SocketContext, session_service, guest):
    session = await session_service.get_or_create_session(guest.customer_key, guest.display_name)

    result = await HANDLERS["join"](socket_ctx, {"session_id": session.id})

    assert result == {"type": "joined", "session_id": session.id}
    assert socket_ctx.manager.subscribers(channel_for(session.id)) == {socket_ctx.websocket}


@pytest.mark.asyncio
async def test_join_someone_elses_session_is_forbidden(socket_ctx: SocketContext, session_service):
    session = await session_service.get_or_create_session("guest-xyz", "Guest")

    with pytest.raises(Forbidden):
        await HANDLERS["join"](socket_ctx, {"session_id": session.id})

    assert socket_ctx.manager.subscribers(channel_for(session.id)) == set()


@pytest.mark.asyncio
async def test_join_requires_session_id(socket_ctx: SocketContext):
    with pytest.raises(InvalidInput):
        await HANDLERS["join"](socket_ctx, {})


@pytest.mark.asyncio
async def test_typing_is_relayed_after_join(socket_ctx: SocketContext, session_service, guest, publisher, events):
    # Arrange:
    session = await session_service.get_or_create_session(guest.customer_key, guest.display_name)

    # Act / Assert: antes de entrar no canal
    with pytest.raises(Forbidden):
        await HANDLERS["typing"](socket_ctx, {"session_id": session.id})

    await HANDLERS["join"](socket_ctx, {"session_id": session.id})
    await HANDLERS["typing"](socket_ctx, {"session_id": session.id, "is_typing": False})

    channel, payload = events()[-1]
    assert channel == channel_for(session.id)
    assert payload == {
        "type": "user_typing",
        "session_id": session.id,
        "sender_id": guest.id,
        "sender_name": guest.display_name,
        "is_typing": False,
    }
    assert publisher.publish.await_args.kwargs["exclude"] is socket_ctx.websocket


@pytest.mark.asyncio
async def test_typist_does_not_hear_own_typing(session_service, guest, agent):
    # Arrange: publisher real de processo único
    manager = ConnectionManager()
    broadcaster = BroadcastService(manager)
    session = await session_service.get_or_create_session(guest.customer_key, guest.display_name)
    typist = SocketContext(make_socket(), guest, session_service, broadcaster, manager)
    listener = SocketContext(make_socket(), agent, session_service, broadcaster, manager)
    await HANDLERS["join"](typist, {"session_id": session.id})
    await HANDLERS["join"](listener, {"session_id": session.id})

    # Act:
    await HANDLERS["typing"](typist, {"session_id": session.id})

    # Assert:
    typist.websocket.send_json.assert_not_awaited()
    assert frame_types(listener.websocket) == ["user_typing"]


@pytest.mark.asyncio
async def test_claim_cuts_other_agents_off_the_conversation(session_repo, message_repo, guest, agent, other_agent):
    # Arrange: visitante e dois agentes ouvindo a sessão na fila
    manager = ConnectionManager()
    broadcaster = BroadcastService(manager)
    messages = MessageService(message_repo, session_repo, broadcaster)
    sessions = SessionService(session_repo, messages, broadcaster)
    session = await sessions.get_or_create_session(guest.customer_key, guest.display_name)
    contexts = {
        caller.id: SocketContext(make_socket(), caller, sessions, broadcaster, manager)
        for caller in (guest, agent, other_agent)
    }
    for ctx in contexts.values():
        await HANDLERS["join"](ctx, {"session_id": session.id})

    # Act: agent-1 assume e o visitante escreve
    claimed = await sessions.claim(session.id, agent.id, agent.display_name)
    await messages.send_customer_message(claimed, guest, "my card number is ...")

    # Assert:
    assert frame_types(contexts[other_agent.id].websocket) == [SESSION_CLAIMED]
    assert frame_types(contexts[agent.id].websocket) == [SESSION_CLAIMED, "receive_message", "receive_message"]
    assert frame_types(contexts[guest.id].websocket) == [SESSION_CLAIMED, "receive_message", "receive_message"]
    with pytest.raises(Forbidden):
        await HANDLERS["typing"](contexts[other_agent.id], {"session_id": session.id})
    with pytest.raises(Forbidden):
        await HANDLERS["join"](contexts[other_agent.id], {"session_id": session.id})


@pytest.mark.asyncio
async def test_leave_and_ping(socket_ctx: SocketContext, session_service, guest):
    session = await session_service.get_or_create_session(guest.customer_key, guest.display_name)
    await HANDLERS["join"](socket_ctx, {"session_id": session.id})

    left = await HANDLERS["leave"](socket_ctx, {"session_id": session.id})
    pong = await HANDLERS["ping"](socket_ctx, {})

    assert left == {"type": "left", "session_id": session.id}
    assert pong == {"type": "pong"}
    assert socket_ctx.manager.subscribers(channel_for(session.id)) == set()
