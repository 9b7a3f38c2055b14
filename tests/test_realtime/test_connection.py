"""Tests for the real-time connection manager."""

import asyncio

import pytest

from broker_chat.exceptions import MessageSendError, NotConnectedError
from broker_chat.realtime.connection import ConnectionManager
from broker_chat.realtime.events import ConnectionStateChanged, MessageReadEvent, NewMessageEvent

NEW_MESSAGE = {
    "_id": "m9",
    "sender": {"_id": "admin1", "firstName": "Brook"},
    "receiver": "u1",
    "content": "New listing matches your search",
    "conversationId": "c1",
    "createdAt": "2024-05-01T10:00:00Z",
}


def drain(subscription):
    events = []
    while subscription.pending():
        events.append(subscription._queue.get_nowait())
    return events


@pytest.mark.asyncio
async def test_connect_without_credentials_is_noop(connection, socket_factory):
    await connection.start(None, None)
    assert socket_factory.built == []
    assert not connection.is_connected


@pytest.mark.asyncio
async def test_connect_passes_token_in_handshake(connection, fake_socket, me):
    await connection.start(me, "secret-token")
    assert connection.is_connected
    assert fake_socket.connect_url == "http://chat.test"
    assert fake_socket.connect_kwargs["auth"] == {"token": "secret-token"}
    assert fake_socket.connect_kwargs["transports"] == ["websocket", "polling"]
    assert fake_socket.connect_kwargs["wait_timeout"] == 20
    assert "secret-token" not in fake_socket.connect_url


@pytest.mark.asyncio
async def test_reconnect_tears_down_previous_client(settings, me, fake_socket_cls):
    clients = []

    def factory(_settings):
        clients.append(fake_socket_cls())
        return clients[-1]

    connection = ConnectionManager(settings, client_factory=factory)
    await connection.start(me, "tok")
    await connection.connect()

    assert len(clients) == 2
    assert clients[0].disconnect_calls == 1
    assert not clients[0].connected
    assert connection.is_connected

    # Events from the discarded client are ignored.
    subscription = connection.events.subscribe()
    await clients[0].trigger("new_message", NEW_MESSAGE)
    assert subscription.pending() == 0


@pytest.mark.asyncio
async def test_connect_failure_is_logged_not_raised(connection, fake_socket, me):
    fake_socket.fail_connect = True
    await connection.start(me, "tok")
    assert not connection.is_connected
    assert connection.reconnect_attempts == 1
    assert connection.last_backoff_ms == 1000


@pytest.mark.asyncio
async def test_connect_error_backoff_is_exponential_and_capped(connection, fake_socket, me):
    await connection.start(me, "tok")
    delays = []
    for _ in range(7):
        await fake_socket.trigger("connect_error", {"message": "timeout"})
        delays.append(connection.last_backoff_ms)
    assert delays[:5] == [1000, 2000, 4000, 8000, 16000]
    assert connection.reconnect_attempts == 5


@pytest.mark.asyncio
async def test_successful_connect_resets_attempts(connection, fake_socket, me):
    await connection.start(me, "tok")
    await fake_socket.trigger("connect_error", "boom")
    await fake_socket.trigger("connect_error", "boom")
    assert connection.reconnect_attempts == 2
    await fake_socket.restore()
    assert connection.reconnect_attempts == 0


@pytest.mark.asyncio
async def test_rejoins_exactly_active_rooms_after_reconnect(connection, fake_socket, me):
    await connection.start(me, "tok")
    await connection.join_conversation("A")
    await connection.join_conversation("B")
    await connection.join_conversation("C")
    await connection.leave_conversation("C")

    await fake_socket.drop()
    fake_socket.emitted.clear()
    await fake_socket.restore()

    assert sorted(fake_socket.emitted_events("join_conversation")) == ["A", "B"]


@pytest.mark.asyncio
async def test_join_while_disconnected_is_noop(connection, fake_socket, me):
    await connection.start(me, "tok")
    await fake_socket.drop()
    assert await connection.join_conversation("A") is False
    assert "A" not in connection.rooms
    assert fake_socket.emitted_events("join_conversation") == []


@pytest.mark.asyncio
async def test_leave_while_disconnected_forgets_room(connection, fake_socket, me):
    await connection.start(me, "tok")
    await connection.join_conversation("A")
    await fake_socket.drop()
    assert await connection.leave_conversation("A") is False
    assert "A" not in connection.rooms
    assert fake_socket.emitted_events("leave_conversation") == []


@pytest.mark.asyncio
async def test_send_message_rejects_when_disconnected(connection, fake_socket, me):
    await connection.start(me, "tok")
    await fake_socket.drop()
    with pytest.raises(NotConnectedError):
        await connection.send_message({"content": "hi"})
    assert fake_socket.emitted_events("send_message") == []


@pytest.mark.asyncio
async def test_send_message_returns_acknowledged_message(connection, fake_socket, me):
    await connection.start(me, "tok")
    fake_socket.ack_response = dict(NEW_MESSAGE, sender={"_id": "u1"}, receiver="admin1")
    message = await connection.send_message({"content": "hi", "conversationId": "c1"})
    assert message.id == "m9"
    assert fake_socket.emitted_events("send_message") == [{"content": "hi", "conversationId": "c1"}]


@pytest.mark.asyncio
async def test_send_message_ack_error(connection, fake_socket, me):
    await connection.start(me, "tok")
    fake_socket.ack_response = {"error": "Conversation not found"}
    with pytest.raises(MessageSendError, match="Conversation not found"):
        await connection.send_message({"content": "hi"})


@pytest.mark.asyncio
async def test_send_message_unreadable_ack_counts_as_sent(connection, fake_socket, me):
    await connection.start(me, "tok")
    fake_socket.ack_response = dict(NEW_MESSAGE, attachments=["not an attachment"])
    assert await connection.send_message({"content": "hi"}) is None


@pytest.mark.asyncio
async def test_pending_send_fails_on_disconnect(connection, fake_socket, me):
    await connection.start(me, "tok")
    fake_socket.auto_ack = False
    task = asyncio.create_task(connection.send_message({"content": "hi"}))
    await asyncio.sleep(0)
    await fake_socket.drop()
    with pytest.raises(NotConnectedError):
        await task


@pytest.mark.asyncio
async def test_mark_as_read_emits_receipt(connection, fake_socket, me):
    await connection.start(me, "tok")
    assert await connection.mark_as_read("m1") is True
    assert fake_socket.emitted_events("mark_as_read") == [{"messageId": "m1"}]
    await fake_socket.drop()
    assert await connection.mark_as_read("m2") is False


@pytest.mark.asyncio
async def test_inbound_events_are_published(connection, fake_socket, me):
    subscription = connection.events.subscribe()
    await connection.start(me, "tok")
    await fake_socket.trigger("new_message", NEW_MESSAGE)
    await fake_socket.trigger("message_read", {"messageId": "m3", "conversationId": "c1"})
    await fake_socket.trigger("new_message", {"not": "a message", "createdAt": 5})
    await fake_socket.trigger("message_read", "garbage")
    await fake_socket.drop("ping timeout")

    events = drain(subscription)
    assert events[0] == ConnectionStateChanged(connected=True)
    assert isinstance(events[1], NewMessageEvent)
    assert events[1].message.content == "New listing matches your search"
    assert events[2] == MessageReadEvent(message_id="m3", conversation_id="c1")
    assert events[-1] == ConnectionStateChanged(connected=False, reason="ping timeout")


@pytest.mark.asyncio
async def test_stop_releases_transport(connection, fake_socket, me):
    await connection.start(me, "tok")
    await connection.join_conversation("A")
    await connection.stop()
    assert not connection.is_connected
    assert fake_socket.disconnect_calls == 1
    assert len(connection.rooms) == 0
    await connection.connect()
    assert fake_socket.disconnect_calls == 1  # no credentials left, nothing to do
