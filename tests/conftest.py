"""Shared fixtures: model factories, a fake Socket.IO client and a mocked API."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from broker_chat.api.client import MessagesAPI
from broker_chat.config import ChatSettings
from broker_chat.models import Conversation, LastMessage, Message, UserRef
from broker_chat.realtime.connection import ConnectionManager

BASE_TIME = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)


class FakeSocketClient:
    """In-memory stand-in for socketio.AsyncClient."""

    def __init__(self):
        self.connected = False
        self.handlers = {}
        self.emitted = []
        self.connect_kwargs = None
        self.connect_url = None
        self.fail_connect = False
        self.ack_response = None
        self.auto_ack = True
        self.callbacks = []
        self.disconnect_calls = 0

    def on(self, event, handler):
        self.handlers[event] = handler

    async def connect(self, url, **kwargs):
        self.connect_url = url
        self.connect_kwargs = kwargs
        if self.fail_connect:
            await self.trigger("connect_error", {"message": "Authentication error"})
            raise ConnectionError("Connection refused by the server")
        self.connected = True
        await self.trigger("connect")

    async def disconnect(self):
        self.disconnect_calls += 1
        self.connected = False

    async def emit(self, event, data=None, callback=None):
        self.emitted.append((event, data))
        if callback is not None:
            self.callbacks.append(callback)
            if self.auto_ack:
                callback(self.ack_response)

    async def trigger(self, event, *args):
        handler = self.handlers.get(event)
        if handler is not None:
            await handler(*args)

    async def drop(self, reason="transport close"):
        self.connected = False
        await self.trigger("disconnect", reason)

    async def restore(self):
        self.connected = True
        await self.trigger("connect")

    def emitted_events(self, name):
        return [data for event, data in self.emitted if event == name]


@pytest.fixture
def settings():
    return ChatSettings(socket_url="http://chat.test", api_url="http://api.test/api")


@pytest.fixture
def me():
    return UserRef(id="u1", first_name="Alice", last_name="Buyer", email="alice@example.com")


@pytest.fixture
def admin():
    return UserRef(
        id="admin1", first_name="Brook", last_name="Broker",
        email="broker@example.com", is_admin=True,
    )


@pytest.fixture
def make_message(admin, me):
    counter = {"n": 0}

    def _make(conversation_id="c1", sender=None, receiver=None, content=None, minutes=None, **kwargs):
        counter["n"] += 1
        n = counter["n"]
        sender = sender or admin
        if receiver is None:
            receiver = me.id if sender.id != me.id else admin.id
        return Message(
            id=kwargs.pop("id", f"m{n}"),
            content=content or f"message {n}",
            sender=sender,
            receiver=receiver,
            conversation_id=conversation_id,
            created_at=BASE_TIME + timedelta(minutes=n if minutes is None else minutes),
            **kwargs,
        )

    return _make


@pytest.fixture
def make_conversation(admin):
    def _make(conversation_id="c1", participant=None, unread=0, last=None, minutes=0):
        last_message = None
        if last is not None:
            last_message = LastMessage(content=last, created_at=BASE_TIME + timedelta(minutes=minutes))
        return Conversation(
            id=conversation_id,
            participant=participant or admin,
            last_message=last_message,
            unread_count=unread,
        )

    return _make


@pytest.fixture
def api():
    mock = AsyncMock(spec=MessagesAPI)
    mock.get_conversations.return_value = []
    mock.get_messages.return_value = []
    mock.send_message.return_value = None
    mock.send_admin_reply.return_value = None
    mock.mark_as_read.return_value = None
    mock.upload_attachments.return_value = []
    return mock


@pytest.fixture
def fake_socket_cls():
    return FakeSocketClient


@pytest.fixture
def fake_socket():
    return FakeSocketClient()


@pytest.fixture
def socket_factory(fake_socket):
    """Factory returning the shared fake, recording every client it builds."""
    built = []

    def _factory(settings):
        built.append(fake_socket)
        return fake_socket

    _factory.built = built
    return _factory


@pytest.fixture
def connection(settings, socket_factory):
    return ConnectionManager(settings, client_factory=socket_factory)
