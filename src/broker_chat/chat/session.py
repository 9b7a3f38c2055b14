"""Chat session: selection, event routing and the error boundary for the UI."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Sequence

import httpx

from broker_chat.api.client import MessagesAPI
from broker_chat.chat.directory import ConversationDirectory
from broker_chat.chat.notifications import Notifier
from broker_chat.chat.sender import MessageSender
from broker_chat.chat.stream import MessageStream
from broker_chat.config import ChatSettings
from broker_chat.exceptions import BrokerChatError
from broker_chat.models import Conversation, Message, UserRef, conversation_id_for
from broker_chat.realtime.connection import ConnectionManager
from broker_chat.realtime.events import (
    ConnectionStateChanged,
    InboundEvent,
    MessageReadEvent,
    NewMessageEvent,
)

logger = logging.getLogger(__name__)


class ChatSession:
    """Everything a messages screen needs for one authenticated user.

    Library errors stop here: each public coroutine logs failures and turns
    the actionable ones into notifications instead of raising.

    Args:
        user: The authenticated user.
        api: REST client bound to the user's token.
        connection: Real-time connection manager. Without one, sends go
            straight to the REST API and no events are received.
        notifier: Sink for user-facing notifications.
        on_pending: Forwarded to MessageSender.
    """

    def __init__(
        self,
        user: UserRef,
        api: MessagesAPI,
        connection: ConnectionManager | None = None,
        notifier: Notifier | None = None,
        on_pending: Callable[[Message], None] | None = None,
    ):
        self.user = user
        self.api = api
        self.connection = connection
        self.notifier = notifier or Notifier()
        self.directory = ConversationDirectory(api)
        self.stream = MessageStream(api)
        self.sender = MessageSender(
            user,
            api,
            self.stream,
            self.directory,
            self.notifier,
            connection=connection,
            on_pending=on_pending,
        )
        self.selected_id: str | None = None
        self._resync_on_connect = False
        self._subscription = connection.events.subscribe() if connection else None

    @classmethod
    async def open(
        cls,
        user: UserRef,
        token: str,
        settings: ChatSettings | None = None,
        notifier: Notifier | None = None,
        client_factory=None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> ChatSession:
        """Create the API client and connection, connect and load the directory."""
        settings = settings or ChatSettings.from_env()
        api = MessagesAPI.from_settings(token, settings, transport=transport)
        connection = ConnectionManager(settings, client_factory=client_factory)
        session = cls(user, api, connection=connection, notifier=notifier)
        await connection.start(user, token)
        await session.load_conversations()
        return session

    async def close(self) -> None:
        if self._subscription is not None:
            self._subscription.close()
        if self.connection is not None:
            await self.connection.stop()
        await self.api.aclose()

    @property
    def selected(self) -> Conversation | None:
        if self.selected_id is None:
            return None
        return self.directory.get(self.selected_id)

    # ---- Directory ----

    async def load_conversations(self, select_first: bool = False) -> bool:
        try:
            await self.directory.refresh()
        except BrokerChatError as e:
            logger.error(f"Error fetching conversations: {e}")
            self.notifier.error("Failed to load conversations")
            return False
        if select_first and self.selected_id is None and len(self.directory):
            await self.select_conversation(self.directory.conversations[0].id)
        return True

    async def select_conversation(self, conversation_id: str) -> bool:
        """Show a conversation: join its room, load history, send read receipts."""
        previous = self.selected_id
        self.selected_id = conversation_id
        self.directory.reset_unread(conversation_id)

        if self.connection is not None:
            if previous and previous != conversation_id:
                await self.connection.leave_conversation(previous)
            await self.connection.join_conversation(conversation_id)

        try:
            loaded = await self.stream.load(conversation_id)
        except BrokerChatError as e:
            logger.error(f"Error fetching messages for {conversation_id}: {e}")
            if self.selected_id == conversation_id:
                self.notifier.error("Failed to load messages")
            return False
        if not loaded:
            return False

        await self._mark_conversation_read()
        return True

    async def open_thread_with(self, user_id: str) -> bool:
        """Open (or have the server create) the conversation with ``user_id``."""
        try:
            messages = await self.api.get_or_create_conversation(user_id)
        except BrokerChatError as e:
            logger.error(f"Error opening conversation with {user_id}: {e}")
            self.notifier.error("Failed to open conversation")
            return False
        if messages:
            conversation_id = messages[0].conversation_id
        else:
            conversation_id = conversation_id_for(self.user.id, user_id)
        await self.load_conversations()
        return await self.select_conversation(conversation_id)

    # ---- Sending ----

    async def send(self, content: str, files: Sequence[str | Path] = ()) -> Message | None:
        conversation = self.selected
        if conversation is None:
            logger.warning("Send ignored: no conversation selected")
            return None
        return await self.sender.send(conversation, content, files)

    # ---- Read receipts ----

    async def _mark_conversation_read(self) -> None:
        for message_id in self.stream.mark_read_for(self.user.id):
            await self._send_read_receipt(message_id)

    async def _send_read_receipt(self, message_id: str) -> None:
        if self.connection is not None and await self.connection.mark_as_read(message_id):
            return
        try:
            await self.api.mark_as_read(message_id)
        except BrokerChatError as e:
            logger.warning(f"Error marking message {message_id} as read: {e}")

    # ---- Inbound events ----

    async def handle_event(self, event: InboundEvent) -> None:
        if isinstance(event, NewMessageEvent):
            await self._on_new_message(event.message)
        elif isinstance(event, MessageReadEvent):
            self.stream.mark_seen(event.message_id)
        elif isinstance(event, ConnectionStateChanged):
            await self._on_connection_state(event)

    async def _on_new_message(self, message: Message) -> None:
        active = message.conversation_id == self.selected_id
        own = message.sender.id == self.user.id
        if active and self.stream.append(message):
            if not own and message.receiver == self.user.id and not message.is_read:
                message.is_read = True
                await self._send_read_receipt(message.id)
        self.directory.record_incoming(message, active=active, count_unread=not own)

    async def _on_connection_state(self, event: ConnectionStateChanged) -> None:
        if not event.connected:
            self._resync_on_connect = True
            return
        if (
            self.selected_id is not None
            and self.connection is not None
            and self.selected_id not in self.connection.rooms
        ):
            await self.connection.join_conversation(self.selected_id)
        if self._resync_on_connect:
            self._resync_on_connect = False
            await self.load_conversations()

    async def run(self) -> None:
        """Consume inbound events until the session is closed."""
        if self._subscription is None:
            return
        async for event in self._subscription:
            try:
                await self.handle_event(event)
            except Exception:
                logger.exception(f"Error handling {type(event).__name__}")
