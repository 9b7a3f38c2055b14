"""Lifecycle of the single Socket.IO connection for an authenticated user."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable

from broker_chat.api.parser import parse_message
from broker_chat.config import ChatSettings
from broker_chat.exceptions import MessageSendError, NotConnectedError, RealtimeError
from broker_chat.models import Message, UserRef
from broker_chat.realtime.events import (
    ConnectionStateChanged,
    EventStream,
    MessageReadEvent,
    NewMessageEvent,
)
from broker_chat.realtime.rooms import RoomMembership

logger = logging.getLogger(__name__)


def socketio_client_factory(settings: ChatSettings):
    """Build a python-socketio AsyncClient configured from ``settings``."""
    try:
        import socketio
    except ImportError:
        raise ImportError(
            "python-socketio is required for ConnectionManager. "
            "Install with: pip install broker-chat[realtime]"
        )
    return socketio.AsyncClient(
        reconnection=True,
        reconnection_attempts=settings.reconnect_attempts,
        reconnection_delay=settings.reconnect_delay_ms / 1000,
        reconnection_delay_max=settings.reconnect_delay_max_ms / 1000,
        request_timeout=settings.connect_timeout_ms / 1000,
    )


class ConnectionManager:
    """Owns the real-time transport, room membership and inbound events.

    Every ``connect()`` builds a fresh client through ``client_factory`` and
    registers handlers on it, so handlers never carry over from a previous
    connection. Inbound events are published on ``events``.

    Args:
        settings: Reconnect/timeout settings and the socket URL.
        client_factory: Callable taking the settings and returning a
            Socket.IO-compatible async client. Defaults to python-socketio.
        events: Stream to publish inbound events on; one is created if omitted.
    """

    def __init__(
        self,
        settings: ChatSettings | None = None,
        client_factory: Callable[[ChatSettings], Any] | None = None,
        events: EventStream | None = None,
    ):
        self.settings = settings or ChatSettings()
        self._client_factory = client_factory or socketio_client_factory
        self.events = events or EventStream()
        self.rooms = RoomMembership()
        self._client = None
        self._user: UserRef | None = None
        self._token: str | None = None
        self._reconnect_attempts = 0
        self._last_delay_ms: int | None = None
        self._pending_acks: set[asyncio.Future] = set()

    @property
    def is_connected(self) -> bool:
        return bool(self._client is not None and self._client.connected)

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    @property
    def last_backoff_ms(self) -> int | None:
        """Delay computed for the most recent reconnection attempt."""
        return self._last_delay_ms

    # ---- Lifecycle ----

    async def start(self, user: UserRef | None, token: str | None) -> None:
        """Bind the session credentials and connect."""
        self._user = user
        self._token = token
        await self.connect()

    async def stop(self) -> None:
        """Disconnect and forget the session (logout)."""
        await self.disconnect()
        self.rooms.clear()
        self._user = None
        self._token = None

    async def connect(self) -> None:
        if not self._user or not self._token:
            logger.info("No authenticated user, skipping real-time connection")
            return

        await self.disconnect()

        client = self._client_factory(self.settings)
        self._register_handlers(client)
        self._client = client

        logger.info(f"Connecting to {self.settings.socket_url}")
        try:
            await client.connect(
                self.settings.socket_url,
                auth={"token": self._token},
                transports=list(self.settings.transports),
                wait_timeout=self.settings.connect_timeout_ms / 1000,
                retry=True,
            )
        except Exception as e:
            # Reported through connect_error as well; reconnection is transport-driven.
            logger.error(f"Real-time connection failed: {e}")

    async def disconnect(self) -> None:
        """Release the transport handle and its handlers."""
        client = self._client
        self._client = None
        self._fail_pending_acks("Connection closed")
        if client is None:
            return
        was_connected = bool(client.connected)
        try:
            await client.disconnect()
        except Exception as e:
            logger.warning(f"Error while closing real-time connection: {e}")
        if was_connected:
            self.events.publish(
                ConnectionStateChanged(connected=False, reason="client disconnect")
            )

    def _register_handlers(self, client) -> None:
        async def on_connect():
            if client is self._client:
                await self._handle_connect(client)

        async def on_connect_error(data=None):
            if client is self._client:
                self._handle_connect_error(data)

        async def on_disconnect(reason=None):
            if client is self._client:
                self._handle_disconnect(reason)

        async def on_error(error=None):
            logger.error(f"Real-time transport error: {error}")

        async def on_new_message(data):
            if client is self._client:
                self._handle_new_message(data)

        async def on_message_read(data):
            if client is self._client:
                self._handle_message_read(data)

        client.on("connect", on_connect)
        client.on("connect_error", on_connect_error)
        client.on("disconnect", on_disconnect)
        client.on("error", on_error)
        client.on("new_message", on_new_message)
        client.on("message_read", on_message_read)

    # ---- Transport events ----

    async def _handle_connect(self, client) -> None:
        logger.info("Real-time connection established")
        self._reconnect_attempts = 0
        self._last_delay_ms = None
        for conversation_id in self.rooms.snapshot():
            await client.emit("join_conversation", conversation_id)
        if len(self.rooms):
            logger.info(f"Rejoined {len(self.rooms)} conversation room(s)")
        self.events.publish(ConnectionStateChanged(connected=True))

    def _handle_connect_error(self, data) -> None:
        message = data.get("message", data) if isinstance(data, dict) else data
        logger.error(f"Real-time connection error: {message}")
        if self._reconnect_attempts < self.settings.reconnect_attempts:
            delay = self.settings.backoff_delay_ms(self._reconnect_attempts)
            logger.info(
                f"Reconnection attempt {self._reconnect_attempts + 1} in {delay}ms"
            )
            self._last_delay_ms = delay
            self._reconnect_attempts += 1

    def _handle_disconnect(self, reason) -> None:
        logger.info(f"Real-time connection lost: {reason}")
        self._fail_pending_acks(f"Disconnected: {reason}")
        self.events.publish(ConnectionStateChanged(connected=False, reason=str(reason or "")))

    def _handle_new_message(self, data) -> None:
        try:
            message = parse_message(data)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Dropping malformed new_message event: {e}")
            return
        if not message.id or not message.conversation_id:
            logger.warning("Dropping new_message event without id or conversation")
            return
        logger.debug(f"New message {message.id} in {message.conversation_id}")
        self.events.publish(NewMessageEvent(message))

    def _handle_message_read(self, data) -> None:
        if not isinstance(data, dict) or not data.get("messageId"):
            logger.warning(f"Dropping malformed message_read event: {data!r}")
            return
        self.events.publish(
            MessageReadEvent(
                message_id=str(data["messageId"]),
                conversation_id=str(data.get("conversationId") or ""),
                reader_id=str(data.get("readBy") or data.get("userId") or ""),
            )
        )

    def _fail_pending_acks(self, reason: str) -> None:
        for future in self._pending_acks:
            if not future.done():
                future.set_exception(NotConnectedError(reason))
        self._pending_acks.clear()

    # ---- Outbound operations ----

    async def join_conversation(self, conversation_id: str) -> bool:
        if not self.is_connected:
            logger.warning(
                f"Cannot join conversation {conversation_id}: not connected"
            )
            return False
        await self._client.emit("join_conversation", conversation_id)
        self.rooms.add(conversation_id)
        return True

    async def leave_conversation(self, conversation_id: str) -> bool:
        if not self.is_connected:
            # Nothing is sent, but the room is still forgotten locally so the
            # next reconnect does not rejoin a conversation the user has left.
            self.rooms.discard(conversation_id)
            logger.info(
                f"Not connected, conversation {conversation_id} will not be rejoined"
            )
            return False
        await self._client.emit("leave_conversation", conversation_id)
        self.rooms.discard(conversation_id)
        return True

    async def send_message(self, payload: dict) -> Message | None:
        """Send over the socket and wait for the server acknowledgement.

        Raises NotConnectedError immediately when disconnected; nothing is
        queued. Returns the created message when the ack carries one.
        """
        if not self.is_connected:
            raise NotConnectedError("Real-time transport not connected")

        loop = asyncio.get_running_loop()
        future: asyncio.Future = loop.create_future()

        def ack(*args):
            if not future.done():
                future.set_result(args[0] if args else None)

        self._pending_acks.add(future)
        try:
            await self._client.emit("send_message", payload, callback=ack)
            response = await future
        except (NotConnectedError, asyncio.CancelledError):
            raise
        except Exception as e:
            raise RealtimeError(f"Real-time send failed: {e}") from e
        finally:
            self._pending_acks.discard(future)

        if isinstance(response, dict) and response.get("error"):
            raise MessageSendError(str(response["error"]))
        if isinstance(response, dict) and (response.get("_id") or response.get("id")):
            try:
                return parse_message(response)
            except (AttributeError, KeyError, TypeError, ValueError) as e:
                # Delivered; only the echoed copy is unreadable.
                logger.warning(f"Ignoring malformed send_message ack: {e}")
        return None

    async def mark_as_read(self, message_id: str) -> bool:
        if not self.is_connected:
            return False
        await self._client.emit("mark_as_read", {"messageId": message_id})
        return True
