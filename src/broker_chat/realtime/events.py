"""Typed inbound events and the stream that fans them out to subscribers."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Union

from broker_chat.models import Message

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NewMessageEvent:
    """A message was delivered to a room this client has joined."""

    message: Message


@dataclass(frozen=True)
class MessageReadEvent:
    """The counterparty read one of our messages."""

    message_id: str
    conversation_id: str = ""
    reader_id: str = ""


@dataclass(frozen=True)
class ConnectionStateChanged:
    """The transport connected or disconnected."""

    connected: bool
    reason: str = ""


InboundEvent = Union[NewMessageEvent, MessageReadEvent, ConnectionStateChanged]

_CLOSED = object()


class Subscription:
    """One consumer's view of the event stream.

    Iterate with ``async for``; iteration ends when the subscription or the
    whole stream is closed.
    """

    def __init__(self, stream: EventStream):
        self._stream = stream
        self._queue: asyncio.Queue = asyncio.Queue()
        self.closed = False

    def _put(self, item) -> None:
        self._queue.put_nowait(item)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._stream._detach(self)
        self._queue.put_nowait(_CLOSED)

    def pending(self) -> int:
        return self._queue.qsize()

    def __aiter__(self) -> AsyncIterator[InboundEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[InboundEvent]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item


class EventStream:
    """Single owner of inbound event delivery.

    The connection manager publishes into it; the directory and message
    stream consume through subscriptions. Subscriptions are independent of
    the underlying transport, so they survive reconnects without leaking
    handlers.
    """

    def __init__(self):
        self._subscribers: list[Subscription] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def subscribe(self) -> Subscription:
        subscription = Subscription(self)
        if self._closed:
            subscription.closed = True
            subscription._put(_CLOSED)
            return subscription
        self._subscribers.append(subscription)
        return subscription

    def publish(self, event: InboundEvent) -> None:
        if self._closed:
            logger.debug(f"Dropping {type(event).__name__}: stream closed")
            return
        for subscription in list(self._subscribers):
            subscription._put(event)

    def close(self) -> None:
        self._closed = True
        for subscription in list(self._subscribers):
            subscription.close()

    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def _detach(self, subscription: Subscription) -> None:
        if subscription in self._subscribers:
            self._subscribers.remove(subscription)
