"""Real-time transport: connection lifecycle, rooms and inbound events.

python-socketio is imported lazily, on the first ``connect()`` that uses the
default client factory.
"""

from broker_chat.realtime.connection import ConnectionManager, socketio_client_factory
from broker_chat.realtime.events import (
    ConnectionStateChanged,
    EventStream,
    InboundEvent,
    MessageReadEvent,
    NewMessageEvent,
    Subscription,
)
from broker_chat.realtime.rooms import RoomMembership

__all__ = [
    "ConnectionManager",
    "ConnectionStateChanged",
    "EventStream",
    "InboundEvent",
    "MessageReadEvent",
    "NewMessageEvent",
    "RoomMembership",
    "Subscription",
    "socketio_client_factory",
]
