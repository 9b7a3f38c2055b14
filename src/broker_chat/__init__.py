"""Conversation and real-time messaging client for the brokerage platform.

Heavy imports are deferred. Use explicit imports:
    from broker_chat.chat.session import ChatSession
    from broker_chat.realtime.connection import ConnectionManager
    from broker_chat.api.client import MessagesAPI
"""

# Light imports only (no external deps)
from broker_chat.config import ChatSettings
from broker_chat.models import (
    Attachment,
    Conversation,
    LastMessage,
    Message,
    UserRef,
    conversation_id_for,
)


def __getattr__(name):
    """Lazy imports for classes that pull in httpx or the socket client."""
    if name == "ChatSession":
        from broker_chat.chat.session import ChatSession
        return ChatSession
    if name == "ConnectionManager":
        from broker_chat.realtime.connection import ConnectionManager
        return ConnectionManager
    if name == "MessagesAPI":
        from broker_chat.api.client import MessagesAPI
        return MessagesAPI
    if name == "Notifier":
        from broker_chat.chat.notifications import Notifier
        return Notifier
    raise AttributeError(f"module 'broker_chat' has no attribute {name!r}")


__all__ = [
    "Attachment",
    "ChatSession",
    "ChatSettings",
    "ConnectionManager",
    "Conversation",
    "LastMessage",
    "Message",
    "MessagesAPI",
    "Notifier",
    "UserRef",
    "conversation_id_for",
]
