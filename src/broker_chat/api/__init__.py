"""REST access to conversations, messages and uploads."""

from broker_chat.api.client import MAX_UPLOAD_FILES, MessagesAPI
from broker_chat.api.parser import (
    message_payload,
    parse_conversation,
    parse_conversations,
    parse_message,
    parse_messages,
)

__all__ = [
    "MAX_UPLOAD_FILES",
    "MessagesAPI",
    "message_payload",
    "parse_conversation",
    "parse_conversations",
    "parse_message",
    "parse_messages",
]
