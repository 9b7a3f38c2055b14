"""Client-side chat state: directory, message stream, sending and the session."""

from broker_chat.chat.directory import ConversationDirectory
from broker_chat.chat.notifications import Notification, Notifier
from broker_chat.chat.render import format_conversation_row, format_message_line
from broker_chat.chat.sender import MessageSender, new_temp_id
from broker_chat.chat.session import ChatSession
from broker_chat.chat.stream import MessageStream

__all__ = [
    "ChatSession",
    "ConversationDirectory",
    "MessageSender",
    "MessageStream",
    "Notification",
    "Notifier",
    "format_conversation_row",
    "format_message_line",
    "new_temp_id",
]
