"""Plain-text rendering of messages and conversation rows."""

from __future__ import annotations

from datetime import datetime, tzinfo

from broker_chat.models import Conversation, Message

READ_MARK = "✓✓"
SENT_MARK = "✓"
NO_MESSAGES = "No messages yet"
PREVIEW_LENGTH = 40


def format_time(value: datetime, tz: tzinfo | None = None) -> str:
    """``9:05 PM`` style clock time."""
    if tz is not None:
        value = value.astimezone(tz)
    return f"{value.hour % 12 or 12}:{value:%M} {value:%p}"


def format_day(value: datetime, tz: tzinfo | None = None) -> str:
    """``Mar 7`` style date."""
    if tz is not None:
        value = value.astimezone(tz)
    return f"{value:%b} {value.day}"


def format_message_line(
    message: Message,
    current_user_id: str,
    tz: tzinfo | None = None,
) -> str:
    own = message.sender.id == current_user_id
    author = "You" if own else message.sender.display_name
    line = f"[{format_time(message.created_at, tz)}] {author}: {message.content}"
    if message.attachments:
        names = ", ".join(a.file_name or a.url for a in message.attachments)
        line += f" [attachments: {names}]"
    if own:
        line += f" {READ_MARK if message.is_read else SENT_MARK}"
    return line


def format_conversation_row(conversation: Conversation, tz: tzinfo | None = None) -> str:
    name = conversation.participant.display_name
    last = conversation.last_message
    day = ""
    if last is not None and last.created_at is not None:
        day = format_day(last.created_at, tz)
    preview = last.content if last is not None and last.content else NO_MESSAGES
    if len(preview) > PREVIEW_LENGTH:
        preview = preview[: PREVIEW_LENGTH - 1] + "…"

    row = name
    if day:
        row += f" ({day})"
    row += f": {preview}"
    if conversation.unread_count > 0:
        row += f" [{conversation.unread_count}]"
    return row
