"""Data models for conversations and messages."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

TEMP_ID_PREFIX = "temp-"


@dataclass
class UserRef:
    """Minimal projection of a platform user."""

    id: str
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    avatar: str | None = None
    is_admin: bool = False

    @property
    def display_name(self) -> str:
        name = f"{self.first_name} {self.last_name}".strip()
        return name or self.email or self.id


@dataclass
class Attachment:
    """A file attached to a message, already uploaded."""

    url: str
    file_name: str = ""
    file_type: str | None = None


@dataclass
class Message:
    """A single chat message."""

    id: str
    content: str
    sender: UserRef
    receiver: str  # user id
    conversation_id: str
    created_at: datetime
    attachments: list[Attachment] = field(default_factory=list)
    is_read: bool = False
    is_admin_reply: bool = False
    is_system_message: bool = False
    interest_id: str | None = None
    is_optimistic: bool = False  # local only, never sent to the server

    @property
    def is_temporary(self) -> bool:
        return self.id.startswith(TEMP_ID_PREFIX)


@dataclass
class LastMessage:
    """Denormalized preview of a conversation's most recent message."""

    content: str
    created_at: datetime | None = None


@dataclass
class Conversation:
    """A thread between the current user and one counterparty."""

    id: str
    participant: UserRef
    last_message: LastMessage | None = None
    unread_count: int = 0


def conversation_id_for(user_a: str, user_b: str) -> str:
    """Server-side conversation id for the pair of users, order independent."""
    first, second = sorted([str(user_a), str(user_b)])
    return f"conversation_{first}_{second}"
