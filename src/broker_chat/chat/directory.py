"""Conversation directory: the list of threads with preview and unread state."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from broker_chat.api.client import MessagesAPI
from broker_chat.models import Conversation, LastMessage, Message

logger = logging.getLogger(__name__)

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


class ConversationDirectory:
    """Server-sourced conversation list, kept in sync with inbound messages.

    ``refresh()`` replaces the list wholesale; it is also the recovery path
    after any suspected drift. A failed refresh raises and leaves the last
    known good list in place.
    """

    def __init__(self, api: MessagesAPI):
        self._api = api
        self._conversations: list[Conversation] = []

    async def refresh(self) -> list[Conversation]:
        conversations = await self._api.get_conversations()
        self._conversations = conversations
        logger.debug(f"Loaded {len(conversations)} conversation(s)")
        return self.conversations

    @property
    def conversations(self) -> list[Conversation]:
        return list(self._conversations)

    def get(self, conversation_id: str) -> Conversation | None:
        for conversation in self._conversations:
            if conversation.id == conversation_id:
                return conversation
        return None

    def record_incoming(
        self,
        message: Message,
        active: bool,
        count_unread: bool = True,
    ) -> Conversation | None:
        """Apply an inbound message to its directory entry.

        The active conversation's unread count stays at 0 since the user is
        looking at it. ``count_unread=False`` only updates the preview (our
        own messages echoed from another device). Unknown conversations are
        left for the next refresh.
        """
        conversation = self.get(message.conversation_id)
        if conversation is None:
            logger.debug(
                f"Message for unknown conversation {message.conversation_id}"
            )
            return None
        conversation.last_message = LastMessage(
            content=message.content, created_at=message.created_at
        )
        if active:
            conversation.unread_count = 0
        elif count_unread:
            conversation.unread_count += 1
        return conversation

    def reset_unread(self, conversation_id: str) -> None:
        conversation = self.get(conversation_id)
        if conversation is not None:
            conversation.unread_count = 0

    def recent(self) -> list[Conversation]:
        """Conversations, newest last message first; empty threads last."""
        return sorted(self._conversations, key=_last_activity, reverse=True)

    @property
    def total_unread(self) -> int:
        return sum(c.unread_count for c in self._conversations)

    def __len__(self) -> int:
        return len(self._conversations)

    def __iter__(self):
        return iter(self.conversations)


def _last_activity(conversation: Conversation) -> datetime:
    last = conversation.last_message
    if last is None or last.created_at is None:
        return _OLDEST
    return last.created_at
