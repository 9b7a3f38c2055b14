"""Message stream of the selected conversation."""

from __future__ import annotations

import logging

from broker_chat.api.client import MessagesAPI
from broker_chat.models import Message

logger = logging.getLogger(__name__)


class MessageStream:
    """Ordered history for exactly one conversation at a time.

    Messages keep arrival order: history comes in server order and real-time
    deltas are appended, never re-sorted.

    A ``load()`` that resolves after a newer ``load()`` was started is
    discarded, so a slow fetch for a previous selection cannot overwrite the
    current one. Messages arriving for the conversation being loaded are held
    back and appended once its history is in.
    """

    def __init__(self, api: MessagesAPI):
        self._api = api
        self._messages: list[Message] = []
        self.conversation_id: str | None = None
        self._requested_id: str | None = None
        self._held: list[Message] = []

    @property
    def messages(self) -> list[Message]:
        return list(self._messages)

    @property
    def loading(self) -> bool:
        return self._requested_id is not None and self._requested_id != self.conversation_id

    def snapshot(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    async def load(self, conversation_id: str) -> bool:
        """Fetch and install a conversation's history.

        Returns False when the result was discarded as stale. Fetch errors
        propagate and leave the current list untouched.
        """
        self._requested_id = conversation_id
        self._held = []
        messages = await self._api.get_messages(conversation_id)
        if self._requested_id != conversation_id:
            logger.info(
                f"Discarding stale history for {conversation_id}, "
                f"{self._requested_id} is selected now"
            )
            return False

        self.conversation_id = conversation_id
        self._messages = list(messages)
        held, self._held = self._held, []
        for message in held:
            self.append(message)
        logger.debug(f"Loaded {len(self._messages)} message(s) for {conversation_id}")
        return True

    def clear(self) -> None:
        self._messages = []
        self._held = []
        self.conversation_id = None
        self._requested_id = None

    def append(self, message: Message) -> bool:
        """Append a message for the shown conversation.

        Returns True when the message was taken, either shown or held until
        the pending load completes. Duplicates are ignored.
        """
        if message.conversation_id != self.conversation_id:
            if message.conversation_id != self._requested_id:
                return False
            if _position(self._held, message.id) is not None:
                return False
            self._held.append(message)
            return True
        if any(m.id == message.id for m in self._messages):
            return False
        self._messages.append(message)
        return True

    def remove(self, message_id: str) -> bool:
        """Drop a message, whether it is shown or still held for a pending load."""
        before = len(self._messages) + len(self._held)
        self._messages = [m for m in self._messages if m.id != message_id]
        self._held = [m for m in self._held if m.id != message_id]
        return len(self._messages) + len(self._held) != before

    def reconcile(self, temp_id: str, message: Message) -> None:
        """Swap a provisional message for the server's copy.

        If the server copy already arrived over the socket, the provisional
        one is dropped instead.
        """
        already_present = any(
            _position(bucket, message.id) is not None
            for bucket in (self._messages, self._held)
        )
        for bucket in (self._messages, self._held):
            index = _position(bucket, temp_id)
            if index is None:
                continue
            if already_present:
                del bucket[index]
            else:
                bucket[index] = message
            return

    def mark_read_for(self, user_id: str) -> list[str]:
        """Mark loaded messages addressed to ``user_id`` read; return their ids."""
        changed = []
        for message in self._messages:
            if message.receiver == user_id and not message.is_read:
                message.is_read = True
                changed.append(message.id)
        return changed

    def mark_seen(self, message_id: str) -> bool:
        index = _position(self._messages, message_id)
        if index is None:
            return False
        self._messages[index].is_read = True
        return True

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self):
        return iter(self.messages)


def _position(messages: list[Message], message_id: str) -> int | None:
    for i, message in enumerate(messages):
        if message.id == message_id:
            return i
    return None
