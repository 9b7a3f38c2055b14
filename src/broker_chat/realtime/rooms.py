"""Bookkeeping for the conversation rooms this client has joined."""

from __future__ import annotations


class RoomMembership:
    """Insertion-ordered set of joined conversation ids.

    Only the connection manager's reconnect handler reads it, to restore
    exactly this set after the transport comes back.
    """

    def __init__(self):
        self._rooms: dict[str, None] = {}

    def add(self, conversation_id: str) -> bool:
        """Record a join. Returns False if the room was already joined."""
        if conversation_id in self._rooms:
            return False
        self._rooms[conversation_id] = None
        return True

    def discard(self, conversation_id: str) -> bool:
        """Record a leave. Returns False if the room was not joined."""
        return self._rooms.pop(conversation_id, False) is None

    def clear(self) -> None:
        self._rooms.clear()

    def snapshot(self) -> list[str]:
        return list(self._rooms)

    def __contains__(self, conversation_id: object) -> bool:
        return conversation_id in self._rooms

    def __len__(self) -> int:
        return len(self._rooms)

    def __iter__(self):
        return iter(self.snapshot())
