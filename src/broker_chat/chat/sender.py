"""Optimistic send pipeline."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Sequence

from broker_chat.api.client import MessagesAPI
from broker_chat.api.parser import message_payload
from broker_chat.chat.directory import ConversationDirectory
from broker_chat.chat.notifications import Notifier
from broker_chat.chat.stream import MessageStream
from broker_chat.exceptions import BrokerChatError
from broker_chat.models import TEMP_ID_PREFIX, Attachment, Conversation, Message, UserRef
from broker_chat.realtime.connection import ConnectionManager

logger = logging.getLogger(__name__)

SEND_FAILED = "Failed to send message"
UPLOAD_FAILED = "Failed to upload attachments"


def new_temp_id() -> str:
    return f"{TEMP_ID_PREFIX}{uuid.uuid4().hex}"


class MessageSender:
    """Shows a message immediately, then delivers it.

    Delivery goes over the socket first and falls back to the REST API. If
    both fail the provisional message is removed again and a single error
    notification is raised; there is no automatic retry.

    Args:
        on_pending: Called with the provisional message right after it is
            shown, e.g. to clear the compose box and scroll to the end.
    """

    def __init__(
        self,
        user: UserRef,
        api: MessagesAPI,
        stream: MessageStream,
        directory: ConversationDirectory,
        notifier: Notifier,
        connection: ConnectionManager | None = None,
        on_pending: Callable[[Message], None] | None = None,
    ):
        self.user = user
        self._api = api
        self._stream = stream
        self._directory = directory
        self._notifier = notifier
        self._connection = connection
        self._on_pending = on_pending

    async def send(
        self,
        conversation: Conversation,
        content: str,
        files: Sequence[str | Path] = (),
    ) -> Message | None:
        """Send ``content`` (and uploaded ``files``) to ``conversation``.

        Returns the delivered message (the server copy when one was echoed,
        else the provisional one), or None if nothing was sent.
        """
        content = content.strip()
        if not content and not files:
            return None

        attachments: list[Attachment] = []
        if files:
            try:
                attachments = await self._api.upload_attachments(list(files))
            except BrokerChatError as e:
                logger.error(f"Attachment upload failed: {e}")
                self._notifier.error(UPLOAD_FAILED)
                return None

        provisional = Message(
            id=new_temp_id(),
            content=content,
            sender=self.user,
            receiver=conversation.participant.id,
            conversation_id=conversation.id,
            created_at=datetime.now(timezone.utc),
            attachments=attachments,
            is_read=True,
            is_admin_reply=self.user.is_admin,
            is_optimistic=True,
        )
        self._stream.append(provisional)
        if self._on_pending is not None:
            self._on_pending(provisional)

        payload = message_payload(
            content, conversation.id, conversation.participant.id, attachments
        )
        try:
            delivered = await self._deliver(conversation, payload, attachments)
        except BrokerChatError as e:
            # Uploaded attachments, if any, stay orphaned on the server.
            logger.error(f"Failed to send message to {conversation.id}: {e}")
            self._stream.remove(provisional.id)
            self._notifier.error(SEND_FAILED)
            return None

        if delivered is not None:
            self._stream.reconcile(provisional.id, delivered)

        try:
            await self._directory.refresh()
        except BrokerChatError as e:
            logger.warning(f"Conversation refresh after send failed: {e}")
            self._notifier.error("Failed to refresh conversations")

        return delivered or provisional

    async def _deliver(
        self,
        conversation: Conversation,
        payload: dict,
        attachments: list[Attachment],
    ) -> Message | None:
        if self._connection is not None:
            try:
                return await self._connection.send_message(payload)
            except BrokerChatError as e:
                logger.warning(f"Real-time send failed, falling back to HTTP: {e}")

        if self.user.is_admin:
            return await self._api.send_admin_reply(
                payload["content"],
                conversation.id,
                conversation.participant.id,
                attachments,
            )
        return await self._api.send_message(payload)
