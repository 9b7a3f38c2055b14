"""Async REST client for the brokerage messaging API."""

from __future__ import annotations

import logging
import mimetypes
from pathlib import Path
from typing import Any

import httpx

from broker_chat.api.parser import (
    attachment_payload,
    parse_conversations,
    parse_message,
    parse_messages,
)
from broker_chat.config import ChatSettings, DEFAULT_API_URL
from broker_chat.exceptions import (
    APIError,
    AuthenticationError,
    ConversationFetchError,
    MarkReadError,
    MessageFetchError,
    MessageSendError,
    UploadError,
)
from broker_chat.models import Attachment, Conversation, Message

logger = logging.getLogger(__name__)

MAX_UPLOAD_FILES = 5

# Raised by the parsers on documents that do not match the expected shape.
PARSE_ERRORS = (AttributeError, KeyError, TypeError, ValueError)


class MessagesAPI:
    """Request/response side of the messaging subsystem.

    Args:
        token: Bearer credential for the authenticated user.
        base_url: API root, e.g. ``http://localhost:5000/api``.
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport, mainly for tests.
    """

    def __init__(
        self,
        token: str,
        base_url: str = DEFAULT_API_URL,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if not token:
            raise AuthenticationError(
                "A credential token is required. "
                "Log in through the session layer before creating MessagesAPI."
            )
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    @classmethod
    def from_settings(
        cls,
        token: str,
        settings: ChatSettings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> MessagesAPI:
        return cls(
            token,
            base_url=settings.api_url,
            timeout=settings.http_timeout,
            transport=transport,
        )

    @property
    def client(self) -> httpx.AsyncClient:
        """Access the underlying httpx client for advanced usage."""
        return self._client

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> MessagesAPI:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        error_cls: type[APIError],
        action: str,
        **kwargs: Any,
    ) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.error(f"API error during {action}: HTTP {status}")
            if status == 401:
                raise AuthenticationError(f"Not authorized to {action}") from e
            raise error_cls(f"Failed to {action}: HTTP {status}") from e
        except httpx.HTTPError as e:
            logger.error(f"Network error during {action}: {e}")
            raise error_cls(f"Failed to {action}: {e}") from e

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise error_cls(f"Failed to {action}: invalid JSON response") from e

    # ---- Conversations ----

    async def get_conversations(self) -> list[Conversation]:
        """Full conversation list for the current user."""
        data = await self._request(
            "GET", "/conversations", ConversationFetchError, "load conversations"
        )
        if not isinstance(data, list):
            raise ConversationFetchError(
                "Failed to load conversations: invalid response format"
            )
        return _parse(parse_conversations, data, ConversationFetchError, "load conversations")

    async def get_messages(self, conversation_id: str) -> list[Message]:
        """Ordered history of one conversation (oldest first)."""
        data = await self._request(
            "GET",
            f"/messages/{conversation_id}",
            MessageFetchError,
            "load messages",
        )
        if not isinstance(data, list):
            raise MessageFetchError("Failed to load messages: invalid response format")
        return _parse(parse_messages, data, MessageFetchError, "load messages")

    async def get_or_create_conversation(self, user_id: str) -> list[Message]:
        """Open the thread with ``user_id``; the server seeds a welcome message if new."""
        data = await self._request(
            "GET",
            f"/messages/conversation/{user_id}",
            MessageFetchError,
            f"open conversation with {user_id}",
        )
        if not isinstance(data, list):
            raise MessageFetchError(
                "Failed to open conversation: invalid response format"
            )
        return _parse(parse_messages, data, MessageFetchError, "open conversation")

    # ---- Messages ----

    async def send_message(self, payload: dict) -> Message | None:
        """Request/response send path, used when the socket is unavailable."""
        data = await self._request(
            "POST", "/messages", MessageSendError, "send message", json=payload
        )
        return _created_message(data, "send message")

    async def send_admin_reply(
        self,
        content: str,
        conversation_id: str,
        receiver_id: str,
        attachments: list[Attachment] | None = None,
    ) -> Message | None:
        """Reply on behalf of the platform (administrators only)."""
        payload = {
            "content": content,
            "conversationId": conversation_id,
            "receiverId": receiver_id,
            "attachments": [attachment_payload(a) for a in attachments or []],
        }
        data = await self._request(
            "POST",
            "/messages/admin/reply",
            MessageSendError,
            "send admin reply",
            json=payload,
        )
        return _created_message(data, "send admin reply")

    async def mark_as_read(self, message_id: str) -> None:
        await self._request(
            "PATCH",
            f"/messages/{message_id}/read",
            MarkReadError,
            f"mark message {message_id} as read",
        )

    # ---- Attachments ----

    async def upload_attachments(self, file_paths: list[str | Path]) -> list[Attachment]:
        """Upload local files and return them as attachments, in order."""
        if not file_paths:
            return []
        if len(file_paths) > MAX_UPLOAD_FILES:
            raise UploadError(
                f"Maximum {MAX_UPLOAD_FILES} files can be uploaded at once"
            )

        files = []
        names = []
        for file_path in file_paths:
            path = Path(file_path)
            if not path.is_file():
                raise UploadError(f"File not found: {file_path}")
            mime_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
            try:
                content = path.read_bytes()
            except OSError as e:
                raise UploadError(f"Failed to read {file_path}: {e}") from e
            files.append(("images", (path.name, content, mime_type)))
            names.append((path.name, mime_type))

        data = await self._request(
            "POST", "/upload/images", UploadError, "upload attachments", files=files
        )
        images = _uploaded_images(data)
        if len(images) != len(names):
            # The server drops files it failed to store; we cannot tell which.
            raise UploadError(
                f"Uploaded {len(images)} of {len(names)} files"
            )

        try:
            attachments = [
                Attachment(url=image.get("url", ""), file_name=name, file_type=mime_type)
                for image, (name, mime_type) in zip(images, names)
            ]
        except PARSE_ERRORS as e:
            raise UploadError(f"Failed to upload attachments: malformed response ({e})") from e
        logger.info(f"Uploaded {len(attachments)} attachment(s)")
        return attachments


def _parse(parser, data: Any, error_cls: type[APIError], action: str):
    try:
        return parser(data)
    except PARSE_ERRORS as e:
        logger.error(f"Malformed response during {action}: {e}")
        raise error_cls(f"Failed to {action}: malformed response ({e})") from e


def _created_message(data: Any, action: str) -> Message | None:
    """Server copy of a sent message, or None when the reply carries none.

    The send already succeeded at this point, so an unreadable reply is
    logged instead of raised.
    """
    if not isinstance(data, dict) or not data:
        return None
    try:
        return parse_message(data)
    except PARSE_ERRORS as e:
        logger.warning(f"Ignoring malformed reply to {action}: {e}")
        return None


def _uploaded_images(data: Any) -> list[dict]:
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        inner = data.get("data", data)
        if isinstance(inner, dict):
            return inner.get("images", []) or []
        if isinstance(inner, list):
            return inner
    raise UploadError("Failed to upload attachments: invalid response format")
