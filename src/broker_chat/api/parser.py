"""Parse server JSON payloads into chat models."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from dateutil import parser as date_parser

from broker_chat.models import Attachment, Conversation, LastMessage, Message, UserRef

logger = logging.getLogger(__name__)


def parse_message(raw: dict) -> Message:
    """Build a Message from a server message document.

    Pure parsing, no network calls. ``sender`` and ``receiver`` may be
    populated user objects or bare id strings.
    """
    return Message(
        id=_object_id(raw),
        content=raw.get("content", ""),
        sender=parse_user(raw.get("sender")),
        receiver=_ref_id(raw.get("receiver")),
        conversation_id=raw.get("conversationId", ""),
        created_at=parse_timestamp(raw.get("createdAt")) or datetime.now(timezone.utc),
        attachments=[parse_attachment(a) for a in raw.get("attachments") or []],
        is_read=bool(raw.get("isRead", False)),
        is_admin_reply=bool(raw.get("isAdminReply", False)),
        is_system_message=bool(raw.get("isSystemMessage", False)),
        interest_id=_ref_id(raw.get("interest")) or None,
    )


def parse_messages(raw_list: list[dict]) -> list[Message]:
    return [parse_message(m) for m in raw_list]


def parse_conversation(raw: dict) -> Conversation:
    last = raw.get("lastMessage")
    last_message = None
    if last:
        last_message = LastMessage(
            content=last.get("content", ""),
            created_at=parse_timestamp(last.get("createdAt")),
        )
    return Conversation(
        id=_object_id(raw),
        participant=parse_user(raw.get("participant")),
        last_message=last_message,
        unread_count=max(0, int(raw.get("unreadCount") or 0)),
    )


def parse_conversations(raw_list: list[dict]) -> list[Conversation]:
    return [parse_conversation(c) for c in raw_list]


def parse_user(raw: dict | str | None) -> UserRef:
    if raw is None:
        return UserRef(id="")
    if isinstance(raw, str):
        return UserRef(id=raw)
    return UserRef(
        id=_object_id(raw),
        first_name=raw.get("firstName", "") or "",
        last_name=raw.get("lastName", "") or "",
        email=raw.get("email", "") or "",
        avatar=raw.get("avatar"),
        is_admin=bool(raw.get("isAdmin", raw.get("role") == "admin")),
    )


def parse_attachment(raw: dict) -> Attachment:
    return Attachment(
        url=raw.get("url", ""),
        file_name=raw.get("fileName", "") or "",
        file_type=raw.get("fileType"),
    )


def parse_timestamp(value: str | None) -> datetime | None:
    """Parse an ISO 8601 timestamp; naive values are taken as UTC."""
    if not value:
        return None
    try:
        parsed = date_parser.isoparse(value)
    except (ValueError, TypeError):
        logger.warning(f"Unparseable timestamp {value!r}")
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def message_payload(
    content: str,
    conversation_id: str,
    receiver: str,
    attachments: list[Attachment] | None = None,
) -> dict:
    """Outbound payload shared by the real-time and REST send paths."""
    payload = {
        "content": content,
        "conversationId": conversation_id,
        "receiver": receiver,
    }
    if attachments:
        payload["attachments"] = [attachment_payload(a) for a in attachments]
    return payload


def attachment_payload(attachment: Attachment) -> dict:
    data = {"url": attachment.url, "fileName": attachment.file_name}
    if attachment.file_type:
        data["fileType"] = attachment.file_type
    return data


def _object_id(raw: dict) -> str:
    return str(raw.get("_id") or raw.get("id") or "")


def _ref_id(value: dict | str | None) -> str:
    if value is None:
        return ""
    if isinstance(value, dict):
        return _object_id(value)
    return str(value)
