"""Unified exception hierarchy for broker-chat."""


class BrokerChatError(Exception):
    """Base exception for all broker-chat errors."""


class ConfigurationError(BrokerChatError):
    """Invalid or missing client configuration."""


# Real-time transport
class RealtimeError(BrokerChatError):
    """Base exception for real-time connection operations."""


class NotConnectedError(RealtimeError):
    """The real-time transport is not connected."""


# REST API
class APIError(BrokerChatError):
    """Base exception for REST API operations."""


class AuthenticationError(APIError):
    """The credential token was rejected (HTTP 401)."""


class ConversationFetchError(APIError):
    """Failed to fetch the conversation list."""


class MessageFetchError(APIError):
    """Failed to fetch messages for a conversation."""


class MessageSendError(APIError):
    """Failed to deliver a message."""


class MarkReadError(APIError):
    """Failed to mark a message as read."""


class UploadError(APIError):
    """Failed to upload message attachments."""
