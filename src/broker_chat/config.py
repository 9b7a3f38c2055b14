"""Client settings with environment-driven defaults."""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from broker_chat.exceptions import ConfigurationError

DEFAULT_API_URL = "http://localhost:5000/api"
DEFAULT_SOCKET_URL = "http://localhost:5000"
DEFAULT_TRANSPORTS = ("websocket", "polling")


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e
    if value < 0:
        raise ConfigurationError(f"{name} must not be negative, got {value}")
    return value


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {raw!r}") from e


@dataclass
class ChatSettings:
    """Connection and API settings for a chat session.

    Delays and the socket timeout are in milliseconds; ``http_timeout`` is in
    seconds, matching what httpx expects.
    """

    api_url: str = DEFAULT_API_URL
    socket_url: str = DEFAULT_SOCKET_URL
    reconnect_attempts: int = 5
    reconnect_delay_ms: int = 1000
    reconnect_delay_max_ms: int = 5000
    connect_timeout_ms: int = 20000
    http_timeout: float = 10.0
    transports: tuple[str, ...] = field(default=DEFAULT_TRANSPORTS)

    @classmethod
    def from_env(cls) -> ChatSettings:
        """Build settings from ``BROKER_CHAT_*`` environment variables."""
        return cls(
            api_url=os.environ.get("BROKER_CHAT_API_URL", DEFAULT_API_URL),
            socket_url=os.environ.get("BROKER_CHAT_SOCKET_URL", DEFAULT_SOCKET_URL),
            reconnect_attempts=_env_int("BROKER_CHAT_WS_RECONNECT_ATTEMPTS", 5),
            reconnect_delay_ms=_env_int("BROKER_CHAT_WS_RECONNECT_DELAY", 1000),
            reconnect_delay_max_ms=_env_int("BROKER_CHAT_WS_RECONNECT_DELAY_MAX", 5000),
            connect_timeout_ms=_env_int("BROKER_CHAT_WS_TIMEOUT", 20000),
            http_timeout=_env_float("BROKER_CHAT_HTTP_TIMEOUT", 10.0),
        )

    def backoff_delay_ms(self, attempts: int) -> int:
        """Exponential backoff delay for the given number of prior attempts."""
        return self.reconnect_delay_ms * 2 ** attempts
