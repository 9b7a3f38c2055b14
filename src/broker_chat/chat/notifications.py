"""Short-lived user-facing notifications (the UI's toasts)."""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Notification:
    level: str  # "error", "warning", "info"
    text: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class Notifier:
    """Collects notifications and forwards them to an optional callback.

    Args:
        callback: Called with each Notification, e.g. to show a toast.
        history: Number of recent notifications kept in ``recent``.
    """

    def __init__(
        self,
        callback: Callable[[Notification], None] | None = None,
        history: int = 50,
    ):
        self._callback = callback
        self._recent: deque[Notification] = deque(maxlen=history)

    @property
    def recent(self) -> list[Notification]:
        return list(self._recent)

    def errors(self) -> list[Notification]:
        return [n for n in self._recent if n.level == "error"]

    def notify(self, level: str, text: str) -> Notification:
        notification = Notification(level=level, text=text)
        self._recent.append(notification)
        if self._callback is not None:
            try:
                self._callback(notification)
            except Exception:
                logger.exception("Notification callback failed")
        return notification

    def error(self, text: str) -> Notification:
        return self.notify("error", text)

    def info(self, text: str) -> Notification:
        return self.notify("info", text)

    def clear(self) -> None:
        self._recent.clear()
