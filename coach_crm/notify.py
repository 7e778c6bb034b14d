from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Protocol

logger = logging.getLogger(__name__)


class ToastLevel(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    ERROR = "error"


# User-facing titles
TITLE_SUCCESS = "הצלחה"
TITLE_ERROR = "שגיאה"
TITLE_SESSION_EXPIRED = "פג תוקף ההתחברות"


@dataclass
class Toast:
    level: ToastLevel
    title: str
    message: str
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class Notifier(Protocol):
    async def notify(self, level: ToastLevel, title: str, message: str) -> None: ...


class NotificationCenter:
    """
    In-memory toast queue, newest last.
    """

    def __init__(self, max_items: int = 50) -> None:
        self._max_items = max_items
        self.toasts: list[Toast] = []

    async def notify(self, level: ToastLevel, title: str, message: str) -> None:
        logger.debug("Toast %s: %s - %s", level.value, title, message)
        self.toasts.append(Toast(level=level, title=title, message=message))
        if len(self.toasts) > self._max_items:
            del self.toasts[: len(self.toasts) - self._max_items]

    @property
    def errors(self) -> list[Toast]:
        return [toast for toast in self.toasts if toast.level is ToastLevel.ERROR]

    def dismiss_all(self) -> None:
        self.toasts.clear()
