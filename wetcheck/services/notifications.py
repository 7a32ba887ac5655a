"""
User-visible notifications.

The state machine reports outcomes through a Notifier; a UI layer renders
them. NotificationCenter keeps them in memory and mirrors them to the log.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Protocol

from utils.logger import setup_logger
from utils.config import config

logger = setup_logger(__name__, level=config.log_level, log_file=config.get_log_file(), component="NOTIFY")

LEVELS = ("success", "info", "warning", "error")


@dataclass
class Notification:
    message: str
    level: str = "info"
    dismiss_after: Optional[float] = None  # seconds; None stays until dismissed
    blocking: bool = False
    created_at: datetime = field(default_factory=datetime.now)


class Notifier(Protocol):
    def notify(self, message: str, level: str = "info", dismiss_after: Optional[float] = None) -> Notification:
        """Show a non-blocking, optionally auto-dismissing message."""
        ...

    def alert(self, message: str) -> Notification:
        """Show a blocking message the user has to acknowledge."""
        ...


class NotificationCenter:
    """In-memory Notifier."""

    def __init__(self):
        self.history: List[Notification] = []

    def _push(self, notification: Notification) -> Notification:
        if notification.level not in LEVELS:
            notification.level = "info"
        self.history.append(notification)

        if notification.level == "error":
            logger.warning(f"[user] {notification.message}")
        else:
            logger.info(f"[user] {notification.message}")
        return notification

    def notify(self, message: str, level: str = "info", dismiss_after: Optional[float] = None) -> Notification:
        return self._push(Notification(message, level, dismiss_after))

    def alert(self, message: str) -> Notification:
        return self._push(Notification(message, "error", None, blocking=True))

    @property
    def latest(self) -> Optional[Notification]:
        return self.history[-1] if self.history else None

    def messages(self) -> List[str]:
        return [n.message for n in self.history]

    def clear(self):
        self.history.clear()
