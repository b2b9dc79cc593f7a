"""
Notification sink used by the authoring tool.

The UI supplies its own sink (toasts, snackbars); the default one only
logs.
"""

import logging
from enum import Enum
from typing import Protocol

logger = logging.getLogger(__name__)


class NotificationKind(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


class Notifier(Protocol):
    def notify(self, kind: NotificationKind, message: str) -> None: ...


_LOG_LEVELS = {
    NotificationKind.SUCCESS: logging.INFO,
    NotificationKind.INFO: logging.INFO,
    NotificationKind.WARNING: logging.WARNING,
    NotificationKind.ERROR: logging.ERROR,
}


class LoggingNotifier:
    """Fire-and-forget sink that writes notifications to the log."""

    def notify(self, kind: NotificationKind, message: str) -> None:
        logger.log(_LOG_LEVELS[NotificationKind(kind)], "[%s] %s", NotificationKind(kind).value, message)
