"""
User-facing notifications.

Operations never let an exception reach the driver/patient: they convert it
here into a titled, actionable message.  The ``kind`` keeps the error class
distinguishable (e.g. an auth failure forces a logout, a network failure
asks the user to check connectivity).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

from medride.domain.exceptions import (
    AuthError,
    MedrideError,
    NetworkError,
    ServerError,
    SessionExpiredError,
    ValidationError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Notification:
    kind: str  # "info" or an error code
    title: str
    message: str

    @property
    def is_error(self) -> bool:
        return self.kind != "info"


class Notifier(Protocol):
    def notify(self, notification: Notification) -> None: ...


class LoggingNotifier:
    """Default notifier: writes notifications to the log."""

    def notify(self, notification: Notification) -> None:
        level = logging.WARNING if notification.is_error else logging.INFO
        logger.log(level, "[%s] %s: %s", notification.kind, notification.title, notification.message)


class CollectingNotifier:
    """Keeps every notification in order.  Handy for scripted sessions."""

    def __init__(self) -> None:
        self.notifications: list[Notification] = []

    def notify(self, notification: Notification) -> None:
        self.notifications.append(notification)

    @property
    def last(self) -> Notification | None:
        return self.notifications[-1] if self.notifications else None


_TITLES: list[tuple[type[MedrideError], str]] = [
    (SessionExpiredError, "Session Expired"),
    (AuthError, "Authentication Error"),
    (NetworkError, "Connection Error"),
    (ServerError, "Server Error"),
    (ValidationError, "Validation Error"),
]


def info(title: str, message: str) -> Notification:
    return Notification("info", title, message)


def notification_for(exc: MedrideError, context: str = "") -> Notification:
    title = next((t for cls, t in _TITLES if isinstance(exc, cls)), "Error")
    message = exc.user_message
    if context and isinstance(exc, ServerError):
        message = f"{context}: {message}"
    return Notification(exc.error_code, title, message)
