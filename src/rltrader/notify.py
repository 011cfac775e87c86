"""Fire-and-forget notification sinks."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

logger = logging.getLogger(__name__)


class Notifier(ABC):
    """Abstract base class for notification channels.

    Implementations may raise :class:`~rltrader.exceptions.NotificationError`;
    callers log the failure and carry on.
    """

    @abstractmethod
    def notify(self, text: str) -> None:
        """Deliver a plain-text message."""
        pass


class LoggingNotifier(Notifier):
    """Notifier that writes messages to a logger.

    :param level: Logging level used for messages.
    """

    def __init__(self, level: int = logging.INFO) -> None:
        self.level = level
        self._logger = logging.getLogger("rltrader.notifications")

    def notify(self, text: str) -> None:
        self._logger.log(self.level, text)


class MemoryNotifier(Notifier):
    """Notifier that keeps messages in a list, for tests."""

    def __init__(self) -> None:
        self.messages: list[str] = []

    def notify(self, text: str) -> None:
        self.messages.append(text)


def safe_notify(notifier: Notifier | None, text: str) -> None:
    """Send ``text`` through ``notifier`` and log, rather than raise, failures."""
    if notifier is None:
        return
    try:
        notifier.notify(text)
    except Exception:
        logger.error("Failed to send notification", exc_info=True)
