"""Best-effort notifications sent when an account is created."""
from __future__ import annotations

import logging
from typing import Protocol

from .models import User

logger = logging.getLogger("eventhub.notifications")


class Notifier(Protocol):
    async def send_welcome(self, user: User) -> None: ...


class LoggingNotifier:
    """Records the welcome message instead of delivering it."""

    subject = "Welcome to the events app!"

    async def send_welcome(self, user: User) -> None:
        name = user.email.split("@", 1)[0]
        logger.info("Welcome notification for %s <%s>: %s", name, user.email, self.subject)


__all__ = ["Notifier", "LoggingNotifier"]
