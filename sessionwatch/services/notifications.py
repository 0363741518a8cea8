"""Session completion notifications."""
from __future__ import annotations

import logging
from typing import Protocol

logger = logging.getLogger("sessionwatch.notifications")


class Notifier(Protocol):
    def send_session_completed(self, project_name: str, path: str) -> None: ...


class LoggingNotifier:
    """Default notifier: records completions in the application log."""

    def send_session_completed(self, project_name: str, path: str) -> None:
        logger.info("Session completed: %s (%s)", project_name, path)
