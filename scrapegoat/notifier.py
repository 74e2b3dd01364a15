"""
Completion notification.

Delivery transports (mail, webhooks) live outside this package; anything
with a ``notify(job_id, destination, link)`` method can be passed to the
orchestrator.
"""

import logging
from typing import Protocol

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def notify(self, job_id: str, destination: str, link: str) -> None: ...


class LogNotifier:
    """Writes the completion message to the log."""

    def notify(self, job_id: str, destination: str, link: str) -> None:
        logger.info(f"[NOTIFY] Job {job_id} complete — {destination}: download at {link}")
