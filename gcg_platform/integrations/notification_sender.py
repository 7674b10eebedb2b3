"""
Outbound notification delivery.

``NotificationSender.send`` delivers one message to one recipient address.
Implementations may raise ``TransientIOError``; the notification dispatcher
catches and logs it so a delivery problem never fails a primary operation.

The production sender is ``gcg_platform.services.email_service.EmailService``
(SMTP, or log-only when MAIL_SERVER is unset).
"""

from __future__ import annotations

import logging

from gcg_platform.core.exceptions import TransientIOError

logger = logging.getLogger(__name__)


class NotificationSender:
    """Interface for message delivery."""

    def send(self, recipient: str, subject: str, body: str) -> None:
        raise NotImplementedError


class RecordingSender(NotificationSender):
    """Keeps every message in memory. Used by the test-suite.

    Set ``fail=True`` to simulate an unreachable mail relay.
    """

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.sent: list[dict] = []

    def send(self, recipient: str, subject: str, body: str) -> None:
        if self.fail:
            raise TransientIOError(f"delivery to {recipient} failed")
        self.sent.append({"recipient": recipient, "subject": subject, "body": body})
        logger.debug("Recorded message to=%s subject='%s'", recipient, subject)
