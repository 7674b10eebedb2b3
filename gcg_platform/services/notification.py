"""
GCG Assessment Platform
Notification Service.

Assignment, revision and AOI events produce notification *intents* while
the primary transaction is open. Intents are dispatched only after that
transaction commits:

    outbox = notifications.outbox()
    outbox.add(user_id=..., title=..., message=...)
    session.commit()
    notifications.dispatch(outbox)

Dispatch resolves each intent to concrete users (a unit intent fans out to
every user of the unit) and stores one Notification row per user. Once
those rows are committed, each recipient with an address gets an e-mail
from the configured sender. Failures are logged and swallowed: the primary
operation has already committed, and one unreachable address neither
loses the stored rows nor stops the remaining e-mails.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy import func, select, update

from gcg_platform.models.notification import Notification

logger = logging.getLogger(__name__)


@dataclass
class NotificationIntent:
    """A message for a user and/or every member of a unit."""
    title: str
    message: str = ""
    category: str = "system"
    assessment_id: str | None = None
    user_id: str | None = None
    unit_id: str | None = None


@dataclass
class Outbox:
    """Intents collected during one transaction."""
    intents: list[NotificationIntent] = field(default_factory=list)

    def add(self, **kwargs) -> None:
        intent = NotificationIntent(**kwargs)
        if intent.user_id or intent.unit_id:
            self.intents.append(intent)

    def __len__(self) -> int:
        return len(self.intents)


class NotificationService:
    """Creates, dispatches and queries notifications."""

    def __init__(self, session, identity, sender) -> None:
        self.session = session
        self.identity = identity
        self.sender = sender

    @staticmethod
    def outbox() -> Outbox:
        return Outbox()

    # ── Dispatch ──────────────────────────────────────────────────────────

    def _recipients(self, intent):
        found = {}
        if intent.user_id:
            ident = self.identity.get_identity(intent.user_id)
            if ident is not None:
                found[ident.user_id] = ident
            else:
                logger.warning("Notification recipient %s unknown, skipped", intent.user_id)
        if intent.unit_id:
            for ident in self.identity.users_in_unit(intent.unit_id):
                found.setdefault(ident.user_id, ident)
        return list(found.values())

    def dispatch(self, outbox: Outbox) -> int:
        """Deliver every intent in the outbox. Never raises.

        Returns:
            Number of notifications stored.
        """
        if not len(outbox):
            return 0
        stored = 0
        mails = []
        try:
            for intent in outbox.intents:
                for ident in self._recipients(intent):
                    self.session.add(Notification(
                        assessment_id=intent.assessment_id,
                        recipient=ident.user_id,
                        title=intent.title,
                        message=intent.message,
                        category=intent.category,
                    ))
                    stored += 1
                    if ident.email:
                        mails.append((ident.email, intent.title, intent.message))
            self.session.commit()
        except Exception as exc:
            self.session.rollback()
            logger.warning("Notification dispatch failed after commit: %s", exc, exc_info=True)
            return 0
        outbox.intents.clear()

        failed = 0
        for email, title, message in mails:
            try:
                self.sender.send(email, title, message)
            except Exception as exc:
                failed += 1
                logger.warning("Notification e-mail to %s failed: %s", email, exc)
        logger.info("Dispatched %d notification(s), %d e-mail(s) failed", stored, failed)
        return stored

    # ── Query ─────────────────────────────────────────────────────────────

    def list_for_recipient(self, recipient, assessment_id=None, unread_only=False):
        """Notifications for a user, newest first."""
        stmt = select(Notification).where(Notification.recipient == recipient)
        if assessment_id:
            stmt = stmt.where(Notification.assessment_id == assessment_id)
        if unread_only:
            stmt = stmt.where(Notification.is_read.is_(False))
        stmt = stmt.order_by(Notification.created_at.desc(), Notification.id.desc())
        return self.session.execute(stmt).scalars().all()

    def unread_count(self, recipient):
        return self.session.execute(
            select(func.count(Notification.id)).where(
                Notification.recipient == recipient,
                Notification.is_read.is_(False),
            )
        ).scalar()

    # ── Actions ───────────────────────────────────────────────────────────

    def mark_read(self, notification_id, recipient):
        """Mark one of the recipient's notifications as read."""
        notif = self.session.get(Notification, notification_id)
        if notif is None or notif.recipient != recipient:
            return None
        notif.mark_read()
        self.session.commit()
        return notif

    def mark_all_read(self, recipient):
        count = self.session.execute(
            update(Notification)
            .where(Notification.recipient == recipient, Notification.is_read.is_(False))
            .values(is_read=True, read_at=datetime.now(timezone.utc))
        ).rowcount
        self.session.commit()
        return count
