"""
Tests: notification outbox, dispatch and the e-mail sender.
"""

import smtplib

import pytest
from sqlalchemy import func, select

from gcg_platform.core.exceptions import TransientIOError
from gcg_platform.integrations.notification_sender import RecordingSender
from gcg_platform.models import db as _db
from gcg_platform.models.notification import EmailLog, Notification
from gcg_platform.services import email_service
from gcg_platform.services.email_service import EmailService, render_html
from gcg_platform.services.notification import NotificationService, Outbox

PIC_1 = "pic-1"
PIC_2 = "pic-2"
OUTSIDER = "out-1"


def _notification_count():
    return _db.session.execute(select(func.count(Notification.id))).scalar()


# ── Outbox & dispatch ────────────────────────────────────────────────────────


def test_outbox_ignores_intents_without_party():
    outbox = Outbox()
    outbox.add(title="Nobody")
    outbox.add(title="Someone", user_id=PIC_1)
    assert len(outbox) == 1


def test_dispatch_fans_out_and_dedupes(services, sender):
    outbox = services.notifications.outbox()
    outbox.add(title="Halo", message="Isi", user_id=PIC_1, unit_id="unit-fin")

    assert services.notifications.dispatch(outbox) == 2
    assert len(outbox) == 0
    assert sorted(m["recipient"] for m in sender.sent) == ["pic1@gcg.local", "pic2@gcg.local"]


def test_dispatch_stores_rows_without_email(services, sender):
    outbox = services.notifications.outbox()
    outbox.add(title="Tanpa email", user_id=OUTSIDER)
    assert services.notifications.dispatch(outbox) == 1
    assert sender.sent == []


def test_dispatch_skips_unknown_user(services):
    outbox = services.notifications.outbox()
    outbox.add(title="Ghost", user_id="ghost")
    assert services.notifications.dispatch(outbox) == 0
    assert _notification_count() == 0


def test_dispatch_never_raises(identity):
    service = NotificationService(_db.session, identity, RecordingSender(fail=True))
    outbox = service.outbox()
    outbox.add(title="Halo", user_id=PIC_1)

    assert service.dispatch(outbox) == 1
    assert _notification_count() == 1


class _OneBadAddress(RecordingSender):
    def send(self, recipient, subject, body):
        if recipient == "pic1@gcg.local":
            raise TransientIOError(f"delivery to {recipient} failed")
        super().send(recipient, subject, body)


def test_one_failed_address_does_not_silence_others(identity):
    sender = _OneBadAddress()
    service = NotificationService(_db.session, identity, sender)
    outbox = service.outbox()
    outbox.add(title="Satu", user_id=PIC_1)
    outbox.add(title="Dua", user_id=PIC_2)
    outbox.add(title="Tiga", user_id="admin-1")

    assert service.dispatch(outbox) == 3
    assert _notification_count() == 3
    assert [m["recipient"] for m in sender.sent] == ["pic2@gcg.local", "admin@gcg.local"]
    assert len(outbox) == 0


def test_recording_sender_failure_is_transient():
    with pytest.raises(TransientIOError):
        RecordingSender(fail=True).send("a@b.c", "s", "b")


# ── Inbox ────────────────────────────────────────────────────────────────────


def test_read_state(services):
    outbox = services.notifications.outbox()
    outbox.add(title="Satu", user_id=PIC_1)
    outbox.add(title="Dua", user_id=PIC_1)
    outbox.add(title="Tiga", user_id=PIC_2)
    services.notifications.dispatch(outbox)

    inbox = services.notifications.list_for_recipient(PIC_1)
    assert [n.title for n in inbox] == ["Dua", "Satu"]
    assert services.notifications.unread_count(PIC_1) == 2

    assert services.notifications.mark_read(inbox[0].id, PIC_2) is None
    assert services.notifications.mark_read(inbox[0].id, PIC_1).is_read is True
    assert services.notifications.unread_count(PIC_1) == 1
    assert len(services.notifications.list_for_recipient(PIC_1, unread_only=True)) == 1

    assert services.notifications.mark_all_read(PIC_1) == 1
    assert services.notifications.unread_count(PIC_1) == 0
    assert services.notifications.unread_count(PIC_2) == 1


# ── E-mail sender ────────────────────────────────────────────────────────────


def test_render_html_escapes():
    html = render_html("<b>Judul</b>", "baris 1\nbaris 2")
    assert "&lt;b&gt;Judul&lt;/b&gt;" in html
    assert "baris 1<br>baris 2" in html


def test_email_log_only_mode(app):
    service = EmailService(_db.session, {"MAIL_SERVER": None})
    assert not service.is_configured()

    log = service.send("pic1@gcg.local", "Subjek", "Isi", assessment_id="a-1")
    _db.session.commit()

    assert log.status == "sent"
    assert log.sent_at is not None
    assert _db.session.execute(select(EmailLog)).scalar_one().recipient_email == "pic1@gcg.local"


def test_email_smtp_failure_is_recorded(monkeypatch):
    def unreachable(*args, **kwargs):
        raise smtplib.SMTPConnectError(421, "relay down")

    monkeypatch.setattr(email_service.smtplib, "SMTP", unreachable)
    service = EmailService(_db.session, {"MAIL_SERVER": "smtp.gcg.local", "MAIL_USE_TLS": False})

    log = service.send("pic1@gcg.local", "Subjek", "Isi")

    assert log.status == "failed"
    assert "relay down" in log.error_message


def test_email_smtp_success(monkeypatch):
    delivered = []

    class FakeSMTP:
        def __init__(self, host, port, timeout=None):
            self.host = host

        def __enter__(self):
            return self

        def __exit__(self, *exc):
            return False

        def starttls(self):
            pass

        def login(self, username, password):
            pass

        def send_message(self, msg):
            delivered.append(msg)

    monkeypatch.setattr(email_service.smtplib, "SMTP", FakeSMTP)
    service = EmailService(_db.session, {
        "MAIL_SERVER": "smtp.gcg.local",
        "MAIL_USERNAME": "u",
        "MAIL_PASSWORD": "p",
        "MAIL_DEFAULT_SENDER": "noreply@gcg.local",
    })

    log = service.send("pic1@gcg.local", "Subjek", "Isi")

    assert log.status == "sent"
    assert delivered[0]["To"] == "pic1@gcg.local"
    assert delivered[0]["From"] == "noreply@gcg.local"
