"""
GCG Assessment Platform
Email Service.

Default ``NotificationSender``. When SMTP is not configured, emails are
logged but not sent (dev/test mode).

Uses:
    - MAIL_SERVER / MAIL_PORT / ... from the Flask config
    - Falls back to logging-only mode when SMTP is not configured
    - All emails are recorded in EmailLog for audit

Configuration (env vars):
    MAIL_SERVER     SMTP host (default: None → log-only mode)
    MAIL_PORT       SMTP port (default: 587)
    MAIL_USE_TLS    Use TLS (default: true)
    MAIL_USERNAME   SMTP username
    MAIL_PASSWORD   SMTP password
    MAIL_DEFAULT_SENDER  Default from address
"""

from __future__ import annotations

import html
import logging
import smtplib
from datetime import datetime, timezone
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from gcg_platform.integrations.notification_sender import NotificationSender
from gcg_platform.models.notification import EmailLog

logger = logging.getLogger(__name__)


_LAYOUT = """
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
    <div style="background: #0f3d6e; color: white; padding: 16px 24px; border-radius: 8px 8px 0 0;">
        <h2 style="margin: 0; font-size: 18px;">GCG Assessment Platform</h2>
    </div>
    <div style="background: #f8fafc; padding: 24px; border: 1px solid #e2e8f0; border-top: none;">
        <h3 style="margin: 0 0 8px; color: #1e293b;">{subject}</h3>
        <p style="color: #475569; line-height: 1.6;">{body}</p>
    </div>
    <div style="background: #f1f5f9; padding: 12px 24px; border-radius: 0 0 8px 8px;
                border: 1px solid #e2e8f0; border-top: none; text-align: center;">
        <p style="color: #94a3b8; font-size: 12px; margin: 0;">Pesan otomatis, mohon tidak dibalas.</p>
    </div>
</div>
"""


def render_html(subject: str, body: str) -> str:
    return _LAYOUT.format(
        subject=html.escape(subject),
        body=html.escape(body).replace("\n", "<br>"),
    )


class EmailService(NotificationSender):
    """
    Email sending service.

    In development/test mode (no MAIL_SERVER configured), emails are
    logged to the database but not actually sent via SMTP.
    """

    def __init__(self, session, config) -> None:
        self.session = session
        self.config = config

    def is_configured(self) -> bool:
        """Check if SMTP is configured."""
        return bool(self.config.get("MAIL_SERVER"))

    def send(self, recipient: str, subject: str, body: str,
             assessment_id: str | None = None) -> EmailLog:
        """
        Send an email and log it.

        If SMTP is not configured, the email is logged with status='sent'
        to simulate sending without actual delivery. SMTP failures are
        recorded on the log row, not raised.

        Returns:
            The EmailLog record for this email.
        """
        log = EmailLog(
            recipient_email=recipient,
            subject=subject[:500],
            status="queued",
            assessment_id=assessment_id,
        )
        self.session.add(log)
        self.session.flush()

        if not self.is_configured():
            log.status = "sent"
            log.sent_at = datetime.now(timezone.utc)
            logger.info("Email (dev mode): to=%s subject='%s'", recipient, subject)
            return log

        try:
            self._send_smtp(to_email=recipient, subject=subject, html_body=render_html(subject, body))
            log.status = "sent"
            log.sent_at = datetime.now(timezone.utc)
            logger.info("Email sent: to=%s subject='%s'", recipient, subject)
        except (smtplib.SMTPException, OSError) as exc:
            log.status = "failed"
            log.error_message = str(exc)[:1000]
            logger.error("Email failed: to=%s error=%s", recipient, exc)

        return log

    def _send_smtp(self, *, to_email: str, subject: str, html_body: str) -> None:
        cfg = self.config
        server = cfg.get("MAIL_SERVER")
        port = cfg.get("MAIL_PORT", 587)
        use_tls = cfg.get("MAIL_USE_TLS", True)
        username = cfg.get("MAIL_USERNAME")
        password = cfg.get("MAIL_PASSWORD")
        sender = cfg.get("MAIL_DEFAULT_SENDER") or f"noreply@{server}"

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = sender
        msg["To"] = to_email
        msg.attach(MIMEText(html_body, "html"))

        with smtplib.SMTP(server, port, timeout=30) as smtp:
            if use_tls:
                smtp.starttls()
            if username and password:
                smtp.login(username, password)
            smtp.send_message(msg)
