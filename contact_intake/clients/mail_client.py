"""
contact_intake/clients/mail_client.py — SMTP mail collaborator
Sends the contact-form notification as multipart/alternative (plain + HTML).
Failures raise MailDeliveryError; the pipeline propagates them unchanged.
"""
from __future__ import annotations

import smtplib
from datetime import datetime
from email.message import EmailMessage
from typing import Optional

from loguru import logger

from contact_intake.config import Settings, get_settings
from contact_intake.core import logging as app_logging
from contact_intake.core.errors import MailDeliveryError
from contact_intake.models import SanitizedSubmission, SecurityInfo
from contact_intake.services.notifications import render_mail


class SmtpMailer:
    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or get_settings()

    def _build_message(
        self,
        recipients: list[str],
        subject: str,
        html_body: str,
        plain_body: str,
    ) -> EmailMessage:
        s = self.settings
        msg = EmailMessage()
        msg["From"] = f"{s.smtp_from_name} <{s.smtp_from_email or s.smtp_user}>"
        msg["To"] = ", ".join(recipients)
        msg["Subject"] = subject
        # Plain-text part first (fallback for basic clients)
        msg.set_content(plain_body)
        msg.add_alternative(html_body, subtype="html")
        return msg

    def _send(self, msg: EmailMessage) -> None:
        s = self.settings
        if s.smtp_use_tls:
            with smtplib.SMTP(s.smtp_host, s.smtp_port, timeout=s.smtp_timeout_seconds) as server:
                server.starttls()
                server.login(s.smtp_user, s.smtp_pass)
                server.send_message(msg)
        else:
            with smtplib.SMTP_SSL(s.smtp_host, s.smtp_port, timeout=s.smtp_timeout_seconds) as server:
                server.login(s.smtp_user, s.smtp_pass)
                server.send_message(msg)

    def notify(
        self,
        recipients: list[str],
        submission: SanitizedSubmission,
        security_info: SecurityInfo,
        submitted_at: Optional[datetime] = None,
    ) -> None:
        if not recipients:
            app_logging.log_notification("mail", success=False, error="no recipients")
            raise MailDeliveryError("NOTIFICATION_EMAIL is not configured")

        if not self.settings.smtp_configured:
            logger.warning("SMTP not configured (SMTP_HOST/SMTP_USER/SMTP_PASS). Mail skipped.")
            app_logging.log_notification("mail", success=True, recipients=len(recipients), skipped=True)
            return

        subject, html_body, plain_body = render_mail(submission, security_info, submitted_at)
        msg = self._build_message(recipients, subject, html_body, plain_body)
        try:
            self._send(msg)
        except (smtplib.SMTPException, OSError) as exc:
            app_logging.log_notification(
                "mail", success=False, recipients=len(recipients), error=str(exc),
            )
            raise MailDeliveryError(f"Error sending mail to {', '.join(recipients)}: {exc}") from exc

        app_logging.log_notification("mail", success=True, recipients=len(recipients))
