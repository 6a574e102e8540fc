"""
contact_intake/services/notifications.py — Notification rendering
Builds the mail (HTML + plain text) and chat bodies for an accepted
submission from Jinja2 templates. HTML output is autoescaped.
"""
from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from contact_intake.models import SanitizedSubmission, SecurityInfo
from contact_intake.utils.timezone import format_local

TEMPLATES_DIR = Path(__file__).parent.parent / "templates"

MAIL_SUBJECT = "📥 New Contact Form"
SUSPICIOUS_SUBJECT_PREFIX = "[Possible spam] "


def _get_jinja_env() -> Environment:
    """Build Jinja2 environment for notification templates."""
    return Environment(
        loader=FileSystemLoader(str(TEMPLATES_DIR)),
        autoescape=select_autoescape(["html"]),
        trim_blocks=True,
        keep_trailing_newline=False,
    )


_env = _get_jinja_env()


def _build_context(
    submission: SanitizedSubmission,
    security_info: SecurityInfo,
    submitted_at: Optional[datetime] = None,
) -> dict[str, Any]:
    return {
        "submission": submission,
        "spam": security_info.spam_verdict,
        "client_ip": security_info.client_ip or "Unknown",
        "submitted_at": format_local(submitted_at or datetime.utcnow()),
    }


def render_mail(
    submission: SanitizedSubmission,
    security_info: SecurityInfo,
    submitted_at: Optional[datetime] = None,
) -> tuple[str, str, str]:
    """Return (subject, html_body, plain_body)."""
    context = _build_context(submission, security_info, submitted_at)
    subject = MAIL_SUBJECT
    if security_info.spam_verdict.is_suspicious:
        subject = SUSPICIOUS_SUBJECT_PREFIX + subject
    html_body = _env.get_template("contact_form.html").render(**context)
    plain_body = _env.get_template("contact_form.txt").render(**context).strip()
    return subject, html_body, plain_body


def render_chat_message(
    submission: SanitizedSubmission,
    security_info: SecurityInfo,
    submitted_at: Optional[datetime] = None,
) -> str:
    context = _build_context(submission, security_info, submitted_at)
    return _env.get_template("chat_message.txt").render(**context).strip()
