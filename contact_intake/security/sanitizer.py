"""
contact_intake/security/sanitizer.py — Field normalization before storage
Second line of defense after screening. Every function is pure and
idempotent: sanitize(sanitize(x)) == sanitize(x).
Empty or missing input yields None so storage can tell "not supplied"
apart from "supplied empty".
"""
from __future__ import annotations

from typing import Optional

from contact_intake.config import get_settings
from contact_intake.models import SanitizedSubmission, Submission
from contact_intake.security.patterns import ANGLE_BRACKETS, CONTROL_CHARS, PHONE_DISALLOWED

settings = get_settings()


def sanitize_text(text: Optional[str], max_chars: Optional[int] = None) -> Optional[str]:
    """Drop control chars and angle brackets, collapse whitespace, trim, cap length."""
    if not text:
        return None
    limit = max_chars or settings.sanitize_max_chars
    cleaned = CONTROL_CHARS.sub("", text)
    cleaned = ANGLE_BRACKETS.sub("", cleaned)
    cleaned = " ".join(cleaned.split())
    # Truncation can expose a trailing space
    cleaned = cleaned[:limit].rstrip()
    return cleaned or None


def sanitize_email(email: Optional[str]) -> Optional[str]:
    if not email:
        return None
    return email.strip().lower() or None


def sanitize_phone(phone: Optional[str], max_chars: Optional[int] = None) -> Optional[str]:
    """Keep digits, '+', '-', spaces and parentheses only."""
    if not phone:
        return None
    limit = max_chars or settings.sanitize_phone_max_chars
    cleaned = PHONE_DISALLOWED.sub("", phone).strip()
    cleaned = cleaned[:limit].rstrip()
    return cleaned or None


def sanitize_submission(submission: Submission) -> SanitizedSubmission:
    return SanitizedSubmission(
        nombre=sanitize_text(submission.nombre),
        apellido=sanitize_text(submission.apellido),
        pais=sanitize_text(submission.pais),
        ciudad=sanitize_text(submission.ciudad),
        empresa=sanitize_text(submission.empresa),
        cargo=sanitize_text(submission.cargo),
        email=sanitize_email(submission.email),
        telefono=sanitize_phone(submission.telefono),
        mensaje=sanitize_text(submission.mensaje),
        recibir_noticias=submission.recibir_noticias,
    )
