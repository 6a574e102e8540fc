"""
contact_intake/security/screener.py — Security screening of raw submissions
Runs before structural validation. Checks, first failure wins:
  1. suspicious signatures in the canonical lowercase payload
  2. total payload size
  3. per-field size and control characters
  4. link count in the message
  5. disposable email domains
"""
from __future__ import annotations

import json
from typing import Any, Optional

from contact_intake.config import get_settings
from contact_intake.core import logging as app_logging
from contact_intake.core.errors import SecurityCode, SecurityRejected
from contact_intake.models import SecurityVerdict
from contact_intake.security.patterns import (
    CONTROL_CHARS,
    SUSPICIOUS_CONTENT_RULES,
    count_urls,
    first_match,
    is_disposable_email,
)

MESSAGE_FIELD = "mensaje"
EMAIL_FIELD = "email"


def canonicalize(payload: Any) -> str:
    """Compact JSON text of the payload, as it travelled on the wire."""
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"), default=str)


def _reject(
    code: SecurityCode,
    message: str,
    field_name: Optional[str] = None,
    rule: Optional[str] = None,
) -> SecurityVerdict:
    return SecurityVerdict(
        allowed=False, code=code.value, message=message, field_name=field_name, rule=rule,
    )


class SecurityScreener:
    """
    Stateless and deterministic: the same payload always yields the same
    verdict. Thresholds default to the configured limits.
    """

    def __init__(
        self,
        max_payload_chars: Optional[int] = None,
        max_field_chars: Optional[int] = None,
        max_message_links: Optional[int] = None,
    ) -> None:
        settings = get_settings()
        self.max_payload_chars = max_payload_chars or settings.max_payload_chars
        self.max_field_chars = max_field_chars or settings.max_field_chars
        self.max_message_links = (
            settings.max_message_links if max_message_links is None else max_message_links
        )

    def screen(self, payload: Any) -> SecurityVerdict:
        canonical = canonicalize(payload)

        rule = first_match(SUSPICIOUS_CONTENT_RULES, canonical.lower())
        if rule is not None:
            return _reject(
                rule.code,
                "The submitted content contains elements that are not allowed for security reasons.",
                rule=rule.name,
            )

        if len(canonical) > self.max_payload_chars:
            return _reject(SecurityCode.PAYLOAD_TOO_LARGE, "The submitted data is too large.")

        if not isinstance(payload, dict):
            return SecurityVerdict.passed()

        for key, value in payload.items():
            if not isinstance(value, str):
                continue
            name = str(key)
            if len(value) > self.max_field_chars:
                return _reject(SecurityCode.FIELD_TOO_LONG, f"The field {name} is too long.", name)
            if CONTROL_CHARS.search(value):
                return _reject(
                    SecurityCode.INVALID_CHARACTERS,
                    f"The field {name} contains invalid characters.",
                    name,
                )

        message = payload.get(MESSAGE_FIELD)
        if isinstance(message, str) and count_urls(message) > self.max_message_links:
            return _reject(
                SecurityCode.TOO_MANY_LINKS, "The message contains too many links.", MESSAGE_FIELD,
            )

        email = payload.get(EMAIL_FIELD)
        if isinstance(email, str) and is_disposable_email(email):
            return _reject(
                SecurityCode.DISPOSABLE_EMAIL, "Please use a permanent email address.", EMAIL_FIELD,
            )

        return SecurityVerdict.passed()

    def ensure_safe(self, payload: Any) -> None:
        """Screen payload, raising SecurityRejected on the first failing check."""
        verdict = self.screen(payload)
        if verdict.allowed:
            return
        app_logging.log_security_alert(
            code=verdict.code or "",
            detail=verdict.message,
            field=verdict.field_name,
            rule=verdict.rule,
            payload_preview=canonicalize(payload),
        )
        raise SecurityRejected(SecurityCode(verdict.code), verdict.message)
