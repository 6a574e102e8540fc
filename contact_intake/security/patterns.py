"""
contact_intake/security/patterns.py — Pattern library
Immutable detection rules consumed by the screener, the validator and the
spam classifier. Adding a signature means adding a row to a table; the
matching code never changes.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Optional

from contact_intake.core.errors import SecurityCode


@dataclass(frozen=True)
class DetectionRule:
    name: str
    category: str
    pattern: re.Pattern
    code: SecurityCode = SecurityCode.SUSPICIOUS_CONTENT


def _rule(name: str, category: str, regex: str, flags: int = re.IGNORECASE) -> DetectionRule:
    return DetectionRule(name=name, category=category, pattern=re.compile(regex, flags))


# ──────────────────────────────────────────────────────────────────────────────
# Suspicious content signatures, tested against the canonical lowercase payload
# ──────────────────────────────────────────────────────────────────────────────

# Word start, or just after a JSON escape such as \n or \t in the canonical text
_START = r"(?:(?<!\w)|(?<=\\[nrtfb]))"

SUSPICIOUS_CONTENT_RULES: tuple[DetectionRule, ...] = (
    _rule(
        "sql_keyword", "injection",
        _START + r"(?:union|select|insert|delete|update|drop|create|alter|exec|execute)\b",
    ),
    _rule(
        "script_tag", "xss",
        r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>",
    ),
    _rule("event_handler", "xss", _START + r"on\w+\s*="),
    _rule("script_uri", "xss", r"data:.*?base64|javascript:"),
    _rule("dialog_call", "xss", _START + r"(?:alert|confirm|prompt|console)\s*\("),
    _rule(
        "executable_url", "malware",
        r"https?://\S+\.(?:exe|bat|cmd|scr|vbs|jar|zip)",
    ),
    # 51+ identical characters in a row
    _rule("character_run", "spam", r"(.)\1{50,}", flags=re.DOTALL),
    _rule(
        "url_shortener", "phishing",
        _START + r"(?:bit\.ly|tinyurl|goo\.gl|t\.co|short\.link)\b",
    ),
)


def first_match(rules: Iterable[DetectionRule], text: str) -> Optional[DetectionRule]:
    """Return the first rule whose pattern occurs in text, in table order."""
    for rule in rules:
        if rule.pattern.search(text):
            return rule
    return None


# ──────────────────────────────────────────────────────────────────────────────
# Structural matchers
# ──────────────────────────────────────────────────────────────────────────────

CONTROL_CHARS = re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]")
URL_PATTERN = re.compile(r"https?://\S+", re.IGNORECASE)
ANGLE_BRACKETS = re.compile(r"[<>]")
PHONE_DISALLOWED = re.compile(r"[^0-9+\- ()]")

DISPOSABLE_EMAIL_DOMAINS: frozenset[str] = frozenset({
    "10minutemail.com",
    "tempmail.org",
    "guerrillamail.com",
    "mailinator.com",
    "yopmail.com",
    "temp-mail.org",
    "throwaway.email",
    "getnada.com",
    "tempmailaddress.com",
    "emailondeck.com",
})


def email_domain(email: str) -> Optional[str]:
    """Substring after the final '@', lowercased. None when absent."""
    _, sep, domain = email.rpartition("@")
    if not sep or not domain:
        return None
    return domain.strip().lower()


def is_disposable_email(email: str) -> bool:
    domain = email_domain(email)
    return domain is not None and domain in DISPOSABLE_EMAIL_DOMAINS


def count_urls(text: str) -> int:
    return len(URL_PATTERN.findall(text))


# ──────────────────────────────────────────────────────────────────────────────
# Field tables: length bounds and character classes (full-match)
# ──────────────────────────────────────────────────────────────────────────────

FIELD_LIMITS: dict[str, dict[str, int]] = {
    "nombre": {"min": 2, "max": 50},
    "apellido": {"min": 2, "max": 50},
    "pais": {"min": 2, "max": 56},
    "ciudad": {"min": 2, "max": 85},
    "empresa": {"min": 2, "max": 100},
    "cargo": {"min": 2, "max": 80},
    "email": {"min": 1, "max": 254},
    "telefono": {"min": 8, "max": 20},
    "mensaje": {"min": 0, "max": 120},
}

_LETTERS = "a-zA-ZÀ-ÿñÑ"

FIELD_PATTERNS: dict[str, re.Pattern] = {
    "nombre": re.compile(rf"[{_LETTERS}\s]+"),
    "apellido": re.compile(rf"[{_LETTERS}\s]+"),
    "pais": re.compile(rf"[{_LETTERS}\s\-]+"),
    "ciudad": re.compile(rf"[{_LETTERS}\s\-.]+"),
    "empresa": re.compile(rf"[{_LETTERS}0-9\s\-.&]+"),
    "cargo": re.compile(rf"[{_LETTERS}\s\-.]+"),
    "email": re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}"),
    "telefono": re.compile(r"\+?[0-9\s\-()]+"),
    "mensaje": re.compile(rf"[{_LETTERS}0-9\s.,!?\-:;()\"'\n\r]*"),
}

FIELD_PATTERN_MESSAGES: dict[str, str] = {
    "nombre": "nombre may only contain letters and spaces",
    "apellido": "apellido may only contain letters and spaces",
    "pais": "pais may only contain letters, spaces and hyphens",
    "ciudad": "ciudad may only contain letters, spaces, hyphens and periods",
    "empresa": "empresa may only contain letters, digits, spaces, hyphens, periods and &",
    "cargo": "cargo may only contain letters, spaces, hyphens and periods",
    "email": "email format is not valid",
    "telefono": "telefono may only contain digits, spaces, hyphens, parentheses and a leading +",
    "mensaje": "mensaje contains characters that are not allowed",
}


# ──────────────────────────────────────────────────────────────────────────────
# Spam heuristics
# ──────────────────────────────────────────────────────────────────────────────

GENERIC_COMPANY_PATTERNS: tuple[re.Pattern, ...] = (
    re.compile(r"test", re.IGNORECASE),
    re.compile(r"empresa", re.IGNORECASE),
    re.compile(r"company", re.IGNORECASE),
    re.compile(r"business", re.IGNORECASE),
    re.compile(r"x{5,}", re.IGNORECASE),
    re.compile(r"[0-9]+"),
    re.compile(r".", re.DOTALL),  # single character
)

# 3+ characters repeated 3+ times in a row
REPEATING_PATTERN = re.compile(r"(.{3,})\1{2,}", re.DOTALL)
