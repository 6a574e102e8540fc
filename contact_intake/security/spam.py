"""
contact_intake/security/spam.py — Heuristic spam classifier (advisory only)
Evaluated on the validated, pre-sanitization submission. Reasons accumulate
independently; the verdict is attached to notifications for human review and
never rejects a request.
"""
from __future__ import annotations

from contact_intake.models import SpamVerdict, Submission
from contact_intake.security.patterns import (
    GENERIC_COMPANY_PATTERNS,
    REPEATING_PATTERN,
    count_urls,
)

REASON_IDENTICAL_NAMES = "identical name/surname"
REASON_REPETITIVE = "repetitive pattern"
REASON_UPPERCASE = "excessive uppercase"
REASON_GENERIC_COMPANY = "generic company name"
REASON_LINK_HEAVY_MESSAGE = "long message with excessive links"

UPPERCASE_RATIO_THRESHOLD = 0.6
MIN_LETTERS_FOR_CASE_CHECK = 10
MIN_REPEAT_TEXT_CHARS = 6
LONG_MESSAGE_CHARS = 200
LONG_MESSAGE_MAX_LINKS = 3


def _normalize_name(value: str) -> str:
    return " ".join(value.split()).lower()


def has_identical_names(nombre: str, apellido: str) -> bool:
    return _normalize_name(nombre) == _normalize_name(apellido)


def has_repeating_pattern(text: str) -> bool:
    """A run of 3+ characters repeated 3+ times, ignoring case and whitespace."""
    compact = "".join(text.lower().split())
    if len(compact) < MIN_REPEAT_TEXT_CHARS:
        return False
    return REPEATING_PATTERN.search(compact) is not None


def uppercase_ratio(text: str) -> float:
    letters = [c for c in text if c.isalpha()]
    if not letters:
        return 0.0
    return sum(1 for c in letters if c.isupper()) / len(letters)


def has_excessive_uppercase(text: str) -> bool:
    if sum(1 for c in text if c.isalpha()) < MIN_LETTERS_FOR_CASE_CHECK:
        return False
    return uppercase_ratio(text) > UPPERCASE_RATIO_THRESHOLD


def is_generic_company(empresa: str) -> bool:
    value = empresa.strip()
    return any(p.fullmatch(value) for p in GENERIC_COMPANY_PATTERNS)


def is_link_heavy_message(mensaje: str) -> bool:
    return len(mensaje) > LONG_MESSAGE_CHARS and count_urls(mensaje) > LONG_MESSAGE_MAX_LINKS


def classify(submission: Submission) -> SpamVerdict:
    reasons: list[str] = []
    mensaje = submission.mensaje or ""

    if has_identical_names(submission.nombre, submission.apellido):
        reasons.append(REASON_IDENTICAL_NAMES)

    combined = f"{submission.nombre} {submission.apellido} {mensaje}"
    if has_repeating_pattern(combined):
        reasons.append(REASON_REPETITIVE)

    if has_excessive_uppercase(combined):
        reasons.append(REASON_UPPERCASE)

    if is_generic_company(submission.empresa):
        reasons.append(REASON_GENERIC_COMPANY)

    if is_link_heavy_message(mensaje):
        reasons.append(REASON_LINK_HEAVY_MESSAGE)

    return SpamVerdict(is_suspicious=bool(reasons), reasons=tuple(reasons))
