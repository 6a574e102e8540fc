"""
contact_intake/core/errors.py — Pipeline error taxonomy
Every rejection carries a stable machine-readable code and a human-readable
message. HTTP translation happens only in contact_intake.main.
"""
from __future__ import annotations

from enum import Enum
from typing import Optional


class SecurityCode(str, Enum):
    SUSPICIOUS_CONTENT = "SUSPICIOUS_CONTENT"
    PAYLOAD_TOO_LARGE = "PAYLOAD_TOO_LARGE"
    FIELD_TOO_LONG = "FIELD_TOO_LONG"
    INVALID_CHARACTERS = "INVALID_CHARACTERS"
    TOO_MANY_LINKS = "TOO_MANY_LINKS"
    DISPOSABLE_EMAIL = "DISPOSABLE_EMAIL"


RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
VALIDATION_FAILED = "VALIDATION_FAILED"


class PipelineError(Exception):
    """Base class for every rejection raised by the intake pipeline."""

    code: str = "PIPELINE_ERROR"
    http_status: int = 400

    def __init__(self, message: str, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def to_dict(self) -> dict:
        return {"success": False, "message": self.message, "code": self.code}


class RateLimited(PipelineError):
    """Retryable by the caller after retry_after_seconds."""

    code = RATE_LIMIT_EXCEEDED
    http_status = 429

    def __init__(self, retry_after_seconds: int) -> None:
        super().__init__(
            "Too many requests. Please wait before submitting another form."
        )
        self.retry_after_seconds = retry_after_seconds

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["retryAfter"] = self.retry_after_seconds
        return body


class SecurityRejected(PipelineError):
    """Screener rejection. Not retryable without changing the input."""

    def __init__(self, code: SecurityCode, message: str) -> None:
        super().__init__(message, code=code.value)
        self.security_code = code


class ValidationFailed(PipelineError):
    """Aggregated field-constraint violations."""

    code = VALIDATION_FAILED

    def __init__(self, errors: list[dict[str, str]]) -> None:
        super().__init__("The submitted data is not valid.")
        self.errors = errors

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["errors"] = self.errors
        return body


# ──────────────────────────────────────────────────────────────────────────────
# Collaborator failures: raised by storage/mail/messaging adapters and
# propagated by the pipeline unmodified.
# ──────────────────────────────────────────────────────────────────────────────

class CollaboratorFailure(Exception):
    """Base for errors raised by external collaborators."""


class StorageError(CollaboratorFailure):
    pass


class MailDeliveryError(CollaboratorFailure):
    pass


class MessagingError(CollaboratorFailure):
    pass
