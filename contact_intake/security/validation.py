"""
contact_intake/security/validation.py — Structural validation of submissions
Presence, length bounds and character classes per field. All violations are
collected and raised together as ValidationFailed, separate from the
security screener's rejections.
"""
from __future__ import annotations

from typing import Any

from pydantic import ValidationError

from contact_intake.core import logging as app_logging
from contact_intake.core.errors import ValidationFailed
from contact_intake.models import Submission


def _field_of(error: dict[str, Any]) -> str:
    loc = error.get("loc") or ()
    if not loc:
        return "__root__"
    field = str(loc[0])
    return "recibirNoticias" if field == "recibir_noticias" else field


def format_errors(exc: ValidationError) -> list[dict[str, str]]:
    """Flatten pydantic errors into [{field, message}] in field order."""
    return [{"field": _field_of(err), "message": err["msg"]} for err in exc.errors()]


def validate_submission(raw: Any) -> Submission:
    if not isinstance(raw, dict):
        errors = [{"field": "__root__", "message": "Submission must be a JSON object"}]
        app_logging.log_validation_failure(errors)
        raise ValidationFailed(errors)

    try:
        return Submission.model_validate(raw)
    except ValidationError as exc:
        errors = format_errors(exc)
        app_logging.log_validation_failure(errors)
        raise ValidationFailed(errors) from exc
