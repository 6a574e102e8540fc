"""
contact_intake/core/logging.py — loguru structured JSON logging setup
Every rate-limit decision, security alert, validation failure, spam detection
and pipeline stage transition is emitted as one JSON record.
"""
from __future__ import annotations

import json
import sys
import traceback
from datetime import datetime
from typing import Any, Optional

from loguru import logger

# Payload previews in security alerts are cut to this many characters.
_PREVIEW_CHARS = 200


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure loguru for structured JSON output to stdout.
    """
    # Remove default loguru handler
    logger.remove()

    logger.add(
        sys.stdout,
        level=log_level.upper(),
        format="{message}",
        serialize=True,       # loguru built-in JSON serialization
        backtrace=True,
        diagnose=False,       # Never dump local variables of untrusted input
        colorize=False,
    )


def _build_log_record(
    component: str,
    operation: str,
    extra: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    """Build a base structured log record."""
    record: dict[str, Any] = {
        "timestamp": datetime.utcnow().isoformat() + "Z",
        "component": component,
        "operation": operation,
    }
    if extra:
        record.update(extra)
    return record


def _preview(text: str) -> str:
    if len(text) <= _PREVIEW_CHARS:
        return text
    return text[:_PREVIEW_CHARS] + "..."


# ──────────────────────────────────────────────────────────────────────────────
# Audit events
# ──────────────────────────────────────────────────────────────────────────────

def log_rate_limit_decision(
    client_key: str,
    decision: str,  # new_window | counted | limit_exceeded
    count: int,
    max_requests: int,
    retry_after_seconds: Optional[int] = None,
) -> None:
    """One record per admission decision."""
    record = _build_log_record("rate_limiter", decision, {
        "client_key": client_key,
        "count": count,
        "max_requests": max_requests,
        "retry_after_seconds": retry_after_seconds,
    })
    if decision == "limit_exceeded":
        logger.warning(json.dumps(record))
    else:
        logger.info(json.dumps(record))


def log_security_alert(
    code: str,
    detail: str,
    field: Optional[str] = None,
    rule: Optional[str] = None,
    payload_preview: Optional[str] = None,
) -> None:
    """Screener rejection. Payload is truncated, never logged in full."""
    record = _build_log_record("security_screener", "rejected", {
        "code": code,
        "detail": detail,
        "field": field,
        "rule": rule,
        "payload_preview": _preview(payload_preview) if payload_preview else None,
    })
    logger.warning(json.dumps(record))


def log_validation_failure(errors: list[dict[str, str]]) -> None:
    record = _build_log_record("validation", "rejected", {
        "error_count": len(errors),
        "errors": errors,
    })
    logger.info(json.dumps(record))


def log_spam_detection(client_key: str, reasons: list[str]) -> None:
    """Advisory only: the submission is still accepted."""
    record = _build_log_record("spam_classifier", "suspicious", {
        "client_key": client_key,
        "reasons": reasons,
    })
    logger.warning(json.dumps(record))


def log_stage_transition(
    request_id: str,
    old_stage: str,
    new_stage: str,
    code: Optional[str] = None,
) -> None:
    """Every pipeline state transition."""
    record = _build_log_record("pipeline", "stage_transition", {
        "request_id": request_id,
        "old_stage": old_stage,
        "new_stage": new_stage,
        "code": code,
    })
    logger.debug(json.dumps(record))


def log_submission_accepted(
    submission_id: str,
    client_key: str,
    email_domain: str,
    is_suspicious: bool,
) -> None:
    record = _build_log_record("pipeline", "accepted", {
        "submission_id": submission_id,
        "client_key": client_key,
        "email_domain": email_domain,
        "is_suspicious": is_suspicious,
    })
    logger.info(json.dumps(record))


def log_notification(
    channel: str,  # mail | messaging
    success: bool,
    recipients: int = 0,
    skipped: bool = False,
    error: Optional[str] = None,
) -> None:
    record = _build_log_record(f"{channel}_client", "notify", {
        "success": success,
        "recipients": recipients,
        "skipped": skipped,
        "error": error,
    })
    if success:
        logger.info(json.dumps(record))
    else:
        logger.error(json.dumps(record))


def log_error(
    component: str,
    operation: str,
    error: Exception,
    context: Optional[dict[str, Any]] = None,
) -> None:
    """Every unexpected error is logged with full context."""
    tb = traceback.format_exc()
    record = _build_log_record(component, operation, {
        "error_type": type(error).__name__,
        "error_message": str(error),
        "stack_trace": tb[:2000] if tb else "",
        "context": context or {},
    })
    logger.error(json.dumps(record))
