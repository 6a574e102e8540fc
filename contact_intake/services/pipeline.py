"""
contact_intake/services/pipeline.py — Submission intake pipeline
RECEIVED → RATE_CHECKED → SECURITY_SCREENED → VALIDATED → SANITIZED
→ CLASSIFIED → ACCEPTED. Any failed check ends the request in REJECTED(code).

No retries and no partial rollback: if a collaborator fails after the record
is created, the error propagates unchanged and the record stays stored.
"""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Optional, Protocol

from contact_intake.core import logging as app_logging
from contact_intake.core.errors import PipelineError
from contact_intake.core.rate_limiter import RateLimiter, resolve_client_key
from contact_intake.models import (
    ClientSource,
    PipelineStage,
    SanitizedSubmission,
    SecurityInfo,
    StoredSubmission,
    SubmissionAck,
)
from contact_intake.security.patterns import email_domain
from contact_intake.security.sanitizer import sanitize_submission
from contact_intake.security.screener import SecurityScreener
from contact_intake.security.spam import classify
from contact_intake.security.validation import validate_submission
from contact_intake.services.notifications import render_chat_message


# ──────────────────────────────────────────────────────────────────────────────
# Collaborator contracts
# ──────────────────────────────────────────────────────────────────────────────

class SubmissionRepository(Protocol):
    def create(self, submission: SanitizedSubmission) -> StoredSubmission: ...


class Mailer(Protocol):
    def notify(
        self,
        recipients: list[str],
        submission: SanitizedSubmission,
        security_info: SecurityInfo,
        submitted_at: Optional[datetime] = None,
    ) -> None: ...


class Messenger(Protocol):
    def notify(self, rendered_text: str) -> None: ...


# ──────────────────────────────────────────────────────────────────────────────
# Orchestrator
# ──────────────────────────────────────────────────────────────────────────────

class _StageTracker:
    """Logs every transition of one request through the pipeline."""

    def __init__(self) -> None:
        self.request_id = uuid.uuid4().hex
        self.stage = PipelineStage.RECEIVED

    def advance(self, new_stage: PipelineStage) -> None:
        app_logging.log_stage_transition(self.request_id, self.stage.value, new_stage.value)
        self.stage = new_stage

    def reject(self, code: str) -> None:
        app_logging.log_stage_transition(
            self.request_id, self.stage.value, PipelineStage.REJECTED.value, code=code,
        )
        self.stage = PipelineStage.REJECTED


class SubmissionPipeline:
    """
    Single entry point for the request layer. Holds no per-request state;
    safe to call from any number of concurrent handlers.
    """

    def __init__(
        self,
        rate_limiter: RateLimiter,
        repository: SubmissionRepository,
        mailer: Mailer,
        messenger: Messenger,
        recipients: list[str],
        screener: Optional[SecurityScreener] = None,
        trust_forwarded_headers: bool = True,
    ) -> None:
        self.rate_limiter = rate_limiter
        self.repository = repository
        self.mailer = mailer
        self.messenger = messenger
        self.recipients = list(recipients)
        self.screener = screener or SecurityScreener()
        self.trust_forwarded_headers = trust_forwarded_headers

    def process(self, source: ClientSource, raw_submission: Any) -> SubmissionAck:
        """
        Run every check in order and hand the accepted submission to the
        collaborators. Raises a PipelineError subclass on rejection;
        collaborator errors propagate as raised.
        """
        tracker = _StageTracker()
        client_key = resolve_client_key(source, self.trust_forwarded_headers)

        try:
            self.rate_limiter.admit(client_key)
            tracker.advance(PipelineStage.RATE_CHECKED)

            self.screener.ensure_safe(raw_submission)
            tracker.advance(PipelineStage.SECURITY_SCREENED)

            submission = validate_submission(raw_submission)
            tracker.advance(PipelineStage.VALIDATED)
        except PipelineError as exc:
            tracker.reject(exc.code)
            raise

        sanitized = sanitize_submission(submission)
        tracker.advance(PipelineStage.SANITIZED)

        # Classified on the pre-sanitization content
        spam_verdict = classify(submission)
        tracker.advance(PipelineStage.CLASSIFIED)
        if spam_verdict.is_suspicious:
            app_logging.log_spam_detection(client_key, list(spam_verdict.reasons))

        tracker.advance(PipelineStage.ACCEPTED)
        record = self.repository.create(sanitized)
        app_logging.log_submission_accepted(
            submission_id=record.id,
            client_key=client_key,
            email_domain=email_domain(sanitized.email or "") or "",
            is_suspicious=spam_verdict.is_suspicious,
        )

        security_info = SecurityInfo(client_ip=client_key, spam_verdict=spam_verdict)
        self.mailer.notify(self.recipients, sanitized, security_info, record.submitted_at)
        self.messenger.notify(render_chat_message(sanitized, security_info, record.submitted_at))

        return SubmissionAck(id=record.id, spam_verdict=spam_verdict)
