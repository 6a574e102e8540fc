"""
tests/test_pipeline.py — Pipeline orchestration tests
Stage ordering, rejection codes, collaborator hand-off and failure propagation.
"""
from __future__ import annotations

import pytest

from contact_intake.core.errors import (
    MailDeliveryError,
    MessagingError,
    RateLimited,
    SecurityRejected,
    StorageError,
    ValidationFailed,
)
from contact_intake.models import ClientSource
from contact_intake.services.pipeline import SubmissionPipeline

from conftest import RecordingMailer, RecordingMessenger, message_of_length


def test_accepted_submission_reaches_every_collaborator(
    pipeline, client_source, valid_payload, repository, mailer, messenger,
):
    ack = pipeline.process(client_source, valid_payload)

    assert ack.id
    assert not ack.spam_verdict.is_suspicious
    stored = repository.get(ack.id)
    assert stored is not None
    assert stored.submission.email == "ana.torres@example.com"

    recipients, submission, info = mailer.calls[0]
    assert recipients == ["ventas@example.com"]
    assert submission == stored.submission
    assert info.client_ip == "203.0.113.1"
    assert info.spam_verdict == ack.spam_verdict

    assert len(messenger.messages) == 1
    assert "Ana" in messenger.messages[0]
    assert "203.0.113.1" in messenger.messages[0]


def test_mail_uses_stored_timestamp(pipeline, client_source, valid_payload, repository, mailer):
    ack = pipeline.process(client_source, valid_payload)
    assert mailer.submitted_at == [repository.get(ack.id).submitted_at]


def test_end_to_end_message_length_scenario(pipeline, valid_payload, repository):
    source = ClientSource(headers={"X-Forwarded-For": "203.0.113.1"})

    with pytest.raises(ValidationFailed) as exc_info:
        pipeline.process(source, dict(valid_payload, mensaje=message_of_length(121)))
    assert [e["field"] for e in exc_info.value.errors] == ["mensaje"]
    assert repository.count() == 0

    ack = pipeline.process(source, dict(valid_payload, mensaje=message_of_length(100)))
    assert ack.spam_verdict.is_suspicious is False
    assert repository.count() == 1


def test_rate_limit_checked_before_screening(pipeline, client_source, valid_payload):
    for _ in range(5):
        with pytest.raises(SecurityRejected):
            pipeline.process(client_source, dict(valid_payload, mensaje="<script>x</script>"))
    with pytest.raises(RateLimited):
        pipeline.process(client_source, valid_payload)


def test_rejected_requests_still_count(pipeline, client_source, valid_payload):
    for _ in range(5):
        with pytest.raises(ValidationFailed):
            pipeline.process(client_source, dict(valid_payload, nombre="A"))
    with pytest.raises(RateLimited) as exc_info:
        pipeline.process(client_source, valid_payload)
    assert exc_info.value.retry_after_seconds > 0


def test_clients_are_limited_independently(pipeline, valid_payload):
    first = ClientSource(headers={"X-Forwarded-For": "203.0.113.1"})
    second = ClientSource(headers={"X-Forwarded-For": "203.0.113.2"})
    for _ in range(5):
        pipeline.process(first, valid_payload)
    with pytest.raises(RateLimited):
        pipeline.process(first, valid_payload)
    assert pipeline.process(second, valid_payload).id


def test_security_rejection_before_validation(pipeline, client_source, valid_payload, repository):
    payload = dict(valid_payload, nombre="A", email="ana@mailinator.com")
    with pytest.raises(SecurityRejected) as exc_info:
        pipeline.process(client_source, payload)
    assert exc_info.value.code == "DISPOSABLE_EMAIL"
    assert repository.count() == 0


def test_shortener_after_newline_rejected(pipeline, client_source, valid_payload, repository):
    with pytest.raises(SecurityRejected) as exc_info:
        pipeline.process(client_source, dict(valid_payload, mensaje="Mira esto:\nbit.ly"))
    assert exc_info.value.code == "SUSPICIOUS_CONTENT"
    assert repository.count() == 0


def test_suspicious_submission_is_still_accepted(
    pipeline, client_source, valid_payload, repository, mailer,
):
    ack = pipeline.process(
        client_source, dict(valid_payload, nombre="Ana", apellido="ANA"),
    )
    assert ack.spam_verdict.is_suspicious
    assert "identical name/surname" in ack.spam_verdict.reasons
    assert repository.count() == 1
    assert mailer.calls[0][2].spam_verdict.is_suspicious


def test_collaborators_receive_sanitized_record(pipeline, client_source, valid_payload, mailer):
    pipeline.process(client_source, dict(valid_payload, telefono="+57 (300) 123-4567"))
    submission = mailer.calls[0][1]
    assert submission.telefono == "+57 (300) 123-4567"
    assert submission.recibir_noticias is True


class _FailingRepository:
    def create(self, submission):
        raise StorageError("database unavailable")


def test_storage_failure_propagates(limiter, screener, client_source, valid_payload):
    mailer = RecordingMailer()
    pipeline = SubmissionPipeline(
        rate_limiter=limiter,
        repository=_FailingRepository(),
        mailer=mailer,
        messenger=RecordingMessenger(),
        recipients=["ventas@example.com"],
        screener=screener,
    )
    with pytest.raises(StorageError):
        pipeline.process(client_source, valid_payload)
    assert mailer.calls == []


def test_mail_failure_propagates_and_keeps_record(
    limiter, screener, repository, client_source, valid_payload,
):
    messenger = RecordingMessenger()
    pipeline = SubmissionPipeline(
        rate_limiter=limiter,
        repository=repository,
        mailer=RecordingMailer(error=MailDeliveryError("smtp down")),
        messenger=messenger,
        recipients=["ventas@example.com"],
        screener=screener,
    )
    with pytest.raises(MailDeliveryError):
        pipeline.process(client_source, valid_payload)
    assert repository.count() == 1
    assert messenger.messages == []


def test_messaging_failure_propagates(limiter, screener, repository, client_source, valid_payload):
    pipeline = SubmissionPipeline(
        rate_limiter=limiter,
        repository=repository,
        mailer=RecordingMailer(),
        messenger=RecordingMessenger(error=MessagingError("twilio down")),
        recipients=["ventas@example.com"],
        screener=screener,
    )
    with pytest.raises(MessagingError):
        pipeline.process(client_source, valid_payload)
    assert repository.count() == 1


def test_untrusted_headers_key_on_peer(
    limiter, screener, repository, mailer, messenger, valid_payload,
):
    pipeline = SubmissionPipeline(
        rate_limiter=limiter,
        repository=repository,
        mailer=mailer,
        messenger=messenger,
        recipients=["ventas@example.com"],
        screener=screener,
        trust_forwarded_headers=False,
    )
    source = ClientSource(headers={"X-Forwarded-For": "203.0.113.1"}, peer_address="10.0.0.5")
    pipeline.process(source, valid_payload)
    assert mailer.calls[0][2].client_ip == "10.0.0.5"
