"""
tests/conftest.py — Shared pytest fixtures
"""
from __future__ import annotations

from datetime import datetime
from typing import Any

import pytest

from contact_intake.clients.submission_store import InMemorySubmissionRepository
from contact_intake.core.rate_limiter import RateLimiter
from contact_intake.models import ClientSource, SanitizedSubmission, SecurityInfo, Submission
from contact_intake.security.screener import SecurityScreener
from contact_intake.services.pipeline import SubmissionPipeline

# Longer than any message the tests need; sliced to the wanted length.
MESSAGE_PHRASE = (
    "Quisiera recibir informacion sobre sus servicios de consultoria para el area "
    "comercial de nuestra compania en la ciudad de Medellin pronto."
)


def message_of_length(n: int) -> str:
    text = MESSAGE_PHRASE[:n]
    if text.endswith(" "):
        text = text[:-1] + "s"
    return text


class FakeClock:
    """Manually advanced clock in seconds."""

    def __init__(self, start: float = 1_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingMailer:
    def __init__(self, error: Exception | None = None) -> None:
        self.calls: list[tuple[list[str], SanitizedSubmission, SecurityInfo]] = []
        self.submitted_at: list[datetime | None] = []
        self.error = error

    def notify(self, recipients, submission, security_info, submitted_at=None) -> None:
        self.calls.append((list(recipients), submission, security_info))
        self.submitted_at.append(submitted_at)
        if self.error is not None:
            raise self.error


class RecordingMessenger:
    def __init__(self, error: Exception | None = None) -> None:
        self.messages: list[str] = []
        self.error = error

    def notify(self, rendered_text: str) -> None:
        self.messages.append(rendered_text)
        if self.error is not None:
            raise self.error


@pytest.fixture
def valid_payload() -> dict[str, Any]:
    return {
        "nombre": "Ana",
        "apellido": "Torres",
        "pais": "Colombia",
        "ciudad": "Bogota",
        "empresa": "Acme Andina SAS",
        "cargo": "Gerente de Compras",
        "email": "ana.torres@example.com",
        "telefono": "+57 300 123 4567",
        "mensaje": "Quisiera una demostracion del producto.",
        "recibirNoticias": True,
    }


@pytest.fixture
def valid_submission(valid_payload) -> Submission:
    return Submission.model_validate(valid_payload)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def limiter(clock) -> RateLimiter:
    return RateLimiter(max_requests=5, window_seconds=900, clock=clock)


@pytest.fixture
def screener() -> SecurityScreener:
    return SecurityScreener(max_payload_chars=10_000, max_field_chars=2_000, max_message_links=2)


@pytest.fixture
def repository() -> InMemorySubmissionRepository:
    return InMemorySubmissionRepository()


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture
def messenger() -> RecordingMessenger:
    return RecordingMessenger()


@pytest.fixture
def pipeline(limiter, repository, mailer, messenger, screener) -> SubmissionPipeline:
    return SubmissionPipeline(
        rate_limiter=limiter,
        repository=repository,
        mailer=mailer,
        messenger=messenger,
        recipients=["ventas@example.com"],
        screener=screener,
    )


@pytest.fixture
def client_source() -> ClientSource:
    return ClientSource(headers={"X-Forwarded-For": "203.0.113.1"}, peer_address="10.0.0.5")
