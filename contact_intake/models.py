"""
contact_intake/models.py — All Pydantic data schemas
Submission (wire shape + structural constraints), verdicts, sanitized record
and the acknowledgment returned to the request layer.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator
from pydantic_core import PydanticCustomError

from contact_intake.security.patterns import FIELD_LIMITS, FIELD_PATTERNS, FIELD_PATTERN_MESSAGES


# ──────────────────────────────────────────────────────────────────────────────
# Enumerations
# ──────────────────────────────────────────────────────────────────────────────

class PipelineStage(str, Enum):
    RECEIVED = "RECEIVED"
    RATE_CHECKED = "RATE_CHECKED"
    SECURITY_SCREENED = "SECURITY_SCREENED"
    VALIDATED = "VALIDATED"
    SANITIZED = "SANITIZED"
    CLASSIFIED = "CLASSIFIED"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"


# ──────────────────────────────────────────────────────────────────────────────
# Client identification
# ──────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ClientSource:
    """Whatever carries client identity: HTTP headers plus transport peer."""

    headers: Mapping[str, str] = field(default_factory=dict)
    peer_address: Optional[str] = None


# ──────────────────────────────────────────────────────────────────────────────
# Submission: validated wire shape (pre-sanitization)
# ──────────────────────────────────────────────────────────────────────────────

def _collapse(value: Any) -> Any:
    if isinstance(value, str):
        return " ".join(value.split())
    return value


def _length_field(name: str) -> Any:
    limits = FIELD_LIMITS[name]
    return Field(min_length=limits["min"], max_length=limits["max"])


class Submission(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    nombre: str = _length_field("nombre")
    apellido: str = _length_field("apellido")
    pais: str = _length_field("pais")
    ciudad: str = _length_field("ciudad")
    empresa: str = _length_field("empresa")
    cargo: str = _length_field("cargo")
    email: str = _length_field("email")
    telefono: str = _length_field("telefono")
    mensaje: Optional[str] = Field(default=None, max_length=FIELD_LIMITS["mensaje"]["max"])
    recibir_noticias: bool = Field(default=False, alias="recibirNoticias")

    @field_validator(
        "nombre", "apellido", "pais", "ciudad", "empresa", "cargo", "telefono", "mensaje",
        mode="before",
    )
    @classmethod
    def normalize_whitespace(cls, v: Any) -> Any:
        """Trim and collapse whitespace runs before length/charset checks."""
        return _collapse(v)

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("recibir_noticias", mode="before")
    @classmethod
    def coerce_opt_in(cls, v: Any) -> bool:
        # Only an explicit true opts in.
        return v is True or v == "true"

    @field_validator(
        "nombre", "apellido", "pais", "ciudad", "empresa", "cargo", "email", "telefono", "mensaje",
    )
    @classmethod
    def check_charset(cls, v: Optional[str], info: ValidationInfo) -> Optional[str]:
        if v is None or (info.field_name == "mensaje" and v == ""):
            return v
        if not FIELD_PATTERNS[info.field_name].fullmatch(v):
            raise PydanticCustomError("charset", FIELD_PATTERN_MESSAGES[info.field_name])
        return v


# ──────────────────────────────────────────────────────────────────────────────
# Verdicts
# ──────────────────────────────────────────────────────────────────────────────

class SecurityVerdict(BaseModel):
    model_config = ConfigDict(frozen=True)

    allowed: bool
    code: Optional[str] = None
    message: str = ""
    field_name: Optional[str] = None
    rule: Optional[str] = None

    @classmethod
    def passed(cls) -> "SecurityVerdict":
        return cls(allowed=True)


class SpamVerdict(BaseModel):
    """Advisory classification attached to notifications; never blocks."""

    model_config = ConfigDict(frozen=True)

    is_suspicious: bool = False
    reasons: tuple[str, ...] = ()


# ──────────────────────────────────────────────────────────────────────────────
# Sanitized record and collaborator payloads
# ──────────────────────────────────────────────────────────────────────────────

class SanitizedSubmission(BaseModel):
    """Output of the field sanitizer. Frozen: collaborators must not mutate it."""

    model_config = ConfigDict(frozen=True)

    nombre: Optional[str]
    apellido: Optional[str]
    pais: Optional[str]
    ciudad: Optional[str]
    empresa: Optional[str]
    cargo: Optional[str]
    email: Optional[str]
    telefono: Optional[str]
    mensaje: Optional[str] = None
    recibir_noticias: bool = False


class SecurityInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    client_ip: str
    spam_verdict: SpamVerdict


class StoredSubmission(BaseModel):
    id: str
    submission: SanitizedSubmission
    submitted_at: datetime = Field(default_factory=datetime.utcnow)


class SubmissionAck(BaseModel):
    id: str
    spam_verdict: SpamVerdict
