"""
contact_intake/config.py — Pydantic BaseSettings configuration
Rate limiting, screening thresholds, notification and collaborator credentials.
All values can be overridden through environment variables or a .env file.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Application ────────────────────────────────────────────────────────────
    environment: str = "development"
    log_level: str = "INFO"
    port: int = 8000
    # Exposes internal error text in 500 responses. Never enable in production.
    debug: bool = False
    cors_origins: list[str] = []

    # ── Rate limiting (fixed window per client key) ───────────────────────────
    rate_limit_max_requests: int = 5
    rate_limit_window_seconds: int = 15 * 60
    rate_limit_cleanup_interval_seconds: int = 60
    # When False only the transport peer address identifies the client.
    trust_forwarded_headers: bool = True

    # ── Security screening ────────────────────────────────────────────────────
    max_payload_chars: int = 10_000
    max_field_chars: int = 2_000
    max_message_links: int = 2

    # ── Sanitization ──────────────────────────────────────────────────────────
    sanitize_max_chars: int = 500
    sanitize_phone_max_chars: int = 20

    # ── Notifications ─────────────────────────────────────────────────────────
    notification_email: str = ""
    notification_timezone: str = "America/Bogota"

    # ── SMTP (mail collaborator) ──────────────────────────────────────────────
    smtp_host: Optional[str] = None
    smtp_port: int = 587
    smtp_user: Optional[str] = None
    smtp_pass: Optional[str] = None
    smtp_from_email: Optional[str] = None
    smtp_from_name: str = "Contact Form"
    smtp_use_tls: bool = True
    smtp_timeout_seconds: float = 15.0

    # ── Twilio WhatsApp (messaging collaborator) ──────────────────────────────
    twilio_account_sid: Optional[str] = None
    twilio_auth_token: Optional[str] = None
    twilio_whatsapp_from: Optional[str] = None
    twilio_whatsapp_to: Optional[str] = None
    twilio_api_base: str = "https://api.twilio.com/2010-04-01"
    twilio_timeout_seconds: float = 10.0

    @field_validator("environment")
    @classmethod
    def validate_env(cls, v: str) -> str:
        allowed = {"development", "production", "testing"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("rate_limit_max_requests", "rate_limit_window_seconds")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("rate limit values must be positive")
        return v

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def notification_recipients(self) -> list[str]:
        """NOTIFICATION_EMAIL split on commas, blanks dropped."""
        return [e.strip() for e in self.notification_email.split(",") if e.strip()]

    @property
    def smtp_configured(self) -> bool:
        return bool(self.smtp_host and self.smtp_user and self.smtp_pass)

    @property
    def twilio_configured(self) -> bool:
        return bool(
            self.twilio_account_sid
            and self.twilio_auth_token
            and self.twilio_whatsapp_from
            and self.twilio_whatsapp_to
        )


@lru_cache()
def get_settings() -> Settings:
    """Return cached Settings instance. Use this everywhere."""
    return Settings()
