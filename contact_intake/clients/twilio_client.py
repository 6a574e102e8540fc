"""
contact_intake/clients/twilio_client.py — WhatsApp messaging collaborator
Posts the rendered chat text to the Twilio Messages REST endpoint.
Failures raise MessagingError; the pipeline propagates them unchanged.
"""
from __future__ import annotations

from typing import Optional

import httpx
from loguru import logger

from contact_intake.config import Settings, get_settings
from contact_intake.core import logging as app_logging
from contact_intake.core.errors import MessagingError


class TwilioWhatsAppMessenger:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self._client = client

    @property
    def messages_url(self) -> str:
        s = self.settings
        return f"{s.twilio_api_base.rstrip('/')}/Accounts/{s.twilio_account_sid}/Messages.json"

    def _post(self, data: dict[str, str]) -> httpx.Response:
        s = self.settings
        auth = (s.twilio_account_sid or "", s.twilio_auth_token or "")
        if self._client is not None:
            return self._client.post(self.messages_url, data=data, auth=auth)
        with httpx.Client(timeout=s.twilio_timeout_seconds) as client:
            return client.post(self.messages_url, data=data, auth=auth)

    def notify(self, rendered_text: str) -> None:
        s = self.settings
        if not s.twilio_configured:
            logger.warning("Twilio WhatsApp not configured. Chat notification skipped.")
            app_logging.log_notification("messaging", success=True, skipped=True)
            return

        data = {
            "From": s.twilio_whatsapp_from or "",
            "To": s.twilio_whatsapp_to or "",
            "Body": rendered_text,
        }
        try:
            response = self._post(data)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            app_logging.log_notification("messaging", success=False, recipients=1, error=str(exc))
            raise MessagingError(f"Error sending WhatsApp message: {exc}") from exc

        app_logging.log_notification("messaging", success=True, recipients=1)
