from __future__ import annotations

import logging

from twilio.http.http_client import TwilioHttpClient
from twilio.rest import Client

from .config import get_settings
from .dispatcher import SendText

logger = logging.getLogger(__name__)


def get_twilio_client() -> Client:
    settings = get_settings()

    if not settings.twilio_account_sid or not settings.twilio_auth_token:
        raise RuntimeError(
            "Twilio credentials are not configured (TWILIO_ACCOUNT_SID / TWILIO_AUTH_TOKEN)"
        )

    # Sends run on the connection control loop, so a hung request must not block it.
    http_client = TwilioHttpClient(timeout=settings.twilio_timeout)
    return Client(settings.twilio_account_sid, settings.twilio_auth_token, http_client=http_client)


def send_sms(to: str, body: str) -> None:
    """
    Send an SMS using the configured Twilio account.

    Called by the command dispatcher when the server asks for an outbound text.
    Twilio takes care of splitting long bodies into segments.
    """
    settings = get_settings()
    if not settings.twilio_from_number:
        raise RuntimeError("TWILIO_FROM_NUMBER is not configured")

    client = get_twilio_client()
    message = client.messages.create(
        to=to,
        from_=settings.twilio_from_number,
        body=body,
    )
    logger.debug("Twilio accepted message %s for %s", message.sid, to)


def log_send_text(to: str, body: str) -> None:
    """Dry-run sink: log the text instead of sending it."""
    logger.info("[dry-run] SMS to %s: %s", to, body)


def get_send_text(dry_run: bool = False) -> SendText:
    return log_send_text if dry_run else send_sms
