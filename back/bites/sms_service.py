"""
SMS delivery through the Twilio REST API.
"""

import logging

import httpx

from .settings import settings

logger = logging.getLogger(__name__)

TWILIO_API_BASE = "https://api.twilio.com/2010-04-01"


class MessagingError(Exception):
    """Raised when an outbound message cannot be delivered."""

    def __init__(self, message: str, configured: bool = True):
        self.configured = configured
        super().__init__(message)


def is_configured() -> bool:
    return bool(
        settings.twilio_account_sid
        and settings.twilio_auth_token
        and settings.twilio_from_number
    )


def to_e164(contact_no: str) -> str:
    """Prefix local numbers with the configured country code."""
    number = contact_no.strip().replace(" ", "")
    if number.startswith("+"):
        return number
    return f"{settings.sms_country_code}{number}"


async def send_sms(contact_no: str, body: str, transport: httpx.AsyncBaseTransport | None = None) -> str:
    """Send a text message and return the provider message SID."""
    if not is_configured():
        raise MessagingError("SMS provider not configured", configured=False)

    url = f"{TWILIO_API_BASE}/Accounts/{settings.twilio_account_sid}/Messages.json"
    data = {"To": to_e164(contact_no), "From": settings.twilio_from_number, "Body": body}

    try:
        async with httpx.AsyncClient(timeout=10.0, transport=transport) as client:
            response = await client.post(
                url,
                data=data,
                auth=(settings.twilio_account_sid, settings.twilio_auth_token),
            )
    except httpx.HTTPError as e:
        logger.error(f"SMS request to {data['To']} failed: {e}")
        raise MessagingError(f"SMS request failed: {e}") from e

    if response.status_code >= 400:
        logger.error(f"SMS provider rejected message to {data['To']}: {response.status_code} {response.text}")
        raise MessagingError(f"SMS provider error ({response.status_code})")

    sid = response.json().get("sid", "")
    logger.info(f"SMS sent to {data['To']} (sid={sid})")
    return sid
