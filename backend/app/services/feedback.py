from __future__ import annotations

import logging

import requests

from .. import settings
from .errors import UnavailableError

logger = logging.getLogger(__name__)

RESEND_EMAILS_URL = "https://api.resend.com/emails"


def send_feedback(kind: str | None, message: str, email: str | None = None) -> None:
    """Relay a feedback message to the configured inbox through Resend."""
    if not settings.RESEND_API_KEY or not settings.FEEDBACK_TO_EMAIL:
        raise UnavailableError("Email not configured", stage="feedback")

    sender = email or "anonymous"
    payload = {
        "from": settings.FEEDBACK_FROM_EMAIL,
        "to": settings.FEEDBACK_TO_EMAIL,
        "subject": f"[Next Video] {kind or 'Feedback'} from {sender}",
        "text": f"Type: {kind or 'feedback'}\nFrom: {sender}\n\n{message}",
    }
    if email and email != "anonymous":
        payload["reply_to"] = email

    try:
        response = requests.post(
            RESEND_EMAILS_URL,
            json=payload,
            headers={"Authorization": f"Bearer {settings.RESEND_API_KEY.strip()}"},
            timeout=settings.HTTP_TIMEOUT_SECONDS,
        )
    except requests.RequestException as exc:
        logger.warning("Feedback relay failed: %s", exc)
        raise UnavailableError("Failed to send email", stage="feedback")

    if response.status_code >= 400:
        logger.warning("Resend rejected feedback email: HTTP %s", response.status_code)
        raise UnavailableError("Failed to send email", stage="feedback")
