"""
Notifier factory.
Configures which notification transport to use.
"""

from fastapi import Request

from campus_market.core.config import get_settings
from campus_market.services.interfaces.notifier import Notifier
from campus_market.services.notification_service import BrevoNotifier, LogNotifier


def create_notifier() -> Notifier:
    """
    Build the configured notifier.

    NOTIFIER_BACKEND:
    - log: write messages to the structured log (development, tests)
    - brevo: Brevo transactional e-mail API (requires BREVO_API_KEY)
    """
    settings = get_settings()

    if settings.NOTIFIER_BACKEND == "brevo":
        if not settings.BREVO_API_KEY:
            raise RuntimeError("NOTIFIER_BACKEND=brevo requires BREVO_API_KEY")
        return BrevoNotifier(
            api_key=settings.BREVO_API_KEY,
            sender_email=settings.EMAIL_FROM,
            sender_name=settings.EMAIL_FROM_NAME,
            api_url=settings.BREVO_API_URL,
            timeout=settings.BREVO_TIMEOUT_SECONDS,
        )
    return LogNotifier()


def get_notifier(request: Request) -> Notifier:
    """
    FastAPI dependency returning the notifier created in the app lifespan.
    Falls back to logging when the lifespan has not run.
    """
    notifier = getattr(request.app.state, "notifier", None)
    return notifier if notifier is not None else LogNotifier()
