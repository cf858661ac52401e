"""
Telegram webhook authentication.

Telegram echoes the secret given to setWebhook in the
X-Telegram-Bot-Api-Secret-Token header of every update.
"""

import hmac
import logging

from app.core.config import settings

logger = logging.getLogger(__name__)

HEADER_TELEGRAM_SECRET = "X-Telegram-Bot-Api-Secret-Token"


def verify_telegram_secret(header_value: str | None) -> bool:
    """
    Check the webhook secret header (constant-time compare).

    Returns:
        True if the secret matches, or if no secret is configured (dev mode)
    """
    if not settings.telegram_webhook_secret:
        logger.warning(
            "Telegram webhook secret not configured - skipping verification. "
            "Set TELEGRAM_WEBHOOK_SECRET in production."
        )
        return True

    if not header_value:
        logger.warning(f"Missing {HEADER_TELEGRAM_SECRET} header in Telegram webhook")
        return False

    is_valid = hmac.compare_digest(
        header_value.encode("utf-8"), settings.telegram_webhook_secret.encode("utf-8")
    )
    if not is_valid:
        logger.warning("Telegram webhook secret mismatch")
    return is_valid
