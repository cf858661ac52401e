# Messaging: chat copy composer, outbound notifier, webhook verification
# Re-export so "from app.services.messaging import ..." works for callers.

from app.services.messaging.message_composer import render_message
from app.services.messaging.notifier import Choice, Notifier, TelegramNotifier

__all__ = [
    "Choice",
    "Notifier",
    "TelegramNotifier",
    "render_message",
]
