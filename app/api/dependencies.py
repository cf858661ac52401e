"""FastAPI dependencies for API routes."""

from app.services.messaging.notifier import Notifier, TelegramNotifier
from app.services.queue.client import QueueClient, build_queue_client


def get_notifier() -> Notifier:
    return TelegramNotifier()


def get_queue_client() -> QueueClient | None:
    """Queue client from settings; None when the queue is not configured."""
    return build_queue_client()
