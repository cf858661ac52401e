"""
Telegram user directory (one row per chat, refreshed on every update).
"""

import logging

from sqlalchemy.orm import Session

from app.db.models import TelegramUser

logger = logging.getLogger(__name__)


def upsert_telegram_user(
    db: Session,
    chat_id: str,
    username: str | None = None,
    first_name: str | None = None,
    last_name: str | None = None,
) -> TelegramUser:
    """Insert or refresh the user's profile fields; created_at is kept from the first insert."""
    user = db.get(TelegramUser, chat_id)
    if user is None:
        user = TelegramUser(chat_id=chat_id)
        db.add(user)
        logger.info(f"New Telegram user {chat_id} (@{username})")
    user.username = username
    user.first_name = first_name
    user.last_name = last_name
    db.commit()
    db.refresh(user)
    return user
