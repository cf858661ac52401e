"""
Outbound chat notifier (Telegram Bot API) with dry-run mode for development.

The booking flow treats sends as fire-and-forget and only logs failures; the
queue consumer lets a failed reminder send propagate so the job is redelivered.
"""

import logging
import os
from dataclasses import dataclass
from typing import Protocol

from app.core.config import Settings, settings
from app.services.integrations.http_client import create_httpx_client

logger = logging.getLogger(__name__)

TELEGRAM_API_BASE = "https://api.telegram.org"


@dataclass(frozen=True)
class Choice:
    """A labeled button; `data` comes back as the callback token when tapped."""

    label: str
    data: str


class Notifier(Protocol):
    async def send(self, chat_id: str, text: str, choices: list[Choice] | None = None) -> dict: ...


def build_inline_keyboard(choices: list[Choice]) -> dict:
    """One button per row."""
    return {"inline_keyboard": [[{"text": c.label, "callback_data": c.data}] for c in choices]}


class TelegramNotifier:
    def __init__(self, config: Settings = settings):
        self.config = config

    def _is_dry_run(self) -> bool:
        # Force dry-run in tests or if the bot token is missing
        return bool(
            self.config.telegram_dry_run
            or os.environ.get("PYTEST_CURRENT_TEST")
            or not self.config.telegram_bot_token
        )

    async def send(self, chat_id: str, text: str, choices: list[Choice] | None = None) -> dict:
        """
        Send a chat message, optionally with inline choice buttons.

        Returns:
            dict with status and message_id (None in dry-run)

        Raises:
            httpx.HTTPError: If the Bot API call fails (not in dry-run)
        """
        payload: dict = {"chat_id": chat_id, "text": text}
        if choices:
            payload["reply_markup"] = build_inline_keyboard(choices)

        if self._is_dry_run():
            logger.info(f"[DRY-RUN] Would send Telegram message to {chat_id}: {text}")
            return {"status": "dry_run", "message_id": None, "chat_id": chat_id}

        url = f"{TELEGRAM_API_BASE}/bot{self.config.telegram_bot_token}/sendMessage"
        async with create_httpx_client() as client:
            response = await client.post(url, json=payload)
            response.raise_for_status()
            result = response.json()

        return {
            "status": "sent",
            "message_id": (result.get("result") or {}).get("message_id"),
            "chat_id": chat_id,
        }
