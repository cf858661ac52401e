import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.api.dependencies import get_notifier, get_queue_client
from app.constants.event_types import (
    EVENT_TELEGRAM_SECRET_MISMATCH,
    EVENT_TELEGRAM_UPDATE_FAILURE,
)
from app.db.deps import get_db
from app.services.conversation.state_machine import handle_update
from app.services.messaging.notifier import Notifier
from app.services.messaging.telegram_verification import (
    HEADER_TELEGRAM_SECRET,
    verify_telegram_secret,
)
from app.services.queue.client import QueueClient

logger = logging.getLogger(__name__)

router = APIRouter()


def _tg_error_response(status_code: int, error: str) -> JSONResponse:
    """Build JSONResponse for Telegram webhook errors: {"ok": False, "error": ...}."""
    return JSONResponse(status_code=status_code, content={"ok": False, "error": error})


@router.post("/telegram")
async def telegram_webhook(
    request: Request,
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    queue: QueueClient | None = Depends(get_queue_client),
):
    """
    Telegram Bot API webhook.

    Once authenticated, always answers 200: problems with the update are
    reported to the user as chat messages, and a non-200 would only make
    Telegram retry the same update. An unexpected failure while handling it
    is logged, recorded as an ERROR SystemEvent and answered with state None.
    """
    secret_header = request.headers.get(HEADER_TELEGRAM_SECRET)
    if not verify_telegram_secret(secret_header):
        from app.services.system_event_service import warn

        warn(
            db,
            EVENT_TELEGRAM_SECRET_MISMATCH,
            payload={"has_secret_header": secret_header is not None},
        )
        return _tg_error_response(403, "forbidden")

    try:
        update = await request.json()
    except json.JSONDecodeError:
        logger.warning("Telegram webhook body is not valid JSON")
        return _tg_error_response(400, "Invalid JSON")
    if not isinstance(update, dict):
        return _tg_error_response(400, "Update must be a JSON object")

    try:
        state = await handle_update(db, update, notifier, queue=queue)
    except Exception as e:
        logger.error(
            f"Telegram update {update.get('update_id')} failed: {type(e).__name__}: {e}",
            exc_info=True,
        )
        db.rollback()
        from app.services.system_event_service import error

        error(
            db,
            EVENT_TELEGRAM_UPDATE_FAILURE,
            payload={"update_id": update.get("update_id")},
            exc=e,
        )
        return {"ok": True, "state": None}
    return {"ok": True, "state": state}
