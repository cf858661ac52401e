"""
REMINDER job handler.

A reminder job is enqueued right after a booking is confirmed and keeps being
redelivered (visibility timeout) until the slot start falls inside the
lookahead window. Duplicate sends are bounded by that window; there is no
per-booking dedupe.
"""

import logging
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from app.constants.job_kinds import OUTCOME_DONE, OUTCOME_NOT_APPLICABLE, OUTCOME_NOT_DUE
from app.core.config import Settings, settings
from app.services.catalog import get_confirmed_booking_start
from app.services.messaging.message_composer import render_message
from app.services.messaging.notifier import Notifier
from app.services.queue.jobs import ReminderJob
from app.utils.datetime_utils import format_local, utcnow

logger = logging.getLogger(__name__)


def reminder_is_due(start_ts: datetime, now: datetime, lookahead_minutes: int) -> bool | None:
    """
    True if start is within (now, now + lookahead]; False if later;
    None if the slot has already started.
    """
    delta = start_ts - now
    if delta <= timedelta(0):
        return None
    return delta <= timedelta(minutes=lookahead_minutes)


async def handle_reminder_job(
    db: Session,
    job: ReminderJob,
    notifier: Notifier,
    config: Settings = settings,
    now: datetime | None = None,
) -> str:
    """
    Send the reminder when due.

    Returns:
        OUTCOME_DONE (sent), OUTCOME_NOT_APPLICABLE (booking gone, not confirmed
        or already started) or OUTCOME_NOT_DUE (leave for redelivery)

    Raises:
        Exception: Notifier failure propagates so the job is redelivered
    """
    found = get_confirmed_booking_start(db, job.booking_id)
    if found is None:
        logger.info(f"Reminder for booking {job.booking_id}: booking missing or not confirmed")
        return OUTCOME_NOT_APPLICABLE

    service_name, start_ts = found
    due = reminder_is_due(start_ts, now or utcnow(), config.reminder_lookahead_minutes)
    if due is None:
        logger.info(f"Reminder for booking {job.booking_id}: slot already started")
        return OUTCOME_NOT_APPLICABLE
    if not due:
        return OUTCOME_NOT_DUE

    text = render_message(
        "reminder",
        service_name=service_name,
        start_local=format_local(start_ts, config.display_timezone),
    )
    await notifier.send(job.chat_id, text)
    logger.info(f"Reminder sent for booking {job.booking_id} to chat {job.chat_id}")
    return OUTCOME_DONE
