"""
Queue consumer - one invocation receives a batch and settles every job.

At-least-once: a job is deleted only after its handler finished with an
acknowledging outcome (done, no longer applicable, unknown kind, poison).
Not-yet-due jobs and handler errors are left alone so the visibility timeout
redelivers them with a fresh receipt handle.

Jobs are processed one after another; they share one database Session.
"""

import logging
from collections import Counter
from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from app.constants.event_types import (
    EVENT_QUEUE_DELETE_FAILURE,
    EVENT_QUEUE_JOB_FAILURE,
    EVENT_QUEUE_POISON_MESSAGE,
    EVENT_QUEUE_UNKNOWN_KIND,
)
from app.constants.job_kinds import (
    ACK_OUTCOMES,
    OUTCOME_FAILED,
    OUTCOME_POISON,
    OUTCOME_UNKNOWN_KIND,
)
from app.core.config import Settings, settings
from app.core.errors import PoisonMessage
from app.middleware.correlation_id import correlation_scope
from app.services import system_event_service
from app.services.delivery import handle_delivery_job
from app.services.messaging.notifier import Notifier
from app.services.queue.client import QueueClient
from app.services.queue.jobs import DeliveryJob, ReminderJob, decode_job, normalize_body
from app.services.queue.wire import ReceivedMessage
from app.services.reminders import handle_reminder_job

logger = logging.getLogger(__name__)


@dataclass
class ConsumerReport:
    received: int = 0
    deleted: int = 0
    delete_failures: int = 0
    outcomes: Counter = field(default_factory=Counter)
    skipped: bool = False

    def as_dict(self) -> dict:
        return {
            "received": self.received,
            "deleted": self.deleted,
            "delete_failures": self.delete_failures,
            "outcomes": dict(self.outcomes),
            "skipped": self.skipped,
        }


async def _dispatch(
    db: Session,
    message: ReceivedMessage,
    notifier: Notifier,
    config: Settings,
) -> str:
    try:
        job = decode_job(normalize_body(message.body))
    except PoisonMessage as e:
        logger.warning(f"Poison message {message.message_id}: {e}")
        system_event_service.warn(
            db,
            EVENT_QUEUE_POISON_MESSAGE,
            payload={"message_id": message.message_id, "body": message.body[:500]},
            exc=e,
        )
        return OUTCOME_POISON

    if job is None:
        logger.warning(f"Unknown job kind in message {message.message_id}; acknowledging")
        system_event_service.warn(
            db,
            EVENT_QUEUE_UNKNOWN_KIND,
            payload={"message_id": message.message_id, "body": message.body[:500]},
        )
        return OUTCOME_UNKNOWN_KIND

    try:
        if isinstance(job, ReminderJob):
            return await handle_reminder_job(db, job, notifier, config=config)
        if isinstance(job, DeliveryJob):
            return await handle_delivery_job(db, job, notifier, message_id=message.message_id)
    except Exception as e:
        db.rollback()
        logger.error(
            f"Job {message.message_id} ({job.kind}) failed: {type(e).__name__}: {e}",
            exc_info=True,
        )
        system_event_service.error(
            db,
            EVENT_QUEUE_JOB_FAILURE,
            chat_id=getattr(job, "chat_id", None),
            payload={"message_id": message.message_id, "kind": job.kind},
            exc=e,
        )
    return OUTCOME_FAILED


async def _acknowledge(db: Session, client: QueueClient, message: ReceivedMessage) -> bool:
    try:
        await client.delete(message.receipt_handle)
    except Exception as e:
        # Job will be redelivered; every handler tolerates that
        logger.warning(f"Delete failed for message {message.message_id}: {type(e).__name__}: {e}")
        system_event_service.warn(
            db,
            EVENT_QUEUE_DELETE_FAILURE,
            payload={"message_id": message.message_id},
            exc=e,
        )
        return False
    return True


async def process_once(
    db: Session,
    client: QueueClient | None,
    notifier: Notifier,
    max_messages: int | None = None,
    wait_seconds: int | None = None,
    config: Settings = settings,
) -> ConsumerReport:
    """
    Receive one batch and settle each job.

    Returns:
        ConsumerReport with per-outcome counts (skipped=True when the queue
        is not configured)

    Raises:
        TransportError: If the receive call itself fails
    """
    report = ConsumerReport()
    if client is None:
        logger.info("Queue not configured; nothing to process")
        report.skipped = True
        return report

    messages = await client.receive(
        max_messages=max_messages if max_messages is not None else config.queue_max_messages,
        wait_seconds=wait_seconds if wait_seconds is not None else config.queue_wait_seconds,
    )
    report.received = len(messages)

    for message in messages:
        with correlation_scope(message.message_id):
            outcome = await _dispatch(db, message, notifier, config)
            report.outcomes[outcome] += 1
            if outcome in ACK_OUTCOMES:
                if await _acknowledge(db, client, message):
                    report.deleted += 1
                else:
                    report.delete_failures += 1
            logger.info(f"Job {message.message_id}: {outcome}")

    logger.info(f"Queue batch done: {report.as_dict()}")
    return report
