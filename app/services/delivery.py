"""
Bulk delivery pipeline - delivery records, audit log, campaign fan-out and
the DELIVERY job handler.

DeliveryRecord is keyed by (campaign_id, recipient) and written by upsert only,
so applying the same outcome twice leaves one record. DeliveryLog is append-only:
every outcome adds a row.
"""

import logging

from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.constants.event_types import EVENT_CAMPAIGN_ENQUEUED
from app.constants.job_kinds import OUTCOME_DONE, OUTCOME_FAILED
from app.constants.statuses import (
    DELIVERY_DELIVERED,
    DELIVERY_FAILED,
    DELIVERY_PENDING,
    DELIVERY_STATUSES,
)
from app.core.errors import ConfigurationError, TransportError
from app.db.models import DeliveryLog, DeliveryRecord
from app.services.messaging.message_composer import render_message
from app.services.messaging.notifier import Notifier
from app.services.queue.client import QueueClient
from app.services.queue.jobs import DeliveryJob, delivery_payload

logger = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 1000


def get_delivery_record(db: Session, campaign_id: str, recipient: str) -> DeliveryRecord | None:
    stmt = select(DeliveryRecord).where(
        DeliveryRecord.campaign_id == campaign_id,
        DeliveryRecord.recipient == recipient,
    )
    return db.execute(stmt).scalar_one_or_none()


def list_delivery_records(db: Session, campaign_id: str) -> list[DeliveryRecord]:
    stmt = (
        select(DeliveryRecord)
        .where(DeliveryRecord.campaign_id == campaign_id)
        .order_by(DeliveryRecord.id)
    )
    return list(db.execute(stmt).scalars().all())


def _upsert_record(
    db: Session, campaign_id: str, recipient: str, status: str, last_error: str | None
) -> None:
    values = {
        "campaign_id": campaign_id,
        "recipient": recipient,
        "status": status,
        "last_error": last_error,
    }
    dialect = db.get_bind().dialect.name
    if dialect in ("postgresql", "sqlite"):
        insert = postgresql.insert if dialect == "postgresql" else sqlite.insert
        stmt = insert(DeliveryRecord).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[DeliveryRecord.campaign_id, DeliveryRecord.recipient],
            set_={"status": status, "last_error": last_error, "updated_at": func.now()},
        )
        db.execute(stmt)
        return

    # Other dialects: insert, fall back to update on the unique key
    record = get_delivery_record(db, campaign_id, recipient)
    if record is None:
        try:
            with db.begin_nested():
                db.add(DeliveryRecord(**values))
            return
        except IntegrityError:
            record = get_delivery_record(db, campaign_id, recipient)
            if record is None:
                raise
    record.status = status
    record.last_error = last_error


def record_delivery_outcome(
    db: Session,
    campaign_id: str,
    recipient: str,
    status: str,
    detail: str | None = None,
    message_id: str | None = None,
) -> DeliveryRecord:
    """
    Upsert the (campaign, recipient) record to `status` and append one log row.
    Both writes commit together.

    Args:
        detail: Error text for FAILED (stored as last_error), free-form otherwise
        message_id: Queue message that carried the job, if any
    """
    if status not in DELIVERY_STATUSES:
        raise ValueError(f"Unknown delivery status: {status}")
    if detail:
        detail = detail[:MAX_ERROR_LENGTH]

    try:
        _upsert_record(
            db,
            campaign_id,
            recipient,
            status,
            last_error=detail if status == DELIVERY_FAILED else None,
        )
        db.add(
            DeliveryLog(
                campaign_id=campaign_id,
                recipient=recipient,
                status=status,
                detail=detail,
                message_id=message_id,
            )
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    record = get_delivery_record(db, campaign_id, recipient)
    db.refresh(record)
    logger.info(f"Delivery {campaign_id}/{recipient} -> {status}")
    return record


async def enqueue_campaign(
    db: Session,
    queue: QueueClient | None,
    campaign_id: str,
    recipients: list[str],
    text: str | None = None,
) -> dict:
    """
    Fan a campaign out into one DELIVERY job per recipient.

    Each new recipient gets a PENDING record (+ log row) before its job is sent.
    Recipients already DELIVERED are skipped. A send failure is reported per
    recipient and does not stop the rest.

    Raises:
        ConfigurationError: If the queue is not configured
    """
    if queue is None:
        raise ConfigurationError("Queue is not configured (SQS_QUEUE_URL / AWS credentials)")

    enqueued: list[str] = []
    skipped: list[str] = []
    failed: dict[str, str] = {}

    # Duplicates in the request collapse onto one record anyway
    for recipient in dict.fromkeys(r.strip() for r in recipients if r and r.strip()):
        existing = get_delivery_record(db, campaign_id, recipient)
        if existing is not None and existing.status == DELIVERY_DELIVERED:
            skipped.append(recipient)
            continue

        record_delivery_outcome(db, campaign_id, recipient, DELIVERY_PENDING, detail="enqueued")
        try:
            await queue.send(delivery_payload(campaign_id, recipient, text))
        except TransportError as e:
            logger.warning(f"Delivery enqueue failed for {campaign_id}/{recipient}: {e}")
            failed[recipient] = str(e)
            continue
        enqueued.append(recipient)

    from app.services.system_event_service import info

    info(
        db,
        EVENT_CAMPAIGN_ENQUEUED,
        payload={
            "campaign_id": campaign_id,
            "enqueued": len(enqueued),
            "skipped": len(skipped),
            "failed": len(failed),
        },
    )
    return {"campaign_id": campaign_id, "enqueued": enqueued, "skipped": skipped, "failed": failed}


async def handle_delivery_job(
    db: Session,
    job: DeliveryJob,
    notifier: Notifier,
    message_id: str | None = None,
) -> str:
    """
    Deliver one campaign message.

    Already DELIVERED -> acknowledge without resending. Send failure -> record
    FAILED and leave the job for redelivery.
    """
    existing = get_delivery_record(db, job.campaign_id, job.recipient)
    if existing is not None and existing.status == DELIVERY_DELIVERED:
        logger.info(f"Delivery {job.campaign_id}/{job.recipient} already delivered; skipping")
        return OUTCOME_DONE

    text = job.text or render_message("campaign_default")
    try:
        await notifier.send(job.recipient, text)
    except Exception as e:
        logger.warning(
            f"Delivery send failed for {job.campaign_id}/{job.recipient}: {type(e).__name__}: {e}"
        )
        record_delivery_outcome(
            db,
            job.campaign_id,
            job.recipient,
            DELIVERY_FAILED,
            detail=f"{type(e).__name__}: {e}",
            message_id=message_id,
        )
        return OUTCOME_FAILED

    record_delivery_outcome(
        db, job.campaign_id, job.recipient, DELIVERY_DELIVERED, message_id=message_id
    )
    return OUTCOME_DONE
