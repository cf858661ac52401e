import logging

from fastapi import APIRouter, Depends, HTTPException, Security
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.api.auth import get_admin_auth
from app.api.dependencies import get_notifier, get_queue_client
from app.core.errors import ConfigurationError, TransportError
from app.db.deps import get_db
from app.schemas.admin import (
    DeliveryRecordResponse,
    EnqueueCampaignRequest,
    EnqueueCampaignResponse,
    ProcessOnceResponse,
)
from app.services.delivery import enqueue_campaign, list_delivery_records
from app.services.messaging.notifier import Notifier
from app.services.queue.client import QueueClient
from app.services.queue.consumer import process_once

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/queue/process-once", response_model=ProcessOnceResponse)
async def process_queue_once(
    max_messages: int | None = None,
    wait_seconds: int | None = None,
    db: Session = Depends(get_db),
    notifier: Notifier = Depends(get_notifier),
    queue: QueueClient | None = Depends(get_queue_client),
    _auth: bool = Security(get_admin_auth),
):
    """
    Run one consumer invocation on demand (same as the scheduled job).
    Query params: max_messages (<= 10), wait_seconds (<= 20).
    """
    try:
        report = await process_once(
            db, queue, notifier, max_messages=max_messages, wait_seconds=wait_seconds
        )
    except TransportError as e:
        logger.error(f"process-once: queue receive failed: {e}")
        return JSONResponse(status_code=502, content={"ok": False, "error": str(e)})
    return ProcessOnceResponse(**report.as_dict())


@router.post("/campaigns/{campaign_id}/enqueue", response_model=EnqueueCampaignResponse)
async def enqueue_campaign_deliveries(
    campaign_id: str,
    request: EnqueueCampaignRequest,
    db: Session = Depends(get_db),
    queue: QueueClient | None = Depends(get_queue_client),
    _auth: bool = Security(get_admin_auth),
):
    """Create PENDING delivery records and one DELIVERY job per recipient."""
    try:
        result = await enqueue_campaign(db, queue, campaign_id, request.recipients, request.text)
    except ConfigurationError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e
    logger.info(
        f"Campaign {campaign_id}: {len(result['enqueued'])} enqueued, "
        f"{len(result['skipped'])} skipped, {len(result['failed'])} failed"
    )
    return result


@router.get("/campaigns/{campaign_id}/deliveries", response_model=list[DeliveryRecordResponse])
def list_campaign_deliveries(
    campaign_id: str,
    db: Session = Depends(get_db),
    _auth: bool = Security(get_admin_auth),
):
    return list_delivery_records(db, campaign_id)
