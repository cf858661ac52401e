"""
Delivery records: idempotent upsert, append-only log, campaign fan-out.
"""

import pytest

from app.constants.event_types import EVENT_CAMPAIGN_ENQUEUED
from app.constants.statuses import DELIVERY_DELIVERED, DELIVERY_FAILED, DELIVERY_PENDING
from app.core.errors import ConfigurationError, TransportError
from app.db.models import DeliveryLog, DeliveryRecord, SystemEvent
from app.services.delivery import (
    enqueue_campaign,
    list_delivery_records,
    record_delivery_outcome,
)


def test_same_outcome_twice_keeps_one_record_and_two_logs(db):
    record_delivery_outcome(db, "c-1", "42", DELIVERY_DELIVERED)
    record_delivery_outcome(db, "c-1", "42", DELIVERY_DELIVERED)

    assert db.query(DeliveryRecord).count() == 1
    assert db.query(DeliveryLog).count() == 2


def test_record_tracks_latest_status(db):
    record_delivery_outcome(db, "c-1", "42", DELIVERY_PENDING, detail="enqueued")
    record = record_delivery_outcome(db, "c-1", "42", DELIVERY_FAILED, detail="Boom: blocked")

    assert record.status == DELIVERY_FAILED
    assert record.last_error == "Boom: blocked"
    statuses = [log.status for log in db.query(DeliveryLog).order_by(DeliveryLog.id)]
    assert statuses == [DELIVERY_PENDING, DELIVERY_FAILED]


def test_success_after_failure_clears_last_error(db):
    record_delivery_outcome(db, "c-1", "42", DELIVERY_FAILED, detail="Boom")
    record = record_delivery_outcome(db, "c-1", "42", DELIVERY_DELIVERED)

    assert record.status == DELIVERY_DELIVERED
    assert record.last_error is None


def test_long_error_is_truncated(db):
    record = record_delivery_outcome(db, "c-1", "42", DELIVERY_FAILED, detail="x" * 5000)
    assert len(record.last_error) == 1000


def test_unknown_status_is_rejected(db):
    with pytest.raises(ValueError):
        record_delivery_outcome(db, "c-1", "42", "BOUNCED")
    assert db.query(DeliveryLog).count() == 0


def test_records_are_per_campaign_and_recipient(db):
    record_delivery_outcome(db, "c-1", "42", DELIVERY_DELIVERED)
    record_delivery_outcome(db, "c-1", "43", DELIVERY_PENDING)
    record_delivery_outcome(db, "c-2", "42", DELIVERY_FAILED, detail="nope")

    assert [r.recipient for r in list_delivery_records(db, "c-1")] == ["42", "43"]
    assert [r.status for r in list_delivery_records(db, "c-2")] == [DELIVERY_FAILED]


@pytest.mark.asyncio
async def test_enqueue_campaign_fans_out_one_job_per_recipient(db, fake_queue):
    result = await enqueue_campaign(db, fake_queue, "c-1", ["42", "43", "42", " "], text="Sale!")

    assert result == {"campaign_id": "c-1", "enqueued": ["42", "43"], "skipped": [], "failed": {}}
    assert fake_queue.sent == [
        {"kind": "DELIVERY", "campaignId": "c-1", "recipient": "42", "text": "Sale!"},
        {"kind": "DELIVERY", "campaignId": "c-1", "recipient": "43", "text": "Sale!"},
    ]
    assert {r.status for r in list_delivery_records(db, "c-1")} == {DELIVERY_PENDING}
    event = db.query(SystemEvent).filter_by(event_type=EVENT_CAMPAIGN_ENQUEUED).one()
    assert event.payload["enqueued"] == 2


@pytest.mark.asyncio
async def test_enqueue_campaign_skips_already_delivered(db, fake_queue):
    record_delivery_outcome(db, "c-1", "42", DELIVERY_DELIVERED)

    result = await enqueue_campaign(db, fake_queue, "c-1", ["42", "43"])

    assert result["skipped"] == ["42"]
    assert result["enqueued"] == ["43"]
    assert len(fake_queue.sent) == 1


@pytest.mark.asyncio
async def test_enqueue_campaign_reports_send_failures(db, failing_queue):
    result = await enqueue_campaign(db, failing_queue, "c-1", ["42"])

    assert result["enqueued"] == []
    assert "500" in result["failed"]["42"]
    # The PENDING record stays so a later re-enqueue picks it up
    assert list_delivery_records(db, "c-1")[0].status == DELIVERY_PENDING


@pytest.mark.asyncio
async def test_enqueue_campaign_requires_queue(db):
    with pytest.raises(ConfigurationError):
        await enqueue_campaign(db, None, "c-1", ["42"])


@pytest.mark.asyncio
async def test_enqueue_campaign_propagates_unexpected_errors(db, fake_queue):
    fake_queue.send_error = RuntimeError("bug")
    with pytest.raises(RuntimeError):
        await enqueue_campaign(db, fake_queue, "c-1", ["42"])


def test_transport_error_keeps_status_code():
    err = TransportError("nope", status_code=429, body="<Error/>")
    assert err.status_code == 429
    assert err.body == "<Error/>"
