"""
Queue consumer: per-outcome acknowledgement, poison handling and reporting.
"""

import json
from datetime import timedelta

import pytest

from app.constants.event_types import (
    EVENT_QUEUE_DELETE_FAILURE,
    EVENT_QUEUE_JOB_FAILURE,
    EVENT_QUEUE_POISON_MESSAGE,
    EVENT_QUEUE_UNKNOWN_KIND,
)
from app.constants.statuses import DELIVERY_DELIVERED, DELIVERY_FAILED
from app.core.errors import TransportError
from app.db.models import Booking, DeliveryLog, SystemEvent
from app.services.delivery import get_delivery_record, record_delivery_outcome
from app.services.queue.consumer import process_once
from app.services.queue.wire import ReceivedMessage
from app.utils.datetime_utils import utcnow


def _message(n: int, payload) -> ReceivedMessage:
    body = payload if isinstance(payload, str) else json.dumps(payload)
    return ReceivedMessage(message_id=f"m-{n}", receipt_handle=f"rh-{n}", body=body)


@pytest.fixture
def booking_at(db, make_service, make_slot):
    make_service("svc-1", "Haircut")

    def _make(booking_id: str, start, chat_id: str = "42", status: str = "CONFIRMED"):
        slot = make_slot(f"slot-{booking_id}", start=start)
        db.add(
            Booking(
                id=booking_id,
                chat_id=chat_id,
                service_id="svc-1",
                slot_id=slot.id,
                status=status,
            )
        )
        db.commit()

    return _make


def _reminder(booking_id: str, chat_id: str = "42") -> dict:
    return {"kind": "REMINDER", "bookingId": booking_id, "chatId": chat_id}


@pytest.mark.asyncio
async def test_due_reminder_is_sent_and_acknowledged(db, fake_queue, notifier, booking_at):
    booking_at("b-1", utcnow() + timedelta(minutes=30))
    fake_queue.inbox = [_message(1, _reminder("b-1"))]

    report = await process_once(db, fake_queue, notifier)

    assert report.received == 1
    assert report.outcomes["done"] == 1
    assert fake_queue.deleted == ["rh-1"]
    assert notifier.last["chat_id"] == "42"
    assert "Haircut" in notifier.last["text"]


@pytest.mark.asyncio
async def test_not_yet_due_reminder_is_left_for_redelivery(db, fake_queue, notifier, booking_at):
    booking_at("b-1", utcnow() + timedelta(days=3))
    fake_queue.inbox = [_message(1, _reminder("b-1"))]

    report = await process_once(db, fake_queue, notifier)

    assert report.outcomes["not_due"] == 1
    assert fake_queue.deleted == []
    assert notifier.sent == []


@pytest.mark.asyncio
async def test_reminder_for_missing_booking_is_acknowledged(db, fake_queue, notifier):
    fake_queue.inbox = [_message(1, _reminder("gone"))]

    report = await process_once(db, fake_queue, notifier)

    assert report.outcomes["not_applicable"] == 1
    assert fake_queue.deleted == ["rh-1"]
    assert notifier.sent == []


@pytest.mark.asyncio
async def test_reminder_after_slot_started_is_acknowledged(db, fake_queue, notifier, booking_at):
    booking_at("b-1", utcnow() - timedelta(minutes=5))
    fake_queue.inbox = [_message(1, _reminder("b-1"))]

    report = await process_once(db, fake_queue, notifier)

    assert report.outcomes["not_applicable"] == 1
    assert fake_queue.deleted == ["rh-1"]


@pytest.mark.asyncio
async def test_poison_message_is_acknowledged_and_recorded(db, fake_queue, notifier):
    fake_queue.inbox = [_message(1, "definitely not json")]

    report = await process_once(db, fake_queue, notifier)

    assert report.outcomes["poison"] == 1
    assert fake_queue.deleted == ["rh-1"]
    event = db.query(SystemEvent).filter_by(event_type=EVENT_QUEUE_POISON_MESSAGE).one()
    assert event.payload["message_id"] == "m-1"
    assert event.payload["correlation_id"] == "m-1"


@pytest.mark.asyncio
async def test_unknown_kind_is_acknowledged(db, fake_queue, notifier):
    fake_queue.inbox = [_message(1, {"kind": "NEWSLETTER", "issue": 7})]

    report = await process_once(db, fake_queue, notifier)

    assert report.outcomes["unknown_kind"] == 1
    assert fake_queue.deleted == ["rh-1"]
    assert db.query(SystemEvent).filter_by(event_type=EVENT_QUEUE_UNKNOWN_KIND).count() == 1


@pytest.mark.asyncio
async def test_handler_error_leaves_job_for_redelivery(db, fake_queue, notifier, booking_at):
    booking_at("b-1", utcnow() + timedelta(minutes=10))
    notifier.fail = TransportError("sendMessage failed: 502", status_code=502)
    fake_queue.inbox = [_message(1, _reminder("b-1"))]

    report = await process_once(db, fake_queue, notifier)

    assert report.outcomes["failed"] == 1
    assert fake_queue.deleted == []
    event = db.query(SystemEvent).filter_by(event_type=EVENT_QUEUE_JOB_FAILURE).one()
    assert event.level == "ERROR"
    assert event.chat_id == "42"


@pytest.mark.asyncio
async def test_delete_failure_is_counted_not_raised(db, fake_queue, notifier):
    fake_queue.delete_error = TransportError("DeleteMessage failed: 500", status_code=500)
    fake_queue.inbox = [_message(1, _reminder("gone"))]

    report = await process_once(db, fake_queue, notifier)

    assert report.deleted == 0
    assert report.delete_failures == 1
    assert db.query(SystemEvent).filter_by(event_type=EVENT_QUEUE_DELETE_FAILURE).count() == 1


@pytest.mark.asyncio
async def test_mixed_batch_settles_every_message(db, fake_queue, notifier, booking_at):
    booking_at("b-due", utcnow() + timedelta(minutes=20))
    booking_at("b-later", utcnow() + timedelta(days=2))
    fake_queue.inbox = [
        _message(1, _reminder("b-due")),
        _message(2, _reminder("b-later")),
        _message(3, "%%%"),
        _message(4, {"campaignId": "c-1", "recipient": "77", "text": "Hello"}),
    ]

    report = await process_once(db, fake_queue, notifier)

    assert report.as_dict() == {
        "received": 4,
        "deleted": 3,
        "delete_failures": 0,
        "outcomes": {"done": 2, "not_due": 1, "poison": 1},
        "skipped": False,
    }
    assert fake_queue.deleted == ["rh-1", "rh-3", "rh-4"]


@pytest.mark.asyncio
async def test_delivery_job_records_delivered(db, fake_queue, notifier):
    fake_queue.inbox = [_message(1, {"kind": "DELIVERY", "campaignId": "c-1", "recipient": "77"})]

    report = await process_once(db, fake_queue, notifier)

    assert report.outcomes["done"] == 1
    assert notifier.last == {
        "chat_id": "77",
        "text": "You have a new update from BulkFlow.",
        "choices": [],
    }
    assert get_delivery_record(db, "c-1", "77").status == DELIVERY_DELIVERED
    log = db.query(DeliveryLog).one()
    assert log.message_id == "m-1"


@pytest.mark.asyncio
async def test_already_delivered_job_is_acknowledged_without_resending(db, fake_queue, notifier):
    record_delivery_outcome(db, "c-1", "77", DELIVERY_DELIVERED)
    fake_queue.inbox = [_message(1, {"kind": "DELIVERY", "campaignId": "c-1", "recipient": "77"})]

    report = await process_once(db, fake_queue, notifier)

    assert report.outcomes["done"] == 1
    assert fake_queue.deleted == ["rh-1"]
    assert notifier.sent == []


@pytest.mark.asyncio
async def test_failed_delivery_is_recorded_and_retried(db, fake_queue, notifier):
    notifier.fail = TransportError("sendMessage failed: 403 Forbidden", status_code=403)
    fake_queue.inbox = [_message(1, {"kind": "DELIVERY", "campaignId": "c-1", "recipient": "77"})]

    report = await process_once(db, fake_queue, notifier)

    assert report.outcomes["failed"] == 1
    assert fake_queue.deleted == []
    record = get_delivery_record(db, "c-1", "77")
    assert record.status == DELIVERY_FAILED
    assert record.last_error.startswith("TransportError: sendMessage failed: 403")


@pytest.mark.asyncio
async def test_receive_uses_configured_defaults(db, fake_queue, notifier):
    await process_once(db, fake_queue, notifier)
    await process_once(db, fake_queue, notifier, max_messages=3, wait_seconds=0)

    assert fake_queue.receive_calls == [
        {"max_messages": 10, "wait_seconds": 10},
        {"max_messages": 3, "wait_seconds": 0},
    ]


@pytest.mark.asyncio
async def test_unconfigured_queue_is_skipped(db, notifier):
    report = await process_once(db, None, notifier)

    assert report.skipped is True
    assert report.received == 0


@pytest.mark.asyncio
async def test_receive_failure_propagates(db, fake_queue, notifier):
    fake_queue.receive_error = TransportError("ReceiveMessage failed: 503", status_code=503)

    with pytest.raises(TransportError):
        await process_once(db, fake_queue, notifier)
