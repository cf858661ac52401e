"""
Tests for system events service.
"""

from app.db.models import SystemEvent
from app.middleware.correlation_id import correlation_scope
from app.services.system_event_service import error, info, log_event, warn


def test_system_event_info(db):
    """Test logging INFO-level system event."""
    event = info(db, "test.info_event", payload={"test_key": "test_value"})

    assert event.id is not None
    assert event.level == "INFO"
    assert event.event_type == "test.info_event"
    assert event.chat_id is None
    assert event.payload == {"test_key": "test_value"}
    assert event.created_at is not None
    assert db.query(SystemEvent).filter(SystemEvent.id == event.id).first() is not None


def test_system_event_levels(db):
    assert warn(db, "test.warn", chat_id="42").level == "WARN"
    assert error(db, "test.error").level == "ERROR"
    assert log_event(db, "info", "test.lower").level == "INFO"


def test_exception_is_summarized_in_payload(db):
    event = warn(db, "test.exc", payload={"k": 1}, exc=ValueError("bad value"))

    assert event.payload == {"k": 1, "error": {"type": "ValueError", "message": "bad value"}}


def test_payload_argument_is_not_mutated(db):
    payload = {"k": 1}
    warn(db, "test.exc", payload=payload, exc=ValueError("x"))
    assert payload == {"k": 1}


def test_correlation_id_is_attached_inside_scope(db):
    with correlation_scope("job-123"):
        event = info(db, "test.scoped")
    assert event.payload == {"correlation_id": "job-123"}

    assert info(db, "test.unscoped").payload is None
