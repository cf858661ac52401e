"""
System event logging service.

Durable audit of notable failures and decisions (enqueue failures, poison
messages, capacity conflicts). All SystemEvent creation goes through
log_event (or info/warn/error) so the payload shape stays consistent.
"""

import logging

from sqlalchemy.orm import Session

from app.db.models import SystemEvent
from app.middleware.correlation_id import get_correlation_id

logger = logging.getLogger(__name__)


def log_event(
    db: Session,
    level: str,
    event_type: str,
    chat_id: str | None = None,
    payload: dict | None = None,
    exc: BaseException | None = None,
    correlation_id: str | None = None,
) -> SystemEvent:
    """
    Log a system event to the database and commit it.

    Args:
        db: Database session
        level: Event level (INFO, WARN, ERROR)
        event_type: Type of event (see app.constants.event_types)
        chat_id: Optional conversation the event belongs to
        payload: Optional additional event data. Copied, never mutated.
        exc: Optional exception; its type and message are added to the payload.
        correlation_id: Defaults to the current request/job correlation ID.

    Returns:
        Created SystemEvent object
    """
    normalized: dict = dict(payload) if payload else {}
    if exc is not None:
        normalized["error"] = {
            "type": type(exc).__name__,
            "message": str(exc)[:500],
        }
    resolved_cid = correlation_id if correlation_id is not None else get_correlation_id()
    if resolved_cid is not None:
        normalized["correlation_id"] = resolved_cid

    event = SystemEvent(
        level=level.upper(),
        event_type=event_type,
        chat_id=chat_id,
        payload=normalized if normalized else None,
    )
    db.add(event)
    db.commit()
    return event


def info(db: Session, event_type: str, **kwargs) -> SystemEvent:
    return log_event(db, "INFO", event_type, **kwargs)


def warn(db: Session, event_type: str, **kwargs) -> SystemEvent:
    return log_event(db, "WARN", event_type, **kwargs)


def error(db: Session, event_type: str, **kwargs) -> SystemEvent:
    return log_event(db, "ERROR", event_type, **kwargs)
